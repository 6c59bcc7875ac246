# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration loader for the subscription service.

Settings are read from an INI file (default: ``config.ini``, overridden by
``SUB_CONFIG``) with environment variables as fallbacks. The result is a tree
of frozen dataclasses built once at process start and passed explicitly to
the components that need it; nothing reads ``os.environ`` after this point.

Example:
    Configuration file format (config.ini)::

        [database]
        dsn = postgresql://app:secret@db/subscriptions
        connect_attempts = 10

        [session]
        redis = redis://cache:6379/0
        lifetime_seconds = 86400

        [server]
        host = 0.0.0.0
        port = 8000
        api_token = my-secret-token

        [logging]
        level = INFO

        [mail]
        domain = example.com
        host = smtp.example.com
        port = 587
        encryption = tls
        username = mailer
        password = secret
        from_address = info@example.com
        from_name = Simple Subscription
        queue_size = 100

    Environment variables:
        SUB_CONFIG, DSN, REDIS, SUB_DB_CONNECT_ATTEMPTS, SUB_SESSION_LIFETIME,
        SUB_HOST, SUB_PORT, SUB_API_TOKEN, SUB_LOG_LEVEL, SUB_MAIL_DOMAIN,
        SUB_MAIL_HOST, SUB_MAIL_PORT, SUB_MAIL_ENCRYPTION, SUB_MAIL_USERNAME,
        SUB_MAIL_PASSWORD, SUB_MAIL_FROM_ADDRESS, SUB_MAIL_FROM_NAME,
        SUB_MAIL_QUEUE_SIZE, SUB_MAIL_TEMPLATES_DIR
"""

from __future__ import annotations

import configparser
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .logger import get_logger
from .models import Encryption

DEFAULT_TEMPLATES_DIR = str(Path(__file__).parent / "templates")

logger = get_logger("config")


@dataclass(frozen=True)
class MailSettings:
    """Static delivery configuration handed to the Mailer at construction.

    Attributes:
        domain: Mail domain the service sends for.
        host: SMTP server hostname.
        port: SMTP server port.
        encryption: Connection security (none, ssl, tls).
        username: SMTP login, or None for unauthenticated relays.
        password: SMTP password.
        from_address: Default sender address.
        from_name: Default sender display name.
        queue_size: Capacity of the outbound message queue.
        templates_dir: Directory holding the Jinja2 mail templates.
    """

    domain: str = "localhost"
    host: str = "localhost"
    port: int = 1025
    encryption: Encryption = Encryption.NONE
    username: str | None = None
    password: str | None = None
    from_address: str = "info@example.com"
    from_name: str = "Simple Subscription"
    queue_size: int = 100
    templates_dir: str = DEFAULT_TEMPLATES_DIR


@dataclass(frozen=True)
class SessionSettings:
    """Session store configuration."""

    redis: str | None = None
    lifetime_seconds: int = 24 * 3600
    cookie_name: str = "session"
    cookie_persist: bool = True
    cookie_secure: bool = True
    cookie_same_site: str = "lax"


@dataclass(frozen=True)
class Settings:
    """Complete process configuration."""

    dsn: str = "sqlite::memory:"
    db_connect_attempts: int = 10
    http_host: str = "0.0.0.0"
    http_port: int = 8000
    api_token: str | None = None
    log_level: str = "INFO"
    session: SessionSettings = field(default_factory=SessionSettings)
    mail: MailSettings = field(default_factory=MailSettings)


class _IniReader:
    """Small accessor over a ConfigParser with environment fallbacks."""

    def __init__(self, parser: configparser.ConfigParser, env: Mapping[str, str]):
        self.parser = parser
        self.env = env

    def get(self, section: str, option: str, env_key: str, default: str | None = None) -> str | None:
        if self.parser.has_option(section, option):
            return self.parser.get(section, option)
        value = self.env.get(env_key)
        if value is None or value == "":
            return default
        return value

    def get_int(self, section: str, option: str, env_key: str, default: int) -> int:
        value = self.get(section, option, env_key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            logger.warning("Invalid integer for %s.%s: %r, using %s", section, option, value, default)
            return default

    def get_bool(self, section: str, option: str, env_key: str, default: bool) -> bool:
        value = self.get(section, option, env_key)
        if value is None:
            return default
        normalized = str(value).strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
        return default


def _parse_encryption(value: str | None) -> Encryption:
    if not value:
        return Encryption.NONE
    try:
        return Encryption(value.strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unsupported mail encryption {value!r} (expected none, ssl or tls)") from exc


def load_settings(
    config_path: str | os.PathLike[str] | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """Load settings from an INI file with environment variables as fallbacks.

    Values in the INI file win over the environment. A missing file is not an
    error: every option has a default.

    Args:
        config_path: Path to the INI file. Defaults to ``$SUB_CONFIG`` or
            ``config.ini`` in the working directory.
        env: Environment mapping, ``os.environ`` when omitted.

    Returns:
        A frozen :class:`Settings` instance.

    Raises:
        ValueError: If the configured mail encryption is unknown.
    """
    env = os.environ if env is None else env
    path = Path(config_path or env.get("SUB_CONFIG", "config.ini"))
    parser = configparser.ConfigParser()
    read = parser.read(path)
    if read:
        logger.debug("Loaded configuration from %s", path)

    ini = _IniReader(parser, env)

    token = ini.get("server", "api_token", "SUB_API_TOKEN")
    if isinstance(token, str):
        token = token.strip() or None

    session = SessionSettings(
        redis=ini.get("session", "redis", "REDIS"),
        lifetime_seconds=ini.get_int("session", "lifetime_seconds", "SUB_SESSION_LIFETIME", 24 * 3600),
        cookie_secure=ini.get_bool("session", "cookie_secure", "SUB_SESSION_COOKIE_SECURE", True),
    )
    mail = MailSettings(
        domain=ini.get("mail", "domain", "SUB_MAIL_DOMAIN", "localhost"),
        host=ini.get("mail", "host", "SUB_MAIL_HOST", "localhost"),
        port=ini.get_int("mail", "port", "SUB_MAIL_PORT", 1025),
        encryption=_parse_encryption(ini.get("mail", "encryption", "SUB_MAIL_ENCRYPTION")),
        username=ini.get("mail", "username", "SUB_MAIL_USERNAME"),
        password=ini.get("mail", "password", "SUB_MAIL_PASSWORD"),
        from_address=ini.get("mail", "from_address", "SUB_MAIL_FROM_ADDRESS", "info@example.com"),
        from_name=ini.get("mail", "from_name", "SUB_MAIL_FROM_NAME", "Simple Subscription"),
        queue_size=max(1, ini.get_int("mail", "queue_size", "SUB_MAIL_QUEUE_SIZE", 100)),
        templates_dir=os.path.expanduser(
            ini.get("mail", "templates_dir", "SUB_MAIL_TEMPLATES_DIR", DEFAULT_TEMPLATES_DIR)
        ),
    )
    return Settings(
        dsn=ini.get("database", "dsn", "DSN", "sqlite::memory:"),
        db_connect_attempts=max(1, ini.get_int("database", "connect_attempts", "SUB_DB_CONNECT_ATTEMPTS", 10)),
        http_host=ini.get("server", "host", "SUB_HOST", "0.0.0.0"),
        http_port=ini.get_int("server", "port", "SUB_PORT", 8000),
        api_token=token,
        log_level=(ini.get("logging", "level", "SUB_LOG_LEVEL", "INFO") or "INFO").upper(),
        session=session,
        mail=mail,
    )
