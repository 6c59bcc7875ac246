# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Command-line interface for the subscription service.

Usage:
    simple-subscription serve [--config config.ini] [--host 0.0.0.0] [--port 8000]
    simple-subscription show-config [--config config.ini] [--json]

Example:
    $ DSN=postgresql://app:secret@db/subscriptions REDIS=cache:6379 \\
        simple-subscription serve --port 8080
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import sys
from enum import Enum
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from .app import Application, ServeError
from .config_loader import Settings, load_settings
from .db import StartupError
from .logger import get_loggers

console = Console()
err_console = Console(stderr=True)

SECRET_FIELDS = {"password", "api_token"}


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def _settings_rows(settings: Settings) -> list[tuple[str, Any]]:
    """Flatten settings into ``(dotted_key, value)`` rows with secrets masked."""
    rows: list[tuple[str, Any]] = []

    def walk(prefix: str, value: Any) -> None:
        if dataclasses.is_dataclass(value):
            for f in dataclasses.fields(value):
                walk(f"{prefix}.{f.name}" if prefix else f.name, getattr(value, f.name))
            return
        name = prefix.rsplit(".", 1)[-1]
        if name in SECRET_FIELDS and value:
            value = "****"
        elif isinstance(value, Enum):
            value = value.value
        rows.append((prefix, value))

    walk("", settings)
    return rows


def _with_overrides(settings: Settings, host: str | None, port: int | None) -> Settings:
    changes: dict[str, Any] = {}
    if host is not None:
        changes["http_host"] = host
    if port is not None:
        changes["http_port"] = port
    return dataclasses.replace(settings, **changes) if changes else settings


async def _serve(settings: Settings) -> None:
    application = await Application.build(settings)
    await application.run()


@click.group()
@click.version_option(package_name="simple-subscription")
def main() -> None:
    """Subscription service with asynchronous mail dispatch."""


@main.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None, help="INI configuration file.")
@click.option("--host", default=None, help="Bind address (overrides configuration).")
@click.option("--port", type=int, default=None, help="HTTP port (overrides configuration).")
def serve(config_path: str | None, host: str | None, port: int | None) -> None:
    """Start the HTTP server and the mail consume loop."""
    try:
        settings = _with_overrides(load_settings(config_path), host, port)
    except ValueError as exc:
        print_error(str(exc))
        sys.exit(2)

    _info, error_logger = get_loggers()
    try:
        asyncio.run(_serve(settings))
    except (StartupError, ServeError, ValueError) as exc:
        error_logger.error("fatal: %s", exc)
        sys.exit(1)
    sys.exit(0)


@main.command("show-config")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None, help="INI configuration file.")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def show_config(config_path: str | None, as_json: bool) -> None:
    """Print the effective configuration, secrets masked."""
    try:
        settings = load_settings(config_path)
    except ValueError as exc:
        print_error(str(exc))
        sys.exit(2)

    rows = _settings_rows(settings)
    if as_json:
        console.print_json(json.dumps(dict(rows), default=str))
        return

    table = Table(title="Effective configuration")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in rows:
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)


if __name__ == "__main__":
    main()
