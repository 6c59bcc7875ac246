import logging

from simple_subscription.logger import configure_logging, get_logger, get_loggers


def test_get_logger_reuses_existing_logger():
    logger = get_logger("TestLogger")
    handler_count = len(logger.handlers)

    same_logger = get_logger("TestLogger")
    assert logger is same_logger
    assert len(same_logger.handlers) == handler_count
    assert logger.name == "simple_subscription.TestLogger"


def test_info_and_error_loggers_share_the_package_root():
    info_logger, error_logger = get_loggers()
    assert info_logger.name == "simple_subscription.info"
    assert error_logger.name == "simple_subscription.error"
    assert get_logger().name == "simple_subscription"


def test_configure_logging_sets_root_level(monkeypatch):
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

    configure_logging("debug")
    configure_logging("nonsense")

    assert calls[0]["level"] == logging.DEBUG
    assert calls[1]["level"] == logging.INFO
    assert calls[0]["force"] is True
