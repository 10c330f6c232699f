import logging

from livemarks.log import LogConfig, parse_level, setup_logging


def test_parse_level_accepts_warn_alias_and_falls_back_to_info():
    assert parse_level("warn") == logging.WARNING
    assert parse_level("DEBUG") == logging.DEBUG
    assert parse_level("chatty") == logging.INFO
    assert parse_level("") == logging.INFO


def test_setup_logging_plain_handler_and_quiet_transport(monkeypatch):
    monkeypatch.setenv("NO_COLOR", "1")
    root = logging.getLogger()
    saved = list(root.handlers), root.level
    try:
        setup_logging(LogConfig(level="INFO"))
        assert len(root.handlers) == 1
        assert type(root.handlers[0]) is logging.StreamHandler
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

        setup_logging(LogConfig(level="DEBUG"))
        assert len(root.handlers) == 1
        assert logging.getLogger("httpx").level == logging.DEBUG
    finally:
        root.handlers[:] = saved[0]
        root.setLevel(saved[1])
        logging.getLogger("httpx").setLevel(logging.NOTSET)
        logging.getLogger("httpcore").setLevel(logging.NOTSET)
