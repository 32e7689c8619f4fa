"""Tests for logging configuration."""

import json
import logging

from peerlog.infrastructure.observability.logging import (
    CompactExceptionFormatter,
    CustomJsonFormatter,
    configure_logging,
)


class TestLoggingConfiguration:
    """Test logging configuration."""

    def test_configure_logging_debug_level(self) -> None:
        configure_logging(log_level="DEBUG", json_format=False, app_name="test-app")
        assert logging.getLogger("test").getEffectiveLevel() <= logging.DEBUG

    def test_configure_logging_info_level(self) -> None:
        configure_logging(log_level="INFO", json_format=False, app_name="test-app")
        assert logging.getLogger("test").getEffectiveLevel() == logging.INFO

    def test_unknown_level_falls_back_to_info(self) -> None:
        configure_logging(log_level="LOUD", json_format=False)
        assert logging.getLogger().level == logging.INFO

    def test_repeated_calls_do_not_stack_handlers(self) -> None:
        configure_logging(log_level="INFO")
        configure_logging(log_level="INFO")
        assert len(logging.getLogger().handlers) == 1

    def test_json_format_installs_json_formatter(self) -> None:
        configure_logging(log_level="INFO", json_format=True)
        [handler] = logging.getLogger().handlers
        assert isinstance(handler.formatter, CustomJsonFormatter)

    def test_text_format_installs_compact_formatter(self) -> None:
        configure_logging(log_level="INFO", json_format=False)
        [handler] = logging.getLogger().handlers
        assert isinstance(handler.formatter, CompactExceptionFormatter)

    def test_driver_loggers_are_quieted(self) -> None:
        configure_logging(log_level="DEBUG")
        assert logging.getLogger("aiosqlite").level == logging.WARNING
        assert logging.getLogger("sqlalchemy").level == logging.WARNING


def make_record(exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="peerlog.infrastructure.persistence.writer",
        level=logging.ERROR,
        pathname=__file__,
        lineno=10,
        msg="Insert into %s failed",
        args=("p2pserver",),
        exc_info=exc_info,
    )


class TestFormatters:
    """Test formatter output."""

    def test_json_fields(self) -> None:
        formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
        payload = json.loads(formatter.format(make_record()))
        assert payload["level"] == "ERROR"
        assert payload["logger"] == "peerlog.infrastructure.persistence.writer"
        assert payload["message"] == "Insert into p2pserver failed"
        assert payload["line"] == 10

    def test_compact_exception_chain_root_cause_first(self) -> None:
        try:
            try:
                raise ValueError("root cause")
            except ValueError as inner:
                raise RuntimeError("wrapper") from inner
        except RuntimeError as exc:
            ei = (type(exc), exc, exc.__traceback__)

        text = CompactExceptionFormatter().formatException(ei)
        lines = [line for line in text.splitlines() if line.startswith("╰─►")]
        assert lines == ["╰─► ValueError: root cause", "╰─► RuntimeError: wrapper"]
