"""
Unit tests for logging configuration
"""
import json
import logging
import uuid
from datetime import datetime

from motion_funnel.core.logging_config import (
    setup_logging,
    get_logger,
    set_correlation_id,
    correlation_id_var,
    clear_correlation_id,
    sanitize_log_value,
    CustomJsonFormatter,
    CorrelationIdFilter,
    SanitizingFilter,
)


def _record(msg="Test message", args=(), name="test", lineno=1):
    return logging.LogRecord(
        name=name,
        level=logging.INFO,
        pathname="test.py",
        lineno=lineno,
        msg=msg,
        args=args,
        exc_info=None
    )


class TestCorrelationIdContext:
    """Test correlation ID context variable functionality"""

    def test_set_correlation_id(self):
        """correlation_id should be retrievable after setting"""
        test_id = str(uuid.uuid4())
        token = set_correlation_id(test_id)

        assert correlation_id_var.get() == test_id

        clear_correlation_id(token)

    def test_clear_restores_previous_value(self):
        """clear_correlation_id should reset to previous value"""
        outer = set_correlation_id("outer")
        inner = set_correlation_id("inner")
        assert correlation_id_var.get() == "inner"

        clear_correlation_id(inner)
        assert correlation_id_var.get() == "outer"

        clear_correlation_id(outer)


class TestCorrelationIdFilter:
    """Test correlation ID logging filter"""

    def test_filter_adds_correlation_id(self):
        token = set_correlation_id("trigger-1")
        record = _record()

        assert CorrelationIdFilter().filter(record) is True
        assert record.correlation_id == "trigger-1"

        clear_correlation_id(token)

    def test_filter_uses_dash_when_unset(self):
        token = set_correlation_id(None)
        record = _record()

        CorrelationIdFilter().filter(record)

        assert record.correlation_id == "-"
        clear_correlation_id(token)


class TestSanitizingFilter:
    """Test log sanitization filter"""

    def test_filter_removes_newlines_from_message(self):
        """A camera name with newlines cannot forge log lines"""
        record = _record(msg="Email received (Garage\nFAKE ENTRY).")

        SanitizingFilter().filter(record)

        assert record.msg == "Email received (Garage FAKE ENTRY)."

    def test_filter_sanitizes_args(self):
        record = _record(msg="MQTT payload: %s", args=("ON\r\nOFF", 3))

        SanitizingFilter().filter(record)

        assert record.args == ("ON OFF", 3)


class TestSanitizeLogValue:
    """Test sanitize_log_value helper function"""

    def test_sanitize_removes_line_breaks(self):
        assert sanitize_log_value("hello\r\nworld\rtest\n") == "hello world test "

    def test_sanitize_truncates_long_strings(self):
        result = sanitize_log_value("a" * 20000)

        assert result.endswith("...[truncated]")
        assert len(result) < 20000

    def test_sanitize_handles_non_strings(self):
        assert sanitize_log_value(12345) == "12345"


class TestCustomJsonFormatter:
    """Test custom JSON log formatter"""

    def test_formatter_produces_valid_json(self):
        formatter = CustomJsonFormatter()
        record = _record(name="motion_funnel.services.motion_resolver", lineno=42)
        record.correlation_id = "test-uuid"

        parsed = json.loads(formatter.format(record))

        assert datetime.fromisoformat(parsed["timestamp"]).tzinfo is not None
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Test message"
        assert parsed["logger"] == "motion_funnel.services.motion_resolver"
        assert parsed["correlation_id"] == "test-uuid"
        assert parsed["line"] == 42

    def test_timestamp_filled_when_named_in_format(self):
        """The format used by setup_logging must not leave timestamp null"""
        formatter = CustomJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s')

        parsed = json.loads(formatter.format(_record()))

        assert parsed["timestamp"] is not None
        assert datetime.fromisoformat(parsed["timestamp"]).tzinfo is not None
        assert parsed["message"] == "Test message"

    def test_formatter_includes_extra_fields(self):
        formatter = CustomJsonFormatter()
        record = _record(msg="Motion event forwarded")
        record.camera_name = "Garage"
        record.event_type = "motion_forwarded"

        parsed = json.loads(formatter.format(record))

        assert parsed["camera_name"] == "Garage"
        assert parsed["event_type"] == "motion_forwarded"


class TestSetupLogging:
    """Test logging setup function"""

    def test_setup_logging_creates_log_files(self, tmp_path):
        logger = setup_logging(log_level="INFO", log_dir=str(tmp_path))

        assert isinstance(logger, logging.Logger)
        logging.getLogger("motion_funnel.test").error("written to both files")
        for handler in logger.handlers:
            handler.flush()

        assert "written to both files" in (tmp_path / "app.log").read_text()
        assert "written to both files" in (tmp_path / "error.log").read_text()

    def test_setup_logging_respects_log_level(self, tmp_path):
        setup_logging(log_level="WARNING", log_dir=str(tmp_path))

        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger("mail.log").level == logging.WARNING

        setup_logging(log_level="INFO", log_dir=str(tmp_path))

    def test_debug_level_enables_smtp_protocol_log(self, tmp_path):
        setup_logging(log_level="DEBUG", log_dir=str(tmp_path))

        assert logging.getLogger("mail.log").level == logging.DEBUG

        setup_logging(log_level="INFO", log_dir=str(tmp_path))


class TestGetLogger:
    """Test get_logger helper function"""

    def test_get_logger_returns_logger_instance(self):
        logger = get_logger("test.module")

        assert isinstance(logger, logging.Logger)
        assert logger.name == "test.module"
