"""
Structured JSON logging

One JSON object per line on the console and in two rotating files
(``app.log`` for everything at the configured level, ``error.log`` for
errors only). Every record carries the correlation ID of the trigger or
management request it was logged for.

Camera names, MQTT payloads and mail addresses arrive from the network and
end up in log messages, so line breaks are stripped before formatting.
"""
import contextvars
import logging
import logging.handlers
import os
import re
from datetime import datetime, timezone
from typing import Any, Optional

from pythonjsonlogger import jsonlogger

from motion_funnel.core.config import settings

correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'correlation_id', default=None
)

APP_VERSION = "1.0.0"

# backend/data/logs unless LOG_DIR is set
LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), 'data', 'logs')

APP_LOG_MAX_BYTES = 100 * 1024 * 1024
APP_LOG_BACKUPS = 7
ERROR_LOG_MAX_BYTES = 50 * 1024 * 1024
ERROR_LOG_BACKUPS = 5

MAX_LOGGED_VALUE_LENGTH = 10000

_LINE_BREAKS = re.compile(r'\r\n|\r|\n')

NOISY_LOGGERS = ('uvicorn.access', 'httpx', 'httpcore')


def _strip_line_breaks(value: Any) -> Any:
    if isinstance(value, str):
        return _LINE_BREAKS.sub(' ', value)
    return value


class CorrelationIdFilter(logging.Filter):
    """Copies the current correlation ID onto the record ('-' outside a trigger)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or "-"
        return True


class SanitizingFilter(logging.Filter):
    """Replaces CR/LF in the message and its string arguments with spaces."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = _strip_line_breaks(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(_strip_line_breaks(arg) for arg in record.args)
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter with the fields every log consumer can rely on.

    Example line:
        {"timestamp": "2025-11-23T10:30:00+00:00", "level": "INFO",
         "logger": "motion_funnel.services.motion_resolver",
         "message": "Motion event forwarded for Garage",
         "correlation_id": "6f1c...", "version": "1.0.0",
         "event_type": "motion_forwarded", "camera_name": "Garage", ...}
    """

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        # '%(timestamp)s' in the format string pre-fills the key with None
        if not log_record.get('timestamp'):
            log_record['timestamp'] = datetime.fromtimestamp(record.created, timezone.utc).isoformat()
        if not log_record.get('message'):
            log_record['message'] = record.getMessage()
        log_record.update(
            level=record.levelname,
            logger=record.name,
            module=record.module,
            function=record.funcName,
            line=record.lineno,
            correlation_id=getattr(record, 'correlation_id', '-'),
            version=APP_VERSION,
        )


def _configure(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter())
    handler.addFilter(SanitizingFilter())
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_dir: Optional[str] = None,
    app_version: Optional[str] = None
) -> logging.Logger:
    """
    Replace the root logger's handlers with the JSON console and file handlers.

    Args:
        log_level: Level name, default settings.LOG_LEVEL
        log_dir: Directory for app.log / error.log, default settings.LOG_DIR or backend/data/logs
        app_version: Version added to every record

    Returns:
        The root logger
    """
    global APP_VERSION
    if app_version:
        APP_VERSION = app_version

    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)
    directory = log_dir or settings.LOG_DIR or LOG_DIR
    os.makedirs(directory, exist_ok=True)

    formatter = CustomJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(_configure(logging.StreamHandler(), level, formatter))
    root_logger.addHandler(_configure(
        logging.handlers.RotatingFileHandler(
            os.path.join(directory, 'app.log'),
            maxBytes=APP_LOG_MAX_BYTES,
            backupCount=APP_LOG_BACKUPS,
            encoding='utf-8'
        ),
        level,
        formatter
    ))
    root_logger.addHandler(_configure(
        logging.handlers.RotatingFileHandler(
            os.path.join(directory, 'error.log'),
            maxBytes=ERROR_LOG_MAX_BYTES,
            backupCount=ERROR_LOG_BACKUPS,
            encoding='utf-8'
        ),
        logging.ERROR,
        formatter
    ))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # aiosmtpd protocol chatter only at debug level
    logging.getLogger('mail.log').setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_correlation_id(correlation_id: Optional[str]) -> contextvars.Token:
    """Set the correlation ID; pass the returned token to clear_correlation_id."""
    return correlation_id_var.set(correlation_id)


def clear_correlation_id(token: contextvars.Token) -> None:
    correlation_id_var.reset(token)


def sanitize_log_value(value: Any) -> str:
    """Single-line, length-limited string form of a value for log messages."""
    sanitized = _strip_line_breaks(value if isinstance(value, str) else str(value))
    if len(sanitized) > MAX_LOGGED_VALUE_LENGTH:
        sanitized = sanitized[:MAX_LOGGED_VALUE_LENGTH] + '...[truncated]'
    return sanitized
