"""
Structured JSON logging for the alerting service.

Every record carries the request id of the HTTP request (or "-" for
scheduler work), the service name and version. Alert text is admin-supplied,
so line breaks are flattened before formatting.

File output is optional (LOG_TO_FILE); when enabled, alerting.log holds
everything at the configured level and error.log holds errors only.
"""
import logging
import logging.handlers
import os
import contextvars
import re
from datetime import datetime, timezone
from typing import Optional
from pythonjsonlogger import jsonlogger

from alerting.core.config import settings

SERVICE_NAME = "alerting"

request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'request_id', default=None
)

# Overridden by setup_logging(app_version=...)
APP_VERSION = "1.0.0"

_LINE_BREAKS = re.compile(r'\r\n|\r|\n')


def _flatten(value):
    if isinstance(value, str):
        return _LINE_BREAKS.sub(' ', value)
    return value


class RequestIdFilter(logging.Filter):
    """Attach the current request id (from contextvars) to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


class SanitizingFilter(logging.Filter):
    """
    Flatten CR/LF in the message and its string arguments.

    An alert titled "Outage\\n{\"level\": \"INFO\"}" would otherwise forge a
    second log line.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = _flatten(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(_flatten(arg) for arg in record.args)
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter with the service's standard fields.

    Output format:
    {
        "timestamp": "2024-01-15T09:00:00.000000+00:00",
        "level": "INFO",
        "message": "Reminder sent",
        "service": "alerting",
        "version": "1.0.0",
        "module": "reminder_service",
        "logger": "alerting.services.reminder_service",
        "request_id": "-",
        "event_type": "reminder_sent",
        ...extra fields...
    }
    """

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get('timestamp'):
            log_record['timestamp'] = datetime.now(timezone.utc).isoformat()

        log_record['level'] = record.levelname
        log_record['service'] = SERVICE_NAME
        log_record['version'] = APP_VERSION
        log_record['module'] = record.module
        log_record['logger'] = record.name
        log_record['request_id'] = getattr(record, 'request_id', '-')

        if record.funcName:
            log_record['function'] = record.funcName

        if 'message' not in log_record:
            log_record['message'] = record.getMessage()


def _with_filters(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SanitizingFilter())
    return handler


def _rotating_file(directory: str, filename: str, max_mb: int, backups: int) -> logging.Handler:
    return logging.handlers.RotatingFileHandler(
        os.path.join(directory, filename),
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
        encoding='utf-8'
    )


def setup_logging(
    log_level: Optional[str] = None,
    log_dir: Optional[str] = None,
    log_to_file: Optional[bool] = None,
    app_version: Optional[str] = None
) -> logging.Logger:
    """
    Configure the root logger. Safe to call more than once; existing handlers
    are replaced.

    Args:
        log_level: Override settings.LOG_LEVEL
        log_dir: Override settings.LOG_DIR
        log_to_file: Override settings.LOG_TO_FILE
        app_version: Version stamped on every record

    Returns:
        The configured root logger
    """
    global APP_VERSION

    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)
    directory = log_dir or settings.LOG_DIR
    write_files = settings.LOG_TO_FILE if log_to_file is None else log_to_file
    if app_version:
        APP_VERSION = app_version

    json_formatter = CustomJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(_with_filters(logging.StreamHandler(), level, json_formatter))

    if write_files:
        os.makedirs(directory, exist_ok=True)
        root_logger.addHandler(
            _with_filters(_rotating_file(directory, 'alerting.log', 100, 7), level, json_formatter)
        )
        root_logger.addHandler(
            _with_filters(_rotating_file(directory, 'error.log', 50, 5), logging.ERROR, json_formatter)
        )

    # APScheduler logs every job execution at INFO
    logging.getLogger('apscheduler').setLevel(logging.WARNING)
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_request_id(request_id: Optional[str]) -> contextvars.Token:
    """Set the request id for the current context; returns the reset token."""
    return request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def clear_request_id(token: contextvars.Token) -> None:
    """Restore the request id that was current before set_request_id."""
    request_id_var.reset(token)
