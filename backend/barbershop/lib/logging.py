"""
JSON logging for the booking backend.

Every record carries the request's correlation ID, or the background job it
was emitted from, so a booking can be followed from the HTTP request through
payment callbacks and scheduled sweeps. Payment secrets passed as context
fields are masked before they are written.
"""
import logging
import json
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional
from contextvars import ContextVar

from barbershop.lib.settings import settings


# Set per request by CorrelationIdMiddleware
correlation_id_var: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

# Set while a scheduled job (no-show sweep, stale cleanup) is running
job_id_var: ContextVar[Optional[str]] = ContextVar('job_id', default=None)

REDACTED = "[redacted]"
SENSITIVE_FIELDS = frozenset({"client_secret", "stripe_signature", "authorization", "access_token"})

QUIET_LOGGERS = ("httpx", "httpcore", "stripe", "apscheduler", "sqlalchemy.engine")


def redact(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: REDACTED if key.lower() in SENSITIVE_FIELDS and value is not None else value
        for key, value in fields.items()
    }


@contextmanager
def job_context(job_id: str) -> Iterator[None]:
    """Tag every record logged inside the block with ``job_id``."""
    token = job_id_var.set(job_id)
    try:
        yield
    finally:
        job_id_var.reset(token)


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record: time of the event, level, logger, message,
    the request or job it belongs to, and any context fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            log_data["correlation_id"] = correlation_id
        job_id = job_id_var.get()
        if job_id:
            log_data["job_id"] = job_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(redact(record.extra_fields))

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, use JSON formatter; otherwise use simple text format
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: str, message: str, **extra_fields) -> None:
    """
    Log ``message`` with booking context (appointment_id, barber_id, ...)
    attached as top-level JSON fields.
    """
    log_func = getattr(logger, level.lower())
    log_func(message, extra={"extra_fields": extra_fields})


setup_logging(
    level="DEBUG" if settings.debug else "INFO",
    json_format=True
)
