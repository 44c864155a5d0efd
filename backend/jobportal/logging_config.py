"""
Structured JSON logging configuration.

Provides channel loggers (http, db, assessments, attempts, scoring, uploads),
request ID tracking and context-rich log entries. Every log line is a
single JSON object written to stdout for container log aggregation.
"""

import logging
import json
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

from jobportal.config import LOG_LEVEL

# Request ID of the HTTP request currently being served, attached to
# every log entry produced while handling it.
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

CHANNELS = ["http", "db", "assessments", "attempts", "scoring", "uploads"]


class StructuredJsonFormatter(logging.Formatter):
    """
    Formatter that renders each record as one JSON object:

    - timestamp: ISO 8601 in UTC
    - level: INFO, WARNING, ERROR, DEBUG
    - message: human-readable text
    - channel: source category (http, attempts, scoring, ...)
    - context: business identifiers (request_id, attempt_id, ...)
    - extra: additional metadata (duration_ms, ip, ...)
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", record.name.split(".")[-1] if "." in record.name else "app"),
            "context": {
                "request_id": request_id_var.get(""),
                **(getattr(record, "context", {}) or {})
            },
            "extra": getattr(record, "extra_data", {}) or {}
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging():
    """
    Configure the root logger with the JSON formatter on stdout and set
    the level of every channel logger.
    """
    formatter = StructuredJsonFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        logger = logging.getLogger(f"jobportal.{channel}")
        logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    """Get the logger for a channel (http, db, assessments, attempts, ...)."""
    return logging.getLogger(f"jobportal.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None,
                     exc_info: bool = False):
    """
    Emit a structured log entry with business context and extra metadata.

    Args:
        logger: The channel logger to use
        level: Log level string (INFO, WARNING, ERROR, DEBUG)
        message: Human-readable log message
        context: Business identifiers (attempt_id, assessment_id, ...)
        extra_data: Additional metadata (duration_ms, score, ...)
        exc_info: Attach the active exception's traceback
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    logger.log(
        log_level,
        message,
        exc_info=exc_info,
        extra={"context": context or {}, "extra_data": extra_data or {}, "channel": logger.name.split(".")[-1]}
    )


def generate_request_id() -> str:
    """Generate a new UUID for request tracking."""
    return str(uuid.uuid4())
