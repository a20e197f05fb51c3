"""Structured JSON logging configuration.

Provides centralized logging setup with trace ID correlation and JSON formatting.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from .request_id import get_trace_id

# Context attributes copied from `extra={...}` into the JSON line
CONTEXT_FIELDS = ("tenant_id", "user_id", "policy_id", "activity_id", "data_type", "job_id")


class TraceIDFilter(logging.Filter):
    """Add trace_id to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = get_trace_id()
        return True


class JSONFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON string.

        Args:
            record: Log record to format

        Returns:
            str: JSON-formatted log message
        """
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "trace_id": getattr(record, "trace_id", "no-trace-id"),
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["error"] = str(record.exc_info[1])
            log_data["traceback"] = self.formatException(record.exc_info)

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = str(getattr(record, field))

        return json.dumps(log_data)


def configure_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Configure application-wide logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, use JSON formatter; otherwise use simple format
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(levelname)s - %(trace_id)s - %(module)s.%(funcName)s - %(message)s'
        )

    handler.setFormatter(formatter)
    handler.addFilter(TraceIDFilter())
    root_logger.addHandler(handler)

    # Suppress noisy third-party loggers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("celery.app.trace").setLevel(logging.WARNING)
