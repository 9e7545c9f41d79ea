"""
Logging setup for Redis pools.

Library modules only create module level loggers. Applications call
configure_logging() to get JSON or plain text output carrying the pool name
and the active OpenTelemetry trace context.
"""

import json
import logging
import sys
from datetime import datetime
from typing import Any

from opentelemetry import trace

DEFAULT_LOG_FORMAT = (
    "%(asctime)s - %(levelname)s - [%(pool_name)s] - [%(name)s] - %(message)s"
)

TRACE_LOG_FORMAT = (
    "%(asctime)s - %(levelname)s - [%(pool_name)s] - [%(trace_id)s:%(span_id)s] - "
    "[%(name)s] - %(message)s"
)

LOG_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}

LIBRARY_LOGGER = "redis_pool"

_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module",
    "lineno", "funcName", "created", "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "taskName", "exc_info", "exc_text", "stack_info",
    "message", "asctime", "pool_name", "trace_id", "span_id",
})


class PoolNameFilter(logging.Filter):
    """Inject a default pool name into log records."""

    def __init__(self, pool_name: str = "-") -> None:
        super().__init__()
        self.pool_name = pool_name

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "pool_name"):
            record.pool_name = self.pool_name  # type: ignore[attr-defined]
        return True


class TraceContextFilter(logging.Filter):
    """Inject trace context into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            record.trace_id = format(span_context.trace_id, "032x")  # type: ignore[attr-defined]
            record.span_id = format(span_context.span_id, "016x")  # type: ignore[attr-defined]
        else:
            record.trace_id = "0" * 32  # type: ignore[attr-defined]
            record.span_id = "0" * 16  # type: ignore[attr-defined]
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, include_trace: bool = True):
        super().__init__()
        self.include_trace = include_trace

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "pool": getattr(record, "pool_name", None),
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if self.include_trace:
            trace_id = getattr(record, "trace_id", None)
            span_id = getattr(record, "span_id", None)
            if trace_id and span_id:
                log_entry["trace_id"] = trace_id
                log_entry["span_id"] = span_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        # Fields passed through `extra=`
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_entry:
                log_entry[key] = value

        return json.dumps(log_entry, default=str, ensure_ascii=False)


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    pool_name: str = "-",
    enable_trace_context: bool = True,
    stream: Any = None,
) -> logging.Logger:
    """Attach a configured handler to the library logger and return it"""
    logger = logging.getLogger(LIBRARY_LOGGER)
    logger.handlers.clear()
    logger.setLevel(LOG_LEVELS.get(level.upper(), logging.INFO))

    handler = logging.StreamHandler(stream or sys.stdout)
    if json_format:
        handler.setFormatter(JSONFormatter(include_trace=enable_trace_context))
    else:
        handler.setFormatter(
            logging.Formatter(TRACE_LOG_FORMAT if enable_trace_context else DEFAULT_LOG_FORMAT)
        )

    handler.addFilter(PoolNameFilter(pool_name))
    if enable_trace_context:
        handler.addFilter(TraceContextFilter())

    logger.addHandler(handler)
    logger.propagate = False
    return logger
