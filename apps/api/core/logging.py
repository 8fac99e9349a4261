"""
Structured logging configuration.

Every line carries the execution context it was emitted from ("server" for the
API and its stores, "client" for the device-side storage client), so a shared
log stream from an in-process deployment or a test run stays attributable.
"""
import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

from core.config import settings
from core.execution_context import current_execution_context

TEXT_FORMAT = "%(asctime)s - %(execution_context)s - %(name)s - %(levelname)s - %(message)s"

# Chatty at INFO; the journal only cares about their warnings
NOISY_LOGGERS = ("httpx", "httpcore", "redis", "uvicorn.access")


class ExecutionContextFilter(logging.Filter):
    """Stamps each record with the execution context of the emitting code."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "execution_context"):
            record.execution_context = current_execution_context().value
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "context": getattr(record, "execution_context", None) or current_execution_context().value,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Request middleware and storage layers attach structured context here
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


def setup_logging(stream: Optional[TextIO] = None) -> logging.Logger:
    """
    Configure application-wide logging.

    Uses JSON format in production or when LOG_FORMAT=json, text otherwise.
    Safe to call more than once: the root handlers are replaced, not added to.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    if settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(ExecutionContextFilter())
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger
