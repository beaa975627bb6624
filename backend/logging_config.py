"""
Ledger API - Structured JSON Logging

Plain text logs in development, one JSON object per line in production
so the output can be shipped to a log aggregator as-is.
"""

import logging
import json
import sys
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import traceback

# Attributes every LogRecord carries; anything else came in through `extra=`
_RESERVED_ATTRS = frozenset([
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName", "request_id", "user_id", "username",
])


class JSONFormatter(logging.Formatter):
    """Formatter that renders each record as a single JSON document."""

    def __init__(self, service_name: str = "ledger-api"):
        super().__init__()
        self.service_name = service_name
        self.environment = os.environ.get("ENVIRONMENT", "development")
        self.hostname = os.environ.get("HOSTNAME", "unknown")

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "environment": self.environment,
            "hostname": self.hostname,
            "location": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        request_id = getattr(record, "request_id", None)
        if request_id:
            log_data["request_id"] = request_id
            log_data["user_id"] = getattr(record, "user_id", None)
            log_data["username"] = getattr(record, "username", None)

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info) if record.exc_info[0] else None,
            }

        extra_fields = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str)


class RequestContextFilter(logging.Filter):
    """
    Adds request context to log records.
    """

    def __init__(self):
        super().__init__()
        self._request_id: Optional[str] = None
        self._user_id: Optional[int] = None
        self._username: Optional[str] = None

    def set_request_context(
        self,
        request_id: Optional[str] = None,
        user_id: Optional[int] = None,
        username: Optional[str] = None
    ):
        # Only given fields change; auth adds the user to an existing request id
        if request_id is not None:
            self._request_id = request_id
        if user_id is not None:
            self._user_id = user_id
        if username is not None:
            self._username = username

    def clear_request_context(self):
        self._request_id = None
        self._user_id = None
        self._username = None

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = self._request_id
        record.user_id = self._user_id
        record.username = self._username
        return True


_request_context_filter: Optional[RequestContextFilter] = None


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    service_name: str = "ledger-api"
) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True for production)
        service_name: Service name for log aggregation

    Returns:
        Configured root logger
    """
    global _request_context_filter

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))

    if json_format:
        handler.setFormatter(JSONFormatter(service_name=service_name))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))

    _request_context_filter = RequestContextFilter()
    handler.addFilter(_request_context_filter)

    root_logger.addHandler(handler)

    # Suppress noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    return logging.getLogger(name)


def set_request_context(
    request_id: Optional[str] = None,
    user_id: Optional[int] = None,
    username: Optional[str] = None
):
    """Set request context for logging."""
    if _request_context_filter:
        _request_context_filter.set_request_context(request_id, user_id, username)


def clear_request_context():
    """Clear request context."""
    if _request_context_filter:
        _request_context_filter.clear_request_context()
