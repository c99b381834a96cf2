"""
Structured Logging Configuration

Provides logging with:
- Request ID tracking (admin API requests and scheduled sync runs)
- Channel context for everything logged while a channel is being synced
- JSON output for log aggregation, plain text for development
"""

import logging
import json
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional
from contextvars import ContextVar

# Context variables for request / sync run tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')
channel_var: ContextVar[str] = ContextVar('channel', default='')

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s%(channel_tag)s] %(message)s'


class ContextFilter(logging.Filter):
    """Copies the current request id and channel onto every record"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or '-'
        channel = channel_var.get()
        record.channel = channel
        record.channel_tag = f" {channel}" if channel else ''
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id
        channel = channel_var.get()
        if channel:
            log_data["channel"] = channel

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if hasattr(record, 'duration_ms'):
            log_data["duration_ms"] = record.duration_ms

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_uvicorn: bool = True
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True for production)
        include_uvicorn: Also route uvicorn loggers through the same handler
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(ContextFilter())
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(TEXT_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    logging.getLogger("roomsync").setLevel(log_level)

    if include_uvicorn:
        for logger_name in ["uvicorn", "uvicorn.access", "uvicorn.error"]:
            logging.getLogger(logger_name).handlers = [handler]

    # Channel adapters log their own request lines
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def set_request_context(request_id: str, channel: Optional[str] = None):
    """Set context for the current request."""
    request_id_var.set(request_id)
    if channel:
        channel_var.set(channel)


def clear_request_context():
    request_id_var.set('')
    channel_var.set('')


@contextmanager
def log_context(request_id: Optional[str] = None, channel: Optional[str] = None) -> Iterator[None]:
    """
    Scope a request id and/or channel to a block, restoring the previous
    values on exit. Worker threads start with empty context.
    """
    tokens = []
    if request_id is not None:
        tokens.append((request_id_var, request_id_var.set(request_id)))
    if channel is not None:
        tokens.append((channel_var, channel_var.set(channel)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
