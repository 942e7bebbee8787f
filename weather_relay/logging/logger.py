"""Structured JSON logging with per-connection context."""

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone

# Id of the WebSocket connection being served by the current task
_connection_id: ContextVar[str | None] = ContextVar("connection_id", default=None)

_RESERVED_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "relativeCreated",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "pathname",
        "filename",
        "module",
        "levelno",
        "levelname",
        "msecs",
        "thread",
        "threadName",
        "taskName",
        "processName",
        "process",
        "message",
    )
)


def new_connection_id() -> str:
    return uuid.uuid4().hex[:16]


@contextmanager
def connection_id_ctx(connection_id: str | None = None):
    """Context manager that sets a connection ID and resets it on exit."""
    token = _connection_id.set(connection_id or new_connection_id())
    try:
        yield _connection_id.get()
    finally:
        _connection_id.reset(token)


class JSONFormatter(logging.Formatter):
    """Formats log records as structured JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }

        cid = _connection_id.get()
        if cid is not None:
            log_entry["connection_id"] = cid

        # Anything passed via `extra={}` on log calls
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def get_logger(name: str) -> logging.Logger:
    """Return a configured logger with JSON formatting on stdout.

    Child loggers created with ``logging.getLogger(__name__)`` inside the
    package propagate to ``get_logger("weather_relay")``, so entry points only
    need to configure the package root once.

    Args:
        name: Logger name, typically the module path (e.g. ``weather_relay.streaming``).
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)

    # Import settings lazily to avoid circular imports at module load time
    try:
        from weather_relay.config.settings import get_settings

        logger.setLevel(getattr(logging, get_settings().LOG_LEVEL.upper(), logging.INFO))
    except Exception:
        logger.setLevel(logging.INFO)

    logger.propagate = False
    return logger
