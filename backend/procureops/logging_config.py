"""
Logging configuration for ProcureOps.

Configures the ``procureops`` logger hierarchy once per process with either a
single-line JSON formatter (default, for log shippers) or a plain text
formatter for local development. Structured context is passed through the
standard ``extra=`` argument and lands as top-level JSON keys.

Usage:
    from procureops.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__)
    logger.info("PO received", extra={"po_number": "PO-2026-001"})
"""
import json
import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Optional

_ROOT_LOGGER = "procureops"

# Attributes every LogRecord has; anything else came in through ``extra``
_STDLIB_KEYS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    """datetime as ISO 8601; Decimal and other unknown types as str."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        return str(obj)


class JSONFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, val in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = val

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            error_code = getattr(exc, "error_code", None)
            if error_code:
                payload["error_code"] = error_code
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, cls=_JSONEncoder)


_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_configured = False
_lock = threading.Lock()


def setup_logging(
    level: Optional[str] = None,
    fmt: Optional[str] = None,
    stream: Any = None,
) -> None:
    """
    Configure the procureops logger hierarchy (idempotent).

    Args:
        level: Log level name; defaults to settings.LOG_LEVEL
        fmt: "json" or "text"; defaults to settings.LOG_FORMAT
        stream: Output stream (defaults to stderr)
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    from procureops.core.settings import get_settings

    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()
    fmt = (fmt or settings.LOG_FORMAT).lower()

    handler = logging.StreamHandler(stream or sys.stderr)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))

    root_logger = logging.getLogger(_ROOT_LOGGER)
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    if settings.LOG_FILE:
        file_handler = logging.FileHandler(settings.LOG_FILE, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)


def reset_logging() -> None:
    """Drop configured handlers. Used by tests."""
    global _configured
    with _lock:
        _configured = False
    logger = logging.getLogger(_ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


def get_logger(name: str) -> logging.Logger:
    """Get a logger inside the procureops hierarchy."""
    if name == _ROOT_LOGGER or name.startswith(_ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_LOGGER}.{name}")
