"""
Logging setup for Bluestack.

Records are stamped with the ID of the request being served, so blob store
messages line up with the edge access log entry of the same request.
Structured fields passed through ``log_with_context`` become top-level keys
in JSON output and ``key=value`` pairs in text output.
"""

import json
import logging
import logging.handlers
import sys
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config_manager import LoggingConfig

request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def bind_request_id(value: str) -> Token:
    """Make ``value`` the request ID of the current context."""
    return request_id.set(value)


def reset_request_id(token: Token) -> None:
    """Restore the request ID that was current before ``bind_request_id``."""
    request_id.reset(token)


class RequestIdFilter(logging.Filter):
    """Copy the current request ID onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id.get()
        return True


def _fields(record: logging.LogRecord) -> Dict[str, Any]:
    fields = dict(getattr(record, "context", None) or {})
    req_id = getattr(record, "request_id", None)
    if req_id:
        fields.setdefault("request_id", req_id)
    return fields


class JSONFormatter(logging.Formatter):
    """One JSON object per line: time, level, logger, msg, then the record's fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key, value in _fields(record).items():
            entry.setdefault(key, value)
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """``time LEVEL logger: msg key=value ...`` for terminals."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        fields = _fields(record)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        return line


def setup_logging(config: LoggingConfig) -> None:
    """
    Configure the root logger from the ``logging`` configuration section.

    Output always goes to stdout, plus a size-rotated file when
    ``config.file`` is set. Every handler stamps request IDs.
    """
    formatter = JSONFormatter() if config.format == "json" else TextFormatter()

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                config.file,
                maxBytes=int(config.rotation_size),
                backupCount=config.rotation_count,
                encoding="utf-8",
            )
        )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(config.level)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(RequestIdFilter())
        root.addHandler(handler)

    for name, level in (config.module_levels or {}).items():
        logging.getLogger(name).setLevel(level.upper())

    root.debug(f"Logging configured: level={config.level}, format={config.format}, file={config.file}")


def log_with_context(logger: logging.Logger, level: int, message: str, **context: Any) -> None:
    """Log ``message`` with structured fields, e.g. account, container and blob."""
    logger.log(level, message, extra={"context": context} if context else None)
