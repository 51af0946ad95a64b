"""Structured JSON logs for the relay.

Every record is one JSON object on stdout. Structured fields travel in
``extra={"context": {...}}``; socket handlers bind the connection id once
through ``LoggerAdapter`` instead of repeating it per call.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

SERVICE_NAME = "support-relay"
LOGGER_PREFIX = "support_relay"

# Third-party loggers that are noisy at INFO (Socket.IO logs every packet)
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "socketio", "engineio")


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "component": record.name.removeprefix(f"{LOGGER_PREFIX}."),
            "message": record.getMessage(),
        }

        context = getattr(record, "context", None)
        if context:
            entry["context"] = context

        if record.levelno >= logging.ERROR:
            entry["origin"] = f"{record.module}:{record.funcName}:{record.lineno}"

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> None:
    """Route all logging through one JSON handler."""
    root = logging.getLogger()
    resolved = logging.getLevelName(level.upper())
    root.setLevel(resolved if isinstance(resolved, int) else logging.INFO)

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(component: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_PREFIX}.{component}")


class LoggerAdapter(logging.LoggerAdapter):
    """Binds fixed context (e.g. a socket sid) and accepts ``context=`` per call."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = kwargs.get("extra") or {}
        context = {**self.extra, **extra.get("context", {}), **(kwargs.pop("context", None) or {})}
        if context:
            kwargs["extra"] = {**extra, "context": context}
        return msg, kwargs
