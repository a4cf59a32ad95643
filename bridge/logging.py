"""Structured JSON logging helpers."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from typing import Any

REQUEST_ID: ContextVar[str | None] = ContextVar("request_id", default=None)
CHANNEL_ID: ContextVar[str | None] = ContextVar("channel_id", default=None)


def set_request_id(request_id: str) -> Token[str | None]:
    """Set request id in context for current execution flow."""
    return REQUEST_ID.set(request_id)


def clear_request_id(token: Token[str | None]) -> None:
    """Reset request id context to previous value."""
    REQUEST_ID.reset(token)


@contextmanager
def bind_channel(channel_id: str | None) -> Iterator[None]:
    """Tag every record emitted inside the block with a Discord channel id."""
    token = CHANNEL_ID.set(channel_id)
    try:
        yield
    finally:
        CHANNEL_ID.reset(token)


class JsonFormatter(logging.Formatter):
    """Format log records as JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": REQUEST_ID.get(),
        }
        channel_id = CHANNEL_ID.get()
        if channel_id is not None:
            payload["channel_id"] = channel_id
        if hasattr(record, "event"):
            payload["event"] = record.event
        if hasattr(record, "context"):
            payload["context"] = record.context
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str = "INFO") -> None:
    """Configure root logger with JSON formatter."""
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level.upper())
    # httpx logs each request line at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
