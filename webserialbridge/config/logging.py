"""Logging setup for the Web Serial bridge.

Each record is written to stderr as one JSON object. Records that carry
``sandbox``, ``call_id``, ``method`` or ``port_id`` in ``extra`` expose them
as top-level fields so a single call or port can be followed through the
drain loop, the dispatcher and the session table.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from logging.config import dictConfig
from typing import Any, Final

import msgspec

from .settings import RuntimeConfig

LOGGER_PREFIX: Final[str] = "webserialbridge."

CONTEXT_FIELDS: Final[tuple[str, ...]] = ("sandbox", "call_id", "method", "port_id")

_RECORD_ATTRS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.NOTSET, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


def _render(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex(" ").upper()
    return str(value)


def call_context(sandbox: str, call_id: str, method: str, port_id: str | None = None) -> dict[str, str]:
    """Build the ``extra`` mapping for records about one queued call."""
    context = {"sandbox": sandbox, "call_id": call_id, "method": method}
    if port_id is not None:
        context["port_id"] = port_id
    return context


class BridgeLogFormatter(logging.Formatter):
    """Render records as JSON lines keyed by sandbox, call and port."""

    def __init__(self) -> None:
        super().__init__()
        self._encoder = msgspec.json.Encoder()

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name.removeprefix(LOGGER_PREFIX),
            "message": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            value = record.__dict__.get(field)
            if value is not None:
                payload[field] = _render(value)

        extra = {
            key: _render(value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in CONTEXT_FIELDS and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)

        return self._encoder.encode(payload).decode("utf-8")


def configure_logging(config: RuntimeConfig) -> None:
    """Route every bridge logger to stderr through :class:`BridgeLogFormatter`."""
    level = logging.DEBUG if config.debug_logging else logging.INFO

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"bridge": {"()": BridgeLogFormatter}},
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "bridge",
                },
            },
            "loggers": {
                "webserialbridge": {"level": level},
                # Every session state change is already logged by the bridge.
                "transitions": {"level": logging.WARNING},
            },
            "root": {"level": logging.WARNING, "handlers": ["stderr"]},
        }
    )
    logging.getLogger("webserialbridge").debug("Logging configured at level %s", logging.getLevelName(level))


__all__ = ["BridgeLogFormatter", "CONTEXT_FIELDS", "call_context", "configure_logging"]
