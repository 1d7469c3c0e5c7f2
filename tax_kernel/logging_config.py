"""
Structured JSON logging for the tax kernel.

Every record is one JSON object: an envelope (``ts``, ``level``, ``logger``,
``message``), the calculation context bound through ``LogContext``
(order, customer, acting administrator), and the ``extra=`` payload of the
call.  Decimals are rendered as strings so amounts survive the round trip
exactly.  A ``TaxKernelError`` attached via ``exc_info`` contributes its
``code`` and structured attributes as ``exc_*`` fields.

Usage:
    logger = get_logger("engines.accumulator")   # -> tax_kernel.engines.accumulator
    with LogContext.bind(order_id="ORD-1", customer_id="C-7"):
        logger.info("tax_calculation_started", extra={"item_count": 2})
"""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator

LOGGER_NAMESPACE = "tax_kernel"

CONTEXT_FIELDS = ("order_id", "customer_id", "actor_id")

_context: ContextVar[dict[str, str]] = ContextVar("tax_log_context")


class LogContext:
    """Calculation-scoped fields merged into every record (contextvar-backed)."""

    @staticmethod
    def _merged(fields: dict[str, Any]) -> dict[str, str]:
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown log context fields: {sorted(unknown)}")
        merged = dict(_context.get({}))
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        return merged

    @staticmethod
    def set(**fields: Any) -> None:
        """Set fields for the rest of the current context; None values are ignored."""
        _context.set(LogContext._merged(fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_context.get({}))

    @staticmethod
    def clear() -> None:
        _context.set({})

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """Set fields for the duration of the block, then restore the previous ones."""
        token = _context.set(LogContext._merged(fields))
        try:
            yield
        finally:
            _context.reset(token)


_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_value(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and key not in payload
        )

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            payload["exc_type"] = type(exc).__name__
            payload["exc_message"] = str(exc)
            code = getattr(exc, "code", None)
            if code is not None:
                payload["exc_code"] = code
                payload.update(
                    (f"exc_{key}", value)
                    for key, value in vars(exc).items()
                    if not key.startswith("_")
                )
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_value)


def get_logger(name: str) -> logging.Logger:
    """Logger under the tax_kernel namespace."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the tax_kernel logger.

    Only the first call takes effect; later calls are no-ops until
    ``reset_logging``.  ``level`` accepts a number or a level name such as
    the ``log_level`` setting of the calculation config.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

        handler = handler or logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        namespace = logging.getLogger(LOGGER_NAMESPACE)
        namespace.setLevel(level)
        namespace.propagate = False
        namespace.addHandler(handler)


def reset_logging() -> None:
    """Remove the handler and allow reconfiguration. FOR TESTING ONLY."""
    global _configured
    with _lock:
        _configured = False
        namespace = logging.getLogger(LOGGER_NAMESPACE)
        for handler in list(namespace.handlers):
            if isinstance(handler.formatter, StructuredFormatter):
                namespace.removeHandler(handler)
        namespace.setLevel(logging.WARNING)
