"""
Structured JSON logging for the stock kernel.

Every record leaves as one JSON object per line:

    {"ts": "...", "level": "INFO", "logger": "stock_kernel.services.settlement",
     "message": "invoice_confirmed", "invoice_id": "...", "batches": 2}

Fields come from three places, later ones never overwriting earlier ones:
the record itself, the request-scoped LogContext, and the ``extra`` dict
passed at the call site.  Exceptions add ``exc_*`` fields, including the
``code`` and structured attributes of StockKernelError subclasses.
"""

__all__ = [
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

import dataclasses
import json
import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping
from uuid import UUID

LOGGER_NAMESPACE = "stock_kernel"

CONTEXT_FIELDS = frozenset({"correlation_id", "actor_id", "invoice_id", "batch_id"})

_EMPTY: Mapping[str, str] = MappingProxyType({})

_context: ContextVar[Mapping[str, str]] = ContextVar("stock_log_context", default=_EMPTY)


class LogContext:
    """
    Request-scoped fields attached to every record.

    Backed by a single ContextVar holding a read-only mapping, so threads
    and asyncio tasks each see their own copy.
    """

    @staticmethod
    def _merged(fields: Mapping[str, Any]) -> Mapping[str, str]:
        unknown = set(fields) - CONTEXT_FIELDS
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
        merged = dict(_context.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        return MappingProxyType(merged)

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set fields for the rest of the current context.  None leaves a field as is."""
        _context.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields inside a ``with`` block; the previous values come back on exit."""
        token = _context.set(cls._merged(fields))
        try:
            yield cls
        finally:
            _context.reset(token)


_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _jsonable(value: Any) -> Any:
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_"):
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in LogContext.get_all().items():
            payload.setdefault(key, value)
        for key, value in vars(record).items():
            if key not in _RESERVED:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_jsonable)


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` under the ``stock_kernel`` namespace."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_lock = threading.Lock()


def _installed_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [h for h in logger.handlers if getattr(h, "_stock_structured", False)]


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one structured handler to the ``stock_kernel`` logger.

    Idempotent: once a handler is installed, later calls change nothing
    until ``reset_logging()``.  ``level`` takes a number or a level name
    such as ``"DEBUG"``.
    """
    namespace = logging.getLogger(LOGGER_NAMESPACE)
    with _lock:
        if _installed_handlers(namespace):
            return
        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        target._stock_structured = True
        namespace.addHandler(target)
        namespace.setLevel(level.upper() if isinstance(level, str) else level)
        namespace.propagate = False


def reset_logging() -> None:
    """Remove every handler from the namespace.  FOR TESTING ONLY."""
    namespace = logging.getLogger(LOGGER_NAMESPACE)
    with _lock:
        for h in list(namespace.handlers):
            namespace.removeHandler(h)
        namespace.setLevel(logging.WARNING)
        namespace.propagate = True
