"""
Structured JSON logging for the ledger kernel.

Every record is one JSON object on one line.  The fields bound for the
running mutation with LogContext.bind() (correlation id, account, entry,
operation) are merged into each record, then the record's ``extra`` fields,
then, for failures, the exception's structured attributes.  Money and ids
are written as strings so amounts keep their exact decimal form.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

LOGGER_NAMESPACE = "ledger_kernel"

CONTEXT_FIELDS = ("correlation_id", "account_id", "entry_id", "operation")

_bound: ContextVar[dict[str, str] | None] = ContextVar("ledger_log_context", default=None)


class LogContext:
    """Mutation-scoped log fields, isolated per thread and per task."""

    @staticmethod
    def get_all() -> dict[str, str]:
        return dict(_bound.get() or {})

    @staticmethod
    def clear() -> None:
        _bound.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[None]:
        """
        Add fields for the duration of the block.

        Values are stringified (ids arrive as UUIDs) and ``None`` leaves the
        field as it was.  The previous fields come back on exit.
        """
        unknown = set(fields).difference(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"unknown log context fields: {sorted(unknown)}")
        merged = dict(_bound.get() or {})
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        token = _bound.set(merged)
        try:
            yield
        finally:
            _bound.reset(token)


# Attributes every LogRecord has; anything else on a record came from ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {
    "message",
    "asctime",
    "taskName",
}


def _json_default(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    # UUID, Decimal and kernel value objects such as LedgerPosition
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """exc_type / exc_message, plus exc_code and exc_<attr> for kernel errors."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger named ``ledger_kernel.<name>``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_handler: logging.Handler | None = None
_handler_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach one JSON handler to the ``ledger_kernel`` logger.

    Engine initialization calls this too, so the first caller's settings
    win; later calls are no-ops until reset_logging().
    """
    global _handler
    with _handler_lock:
        if _handler is not None:
            return
        _handler = handler if handler is not None else logging.StreamHandler(
            stream or sys.stderr
        )
        _handler.setFormatter(StructuredFormatter())
        kernel_logger = logging.getLogger(LOGGER_NAMESPACE)
        kernel_logger.setLevel(level)
        kernel_logger.propagate = False
        kernel_logger.addHandler(_handler)


def reset_logging() -> None:
    """Detach the configured handler. For tests."""
    global _handler
    with _handler_lock:
        kernel_logger = logging.getLogger(LOGGER_NAMESPACE)
        if _handler is not None:
            kernel_logger.removeHandler(_handler)
            _handler = None
        kernel_logger.setLevel(logging.WARNING)
