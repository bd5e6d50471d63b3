"""
Structured JSON logging for the approval workflow engine.

Every record is emitted as one JSON object per line.  Request-scoped
identifiers (correlation, workflow instance, application, acting approver)
live in ``LogContext`` and are merged into each record, so service code
only passes the event-specific fields through ``extra``::

    logger = get_logger("services.instance_manager")
    with LogContext.bind(instance_id=instance.id):
        logger.info("step_assigned", extra={"step_id": "initial-review"})
"""

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
from collections.abc import Mapping
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

LOGGER_NAMESPACE = "approval_kernel"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "instance_id",
    "application_id",
    "actor_id",
)

_context: ContextVar[Mapping[str, str]] = ContextVar("approval_log_context", default={})


def _merged(current: Mapping[str, str], fields: Mapping[str, str | None]) -> dict[str, str]:
    merged = dict(current)
    for name, value in fields.items():
        if name in CONTEXT_FIELDS and value is not None:
            merged[name] = value
    return merged


# =============================================================================
# Context
# =============================================================================


class LogContext:
    """Context-local identifiers attached to every log record.

    Values are held in a single ``ContextVar``, so each thread and each
    asyncio task sees its own copy.  Unknown field names and ``None``
    values are ignored.
    """

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Update the current context in place."""
        _context.set(_merged(_context.get(), fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    def bind(cls, **fields: str | None) -> "_Binding":
        """Scoped update: the previous context is restored on exit."""
        return _Binding(fields)


class _Binding:
    def __init__(self, fields: Mapping[str, str | None]):
        self._fields = fields
        self._token: Token[Mapping[str, str]] | None = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set(_merged(_context.get(), self._fields))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None


# =============================================================================
# Formatter
# =============================================================================

_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (tuple, set, frozenset)):
        return list(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """Type, message, ``code`` and public attributes of a raised exception."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if name.startswith("_") or name in ("args", "code"):
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in vars(record).items():
            if name not in _RESERVED_ATTRS:
                payload.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


# =============================================================================
# Setup
# =============================================================================


def get_logger(name: str) -> logging.Logger:
    """Logger ``approval_kernel.<name>``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_setup_lock = threading.Lock()
_installed = False


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Install the JSON handler on the namespace logger.  Later calls are no-ops."""
    global _installed
    with _setup_lock:
        if _installed:
            return
        _installed = True

        namespace = logging.getLogger(LOGGER_NAMESPACE)
        namespace.setLevel(level)
        namespace.propagate = False
        target = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())
        namespace.addHandler(target)


def reset_logging() -> None:
    """Remove installed handlers so tests can configure again."""
    global _installed
    with _setup_lock:
        _installed = False
        namespace = logging.getLogger(LOGGER_NAMESPACE)
        namespace.handlers.clear()
        namespace.setLevel(logging.WARNING)
