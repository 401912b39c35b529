from __future__ import annotations

from contextlib import AbstractContextManager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
import uuid
from typing import Any

_CORRELATION_ID: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_OPERATION: ContextVar[str | None] = ContextVar("sync_operation", default=None)


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    return _CORRELATION_ID.get()


def get_operation() -> str | None:
    return _OPERATION.get()


def set_correlation_id(correlation_id: str | None) -> Token[str | None]:
    return _CORRELATION_ID.set(correlation_id)


def reset_correlation_id(token: Token[str | None]) -> None:
    _CORRELATION_ID.reset(token)


class OperationContext(AbstractContextManager["OperationContext"]):
    """Agrupa los logs de una operación (flush, refresh, move) bajo un correlation_id.

    Las operaciones del motor se reparten entre el hilo del event loop y los
    workers de red, así que el id se captura al crear el contexto y se pasa
    explícitamente a ``log_event`` cuando el callback vuelve al loop.
    """

    def __init__(self, operation_name: str, correlation_id: str | None = None) -> None:
        self.operation_name = operation_name
        self.correlation_id = correlation_id or generate_correlation_id()
        self._correlation_token: Token[str | None] | None = None
        self._operation_token: Token[str | None] | None = None

    def __enter__(self) -> "OperationContext":
        self._correlation_token = set_correlation_id(self.correlation_id)
        self._operation_token = _OPERATION.set(self.operation_name)
        return self

    def __exit__(self, exc_type: object, exc: object, exc_tb: object) -> None:
        if self._operation_token is not None:
            _OPERATION.reset(self._operation_token)
        if self._correlation_token is not None:
            reset_correlation_id(self._correlation_token)
        return None


def log_event(logger: Any, event_name: str, payload: dict[str, Any], correlation_id: str) -> dict[str, Any]:
    event = {
        "event": event_name,
        "correlation_id": correlation_id,
        "operation": get_operation(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "payload": payload,
    }
    logger.info(
        event_name,
        extra={
            "correlation_id": correlation_id,
            "extra": event,
        },
    )
    return event
