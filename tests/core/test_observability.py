from __future__ import annotations

import logging

from tablero.core.observability import (
    OperationContext,
    generate_correlation_id,
    get_correlation_id,
    get_operation,
    log_event,
)


def test_operation_context_generates_uuid4_correlation_id() -> None:
    with OperationContext("flush") as operation:
        correlation_id = operation.correlation_id

    assert isinstance(correlation_id, str)
    assert len(correlation_id) == 36
    assert correlation_id.count("-") == 4


def test_operation_context_publica_y_restaura_contexto() -> None:
    previous = get_correlation_id()

    with OperationContext("refresh", correlation_id="cid-fijo"):
        assert get_correlation_id() == "cid-fijo"
        assert get_operation() == "refresh"

    assert get_correlation_id() == previous
    assert get_operation() is None


def test_log_event_returns_structured_event_dict() -> None:
    logger = logging.getLogger("tests.observability")

    with OperationContext("move"):
        event = log_event(logger, "move_started", {"record_id": "r1"}, "cid-123")

    assert event["event"] == "move_started"
    assert event["correlation_id"] == "cid-123"
    assert event["operation"] == "move"
    assert "timestamp" in event
    assert event["payload"] == {"record_id": "r1"}


def test_generate_correlation_id_is_unique() -> None:
    assert generate_correlation_id() != generate_correlation_id()
