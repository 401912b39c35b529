from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Mapping

from tablero.application.batch_flusher import BatchFlusher
from tablero.application.mutation_queue import PendingMutationQueue
from tablero.application.optimistic import OptimisticApplier, RollbackToken
from tablero.core.observability import OperationContext, log_event
from tablero.domain import sheet_columns
from tablero.domain.models import FieldValue, Record
from tablero.domain.ports import NotifierPort, SchedulerPort, TimerHandle
from tablero.domain.sheet_dates import format_sheet_date
from tablero.domain.sync_models import WriteOk, WriteOutcome, WriteRejected, WriteTimeout

logger = logging.getLogger(__name__)

DEFAULT_MOVE_DEADLINE_MS = 20000
DEFAULT_BUSY_INDICATOR_MS = 500

OutcomeCallback = Callable[[WriteOutcome], None]


class DeadlineRace:
    """Combina una escritura con un plazo y entrega un único resultado.

    Gana lo primero que ocurra: el resultado de la escritura o el vencimiento
    del plazo (``WriteTimeout``). Lo que llegue después se ignora.
    """

    def __init__(
        self,
        scheduler: SchedulerPort,
        record_id: str,
        deadline_ms: int,
        on_result: OutcomeCallback,
    ) -> None:
        self._record_id = record_id
        self._deadline_ms = deadline_ms
        self._on_result = on_result
        self._settled = False
        self._timer: TimerHandle | None = scheduler.call_later(deadline_ms, self._on_deadline)

    @property
    def settled(self) -> bool:
        return self._settled

    def settle(self, outcome: WriteOutcome) -> None:
        if self._settled:
            return
        self._settled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._on_result(outcome)

    def _on_deadline(self) -> None:
        self._timer = None
        self.settle(WriteTimeout(record_id=self._record_id, deadline_ms=self._deadline_ms))


class MoveStatusOrchestrator:
    """Cambios tipo arrastre o menú de estado con manejo asimétrico de fallos.

    Un timeout no deshace nada: la escritura puede acabar aplicándose en el
    servidor. Solo un rechazo definitivo revierte el campo y se comunica como
    error bloqueante.
    """

    def __init__(
        self,
        applier: OptimisticApplier,
        flusher: BatchFlusher,
        queue: PendingMutationQueue,
        scheduler: SchedulerPort,
        notifier: NotifierPort,
        *,
        deadline_ms: int = DEFAULT_MOVE_DEADLINE_MS,
        busy_indicator_ms: int = DEFAULT_BUSY_INDICATOR_MS,
        on_pending_changed: Callable[[str, bool], None] | None = None,
    ) -> None:
        self._applier = applier
        self._flusher = flusher
        self._queue = queue
        self._scheduler = scheduler
        self._notifier = notifier
        self._deadline_ms = deadline_ms
        self._busy_indicator_ms = busy_indicator_ms
        self._on_pending_changed = on_pending_changed
        self._busy: dict[str, TimerHandle] = {}

    def is_pending(self, record_id: str) -> bool:
        return record_id in self._busy

    def move_record(
        self,
        record: Record,
        from_value: FieldValue | None,
        to_value: FieldValue,
        *,
        field_name: str = sheet_columns.PLANNED_DATE,
        extra_fields: Mapping[str, FieldValue] | None = None,
        deadline_ms: int | None = None,
        on_outcome: OutcomeCallback | None = None,
    ) -> DeadlineRace:
        changes: dict[str, FieldValue] = {field_name: to_value}
        if extra_fields:
            changes.update(extra_fields)
        return self._apply_and_write(
            record,
            changes,
            operation="move_record",
            from_value=from_value,
            deadline_ms=deadline_ms,
            on_outcome=on_outcome,
        )

    def move_planned_date(
        self,
        record: Record,
        to_date: date | str,
        *,
        update_delivery_date: bool = False,
        on_outcome: OutcomeCallback | None = None,
    ) -> DeadlineRace:
        target = to_date if isinstance(to_date, str) else format_sheet_date(to_date)
        extra: dict[str, FieldValue] = {}
        if update_delivery_date and sheet_columns.is_issued(record.get(sheet_columns.STATUS)):
            extra[sheet_columns.DELIVERY_DATE] = target
        return self.move_record(
            record,
            record.get(sheet_columns.PLANNED_DATE),
            target,
            extra_fields=extra,
            on_outcome=on_outcome,
        )

    def change_status(
        self,
        record: Record,
        field_name: str,
        value: FieldValue,
        *,
        on_outcome: OutcomeCallback | None = None,
    ) -> DeadlineRace:
        return self._apply_and_write(
            record,
            {field_name: value},
            operation="change_status",
            from_value=record.get(field_name),
            deadline_ms=None,
            on_outcome=on_outcome,
        )

    def toggle_issued(
        self,
        record: Record,
        issued: bool,
        *,
        today: date | None = None,
        on_outcome: OutcomeCallback | None = None,
    ) -> DeadlineRace:
        changes: dict[str, FieldValue] = {
            sheet_columns.STATUS: sheet_columns.STATUS_ISSUED if issued else sheet_columns.STATUS_READY
        }
        if issued:
            changes[sheet_columns.DELIVERY_DATE] = format_sheet_date(today or date.today())
        return self._apply_and_write(
            record,
            changes,
            operation="toggle_issued",
            from_value=record.get(sheet_columns.STATUS),
            deadline_ms=None,
            on_outcome=on_outcome,
        )

    def stop(self) -> None:
        for timer in self._busy.values():
            timer.cancel()
        self._busy.clear()

    def _apply_and_write(
        self,
        record: Record,
        changes: dict[str, FieldValue],
        *,
        operation: str,
        from_value: FieldValue | None,
        deadline_ms: int | None,
        on_outcome: OutcomeCallback | None,
    ) -> DeadlineRace:
        record_id = record.record_id
        with OperationContext(operation) as context:
            tokens = self._applier.apply_many(record_id, changes)
            self._mark_busy(record_id)
            log_event(
                logger,
                f"{operation}_started",
                {"record_id": record_id, "from": from_value, "changes": changes},
                context.correlation_id,
            )
            race = DeadlineRace(
                self._scheduler,
                record_id,
                self._deadline_ms if deadline_ms is None else deadline_ms,
                lambda outcome: self._on_outcome(
                    outcome, tokens, changes, context.correlation_id, operation, on_outcome
                ),
            )
            self._flusher.queue_mutation(record_id, changes, immediate=True, on_settled=race.settle)
        return race

    def _on_outcome(
        self,
        outcome: WriteOutcome,
        tokens: list[RollbackToken],
        changes: dict[str, FieldValue],
        correlation_id: str,
        operation: str,
        on_outcome: OutcomeCallback | None,
    ) -> None:
        if isinstance(outcome, WriteOk):
            log_event(logger, f"{operation}_confirmed", {"record_id": outcome.record_id}, correlation_id)
        elif isinstance(outcome, WriteTimeout):
            log_event(
                logger,
                f"{operation}_timeout",
                {"record_id": outcome.record_id, "deadline_ms": outcome.deadline_ms},
                correlation_id,
            )
            self._notifier.warning(
                "El servidor tarda en responder. El cambio se mantiene y se verificará en el próximo refresco."
            )
        elif isinstance(outcome, WriteRejected):
            for token in reversed(tokens):
                self._applier.rollback(token)
            withdrawn = self._queue.withdraw(outcome.record_id, changes)
            log_event(
                logger,
                f"{operation}_rolled_back",
                {"record_id": outcome.record_id, "error": str(outcome.error), "withdrawn": withdrawn},
                correlation_id,
            )
            self._notifier.error(f"No se pudo guardar el cambio: {outcome.error}")
        if on_outcome is not None:
            on_outcome(outcome)

    def _mark_busy(self, record_id: str) -> None:
        previous = self._busy.pop(record_id, None)
        if previous is not None:
            previous.cancel()
        self._busy[record_id] = self._scheduler.call_later(
            self._busy_indicator_ms, lambda: self._clear_busy(record_id)
        )
        if previous is None and self._on_pending_changed is not None:
            self._on_pending_changed(record_id, True)

    def _clear_busy(self, record_id: str) -> None:
        if self._busy.pop(record_id, None) is not None and self._on_pending_changed is not None:
            self._on_pending_changed(record_id, False)
