from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Mapping

from tablero.application.batch_flusher import BatchFlusher
from tablero.application.field_options import FieldOptionsService
from tablero.application.move_orchestrator import DeadlineRace, MoveStatusOrchestrator, OutcomeCallback
from tablero.application.mutation_queue import PendingMutationQueue
from tablero.application.optimistic import OptimisticApplier, RollbackToken
from tablero.application.realtime_transport import RealtimeTransportManager, TransportListener
from tablero.application.reconciler import RefreshReconciler
from tablero.application.record_store import RecordStore
from tablero.core.metrics import MetricsRegistry
from tablero.domain import sheet_columns
from tablero.domain.models import ConnectionState, FieldValue, Record, SyncConfig, TransportState
from tablero.domain.ports import (
    FieldOptionsPort,
    IoExecutorPort,
    NotifierPort,
    PushChannelPort,
    PushEnablerPort,
    RowStorePort,
    SchedulerPort,
    StoreListener,
    TimerHandle,
)

logger = logging.getLogger(__name__)


class Synchronizer:
    """Punto de entrada del motor: posee el estado, los temporizadores y el ciclo de vida.

    La UI solo lee fotos del RecordStore y escribe a través de los métodos de
    edición; nada fuera de este objeto toca la cola ni el almacén.
    """

    def __init__(
        self,
        row_store: RowStorePort,
        scheduler: SchedulerPort,
        executor: IoExecutorPort,
        notifier: NotifierPort,
        *,
        config: SyncConfig | None = None,
        push_channel: PushChannelPort | None = None,
        push_enabler: PushEnablerPort | None = None,
        field_options_source: FieldOptionsPort | None = None,
        metrics_registry: MetricsRegistry | None = None,
        on_pending_changed: Callable[[str, bool], None] | None = None,
    ) -> None:
        self._config = config or SyncConfig()
        self._row_store = row_store
        self._scheduler = scheduler
        self._executor = executor
        self._notifier = notifier
        self._active = False
        self._refresh_timer: TimerHandle | None = None

        self.store = RecordStore()
        self.queue = PendingMutationQueue(scheduler.now_ms)
        self.applier = OptimisticApplier(self.store)
        self.flusher = BatchFlusher(
            self.queue,
            self.store,
            row_store,
            executor,
            scheduler,
            debounce_ms=self._config.debounce_ms,
            max_attempts=self._config.max_flush_attempts,
            on_write_failed=self._on_write_failed,
            notifier=notifier,
            metrics_registry=metrics_registry,
        )
        self.reconciler = RefreshReconciler(
            self.store,
            self.flusher.has_pending_work,
            scheduler.now_ms,
            on_rate_limited=self._on_rate_limited,
            rate_limit_cooldown_ms=self._config.rate_limit_cooldown_ms,
            metrics_registry=metrics_registry,
        )
        self.transport = RealtimeTransportManager(
            scheduler,
            executor,
            row_store.list_records,
            self.reconciler,
            push_channel=push_channel,
            push_enabler=push_enabler,
            poll_interval_ms=self._config.poll_interval_ms,
            reconnect_base_ms=self._config.reconnect_base_ms,
            reconnect_cap_ms=self._config.reconnect_cap_ms,
            max_reconnect_attempts=self._config.max_reconnect_attempts,
            max_setup_attempts=self._config.max_setup_attempts,
            metrics_registry=metrics_registry,
        )
        self.orchestrator = MoveStatusOrchestrator(
            self.applier,
            self.flusher,
            self.queue,
            scheduler,
            notifier,
            deadline_ms=self._config.move_deadline_ms,
            busy_indicator_ms=self._config.busy_indicator_ms,
            on_pending_changed=on_pending_changed,
        )
        self.field_options = (
            FieldOptionsService(field_options_source, executor) if field_options_source is not None else None
        )

    # -- ciclo de vida -----------------------------------------------------

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        self.flusher.start()
        self.transport.start()
        if self.field_options is not None:
            self.field_options.load()

    def stop(self) -> None:
        if not self._active:
            return
        # Los cambios en cola salen antes de cerrar; sus respuestas ya no se procesan.
        self.flusher.flush()
        self._active = False
        self.flusher.stop()
        self.transport.stop()
        self.orchestrator.stop()
        if self._refresh_timer is not None:
            self._refresh_timer.cancel()
            self._refresh_timer = None

    # -- lectura -----------------------------------------------------------

    def records(self) -> list[Record]:
        return self.store.snapshot()

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        return self.store.subscribe(listener)

    def add_transport_listener(self, listener: TransportListener) -> Callable[[], None]:
        return self.transport.add_listener(listener)

    @property
    def connection_state(self) -> ConnectionState:
        return self.transport.connection_state

    @property
    def transport_state(self) -> TransportState:
        return self.transport.state

    def has_pending_changes(self) -> bool:
        return self.flusher.has_pending_work()

    def is_pending(self, record_id: str) -> bool:
        return self.orchestrator.is_pending(record_id)

    def diagnostics(self) -> dict[str, object]:
        return {
            "active": self._active,
            "transport_state": self.transport.state.value,
            "connection_state": self.transport.connection_state.value,
            "rate_limited": self.transport.rate_limited,
            "pending_record_ids": self.queue.record_ids(),
            "in_flight_record_ids": self.flusher.in_flight_record_ids(),
        }

    # -- edición -----------------------------------------------------------

    def edit_field(self, record_id: str, field_name: str, value: FieldValue) -> RollbackToken:
        token = self.applier.apply_optimistic(record_id, field_name, value)
        self.flusher.queue_mutation(record_id, {field_name: value})
        return token

    def edit_fields(self, record_id: str, changes: Mapping[str, FieldValue]) -> list[RollbackToken]:
        tokens = self.applier.apply_many(record_id, changes)
        self.flusher.queue_mutation(record_id, changes)
        return tokens

    def flush(self) -> None:
        self.flusher.flush()

    def refresh(self) -> None:
        self.transport.refresh()

    def set_visible(self, visible: bool) -> None:
        self.transport.set_visible(visible)

    def move_record(
        self,
        record: Record,
        from_value: FieldValue | None,
        to_value: FieldValue,
        *,
        field_name: str = sheet_columns.PLANNED_DATE,
        on_outcome: OutcomeCallback | None = None,
    ) -> DeadlineRace:
        return self.orchestrator.move_record(
            record, from_value, to_value, field_name=field_name, on_outcome=on_outcome
        )

    def move_planned_date(
        self,
        record: Record,
        to_date: date | str,
        *,
        update_delivery_date: bool = False,
        on_outcome: OutcomeCallback | None = None,
    ) -> DeadlineRace:
        return self.orchestrator.move_planned_date(
            record, to_date, update_delivery_date=update_delivery_date, on_outcome=on_outcome
        )

    def change_status(
        self,
        record: Record,
        field_name: str,
        value: FieldValue,
        *,
        on_outcome: OutcomeCallback | None = None,
    ) -> DeadlineRace:
        return self.orchestrator.change_status(record, field_name, value, on_outcome=on_outcome)

    def toggle_issued(self, record: Record, issued: bool, *, today: date | None = None) -> DeadlineRace:
        return self.orchestrator.toggle_issued(record, issued, today=today)

    def create_record(
        self,
        fields: Mapping[str, FieldValue],
        on_created: Callable[[Record], None] | None = None,
    ) -> None:
        payload = dict(fields)
        self._executor.submit(
            lambda: self._row_store.create_record(payload),
            lambda record: self._on_record_created(record, on_created),
            lambda exc: self._on_structural_change_failed("crear el registro", exc),
        )

    def delete_record(self, record_id: str, on_deleted: Callable[[str], None] | None = None) -> None:
        self._executor.submit(
            lambda: self._row_store.delete_record(record_id),
            lambda _result: self._on_record_deleted(record_id, on_deleted),
            lambda exc: self._on_structural_change_failed("eliminar el registro", exc),
        )

    # -- callbacks ---------------------------------------------------------

    def _on_record_created(self, record: Record, on_created: Callable[[Record], None] | None) -> None:
        if not self._active:
            return
        self.store.upsert(record)
        logger.info("Registro creado: %s", record.record_id)
        if on_created is not None:
            on_created(record)

    def _on_record_deleted(self, record_id: str, on_deleted: Callable[[str], None] | None) -> None:
        if not self._active:
            return
        self.queue.pop(record_id)
        self.store.remove(record_id)
        logger.info("Registro eliminado: %s", record_id)
        if on_deleted is not None:
            on_deleted(record_id)

    def _on_structural_change_failed(self, action: str, exc: Exception) -> None:
        if not self._active:
            return
        logger.warning("No se pudo %s: %s", action, exc)
        self._notifier.error(f"No se pudo {action}: {exc}")
        self._schedule_refresh()

    def _on_write_failed(self, exc: Exception) -> None:
        self._schedule_refresh()

    def _on_rate_limited(self, cooldown_ms: int) -> None:
        self.transport.suspend_polling(cooldown_ms)
        self._notifier.warning("Demasiadas peticiones a la hoja. Actualización automática en pausa.")

    def _schedule_refresh(self) -> None:
        if not self._active or self._refresh_timer is not None:
            return
        self._refresh_timer = self._scheduler.call_later(0, self._on_scheduled_refresh)

    def _on_scheduled_refresh(self) -> None:
        self._refresh_timer = None
        self.transport.refresh()
