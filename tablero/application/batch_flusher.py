from __future__ import annotations

import logging
from typing import Callable, Mapping

from tablero.application.mutation_queue import PendingMutationQueue
from tablero.application.record_store import RecordStore
from tablero.core import metrics
from tablero.core.metrics import MetricsRegistry
from tablero.core.observability import OperationContext, log_event
from tablero.core.operational_logging import log_operational_error
from tablero.domain.models import FieldValue, Record
from tablero.domain.ports import IoExecutorPort, NotifierPort, RowStorePort, SchedulerPort, TimerHandle
from tablero.domain.sync_errors import RecordNotFound
from tablero.domain.sync_models import FlushBatch, PendingMutation, SettleListener, WriteOk, WriteRejected

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 500
DEFAULT_MAX_FLUSH_ATTEMPTS = 3


class BatchFlusher:
    """Agrupa las ediciones con debounce y envía una escritura por registro.

    Dos escrituras del mismo registro nunca viajan a la vez: si al hacer flush
    hay una en vuelo, la nueva mutación se queda en la cola y sale como
    petición propia cuando la anterior termina. Registros distintos no se
    esperan entre sí.
    """

    def __init__(
        self,
        queue: PendingMutationQueue,
        store: RecordStore,
        row_store: RowStorePort,
        executor: IoExecutorPort,
        scheduler: SchedulerPort,
        *,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        max_attempts: int = DEFAULT_MAX_FLUSH_ATTEMPTS,
        on_write_failed: Callable[[Exception], None] | None = None,
        notifier: NotifierPort | None = None,
        metrics_registry: MetricsRegistry | None = None,
    ) -> None:
        self._queue = queue
        self._store = store
        self._row_store = row_store
        self._executor = executor
        self._scheduler = scheduler
        self._debounce_ms = debounce_ms
        self._max_attempts = max_attempts
        self._on_write_failed = on_write_failed
        self._notifier = notifier
        self._metrics = metrics_registry or metrics.metrics_registry
        self._debounce_timer: TimerHandle | None = None
        self._in_flight: dict[str, PendingMutation] = {}
        self._deferred: set[str] = set()
        self._active = True
        self._session = 0

    @property
    def debounce_ms(self) -> int:
        return self._debounce_ms

    def has_pending_work(self) -> bool:
        return not self._queue.is_empty() or bool(self._in_flight)

    def in_flight_record_ids(self) -> list[str]:
        return list(self._in_flight)

    def queue_mutation(
        self,
        record_id: str,
        fields: Mapping[str, FieldValue],
        *,
        immediate: bool = False,
        on_settled: SettleListener | None = None,
    ) -> PendingMutation:
        mutation = self._queue.enqueue(record_id, fields, immediate=immediate, listener=on_settled)
        if immediate:
            self._cancel_debounce()
            self.flush()
        else:
            self._restart_debounce()
        return mutation

    def flush(self) -> FlushBatch | None:
        self._cancel_debounce()
        if not self._active or self._queue.is_empty():
            return None
        skip = set(self._in_flight)
        batch = self._queue.take_batch(skip=skip)
        self._deferred.update(record_id for record_id in skip if record_id in self._queue)
        if not batch:
            return None
        with OperationContext("flush") as operation:
            log_event(
                logger,
                "flush_started",
                {"records": batch.record_ids(), "deferred": sorted(self._deferred)},
                operation.correlation_id,
            )
            for mutation in batch.mutations:
                self._dispatch(mutation, operation.correlation_id)
        return batch

    def start(self) -> None:
        self._active = True
        # Lo que quedó en cola al parar (p. ej. diferido tras una escritura en vuelo) sale ahora.
        if not self._queue.is_empty():
            logger.info("Reanudando %s registro(s) pendientes en cola", len(self._queue))
            self._restart_debounce()

    def stop(self) -> None:
        self._active = False
        self._session += 1
        self._cancel_debounce()
        self._in_flight.clear()
        self._deferred.clear()

    def _dispatch(self, mutation: PendingMutation, correlation_id: str) -> None:
        record_id = mutation.record_id
        fields = dict(mutation.fields)
        self._in_flight[record_id] = mutation
        session = self._session
        self._metrics.incrementar(metrics.FLUSH_REQUESTS)
        logger.debug("Enviando %s campo(s) del registro %s", len(fields), record_id)
        self._executor.submit(
            lambda: self._row_store.update_record(record_id, fields),
            lambda record: self._on_write_succeeded(mutation, fields, record, correlation_id, session),
            lambda exc: self._on_write_failed_for(mutation, exc, correlation_id, session),
        )

    def _on_write_succeeded(
        self,
        mutation: PendingMutation,
        sent_fields: dict[str, FieldValue],
        record: Record | None,
        correlation_id: str,
        session: int,
    ) -> None:
        if not self._active or session != self._session:
            logger.debug("Respuesta tardía descartada para %s", mutation.record_id)
            return
        record_id = mutation.record_id
        self._in_flight.pop(record_id, None)
        confirmed = self._confirmed_fields(record_id, sent_fields, record)
        if confirmed:
            self._store.apply_fields(record_id, confirmed)
        log_event(
            logger,
            "flush_record_confirmed",
            {"record_id": record_id, "fields": sorted(sent_fields)},
            correlation_id,
        )
        mutation.notify(WriteOk(record_id=record_id, record=record))
        self._release_deferred(record_id, correlation_id)

    def _on_write_failed_for(
        self, mutation: PendingMutation, exc: Exception, correlation_id: str, session: int
    ) -> None:
        if not self._active or session != self._session:
            logger.debug("Fallo tardío descartado para %s: %s", mutation.record_id, exc)
            return
        record_id = mutation.record_id
        self._in_flight.pop(record_id, None)
        self._deferred.discard(record_id)
        mutation.attempts += 1
        self._metrics.incrementar(metrics.FLUSH_FAILURES)
        # Los listeners se separan antes de reencolar: si la mutación se fusiona
        # con una edición más nueva no deben volver a dispararse.
        listeners = mutation.take_listeners()

        if isinstance(exc, RecordNotFound) or mutation.attempts >= self._max_attempts:
            self._metrics.incrementar(metrics.FLUSH_DROPPED)
            log_operational_error(
                logger,
                "Mutación descartada tras fallo de escritura",
                exc=exc,
                extra={
                    "correlation_id": correlation_id,
                    "record_id": record_id,
                    "attempts": mutation.attempts,
                    "fields": sorted(mutation.fields),
                },
            )
        else:
            logger.warning(
                "Escritura fallida para %s (intento %s/%s), se reencola: %s",
                record_id,
                mutation.attempts,
                self._max_attempts,
                exc,
            )
            self._queue.requeue(mutation)
            self._restart_debounce()

        outcome = WriteRejected(record_id=record_id, error=exc)
        for listener in listeners:
            listener(outcome)
        if not listeners and self._notifier is not None:
            self._notifier.error(f"No se pudieron guardar los cambios del registro {record_id}.")
        if self._on_write_failed is not None:
            self._on_write_failed(exc)

    def _confirmed_fields(
        self,
        record_id: str,
        sent_fields: dict[str, FieldValue],
        record: Record | None,
    ) -> dict[str, FieldValue]:
        newer = self._queue.pending_fields(record_id)
        confirmed: dict[str, FieldValue] = {}
        for name, sent_value in sent_fields.items():
            if name in newer:
                continue
            value = record.get(name) if record is not None else None
            confirmed[name] = sent_value if value is None else value
        return confirmed

    def _release_deferred(self, record_id: str, correlation_id: str) -> None:
        if record_id not in self._deferred:
            return
        self._deferred.discard(record_id)
        mutation = self._queue.pop(record_id)
        if mutation is not None:
            self._dispatch(mutation, correlation_id)

    def _restart_debounce(self) -> None:
        self._cancel_debounce()
        if self._active:
            self._debounce_timer = self._scheduler.call_later(self._debounce_ms, self._on_debounce_elapsed)

    def _on_debounce_elapsed(self) -> None:
        self._debounce_timer = None
        self.flush()

    def _cancel_debounce(self) -> None:
        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
            self._debounce_timer = None
