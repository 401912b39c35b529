from __future__ import annotations

from datetime import date

from tablero.application.batch_flusher import BatchFlusher
from tablero.application.move_orchestrator import DeadlineRace, MoveStatusOrchestrator
from tablero.application.mutation_queue import PendingMutationQueue
from tablero.application.optimistic import OptimisticApplier
from tablero.application.record_store import RecordStore
from tablero.core.metrics import MetricsRegistry
from tablero.domain.sync_errors import HardRejection
from tablero.domain.sync_models import WriteOk, WriteRejected, WriteTimeout
from tests.sync_engine.fakes import FakeNotifier, FakeRowStore, FakeScheduler, ManualIoExecutor, make_record

FECHA = "Планируемая дата"
ESTADO = "Статус"
ENTREGA = "Дата выдачи"


class _Entorno:
    def __init__(self) -> None:
        self.scheduler = FakeScheduler()
        self.executor = ManualIoExecutor()
        self.store = RecordStore()
        self.record = make_record("r1", {FECHA: "01.03.2024", ESTADO: "Готов", ENTREGA: ""})
        self.store.replace_all([self.record], fingerprint="f", updated_at_ms=0)
        self.row_store = FakeRowStore([self.record])
        self.queue = PendingMutationQueue(self.scheduler.now_ms)
        self.notifier = FakeNotifier()
        self.flusher = BatchFlusher(
            self.queue,
            self.store,
            self.row_store,
            self.executor,
            self.scheduler,
            notifier=self.notifier,
            metrics_registry=MetricsRegistry(),
        )
        self.busy_changes: list[tuple[str, bool]] = []
        self.orchestrator = MoveStatusOrchestrator(
            OptimisticApplier(self.store),
            self.flusher,
            self.queue,
            self.scheduler,
            self.notifier,
            deadline_ms=20000,
            busy_indicator_ms=500,
            on_pending_changed=lambda record_id, busy: self.busy_changes.append((record_id, busy)),
        )


def test_deadline_race_entrega_un_unico_resultado() -> None:
    scheduler = FakeScheduler()
    results: list[object] = []
    race = DeadlineRace(scheduler, "r1", 1000, results.append)

    race.settle(WriteOk(record_id="r1"))
    scheduler.advance(1000)
    race.settle(WriteRejected(record_id="r1", error=HardRejection("tarde")))

    assert results == [WriteOk(record_id="r1")]
    assert race.settled


def test_deadline_race_vence_con_write_timeout() -> None:
    scheduler = FakeScheduler()
    results: list[object] = []
    DeadlineRace(scheduler, "r1", 1000, results.append)

    scheduler.advance(1000)

    assert results == [WriteTimeout(record_id="r1", deadline_ms=1000)]


def test_mover_aplica_al_instante_y_envia_sin_debounce() -> None:
    env = _Entorno()
    outcomes: list[object] = []

    env.orchestrator.move_record(env.record, "01.03.2024", "04.03.2024", on_outcome=outcomes.append)

    assert env.store.get_field("r1", FECHA) == "04.03.2024"
    assert env.executor.pending() == 1
    env.executor.run_all()
    assert isinstance(outcomes[0], WriteOk)
    assert env.row_store.records["r1"].get(FECHA) == "04.03.2024"
    assert env.notifier.warnings == []
    assert env.notifier.errors == []


def test_indicador_de_ocupado_dura_el_tiempo_configurado() -> None:
    env = _Entorno()

    env.orchestrator.move_record(env.record, "01.03.2024", "04.03.2024")
    assert env.orchestrator.is_pending("r1")

    env.scheduler.advance(500)

    assert not env.orchestrator.is_pending("r1")
    assert env.busy_changes == [("r1", True), ("r1", False)]


def test_timeout_mantiene_el_cambio_y_avisa_sin_bloquear() -> None:
    env = _Entorno()
    outcomes: list[object] = []

    env.orchestrator.move_record(env.record, "01.03.2024", "04.03.2024", on_outcome=outcomes.append)
    env.scheduler.advance(20000)

    assert outcomes == [WriteTimeout(record_id="r1", deadline_ms=20000)]
    assert env.store.get_field("r1", FECHA) == "04.03.2024"
    assert len(env.notifier.warnings) == 1
    assert env.notifier.errors == []

    env.executor.run_all()
    assert len(outcomes) == 1


def test_rechazo_revierte_y_no_reenvia_el_valor_revertido() -> None:
    env = _Entorno()
    outcomes: list[object] = []
    env.row_store.update_errors.append(HardRejection("validación"))

    env.orchestrator.change_status(env.record, ESTADO, "Выдан", on_outcome=outcomes.append)
    env.executor.run_all()

    assert isinstance(outcomes[0], WriteRejected)
    assert env.store.get_field("r1", ESTADO) == "Готов"
    assert env.queue.is_empty()
    assert len(env.notifier.errors) == 1

    env.scheduler.advance(1000)
    assert env.executor.pending() == 0


def test_mover_fecha_de_un_pedido_entregado_mueve_tambien_la_entrega() -> None:
    env = _Entorno()
    record = env.store.get("r1").with_fields({ESTADO: "Выдан", ENTREGA: "01.03.2024"})
    env.store.upsert(record)

    env.orchestrator.move_planned_date(record, date(2024, 3, 6), update_delivery_date=True)
    env.executor.run_all()

    assert env.row_store.update_calls == [("r1", {FECHA: "06.03.2024", ENTREGA: "06.03.2024"})]


def test_mover_fecha_de_un_pedido_no_entregado_no_toca_la_entrega() -> None:
    env = _Entorno()

    env.orchestrator.move_planned_date(env.record, date(2024, 3, 6), update_delivery_date=True)
    env.executor.run_all()

    assert env.row_store.update_calls == [("r1", {FECHA: "06.03.2024"})]


def test_marcar_entregado_fija_estado_y_fecha_de_entrega() -> None:
    env = _Entorno()

    env.orchestrator.toggle_issued(env.record, True, today=date(2024, 3, 5))

    assert env.store.get_field("r1", ESTADO) == "Выдан"
    assert env.store.get_field("r1", ENTREGA) == "05.03.2024"


def test_desmarcar_entregado_vuelve_a_listo() -> None:
    env = _Entorno()

    env.orchestrator.toggle_issued(env.record, False)
    env.executor.run_all()

    assert env.row_store.update_calls == [("r1", {ESTADO: "Готов"})]
