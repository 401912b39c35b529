from __future__ import annotations

import pytest

from tablero.application.mutation_queue import PendingMutationQueue
from tablero.domain.sync_models import PendingMutation
from tests.sync_engine.fakes import FakeScheduler


def _queue() -> tuple[PendingMutationQueue, FakeScheduler]:
    scheduler = FakeScheduler()
    return PendingMutationQueue(scheduler.now_ms), scheduler


def test_enqueue_fusiona_campos_del_mismo_registro_y_gana_el_ultimo() -> None:
    queue, _ = _queue()

    queue.enqueue("r1", {"Статус": "Готов"})
    queue.enqueue("r1", {"Оплата": "оплачен", "Статус": "Выдан"})

    assert len(queue) == 1
    assert queue.pending_fields("r1") == {"Статус": "Выдан", "Оплата": "оплачен"}


def test_enqueue_rechaza_el_identificador_reservado() -> None:
    queue, _ = _queue()

    with pytest.raises(ValueError):
        queue.enqueue("r1", {"_id": "r2"})


def test_take_batch_vacia_la_cola_salvo_registros_omitidos() -> None:
    queue, scheduler = _queue()
    queue.enqueue("r1", {"a": "1"})
    queue.enqueue("r2", {"b": "2"})
    scheduler.advance(40)

    batch = queue.take_batch(skip={"r2"})

    assert batch.record_ids() == ["r1"]
    assert batch.taken_at_ms == 40
    assert queue.record_ids() == ["r2"]


def test_requeue_pone_la_mutacion_en_cabeza_sin_pisar_ediciones_nuevas() -> None:
    queue, _ = _queue()
    failed = PendingMutation(record_id="r1", fields={"a": "viejo", "b": "viejo"}, created_at_ms=0, attempts=1)
    queue.enqueue("r2", {"x": "1"})
    queue.enqueue("r1", {"a": "nuevo"})

    merged = queue.requeue(failed)

    assert queue.record_ids() == ["r1", "r2"]
    assert merged.fields == {"a": "nuevo", "b": "viejo"}
    assert merged.attempts == 1


def test_withdraw_solo_retira_valores_que_no_cambiaron() -> None:
    queue, _ = _queue()
    queue.enqueue("r1", {"a": "rechazado", "b": "otra edición"})

    removed = queue.withdraw("r1", {"a": "rechazado", "b": "valor anterior"})

    assert removed == ["a"]
    assert queue.pending_fields("r1") == {"b": "otra edición"}


def test_withdraw_elimina_la_mutacion_si_queda_vacia() -> None:
    queue, _ = _queue()
    queue.enqueue("r1", {"a": "rechazado"})

    queue.withdraw("r1", {"a": "rechazado"})

    assert queue.is_empty()
    assert "r1" not in queue
