from __future__ import annotations

import hashlib
import json
import logging
from typing import Callable, Iterable, Mapping

from tablero.domain.models import FieldValue, Record
from tablero.domain.ports import StoreListener

logger = logging.getLogger(__name__)


def compute_fingerprint(records: Iterable[Record]) -> str:
    """Huella comparable de una foto completa del servidor.

    Se respeta el orden de filas y columnas: una hoja reordenada es un cambio
    real para la vista.
    """
    canonical = json.dumps(
        [[record.record_id, [list(item) for item in record.fields]] for record in records],
        ensure_ascii=False,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class RecordStore:
    """Tabla en memoria de registros, indexada por identificador.

    Solo el aplicador optimista, el flusher y el reconciliador escriben aquí;
    el resto del código lee fotos inmutables con ``snapshot()``.
    """

    def __init__(self) -> None:
        self._records: dict[str, Record] = {}
        self._fingerprint: str | None = None
        self._last_updated_ms: int | None = None
        self._listeners: list[StoreListener] = []

    @property
    def fingerprint(self) -> str | None:
        return self._fingerprint

    @property
    def last_updated_ms(self) -> int | None:
        return self._last_updated_ms

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    def snapshot(self) -> list[Record]:
        return list(self._records.values())

    def get(self, record_id: str) -> Record | None:
        return self._records.get(record_id)

    def get_field(self, record_id: str, field_name: str) -> FieldValue | None:
        record = self._records.get(record_id)
        if record is None:
            return None
        return record.get(field_name)

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def apply_fields(self, record_id: str, changes: Mapping[str, FieldValue]) -> bool:
        current = self._records.get(record_id)
        if current is None:
            logger.debug("Cambios ignorados para registro desconocido %s", record_id)
            return False
        updated = current.with_fields(changes)
        if updated == current:
            return False
        self._records[record_id] = updated
        self._mark_local_change()
        self._notify()
        return True

    def upsert(self, record: Record) -> None:
        if self._records.get(record.record_id) == record:
            return
        self._records[record.record_id] = record
        self._mark_local_change()
        self._notify()

    def remove(self, record_id: str) -> bool:
        if self._records.pop(record_id, None) is None:
            return False
        self._mark_local_change()
        self._notify()
        return True

    def replace_all(self, records: Iterable[Record], *, fingerprint: str, updated_at_ms: int) -> None:
        self._records = {record.record_id: record for record in records}
        self._fingerprint = fingerprint
        self._last_updated_ms = updated_at_ms
        self._notify()

    def _mark_local_change(self) -> None:
        # La huella describe la última foto del servidor; tras un cambio local
        # ya no coincide con el contenido y la siguiente foto debe aplicarse.
        self._fingerprint = None

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
