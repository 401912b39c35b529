from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from tablero.application.record_store import RecordStore
from tablero.domain.models import FieldValue

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RollbackToken:
    record_id: str
    field_name: str
    previous_value: FieldValue | None
    applied_value: FieldValue
    version: int


class OptimisticApplier:
    """Aplica cambios locales antes de la confirmación del servidor.

    Cada (registro, campo) lleva un contador de versión. Un rollback solo
    restaura el valor previo si nadie ha vuelto a editar ese campo desde que
    se emitió el token; si hubo otra edición, gana la más reciente.
    """

    def __init__(self, store: RecordStore) -> None:
        self._store = store
        self._versions: dict[tuple[str, str], int] = {}

    def apply_optimistic(self, record_id: str, field_name: str, new_value: FieldValue) -> RollbackToken:
        previous_value = self._store.get_field(record_id, field_name)
        key = (record_id, field_name)
        version = self._versions.get(key, 0) + 1
        self._versions[key] = version
        self._store.apply_fields(record_id, {field_name: new_value})
        return RollbackToken(
            record_id=record_id,
            field_name=field_name,
            previous_value=previous_value,
            applied_value=new_value,
            version=version,
        )

    def apply_many(self, record_id: str, changes: Mapping[str, FieldValue]) -> list[RollbackToken]:
        return [self.apply_optimistic(record_id, name, value) for name, value in changes.items()]

    def is_current(self, token: RollbackToken) -> bool:
        return self._versions.get((token.record_id, token.field_name)) == token.version

    def rollback(self, token: RollbackToken) -> bool:
        if not self.is_current(token):
            logger.info(
                "Rollback omitido en %s.%s: hay una edición posterior",
                token.record_id,
                token.field_name,
            )
            return False
        restored = "" if token.previous_value is None else token.previous_value
        self._store.apply_fields(token.record_id, {token.field_name: restored})
        self._versions[(token.record_id, token.field_name)] = token.version + 1
        return True
