from __future__ import annotations

from collections import OrderedDict
from typing import Callable, Collection, Mapping

from tablero.domain.models import RECORD_ID_KEY, FieldValue
from tablero.domain.sync_models import FlushBatch, PendingMutation, SettleListener


class PendingMutationQueue:
    """Cola ordenada de cambios no enviados, una entrada por registro."""

    def __init__(self, clock: Callable[[], int]) -> None:
        self._clock = clock
        self._mutations: "OrderedDict[str, PendingMutation]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._mutations)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._mutations

    def is_empty(self) -> bool:
        return not self._mutations

    def record_ids(self) -> list[str]:
        return list(self._mutations)

    def pending_fields(self, record_id: str) -> dict[str, FieldValue]:
        mutation = self._mutations.get(record_id)
        return dict(mutation.fields) if mutation is not None else {}

    def enqueue(
        self,
        record_id: str,
        fields: Mapping[str, FieldValue],
        *,
        immediate: bool = False,
        listener: SettleListener | None = None,
    ) -> PendingMutation:
        if RECORD_ID_KEY in fields:
            raise ValueError("El identificador del registro no se puede modificar")
        mutation = self._mutations.get(record_id)
        if mutation is None:
            mutation = PendingMutation(
                record_id=record_id,
                fields=dict(fields),
                created_at_ms=self._clock(),
                immediate=immediate,
            )
            self._mutations[record_id] = mutation
        else:
            mutation.merge(fields, immediate=immediate)
        if listener is not None:
            mutation.listeners.append(listener)
        return mutation

    def requeue(self, mutation: PendingMutation) -> PendingMutation:
        """Devuelve a la cabeza de la cola una mutación cuyo envío falló.

        Si el usuario volvió a editar el registro mientras tanto, sus valores
        nuevos prevalecen sobre los de la mutación fallida.
        """
        newer = self._mutations.get(mutation.record_id)
        if newer is not None:
            newer.absorb_older(mutation)
            mutation = newer
        else:
            self._mutations[mutation.record_id] = mutation
        self._mutations.move_to_end(mutation.record_id, last=False)
        return mutation

    def take_batch(self, skip: Collection[str] = ()) -> FlushBatch:
        """Vacía la cola salvo los registros de ``skip``, que siguen esperando."""
        taken = tuple(mutation for record_id, mutation in self._mutations.items() if record_id not in skip)
        for mutation in taken:
            del self._mutations[mutation.record_id]
        return FlushBatch(mutations=taken, taken_at_ms=self._clock())

    def pop(self, record_id: str) -> PendingMutation | None:
        return self._mutations.pop(record_id, None)

    def withdraw(self, record_id: str, expected: Mapping[str, FieldValue]) -> list[str]:
        """Retira campos cuyo valor en cola sigue siendo ``expected``.

        Devuelve los nombres retirados. Si la mutación se queda sin campos se
        elimina de la cola y sus listeners se descartan.
        """
        mutation = self._mutations.get(record_id)
        if mutation is None:
            return []
        removed = [name for name, value in expected.items() if name in mutation.fields and mutation.fields[name] == value]
        for name in removed:
            del mutation.fields[name]
        if not mutation.fields:
            del self._mutations[record_id]
        return removed
