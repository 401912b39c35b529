from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Mapping, Union

from tablero.domain.models import FieldValue, Record


@dataclass(frozen=True)
class WriteOk:
    record_id: str
    record: Record | None = None


@dataclass(frozen=True)
class WriteTimeout:
    record_id: str
    deadline_ms: int


@dataclass(frozen=True)
class WriteRejected:
    record_id: str
    error: Exception


WriteOutcome = Union[WriteOk, WriteTimeout, WriteRejected]
SettleListener = Callable[[WriteOutcome], None]


@dataclass
class PendingMutation:
    """Cambios de un registro aún no confirmados por el almacén de filas.

    Solo contiene los campos modificados. Dos ediciones del mismo registro se
    fusionan campo a campo y gana el último valor; nunca hay dos entradas por
    campo.
    """

    record_id: str
    fields: dict[str, FieldValue]
    created_at_ms: int
    immediate: bool = False
    attempts: int = 0
    listeners: list[SettleListener] = field(default_factory=list)

    def merge(self, fields: Mapping[str, FieldValue], *, immediate: bool = False) -> None:
        self.fields.update(fields)
        self.immediate = self.immediate or immediate

    def absorb_older(self, older: "PendingMutation") -> None:
        """Incorpora una mutación anterior sin pisar los valores más recientes."""
        merged = dict(older.fields)
        merged.update(self.fields)
        self.fields = merged
        self.created_at_ms = min(self.created_at_ms, older.created_at_ms)
        self.attempts = max(self.attempts, older.attempts)
        self.listeners = [*older.listeners, *self.listeners]

    def take_listeners(self) -> list[SettleListener]:
        listeners, self.listeners = self.listeners, []
        return listeners

    def notify(self, outcome: WriteOutcome) -> None:
        for listener in self.take_listeners():
            listener(outcome)


@dataclass(frozen=True)
class FlushBatch:
    """Foto atómica de la cola tomada al iniciar un flush."""

    mutations: tuple[PendingMutation, ...]
    taken_at_ms: int

    def __len__(self) -> int:
        return len(self.mutations)

    def record_ids(self) -> list[str]:
        return [mutation.record_id for mutation in self.mutations]
