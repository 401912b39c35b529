from __future__ import annotations

from typing import Any, Callable, Mapping, Protocol, TypeVar

from tablero.domain.models import FieldValue, PushEvent, Record, SyncConfig
from tablero.domain.sync_errors import ChannelError

T = TypeVar("T")


class RowStorePort(Protocol):
    def list_records(self) -> list[Record]:
        ...

    def create_record(self, fields: Mapping[str, FieldValue]) -> Record:
        ...

    def update_record(self, record_id: str, fields: Mapping[str, FieldValue]) -> Record:
        ...

    def delete_record(self, record_id: str) -> None:
        ...


class FieldOptionsPort(Protocol):
    def fetch_field_options(self) -> dict[str, list[str]]:
        ...


class PushEnablerPort(Protocol):
    def enable_push(self) -> bool:
        ...


class PushListener(Protocol):
    def on_open(self) -> None:
        ...

    def on_event(self, event: PushEvent) -> None:
        ...

    def on_error(self, error: ChannelError) -> None:
        ...


class PushSubscription(Protocol):
    def close(self) -> None:
        ...


class PushChannelPort(Protocol):
    def subscribe(self, listener: PushListener) -> PushSubscription:
        ...


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class SchedulerPort(Protocol):
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        ...

    def now_ms(self) -> int:
        ...


class IoExecutorPort(Protocol):
    """Ejecuta E/S bloqueante fuera del event loop y devuelve el resultado en él."""

    def submit(
        self,
        operation: Callable[[], T],
        on_success: Callable[[T], None],
        on_failure: Callable[[Exception], None],
    ) -> None:
        ...


class NotifierPort(Protocol):
    def warning(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...


class SyncConfigStorePort(Protocol):
    def load(self) -> SyncConfig | None:
        ...

    def save(self, config: SyncConfig) -> SyncConfig:
        ...


StoreListener = Callable[[list[Record]], None]
StateListener = Callable[[Any], None]
