from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Union

FieldValue = Union[str, int, float]

RECORD_ID_KEY = "_id"


@dataclass(frozen=True)
class Record:
    """Fila de la hoja remota, direccionable por nombre de campo.

    ``record_id`` es opaco y estable durante toda la vida del registro: nunca
    forma parte de ``fields`` ni se modifica. Los campos conservan el orden de
    las columnas de la hoja; son datos, no esquema, así que cualquier nombre
    es válido salvo la clave reservada ``_id``.
    """

    record_id: str
    fields: tuple[tuple[str, FieldValue], ...] = ()

    @classmethod
    def from_mapping(cls, record_id: str, values: Mapping[str, Any]) -> "Record":
        return cls(
            record_id=str(record_id),
            fields=tuple((str(name), value) for name, value in values.items() if name != RECORD_ID_KEY),
        )

    @classmethod
    def from_flat_dict(cls, payload: Mapping[str, Any]) -> "Record":
        if RECORD_ID_KEY not in payload:
            raise ValueError(f"Falta la clave {RECORD_ID_KEY} en el registro")
        return cls.from_mapping(str(payload[RECORD_ID_KEY]), payload)

    def get(self, name: str, default: FieldValue | None = None) -> FieldValue | None:
        for field_name, value in self.fields:
            if field_name == name:
                return value
        return default

    def field_names(self) -> list[str]:
        return [name for name, _ in self.fields]

    def as_dict(self) -> dict[str, FieldValue]:
        return dict(self.fields)

    def to_flat_dict(self) -> dict[str, Any]:
        return {RECORD_ID_KEY: self.record_id, **self.as_dict()}

    def with_fields(self, changes: Mapping[str, FieldValue]) -> "Record":
        if RECORD_ID_KEY in changes:
            raise ValueError("El identificador del registro no se puede modificar")
        merged = dict(self.fields)
        merged.update(changes)
        return Record(record_id=self.record_id, fields=tuple(merged.items()))


def records_by_id(records: Iterable[Record]) -> dict[str, Record]:
    return {record.record_id: record for record in records}


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class TransportState(str, Enum):
    POLLING_ONLY = "polling_only"
    ATTEMPTING_PUSH = "attempting_push"
    PUSH_CONNECTED = "push_connected"
    PUSH_RECONNECTING = "push_reconnecting"
    PUSH_DISABLED = "push_disabled"


PUSH_CAPABLE_STATES = frozenset(
    {TransportState.ATTEMPTING_PUSH, TransportState.PUSH_CONNECTED, TransportState.PUSH_RECONNECTING}
)


@dataclass(frozen=True)
class PushEvent:
    type: str
    client_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PushEvent":
        raw_type = str(payload.get("type", "")).strip()
        # El servidor histórico emite "sheet-changed"; se normaliza a "changed".
        event_type = "changed" if raw_type in {"changed", "sheet-changed"} else raw_type
        client_id = payload.get("clientId")
        return cls(
            type=event_type,
            client_id=str(client_id) if client_id is not None else None,
            payload=dict(payload),
        )


@dataclass(frozen=True)
class SheetsConfig:
    spreadsheet_id: str
    credentials_path: str
    worksheet_name: str = ""
    id_column: str = "uuid"


@dataclass(frozen=True)
class SyncConfig:
    """Parámetros inyectados del motor; todos los tiempos en milisegundos."""

    sheets: SheetsConfig | None = None
    push_stream_url: str = ""
    push_webhook_url: str = ""
    push_channel_token: str = "sheet-change-token"
    access_token: str = ""
    debounce_ms: int = 500
    poll_interval_ms: int = 5000
    rate_limit_cooldown_ms: int = 5 * 60 * 1000
    reconnect_base_ms: int = 1000
    reconnect_cap_ms: int = 30000
    max_reconnect_attempts: int = 10
    max_setup_attempts: int = 5
    move_deadline_ms: int = 20000
    busy_indicator_ms: int = 500
    max_flush_attempts: int = 3

    @property
    def push_configured(self) -> bool:
        return bool(self.push_stream_url)
