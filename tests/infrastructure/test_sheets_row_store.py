from __future__ import annotations

import itertools
from typing import Any

import pytest

from tablero.domain.models import SheetsConfig
from tablero.domain.sync_errors import HardRejection, RecordNotFound
from tablero.infrastructure.sheets_row_store import SheetsRowStore


class _FakeSheetsClient:
    def __init__(self, values: list[list[str]]) -> None:
        self.values = values
        self.header_updates: list[list[str]] = []
        self.batch_calls: list[list[dict[str, Any]]] = []
        self.appended: list[list[Any]] = []
        self.deleted_rows: list[int] = []

    def read_all_values(self, worksheet_name: str) -> list[list[str]]:
        return [list(row) for row in self.values]

    def update_header(self, worksheet_name: str, headers: list[str]) -> None:
        self.header_updates.append(list(headers))

    def batch_update(self, worksheet_name: str, data: list[dict[str, Any]]) -> None:
        self.batch_calls.append(data)

    def append_row(self, worksheet_name: str, row: list[Any]) -> None:
        self.appended.append(row)

    def delete_row(self, worksheet_name: str, row_index: int) -> None:
        self.deleted_rows.append(row_index)


def _store(client: _FakeSheetsClient) -> SheetsRowStore:
    ids = itertools.count(1)
    config = SheetsConfig(spreadsheet_id="sheet-123", credentials_path="credentials.json", worksheet_name="Заказы")
    return SheetsRowStore(client, config, id_factory=lambda: f"new-{next(ids)}")


def test_list_records_asigna_id_a_filas_sin_uuid_y_omite_vacias() -> None:
    client = _FakeSheetsClient([["Клиент", "uuid"], ["Иванов", "a1"], ["Петров", ""], ["", ""]])

    records = _store(client).list_records()

    assert [record.record_id for record in records] == ["a1", "new-1"]
    assert records[1].as_dict() == {"Клиент": "Петров"}
    assert client.batch_calls == [[{"range": "B3", "values": [["new-1"]]}]]
    assert client.header_updates == []


def test_list_records_crea_la_columna_de_id_si_falta() -> None:
    client = _FakeSheetsClient([["Клиент"], ["Иванов"]])

    records = _store(client).list_records()

    assert client.header_updates == [["Клиент", "uuid"]]
    assert client.batch_calls == [[{"range": "B2", "values": [["new-1"]]}]]
    assert records[0].record_id == "new-1"


class _ClienteConBorradoConcurrente(_FakeSheetsClient):
    """Entre la primera lectura y el relleno de ids otro hilo borra una fila."""

    def __init__(self, before: list[list[str]], after: list[list[str]]) -> None:
        super().__init__(before)
        self._after = after
        self.reads = 0

    def read_all_values(self, worksheet_name: str) -> list[list[str]]:
        self.reads += 1
        values = super().read_all_values(worksheet_name)
        self.values = self._after
        return values


def test_list_records_relee_bajo_cerrojo_antes_de_asignar_ids() -> None:
    client = _ClienteConBorradoConcurrente(
        [["Клиент", "uuid"], ["Иванов", "a1"], ["Сидоров", "c3"], ["Петров", ""]],
        [["Клиент", "uuid"], ["Сидоров", "c3"], ["Петров", ""]],
    )

    records = _store(client).list_records()

    assert client.reads == 2
    assert client.batch_calls == [[{"range": "B3", "values": [["new-1"]]}]]
    assert [record.record_id for record in records] == ["c3", "new-1"]


def test_list_records_sin_huecos_no_escribe_ni_relee() -> None:
    client = _ClienteConBorradoConcurrente([["Клиент", "uuid"], ["Иванов", "a1"]], [])

    records = _store(client).list_records()

    assert client.reads == 1
    assert client.batch_calls == []
    assert [record.record_id for record in records] == ["a1"]


def test_list_records_hoja_vacia() -> None:
    assert _store(_FakeSheetsClient([])).list_records() == []


def test_update_record_escribe_solo_las_celdas_cambiadas() -> None:
    client = _FakeSheetsClient([["uuid", "Статус", "Клиент"], ["a1", "Готов", "X"], ["b2", "-", "Y"]])

    updated = _store(client).update_record("b2", {"Статус": "Выдан"})

    assert client.batch_calls == [[{"range": "B3", "values": [["Выдан"]]}]]
    assert updated.record_id == "b2"
    assert updated.as_dict() == {"Статус": "Выдан", "Клиент": "Y"}


def test_update_record_inexistente() -> None:
    client = _FakeSheetsClient([["uuid", "Статус"], ["a1", "Готов"]])

    with pytest.raises(RecordNotFound):
        _store(client).update_record("zz", {"Статус": "Выдан"})
    assert client.batch_calls == []


@pytest.mark.parametrize("fields", [{"Desconocida": "x"}, {"uuid": "otro"}])
def test_update_record_rechaza_columnas_no_validas(fields) -> None:
    client = _FakeSheetsClient([["uuid", "Статус"], ["a1", "Готов"]])

    with pytest.raises(HardRejection):
        _store(client).update_record("a1", fields)


def test_create_record_anade_fila_con_id_nuevo() -> None:
    client = _FakeSheetsClient([["uuid", "Статус", "Клиент"], ["a1", "Готов", "X"]])

    created = _store(client).create_record({"Клиент": "Z"})

    assert client.appended == [["new-1", "", "Z"]]
    assert created.record_id == "new-1"
    assert created.as_dict() == {"Статус": "", "Клиент": "Z"}


def test_delete_record_borra_la_fila_localizada_por_id() -> None:
    client = _FakeSheetsClient([["uuid", "Статус"], ["a1", "Готов"], ["b2", "-"]])

    _store(client).delete_record("b2")

    assert client.deleted_rows == [3]


def test_delete_record_inexistente() -> None:
    with pytest.raises(RecordNotFound):
        _store(_FakeSheetsClient([])).delete_record("a1")
