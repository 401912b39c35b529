from __future__ import annotations

from typing import Any

from tablero.infrastructure.sheets_field_options import SheetsFieldOptions


class _FakeWorksheet:
    title = "Заказы"

    def __init__(self, headers: list[str]) -> None:
        self.headers = headers

    def row_values(self, row: int) -> list[str]:
        assert row == 1
        return self.headers


class _FakeClient:
    def __init__(self, headers: list[str], metadata: dict[str, Any]) -> None:
        self.worksheet = _FakeWorksheet(headers)
        self.metadata = metadata
        self.requests: list[tuple[str, str]] = []

    def get_worksheet(self, name: str) -> _FakeWorksheet:
        return self.worksheet

    def fetch_grid_metadata(self, range_name: str, fields: str) -> dict[str, Any]:
        self.requests.append((range_name, fields))
        return self.metadata


def test_fetch_field_options_pide_la_fila_dos_de_la_pestana() -> None:
    metadata = {
        "sheets": [
            {
                "data": [
                    {
                        "rowData": [
                            {
                                "values": [
                                    {},
                                    {
                                        "dataValidation": {
                                            "condition": {
                                                "type": "ONE_OF_LIST",
                                                "values": [{"userEnteredValue": "Готов"}, {"userEnteredValue": "Выдан"}],
                                            }
                                        }
                                    },
                                ]
                            }
                        ]
                    }
                ]
            }
        ]
    }
    client = _FakeClient(["uuid", " Статус ", "Клиент"], metadata)

    options = SheetsFieldOptions(client, "Заказы").fetch_field_options()

    assert options == {"Статус": ["Готов", "Выдан"]}
    assert client.requests[0][0] == "'Заказы'!A2:C2"
    assert "dataValidation" in client.requests[0][1]


def test_fetch_field_options_sin_cabecera() -> None:
    client = _FakeClient([], {})

    assert SheetsFieldOptions(client).fetch_field_options() == {}
    assert client.requests == []
