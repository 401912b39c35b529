from __future__ import annotations

import logging
import threading
import uuid
from typing import Callable, Mapping

import gspread

from tablero.core import metrics
from tablero.domain.models import FieldValue, Record, SheetsConfig
from tablero.domain.sync_errors import HardRejection, RecordNotFound
from tablero.infrastructure.sheets_client import SheetsClient
from tablero.infrastructure.sheets_client_puros import (
    asegurar_columna_id,
    buscar_fila_por_id,
    columnas_desconocidas,
    construir_registro,
    fila_para_alta,
    fila_vacia,
    fusionar_fila,
    indice_columna,
    normalizar_cabeceras,
)

logger = logging.getLogger(__name__)


class SheetsRowStore:
    """Almacén de filas sobre una pestaña de Google Sheets.

    La fila 1 es la cabecera y da nombre a los campos. Cada fila se identifica
    por la columna ``id_column`` (``uuid`` por defecto); si falta la columna se
    crea y las filas sin id reciben uno nuevo al leerse, de modo que el
    identificador sobrevive a borrados y reordenaciones.
    """

    def __init__(
        self,
        client: SheetsClient,
        config: SheetsConfig,
        *,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._client = client
        self._worksheet_name = config.worksheet_name
        self._id_column = config.id_column
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        # Las escrituras que buscan la fila por id no deben cruzarse con un borrado.
        self._write_lock = threading.Lock()

    def list_records(self) -> list[Record]:
        with metrics.metrics_registry.cronometro(metrics.FETCH_LATENCY_MS):
            values = self._client.read_all_values(self._worksheet_name)
        if not self._needs_backfill(values):
            return self._build_records(values)
        # Los números de fila solo son fiables bajo el cerrojo: un borrado
        # concurrente desplazaría las filas y el id acabaría en otra fila.
        with self._write_lock:
            values = self._client.read_all_values(self._worksheet_name)
            return self._build_records(values)

    def _needs_backfill(self, values: list[list[str]]) -> bool:
        if not values:
            return False
        headers = normalizar_cabeceras(values[0])
        if indice_columna(headers, self._id_column) is None:
            return True
        return any(
            not fila_vacia(row) and not construir_registro(headers, row, self._id_column).record_id
            for row in values[1:]
        )

    def _build_records(self, values: list[list[str]]) -> list[Record]:
        if not values:
            return []
        headers = self._ensure_id_header(normalizar_cabeceras(values[0]))
        id_index = headers.index(self._id_column)
        records: list[Record] = []
        backfills: list[dict[str, object]] = []
        for row_number, row in enumerate(values[1:], start=2):
            if fila_vacia(row):
                continue
            record = construir_registro(headers, row, self._id_column)
            if not record.record_id:
                record = Record(record_id=self._id_factory(), fields=record.fields)
                backfills.append(
                    {
                        "range": gspread.utils.rowcol_to_a1(row_number, id_index + 1),
                        "values": [[record.record_id]],
                    }
                )
            records.append(record)
        if backfills:
            logger.info("Asignando id a %s fila(s) sin %s", len(backfills), self._id_column)
            self._client.batch_update(self._worksheet_name, backfills)
        return records

    def create_record(self, fields: Mapping[str, FieldValue]) -> Record:
        with self._write_lock:
            headers = self._read_headers()
            self._reject_unknown_columns(headers, fields)
            record_id = self._id_factory()
            row = fila_para_alta(headers, fields, self._id_column, record_id)
            self._client.append_row(self._worksheet_name, row)
        logger.info("Fila creada con id %s", record_id)
        return construir_registro(headers, row, self._id_column)

    def update_record(self, record_id: str, fields: Mapping[str, FieldValue]) -> Record:
        with self._write_lock:
            values = self._client.read_all_values(self._worksheet_name)
            headers, row_number = self._locate(values, record_id)
            self._reject_unknown_columns(headers, fields)
            data = [
                {
                    "range": gspread.utils.rowcol_to_a1(row_number, headers.index(name) + 1),
                    "values": [[value]],
                }
                for name, value in fields.items()
            ]
            with metrics.metrics_registry.cronometro(metrics.WRITE_LATENCY_MS):
                self._client.batch_update(self._worksheet_name, data)
            merged = fusionar_fila(headers, values[row_number - 1], fields)
        return construir_registro(headers, merged, self._id_column)

    def delete_record(self, record_id: str) -> None:
        with self._write_lock:
            values = self._client.read_all_values(self._worksheet_name)
            _headers, row_number = self._locate(values, record_id)
            self._client.delete_row(self._worksheet_name, row_number)
        logger.info("Fila %s eliminada (id %s)", row_number, record_id)

    def _read_headers(self) -> list[str]:
        values = self._client.read_all_values(self._worksheet_name)
        headers = normalizar_cabeceras(values[0]) if values else []
        return self._ensure_id_header(headers)

    def _ensure_id_header(self, headers: list[str]) -> list[str]:
        resolved, created = asegurar_columna_id(headers, self._id_column)
        if created:
            logger.info("Creando columna de id %s en la cabecera", self._id_column)
            self._client.update_header(self._worksheet_name, resolved)
        return resolved

    def _locate(self, values: list[list[str]], record_id: str) -> tuple[list[str], int]:
        if not values:
            raise RecordNotFound(record_id)
        headers = normalizar_cabeceras(values[0])
        id_index = indice_columna(headers, self._id_column)
        row_number = buscar_fila_por_id(values, id_index, record_id) if id_index is not None else None
        if row_number is None:
            raise RecordNotFound(record_id)
        return headers, row_number

    def _reject_unknown_columns(self, headers: list[str], fields: Mapping[str, FieldValue]) -> None:
        unknown = columnas_desconocidas(headers, fields)
        if self._id_column in fields:
            unknown.append(self._id_column)
        if unknown:
            raise HardRejection(f"Columnas no válidas para la hoja: {', '.join(unknown)}")
