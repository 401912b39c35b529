from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, TypeVar

import gspread
from google.auth.exceptions import DefaultCredentialsError

from tablero.core.observability import get_correlation_id
from tablero.core.operational_logging import log_operational_error
from tablero.domain.sync_errors import RateLimited, SheetsPermissionError
from tablero.infrastructure.sheets_client_puros import calcular_backoff_escritura, debe_reintentar
from tablero.infrastructure.sheets_errors import map_gspread_exception

logger = logging.getLogger(__name__)

_WRITE_MAX_RETRIES = 2
_WRITE_BASE_BACKOFF_SECONDS = 1.0

T = TypeVar("T")


class SheetsClient:
    """Envoltorio fino sobre gspread: apertura perezosa, traducción de errores y contadores.

    Las lecturas no se reintentan: un 429 sube como ``RateLimited`` y el
    reconciliador pausa el polling. Las escrituras se reintentan una vez con
    backoff corto antes de rendirse.
    """

    def __init__(self, credentials_path: Path, spreadsheet_id: str, *, sleep: Callable[[float], None] = time.sleep) -> None:
        self._credentials_path = credentials_path
        self._spreadsheet_id = spreadsheet_id
        self._sleep = sleep
        self._lock = threading.Lock()
        self._client: gspread.Client | None = None
        self._spreadsheet: gspread.Spreadsheet | None = None
        self._worksheet_cache: dict[str, gspread.Worksheet] = {}
        self._read_calls_count = 0
        self._write_calls_count = 0

    @property
    def spreadsheet_id(self) -> str:
        return self._spreadsheet_id

    def open_spreadsheet(self) -> gspread.Spreadsheet:
        with self._lock:
            if self._spreadsheet is not None:
                return self._spreadsheet
            logger.info("Conectando a Google Sheets con credenciales: %s", "credentials.json")
            try:
                client = gspread.service_account(filename=str(self._credentials_path))
                spreadsheet = client.open_by_key(self._spreadsheet_id)
            except (
                gspread.exceptions.GSpreadException,
                FileNotFoundError,
                json.JSONDecodeError,
                DefaultCredentialsError,
                OSError,
            ) as exc:
                mapped_error = map_gspread_exception(exc)
                if isinstance(mapped_error, SheetsPermissionError):
                    self._log_permission_error(mapped_error)
                raise mapped_error from exc
            self._client = client
            self._spreadsheet = spreadsheet
            self._worksheet_cache = {}
            return spreadsheet

    def http_client(self) -> Any:
        self.open_spreadsheet()
        return self._client.http_client

    def get_worksheet(self, name: str) -> gspread.Worksheet:
        if name in self._worksheet_cache:
            return self._worksheet_cache[name]
        spreadsheet = self.open_spreadsheet()
        worksheet = self._read(
            f"spreadsheet.worksheet({name or 'sheet1'})",
            lambda: spreadsheet.worksheet(name) if name else spreadsheet.sheet1,
        )
        self._worksheet_cache[name] = worksheet
        return worksheet

    def read_all_values(self, worksheet_name: str) -> list[list[str]]:
        worksheet = self.get_worksheet(worksheet_name)
        return self._read(f"worksheet.get_all_values({worksheet_name})", worksheet.get_all_values)

    def fetch_grid_metadata(self, range_name: str, fields: str) -> dict[str, Any]:
        spreadsheet = self.open_spreadsheet()
        params = {"includeGridData": "true", "ranges": range_name, "fields": fields}
        return self._read(
            f"spreadsheet.fetch_sheet_metadata({range_name})",
            lambda: spreadsheet.fetch_sheet_metadata(params=params),
        )

    def update_header(self, worksheet_name: str, headers: list[str]) -> None:
        worksheet = self.get_worksheet(worksheet_name)
        self._write(
            f"worksheet.update_header({worksheet_name})",
            lambda: worksheet.update(range_name="A1", values=[headers]),
        )

    def batch_update(self, worksheet_name: str, data: list[dict[str, Any]]) -> None:
        if not data:
            return
        worksheet = self.get_worksheet(worksheet_name)
        self._write(
            f"worksheet.batch_update({worksheet_name})",
            lambda: worksheet.batch_update(data, value_input_option="USER_ENTERED"),
        )

    def append_row(self, worksheet_name: str, row: list[Any]) -> None:
        worksheet = self.get_worksheet(worksheet_name)
        self._write(
            f"worksheet.append_row({worksheet_name})",
            lambda: worksheet.append_row(row, value_input_option="USER_ENTERED"),
        )

    def delete_row(self, worksheet_name: str, row_index: int) -> None:
        worksheet = self.get_worksheet(worksheet_name)
        self._write(f"worksheet.delete_rows({worksheet_name})", lambda: worksheet.delete_rows(row_index))

    def get_read_calls_count(self) -> int:
        return self._read_calls_count

    def get_write_calls_count(self) -> int:
        return self._write_calls_count

    def _read(self, operation_name: str, operation: Callable[[], T]) -> T:
        try:
            result = operation()
        except (gspread.exceptions.GSpreadException, OSError) as exc:
            raise self._map_and_log(exc, operation_name) from exc
        self._read_calls_count += 1
        return result

    def _write(self, operation_name: str, operation: Callable[[], T]) -> T:
        for attempt in range(1, _WRITE_MAX_RETRIES + 1):
            try:
                result = operation()
            except (gspread.exceptions.GSpreadException, OSError) as exc:
                mapped_error = self._map_and_log(exc, operation_name)
                if not isinstance(mapped_error, RateLimited) or not debe_reintentar(attempt, _WRITE_MAX_RETRIES):
                    raise mapped_error from exc
                backoff_seconds = calcular_backoff_escritura(attempt, _WRITE_BASE_BACKOFF_SECONDS)
                logger.warning(
                    "Rate limit en escritura Google Sheets (%s). intento=%s/%s backoff=%ss",
                    operation_name,
                    attempt,
                    _WRITE_MAX_RETRIES,
                    backoff_seconds,
                )
                self._sleep(backoff_seconds)
                continue
            self._write_calls_count += 1
            return result
        raise RuntimeError("No se pudo completar la escritura en Google Sheets.")

    def _map_and_log(self, exc: Exception, operation_name: str) -> Exception:
        mapped_error = map_gspread_exception(exc)
        if isinstance(mapped_error, SheetsPermissionError):
            self._log_permission_error(mapped_error, operation_name=operation_name)
        return mapped_error

    def _log_permission_error(self, error: SheetsPermissionError, *, operation_name: str | None = None) -> None:
        log_operational_error(
            logger,
            "Permisos insuficientes en Google Sheets",
            exc=error,
            extra={
                "correlation_id": get_correlation_id(),
                "operation": operation_name or "open_spreadsheet",
                "spreadsheet_id": self._spreadsheet_id,
            },
        )
