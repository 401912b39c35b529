from __future__ import annotations

import logging

import gspread

from tablero.infrastructure.sheets_client import SheetsClient
from tablero.infrastructure.sheets_client_puros import extraer_opciones_validacion, normalizar_cabeceras

logger = logging.getLogger(__name__)

_VALIDATION_FIELDS = "sheets(data(startColumn,rowData(values(dataValidation))))"


class SheetsFieldOptions:
    """Opciones de los desplegables leídas de la validación de datos de la hoja."""

    def __init__(self, client: SheetsClient, worksheet_name: str = "") -> None:
        self._client = client
        self._worksheet_name = worksheet_name

    def fetch_field_options(self) -> dict[str, list[str]]:
        worksheet = self._client.get_worksheet(self._worksheet_name)
        headers = normalizar_cabeceras(worksheet.row_values(1))
        if not headers:
            return {}
        last_cell = gspread.utils.rowcol_to_a1(2, len(headers))
        range_name = f"'{worksheet.title}'!A2:{last_cell}"
        metadata = self._client.fetch_grid_metadata(range_name, _VALIDATION_FIELDS)
        options = extraer_opciones_validacion(headers, metadata)
        logger.info("Opciones de validación leídas para %s columna(s)", len(options))
        return options
