from __future__ import annotations

import json
from typing import Optional

import gspread
import requests
from google.auth.exceptions import DefaultCredentialsError, TransportError

from tablero.core.errors import AppError
from tablero.domain.sync_errors import (
    HardRejection,
    NetworkError,
    RateLimited,
    SheetsConfigError,
    SheetsCredentialsError,
    SheetsPermissionError,
)

_RATE_LIMIT_STATUS = {429, 500, 503}
_RATE_LIMIT_TOKENS = (
    "[429]",
    "resource_exhausted",
    "rate_limit_exceeded",
    "quota exceeded",
    "read requests per minute per user",
)


def extract_response_status_code(ex: Exception) -> int | None:
    response = getattr(ex, "response", None)
    return getattr(response, "status_code", None)


def _extract_api_error_text(ex: gspread.exceptions.APIError) -> str:
    response = getattr(ex, "response", None)
    if response is not None:
        text = getattr(response, "text", "")
        if text:
            return text
    return str(ex)


def normalize_error_text(text: str) -> str:
    return text.strip().lower()


def _credentials_not_found_message(path: Optional[str]) -> str:
    if path:
        return f"No se encuentra credentials.json en {path}."
    return "No se encuentra credentials.json."


def is_rate_limited(text_lower: str, status_code: int | None) -> bool:
    if status_code in _RATE_LIMIT_STATUS:
        return True
    return any(token in text_lower for token in _RATE_LIMIT_TOKENS)


def classify_api_error(text_lower: str, status_code: int | None) -> AppError:
    if is_rate_limited(text_lower, status_code):
        return RateLimited("Límite de Google Sheets alcanzado.")
    if "google sheets api has not been used" in text_lower or "it is disabled" in text_lower:
        return SheetsConfigError("La API de Google Sheets no está habilitada en el proyecto de Google Cloud.")
    if status_code == 404 or "[404]" in text_lower or "requested entity was not found" in text_lower:
        return SheetsConfigError("El Spreadsheet ID no es válido o la hoja no existe.")
    if status_code == 403 or "[403]" in text_lower or "permission_denied" in text_lower:
        return SheetsPermissionError("La hoja no está compartida con la cuenta de servicio.")
    return HardRejection(f"Google Sheets rechazó la operación: {text_lower[:200]}")


def map_gspread_exception(ex: Exception) -> Exception:
    """Traduce fallos de gspread, google-auth y requests a la taxonomía del motor."""
    if isinstance(ex, AppError):
        return ex
    if isinstance(ex, gspread.exceptions.APIError):
        text_lower = normalize_error_text(_extract_api_error_text(ex))
        return classify_api_error(text_lower, extract_response_status_code(ex))
    if isinstance(ex, requests.exceptions.ConnectionError | requests.exceptions.Timeout | TransportError):
        return NetworkError(f"Sin conexión con Google: {ex}")
    if isinstance(ex, FileNotFoundError):
        return SheetsCredentialsError(_credentials_not_found_message(getattr(ex, "filename", None)))
    if isinstance(ex, json.JSONDecodeError | DefaultCredentialsError):
        return SheetsCredentialsError("El credentials.json no es válido. Revisa el contenido del archivo.")
    if isinstance(ex, gspread.exceptions.WorksheetNotFound):
        return SheetsConfigError(f"No existe la pestaña {ex}.")
    if isinstance(ex, gspread.exceptions.SpreadsheetNotFound):
        return SheetsConfigError("El Spreadsheet ID no es válido o la hoja no existe.")
    if isinstance(ex, OSError):
        return NetworkError(str(ex))
    return SheetsConfigError(str(ex))
