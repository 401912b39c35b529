from __future__ import annotations

from datetime import date, datetime
from typing import Any

SHEET_DATE_FORMAT = "%d.%m.%Y"
_ACCEPTED_FORMATS = (SHEET_DATE_FORMAT, "%d/%m/%Y", "%Y-%m-%d")


def parse_sheet_date(valor: Any) -> date | None:
    if valor in (None, ""):
        return None
    if isinstance(valor, datetime):
        return valor.date()
    if isinstance(valor, date):
        return valor
    texto = str(valor).strip()
    for formato in _ACCEPTED_FORMATS:
        try:
            return datetime.strptime(texto, formato).date()
        except ValueError:
            continue
    return None


def format_sheet_date(valor: date | datetime) -> str:
    return valor.strftime(SHEET_DATE_FORMAT)


def normalize_sheet_date(valor: Any) -> str | None:
    parsed = parse_sheet_date(valor)
    return format_sheet_date(parsed) if parsed is not None else None
