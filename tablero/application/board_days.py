from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable

from tablero.domain import sheet_columns
from tablero.domain.models import Record
from tablero.domain.sheet_dates import format_sheet_date, parse_sheet_date

DAYS_BEFORE_TODAY = 5


def _skip_sundays(day: date) -> date:
    while day.weekday() == 6:
        day += timedelta(days=1)
    return day


def board_days(records: Iterable[Record], today: date, *, days_before: int = DAYS_BEFORE_TODAY) -> list[date]:
    """Columnas del tablero: desde ``days_before`` días atrás hasta el día
    siguiente a la última fecha planificada, sin domingos."""
    last_planned = today
    for record in records:
        planned = parse_sheet_date(record.get(sheet_columns.PLANNED_DATE))
        if planned is not None and planned > last_planned:
            last_planned = planned
    end = _skip_sundays(last_planned + timedelta(days=1))
    current = today - timedelta(days=days_before)
    days: list[date] = []
    while current <= end:
        if current.weekday() != 6:
            days.append(current)
        current += timedelta(days=1)
    return days


def group_by_planned_date(records: Iterable[Record], days: Iterable[date]) -> dict[str, list[Record]]:
    grouped: dict[str, list[Record]] = {format_sheet_date(day): [] for day in days}
    for record in records:
        planned = parse_sheet_date(record.get(sheet_columns.PLANNED_DATE))
        if planned is None:
            continue
        bucket = grouped.get(format_sheet_date(planned))
        if bucket is not None:
            bucket.append(record)
    return grouped


def total_area(records: Iterable[Record]) -> float:
    total = 0.0
    for record in records:
        raw = str(record.get(sheet_columns.AREA) or "").replace(",", ".").strip()
        try:
            total += float(raw) if raw else 0.0
        except ValueError:
            continue
    return round(total, 2)
