from __future__ import annotations

import logging
from typing import Callable

from tablero.domain.ports import FieldOptionsPort, IoExecutorPort
from tablero.domain.sheet_columns import FALLBACK_FIELD_OPTIONS, PROPERTY_ORDER

logger = logging.getLogger(__name__)


def fallback_field_options() -> dict[str, list[str]]:
    return {name: list(values) for name, values in FALLBACK_FIELD_OPTIONS.items()}


class FieldOptionsService:
    """Opciones de los menús de elección; se piden una sola vez por sesión."""

    def __init__(self, source: FieldOptionsPort, executor: IoExecutorPort) -> None:
        self._source = source
        self._executor = executor
        self._options: dict[str, list[str]] | None = None
        self._loading = False
        self._waiting: list[Callable[[dict[str, list[str]]], None]] = []

    @property
    def options(self) -> dict[str, list[str]]:
        return dict(self._options) if self._options is not None else fallback_field_options()

    def load(self, callback: Callable[[dict[str, list[str]]], None] | None = None) -> None:
        if self._options is not None:
            if callback is not None:
                callback(self.options)
            return
        if callback is not None:
            self._waiting.append(callback)
        if self._loading:
            return
        self._loading = True
        self._executor.submit(self._source.fetch_field_options, self._on_loaded, self._on_failed)

    def menu_properties(self) -> list[str]:
        options = self.options
        return [name for name in PROPERTY_ORDER if options.get(name)]

    def _on_loaded(self, options: dict[str, list[str]]) -> None:
        if not options:
            logger.warning("La hoja no define reglas de validación; se usan las opciones por defecto")
            options = fallback_field_options()
        self._resolve(options)

    def _on_failed(self, exc: Exception) -> None:
        logger.warning("No se pudieron leer las opciones de campos, se usan las de reserva: %s", exc)
        self._resolve(fallback_field_options())

    def _resolve(self, options: dict[str, list[str]]) -> None:
        self._options = {name: list(values) for name, values in options.items()}
        self._loading = False
        waiting, self._waiting = self._waiting, []
        for callback in waiting:
            callback(self.options)
