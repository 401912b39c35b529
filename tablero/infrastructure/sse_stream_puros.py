from __future__ import annotations

import codecs
import json
from typing import Any

from tablero.domain.models import PushEvent


def construir_evento(nombre_evento: str, lineas_data: list[str]) -> PushEvent | None:
    if not lineas_data and not nombre_evento:
        return None
    crudo = "\n".join(lineas_data)
    payload: dict[str, Any]
    try:
        decodificado = json.loads(crudo) if crudo else {}
    except json.JSONDecodeError:
        return PushEvent(type="other", payload={"data": crudo})
    payload = decodificado if isinstance(decodificado, dict) else {"data": decodificado}
    if "type" not in payload and nombre_evento:
        payload = {**payload, "type": nombre_evento}
    if "type" not in payload:
        return PushEvent(type="other", payload=payload)
    return PushEvent.from_payload(payload)


def separar_campo(linea: str) -> tuple[str, str]:
    if ":" not in linea:
        return linea, ""
    campo, valor = linea.split(":", 1)
    if valor.startswith(" "):
        valor = valor[1:]
    return campo, valor


class SseStreamParser:
    """Parser incremental de Server-Sent Events.

    Acepta trozos arbitrarios del cuerpo HTTP (incluso cortados a mitad de
    un carácter UTF-8) y devuelve los eventos completos. Las líneas de
    comentario (``:``) se ignoran; ``retry`` e ``id`` no se usan.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._event_name = ""
        self._data_lines: list[str] = []

    def feed(self, chunk: bytes | str) -> list[PushEvent]:
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        self._buffer += text.replace("\r\n", "\n").replace("\r", "\n")
        eventos: list[PushEvent] = []
        while "\n" in self._buffer:
            linea, self._buffer = self._buffer.split("\n", 1)
            evento = self._procesar_linea(linea)
            if evento is not None:
                eventos.append(evento)
        return eventos

    def reset(self) -> None:
        self._decoder.reset()
        self._buffer = ""
        self._event_name = ""
        self._data_lines = []

    def _procesar_linea(self, linea: str) -> PushEvent | None:
        if linea == "":
            evento = construir_evento(self._event_name, self._data_lines)
            self._event_name = ""
            self._data_lines = []
            return evento
        if linea.startswith(":"):
            return None
        campo, valor = separar_campo(linea)
        if campo == "data":
            self._data_lines.append(valor)
        elif campo == "event":
            self._event_name = valor
        return None
