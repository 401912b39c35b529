from __future__ import annotations

import json
import logging
import traceback
import uuid
from types import TracebackType
from typing import Callable

from tablero.bootstrap.logging import CRASH_LOG_NAME
from tablero.bootstrap.settings import resolve_log_dir
from tablero.core.observability import generate_correlation_id, get_correlation_id, set_correlation_id

DiagnosticoSync = Callable[[], dict[str, object]]

_diagnostico_sync: DiagnosticoSync | None = None


def registrar_diagnostico_sync(proveedor: DiagnosticoSync | None) -> None:
    """Fija la función que describe el estado del sincronizador en cada incidente.

    ``None`` la retira (al parar el sincronizador).
    """
    global _diagnostico_sync
    _diagnostico_sync = proveedor


def generar_id_incidente() -> str:
    return f"INC-{uuid.uuid4().hex[:12].upper()}"


def _asegurar_correlation_id() -> str:
    correlation_id = get_correlation_id()
    if correlation_id:
        return correlation_id
    correlation_id = generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


def capturar_estado_sync() -> dict[str, object] | None:
    if _diagnostico_sync is None:
        return None
    try:
        return dict(_diagnostico_sync())
    except Exception as exc:  # noqa: BLE001
        # El incidente se registra igualmente aunque el sincronizador esté roto.
        return {"diagnostico_error": f"{type(exc).__name__}: {exc}"}


def _escribir_incidente_en_crash_log(
    *,
    incident_id: str,
    correlation_id: str,
    sync_state: dict[str, object] | None,
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType | None,
) -> None:
    crash_file = resolve_log_dir() / CRASH_LOG_NAME
    payload = {
        "incident_id": incident_id,
        "correlation_id": correlation_id,
        "sync_state": sync_state,
        "error_type": exc_type.__name__,
        "error_message": str(exc_value),
        "stacktrace": "".join(traceback.format_exception(exc_type, exc_value, exc_traceback)),
    }
    with crash_file.open("a", encoding="utf-8") as handler:
        handler.write(json.dumps(payload, ensure_ascii=False) + "\n")


def manejar_excepcion_global(
    exc_type: type[BaseException], exc_value: BaseException, exc_traceback: TracebackType | None
) -> str:
    """Registra una excepción no controlada junto al estado de la sincronización.

    Devuelve el id de incidente que se muestra al usuario. Si el logging falla
    el incidente se escribe directamente en crash.log.
    """
    incident_id = generar_id_incidente()
    correlation_id = _asegurar_correlation_id()
    sync_state = capturar_estado_sync()
    logger = logging.getLogger("tablero.global_exception")
    metadata: dict[str, object] = {"incident_id": incident_id}
    if sync_state is not None:
        metadata["sync_state"] = sync_state

    try:
        logger.critical(
            "Excepción no controlada. incident_id=%s",
            incident_id,
            exc_info=(exc_type, exc_value, exc_traceback),
            extra={"correlation_id": correlation_id, "extra": metadata},
        )
    except Exception:  # noqa: BLE001
        _escribir_incidente_en_crash_log(
            incident_id=incident_id,
            correlation_id=correlation_id,
            sync_state=sync_state,
            exc_type=exc_type,
            exc_value=exc_value,
            exc_traceback=exc_traceback,
        )

    return incident_id
