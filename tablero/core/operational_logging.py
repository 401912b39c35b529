from __future__ import annotations

import logging
from typing import Any

from tablero.core.observability import get_correlation_id


def log_operational_error(
    logger: logging.Logger,
    message: str,
    *,
    exc: BaseException | None = None,
    extra: dict[str, Any] | None = None,
) -> None:
    """Error recuperable que debe quedar en ``error_operativo.log`` con su contexto."""
    metadata = dict(extra or {})
    correlation_id = metadata.get("correlation_id") or get_correlation_id()
    if correlation_id:
        metadata["correlation_id"] = correlation_id
    exc_info: Any = False
    if exc is not None:
        exc_info = (type(exc), exc, exc.__traceback__)
    logger.error(message, exc_info=exc_info, extra={"correlation_id": correlation_id, "extra": metadata})
