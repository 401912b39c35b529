from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class LoggingNotifier:
    """Notificador por defecto sin UI: los avisos al usuario acaban en el log."""

    def __init__(self) -> None:
        self.history: list[tuple[str, str]] = []

    def warning(self, message: str) -> None:
        self.history.append(("warning", message))
        logger.warning("Aviso al usuario: %s", message)

    def error(self, message: str) -> None:
        self.history.append(("error", message))
        logger.error("Error mostrado al usuario: %s", message)
