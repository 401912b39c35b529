from __future__ import annotations

import logging

from tablero.infrastructure.notifier import LoggingNotifier


def test_logging_notifier_guarda_historial_y_loguea(caplog) -> None:
    notifier = LoggingNotifier()

    with caplog.at_level(logging.WARNING, logger="tablero.infrastructure.notifier"):
        notifier.warning("Demasiadas peticiones")
        notifier.error("No se pudo crear el registro")

    assert notifier.history == [("warning", "Demasiadas peticiones"), ("error", "No se pudo crear el registro")]
    assert "Demasiadas peticiones" in caplog.text
    assert [record.levelname for record in caplog.records] == ["WARNING", "ERROR"]
