from __future__ import annotations

import argparse
import faulthandler
import logging
import signal
import sys
from pathlib import Path

from tablero.bootstrap.container import build_container, validate_sync_config
from tablero.bootstrap.exception_handler import registrar_diagnostico_sync
from tablero.bootstrap.logging import configure_logging, install_exception_hook
from tablero.bootstrap.settings import resolve_log_dir
from tablero.core.metrics import metrics_registry
from tablero.domain.models import ConnectionState, Record, TransportState
from tablero.infrastructure.local_config import SyncConfigStore

logger = logging.getLogger(__name__)


def _run_selfcheck(store: SyncConfigStore, log_dir: Path) -> int:
    problems = validate_sync_config(store.load())
    for problem in problems:
        logger.error("Selfcheck: %s (config=%s)", problem, store.config_path)
    if problems:
        logger.error(
            "Selfcheck fallo con %s error(es). crash.log=%s", len(problems), log_dir / "crash.log"
        )
        return 1
    logger.info("Selfcheck OK.")
    return 0


def _log_transport(state: TransportState, connection: ConnectionState) -> None:
    logger.info("Transporte: %s (conexión %s)", state.value, connection.value)


def _log_snapshot(records: list[Record]) -> None:
    logger.info("Tablero actualizado: %s registro(s)", len(records))


def run_headless(store: SyncConfigStore) -> int:
    from PySide6.QtCore import QCoreApplication, QTimer

    config = store.load()
    problems = validate_sync_config(config)
    if problems:
        for problem in problems:
            logger.error("Configuración inválida: %s", problem)
        return 1

    app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    container = build_container(config)
    synchronizer = container.synchronizer
    synchronizer.add_transport_listener(_log_transport)
    synchronizer.subscribe(_log_snapshot)

    def _shutdown() -> None:
        synchronizer.stop()
        registrar_diagnostico_sync(None)
        shutdown = getattr(container.executor, "shutdown", None)
        if shutdown is not None:
            shutdown()
        logger.info("Métricas de la sesión: %s", metrics_registry.snapshot())

    app.aboutToQuit.connect(_shutdown)
    signal.signal(signal.SIGINT, lambda *_: app.quit())
    # Devuelve el control al intérprete para que atienda SIGINT.
    signal_pump = QTimer()
    signal_pump.timeout.connect(lambda: None)
    signal_pump.start(250)

    registrar_diagnostico_sync(synchronizer.diagnostics)
    synchronizer.start()
    return app.exec()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Tablero: sincronización con Google Sheets")
    parser.add_argument("--selfcheck", action="store_true", help="Valida la configuración sin conectar")
    parser.add_argument("--config-dir", type=Path, default=None, help="Carpeta con config.json")
    args = parser.parse_args(argv)

    log_dir = resolve_log_dir()
    configure_logging(log_dir)
    install_exception_hook(log_dir)
    faulthandler.enable()

    logger.info("Log dir: %s", log_dir)
    logger.info("Python: %s", sys.version)
    logger.info("Executable: %s", sys.executable)
    logger.info("CWD: %s", Path.cwd())

    store = SyncConfigStore(args.config_dir)
    if args.selfcheck:
        return _run_selfcheck(store, log_dir)
    return run_headless(store)
