from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from tablero.application.synchronizer import Synchronizer
from tablero.core.metrics import metrics_registry
from tablero.domain.models import SyncConfig
from tablero.domain.ports import IoExecutorPort, NotifierPort, SchedulerPort
from tablero.domain.sync_errors import SheetsConfigError
from tablero.infrastructure.drive_push_enabler import DriveWatchPushEnabler
from tablero.infrastructure.notifier import LoggingNotifier
from tablero.infrastructure.qt_runtime import QtIoExecutor, QtScheduler
from tablero.infrastructure.sheets_client import SheetsClient
from tablero.infrastructure.sheets_field_options import SheetsFieldOptions
from tablero.infrastructure.sheets_row_store import SheetsRowStore
from tablero.infrastructure.sse_push_channel import SsePushChannel

_TIMING_FIELDS = (
    "debounce_ms",
    "poll_interval_ms",
    "rate_limit_cooldown_ms",
    "reconnect_base_ms",
    "reconnect_cap_ms",
    "move_deadline_ms",
    "busy_indicator_ms",
)


@dataclass
class SyncContainer:
    config: SyncConfig
    sheets_client: SheetsClient
    scheduler: SchedulerPort
    executor: IoExecutorPort
    notifier: NotifierPort
    synchronizer: Synchronizer


def validate_sync_config(config: SyncConfig | None) -> list[str]:
    if config is None:
        return ["No existe config.json"]
    problems: list[str] = []
    sheets = config.sheets
    if sheets is None or not sheets.spreadsheet_id:
        problems.append("Falta el Spreadsheet ID")
    if sheets is None or not sheets.credentials_path:
        problems.append("Falta la ruta de credentials.json")
    elif not Path(sheets.credentials_path).exists():
        problems.append(f"No existe credentials.json en {sheets.credentials_path}")
    for name in _TIMING_FIELDS:
        if getattr(config, name) <= 0:
            problems.append(f"{name} debe ser positivo")
    if config.reconnect_cap_ms < config.reconnect_base_ms:
        problems.append("reconnect_cap_ms no puede ser menor que reconnect_base_ms")
    for name in ("push_stream_url", "push_webhook_url"):
        url = getattr(config, name)
        if url and urlparse(url).scheme not in {"http", "https"}:
            problems.append(f"{name} debe ser una URL http(s)")
    return problems


def build_container(
    config: SyncConfig,
    *,
    scheduler: SchedulerPort | None = None,
    executor: IoExecutorPort | None = None,
    notifier: NotifierPort | None = None,
) -> SyncContainer:
    if config.sheets is None:
        raise SheetsConfigError("Configura el Spreadsheet ID y las credenciales antes de sincronizar.")
    resolved_scheduler = scheduler or QtScheduler()
    resolved_executor = executor or QtIoExecutor()
    resolved_notifier = notifier or LoggingNotifier()

    sheets_client = SheetsClient(Path(config.sheets.credentials_path), config.sheets.spreadsheet_id)
    row_store = SheetsRowStore(sheets_client, config.sheets)
    field_options = SheetsFieldOptions(sheets_client, config.sheets.worksheet_name)

    push_channel = None
    push_enabler = None
    if config.push_configured:
        push_channel = SsePushChannel(config.push_stream_url, config.access_token)
        if config.push_webhook_url:
            push_enabler = DriveWatchPushEnabler(
                sheets_client, config.push_webhook_url, config.push_channel_token
            )

    synchronizer = Synchronizer(
        row_store,
        resolved_scheduler,
        resolved_executor,
        resolved_notifier,
        config=config,
        push_channel=push_channel,
        push_enabler=push_enabler,
        field_options_source=field_options,
        metrics_registry=metrics_registry,
    )
    return SyncContainer(
        config=config,
        sheets_client=sheets_client,
        scheduler=resolved_scheduler,
        executor=resolved_executor,
        notifier=resolved_notifier,
        synchronizer=synchronizer,
    )
