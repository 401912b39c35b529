from __future__ import annotations

from pathlib import Path

import pytest

from tablero.bootstrap.container import build_container, validate_sync_config
from tablero.domain.models import SheetsConfig, SyncConfig, TransportState
from tablero.domain.sync_errors import SheetsConfigError
from tests.sync_engine.fakes import FakeNotifier, FakeScheduler, ManualIoExecutor


def _config(tmp_path: Path, **overrides) -> SyncConfig:
    credentials = tmp_path / "credentials.json"
    credentials.write_text("{}", encoding="utf-8")
    sheets = SheetsConfig(spreadsheet_id="sheet-123", credentials_path=str(credentials))
    return SyncConfig(sheets=sheets, **overrides)


def test_validate_sync_config_sin_config() -> None:
    assert validate_sync_config(None) == ["No existe config.json"]


def test_validate_sync_config_ok(tmp_path: Path) -> None:
    assert validate_sync_config(_config(tmp_path)) == []


def test_validate_sync_config_detecta_problemas(tmp_path: Path) -> None:
    config = SyncConfig(
        sheets=SheetsConfig(spreadsheet_id="", credentials_path=str(tmp_path / "no-existe.json")),
        debounce_ms=0,
        reconnect_base_ms=5000,
        reconnect_cap_ms=1000,
        push_stream_url="ws://push.example.com",
    )

    problems = validate_sync_config(config)

    assert "Falta el Spreadsheet ID" in problems
    assert any(problem.startswith("No existe credentials.json") for problem in problems)
    assert "debounce_ms debe ser positivo" in problems
    assert "reconnect_cap_ms no puede ser menor que reconnect_base_ms" in problems
    assert "push_stream_url debe ser una URL http(s)" in problems


def test_build_container_sin_hoja_falla() -> None:
    with pytest.raises(SheetsConfigError):
        build_container(SyncConfig())


def test_build_container_smoke_sin_push(tmp_path: Path) -> None:
    scheduler = FakeScheduler()
    executor = ManualIoExecutor()
    notifier = FakeNotifier()

    container = build_container(_config(tmp_path), scheduler=scheduler, executor=executor, notifier=notifier)

    assert container.sheets_client.spreadsheet_id == "sheet-123"
    assert container.notifier is notifier
    assert container.synchronizer.field_options is not None
    assert not container.synchronizer.active
    assert container.synchronizer.transport_state is TransportState.POLLING_ONLY
