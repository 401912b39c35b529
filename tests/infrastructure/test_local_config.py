from __future__ import annotations

import json
from pathlib import Path

from tablero.domain.models import SheetsConfig, SyncConfig
from tablero.infrastructure import local_config
from tablero.infrastructure.local_config import SyncConfigStore, config_from_payload


def test_resolve_appdata_dir_prioriza_variable_propia(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TABLERO_CONFIG_DIR", str(tmp_path / "cfg"))
    monkeypatch.setenv("LOCALAPPDATA", str(tmp_path / "appdata"))

    assert local_config.resolve_appdata_dir() == tmp_path / "cfg"


def test_resolve_appdata_dir_usa_localappdata(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("TABLERO_CONFIG_DIR", raising=False)
    monkeypatch.setenv("LOCALAPPDATA", str(tmp_path / "appdata"))

    assert local_config.resolve_appdata_dir() == tmp_path / "appdata" / "Tablero"


def test_resolve_appdata_dir_usa_home_si_no_hay_env(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.delenv("TABLERO_CONFIG_DIR", raising=False)
    monkeypatch.delenv("LOCALAPPDATA", raising=False)
    monkeypatch.setattr(local_config.Path, "home", lambda: tmp_path)

    assert local_config.resolve_appdata_dir() == tmp_path / ".local" / "share" / "Tablero"


def test_load_devuelve_none_si_no_existe_config(tmp_path: Path) -> None:
    assert SyncConfigStore(base_dir=tmp_path).load() is None


def test_load_devuelve_none_con_json_invalido(tmp_path: Path) -> None:
    (tmp_path / "config.json").write_text("{ invalido", encoding="utf-8")

    assert SyncConfigStore(base_dir=tmp_path).load() is None


def test_load_devuelve_none_si_no_es_objeto(tmp_path: Path) -> None:
    (tmp_path / "config.json").write_text("[1, 2]", encoding="utf-8")

    assert SyncConfigStore(base_dir=tmp_path).load() is None


def test_config_from_payload_ignora_numeros_invalidos() -> None:
    config = config_from_payload(
        {
            "sheets": {"spreadsheet_id": " sheet-1 ", "credentials_path": "cred.json"},
            "debounce_ms": "250",
            "poll_interval_ms": "rápido",
            "reconnect_cap_ms": -5,
            "push_stream_url": " https://push.example.com/events ",
        }
    )

    assert config.sheets == SheetsConfig(spreadsheet_id="sheet-1", credentials_path="cred.json")
    assert config.debounce_ms == 250
    assert config.poll_interval_ms == SyncConfig().poll_interval_ms
    assert config.reconnect_cap_ms == SyncConfig().reconnect_cap_ms
    assert config.push_stream_url == "https://push.example.com/events"


def test_config_from_payload_sin_hoja() -> None:
    assert config_from_payload({"sheets": {}}).sheets is None
    assert config_from_payload({}).sheets is None


def test_save_y_load_conservan_la_configuracion(tmp_path: Path) -> None:
    store = SyncConfigStore(base_dir=tmp_path / "nuevo")
    config = SyncConfig(
        sheets=SheetsConfig(spreadsheet_id="sheet-1", credentials_path="cred.json", worksheet_name="Заказы"),
        push_stream_url="https://push.example.com/events",
        debounce_ms=300,
    )

    store.save(config)

    payload = json.loads(store.config_path.read_text(encoding="utf-8"))
    assert payload["sheets"]["worksheet_name"] == "Заказы"
    assert store.load() == config
