from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any

from tablero.domain.models import SheetsConfig, SyncConfig

logger = logging.getLogger(__name__)

_INT_FIELDS = {item.name for item in fields(SyncConfig) if item.type in ("int", int)}


def resolve_appdata_dir() -> Path:
    override = os.environ.get("TABLERO_CONFIG_DIR")
    if override:
        return Path(override)
    env_dir = os.environ.get("LOCALAPPDATA")
    if env_dir:
        base_dir = Path(env_dir)
    else:
        base_dir = Path.home() / ".local" / "share"
    return base_dir / "Tablero"


def _sheets_from_payload(payload: Any) -> SheetsConfig | None:
    if not isinstance(payload, dict):
        return None
    spreadsheet_id = str(payload.get("spreadsheet_id", "")).strip()
    credentials_path = str(payload.get("credentials_path", "")).strip()
    if not spreadsheet_id and not credentials_path:
        return None
    return SheetsConfig(
        spreadsheet_id=spreadsheet_id,
        credentials_path=credentials_path,
        worksheet_name=str(payload.get("worksheet_name", "")).strip(),
        id_column=str(payload.get("id_column", "") or "uuid").strip(),
    )


def config_from_payload(payload: dict[str, Any]) -> SyncConfig:
    defaults = SyncConfig()
    values: dict[str, Any] = {"sheets": _sheets_from_payload(payload.get("sheets"))}
    for name in ("push_stream_url", "push_webhook_url", "push_channel_token", "access_token"):
        raw = payload.get(name)
        values[name] = str(raw).strip() if raw is not None else getattr(defaults, name)
    for name in _INT_FIELDS:
        raw = payload.get(name)
        if raw is None:
            continue
        try:
            number = int(raw)
        except (TypeError, ValueError):
            logger.warning("Valor no numérico para %s en config.json: %r", name, raw)
            continue
        if number < 0:
            logger.warning("Valor negativo para %s en config.json: %r", name, raw)
            continue
        values[name] = number
    return SyncConfig(**values)


class SyncConfigStore:
    def __init__(self, base_dir: Path | None = None) -> None:
        self._base_dir = base_dir or resolve_appdata_dir()
        self._config_path = self._base_dir / "config.json"

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(self) -> SyncConfig | None:
        if not self._config_path.exists():
            return None
        try:
            payload = json.loads(self._config_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.exception("No se pudo leer config.json: %s", exc)
            return None
        if not isinstance(payload, dict):
            logger.error("config.json no contiene un objeto JSON")
            return None
        return config_from_payload(payload)

    def save(self, config: SyncConfig) -> SyncConfig:
        payload = asdict(config)
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        return config_from_payload(payload)
