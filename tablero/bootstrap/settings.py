from __future__ import annotations

import os
import tempfile
from pathlib import Path

from tablero.infrastructure.local_config import resolve_appdata_dir


def resolve_log_dir() -> Path:
    candidates: list[Path] = []
    env_dir = os.environ.get("TABLERO_LOG_DIR")
    if env_dir:
        candidates.append(Path(env_dir))
    candidates.append(resolve_appdata_dir() / "logs")
    candidates.append(Path(tempfile.gettempdir()) / "Tablero" / "logs")

    for candidate in candidates:
        try:
            candidate.mkdir(parents=True, exist_ok=True)
            test_file = candidate / "_write_test.tmp"
            test_file.write_text("ok", encoding="utf-8")
            test_file.unlink(missing_ok=True)
            return candidate
        except OSError:
            continue

    fallback = Path.cwd()
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback
