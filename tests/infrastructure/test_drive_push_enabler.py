from __future__ import annotations

from typing import Any

import pytest
import requests

from tablero.domain.sync_errors import NetworkError
from tablero.infrastructure.drive_push_enabler import DriveWatchPushEnabler


class _FakeResponse:
    def json(self) -> dict[str, Any]:
        return {"id": "canal-1", "expiration": "1700000000000"}


class _FakeHttpClient:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def request(self, method: str, url: str, json: dict[str, Any]) -> _FakeResponse:  # noqa: A002
        self.calls.append((method, url, json))
        if self.error is not None:
            raise self.error
        return _FakeResponse()


class _FakeClient:
    spreadsheet_id = "sheet-123"

    def __init__(self, http: _FakeHttpClient) -> None:
        self.http = http

    def http_client(self) -> _FakeHttpClient:
        return self.http


def test_enable_push_registra_canal_files_watch() -> None:
    http = _FakeHttpClient()
    enabler = DriveWatchPushEnabler(_FakeClient(http), "https://push.example.com/hook", "tok-1")

    assert enabler.enable_push() is True

    method, url, body = http.calls[0]
    assert method == "post"
    assert url == "https://www.googleapis.com/drive/v3/files/sheet-123/watch"
    assert body["type"] == "web_hook"
    assert body["address"] == "https://push.example.com/hook"
    assert body["token"] == "tok-1"
    assert body["id"]


def test_enable_push_sin_webhook_no_llama_a_drive() -> None:
    http = _FakeHttpClient()

    assert DriveWatchPushEnabler(_FakeClient(http), "", "tok-1").enable_push() is False
    assert http.calls == []


def test_enable_push_traduce_errores_de_red() -> None:
    http = _FakeHttpClient(error=requests.exceptions.ConnectionError("sin red"))
    enabler = DriveWatchPushEnabler(_FakeClient(http), "https://push.example.com/hook", "tok-1")

    with pytest.raises(NetworkError):
        enabler.enable_push()
