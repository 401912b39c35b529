from __future__ import annotations

import logging
import uuid

import gspread

from tablero.infrastructure.sheets_client import SheetsClient
from tablero.infrastructure.sheets_errors import map_gspread_exception

logger = logging.getLogger(__name__)

DRIVE_WATCH_URL = "https://www.googleapis.com/drive/v3/files/{file_id}/watch"


class DriveWatchPushEnabler:
    """Registra un canal ``files.watch`` de Drive que avisa al web-hook del servidor push.

    Devuelve ``False`` si no hay web-hook configurado: sin él el servidor
    nunca recibirá cambios y abrir el stream no aporta nada.
    """

    def __init__(self, client: SheetsClient, webhook_url: str, channel_token: str) -> None:
        self._client = client
        self._webhook_url = webhook_url
        self._channel_token = channel_token

    def enable_push(self) -> bool:
        if not self._webhook_url:
            logger.info("Sin web-hook configurado; no se registra el canal de Drive")
            return False
        body = {
            "id": str(uuid.uuid4()),
            "type": "web_hook",
            "address": self._webhook_url,
            "token": self._channel_token,
        }
        url = DRIVE_WATCH_URL.format(file_id=self._client.spreadsheet_id)
        try:
            response = self._client.http_client().request("post", url, json=body)
        except (gspread.exceptions.GSpreadException, OSError) as exc:
            raise map_gspread_exception(exc) from exc
        payload = response.json()
        logger.info(
            "Canal de Drive registrado: id=%s expira=%s",
            payload.get("id"),
            payload.get("expiration"),
        )
        return True
