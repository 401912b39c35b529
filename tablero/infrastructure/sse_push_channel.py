from __future__ import annotations

import logging

from PySide6.QtCore import QByteArray, QObject, QUrl, QUrlQuery
from PySide6.QtNetwork import QNetworkAccessManager, QNetworkReply, QNetworkRequest

from tablero.domain.ports import PushListener
from tablero.domain.sync_errors import ChannelClosedPermanent, ChannelError
from tablero.infrastructure.sse_stream_puros import SseStreamParser

logger = logging.getLogger(__name__)

_EVENT_STREAM = "text/event-stream"


def build_stream_url(stream_url: str, access_token: str) -> QUrl:
    url = QUrl(stream_url)
    if access_token:
        query = QUrlQuery(url)
        query.removeAllQueryItems("token")
        query.addQueryItem("token", access_token)
        url.setQuery(query)
    return url


class _SseSubscription(QObject):
    """Una conexión SSE viva. ``close`` la aborta sin notificar al listener."""

    def __init__(self, manager: QNetworkAccessManager, url: QUrl, listener: PushListener) -> None:
        super().__init__(manager)
        self._listener = listener
        self._parser = SseStreamParser()
        self._opened = False
        self._closed = False
        request = QNetworkRequest(url)
        request.setRawHeader(QByteArray(b"Accept"), QByteArray(_EVENT_STREAM.encode()))
        request.setRawHeader(QByteArray(b"Cache-Control"), QByteArray(b"no-cache"))
        self._reply: QNetworkReply = manager.get(request)
        self._reply.metaDataChanged.connect(self._on_metadata)
        self._reply.readyRead.connect(self._on_ready_read)
        self._reply.finished.connect(self._on_finished)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._reply.abort()
        self._reply.deleteLater()
        self.deleteLater()

    def _on_metadata(self) -> None:
        if self._closed or self._opened:
            return
        status = self._reply.attribute(QNetworkRequest.Attribute.HttpStatusCodeAttribute)
        if status is None:
            return
        content_type = str(self._reply.header(QNetworkRequest.KnownHeaders.ContentTypeHeader) or "")
        if int(status) != 200 or _EVENT_STREAM not in content_type:
            self._fail(ChannelClosedPermanent(f"El servidor push respondió {status} ({content_type or 'sin tipo'})"))
            return
        self._opened = True
        self._listener.on_open()

    def _on_ready_read(self) -> None:
        if self._closed:
            return
        if not self._opened:
            self._on_metadata()
            if self._closed or not self._opened:
                return
        chunk = bytes(self._reply.readAll().data())
        for event in self._parser.feed(chunk):
            if self._closed:
                return
            self._listener.on_event(event)

    def _on_finished(self) -> None:
        if self._closed:
            return
        if self._reply.error() != QNetworkReply.NetworkError.NoError:
            message = self._reply.errorString()
        else:
            message = "El servidor cerró el stream"
        self._fail(ChannelError(message))

    def _fail(self, error: ChannelError) -> None:
        self.close()
        self._listener.on_error(error)


class SsePushChannel:
    """Canal push sobre Server-Sent Events con QtNetwork.

    El token de acceso viaja como parámetro ``token`` de la URL; los logs lo
    redactan.
    """

    def __init__(
        self,
        stream_url: str,
        access_token: str = "",
        *,
        manager: QNetworkAccessManager | None = None,
    ) -> None:
        self._url = build_stream_url(stream_url, access_token)
        self._manager = manager or QNetworkAccessManager()

    def subscribe(self, listener: PushListener) -> _SseSubscription:
        logger.info("Abriendo stream push %s", self._url.toString())
        return _SseSubscription(self._manager, self._url, listener)
