from __future__ import annotations

import itertools
import logging
from typing import Any, Callable

from PySide6.QtCore import QElapsedTimer, QObject, QRunnable, QThreadPool, QTimer, Qt, Signal, Slot

logger = logging.getLogger(__name__)


class _QtTimerHandle:
    def __init__(self, scheduler: "QtScheduler", timer: QTimer) -> None:
        self._scheduler = scheduler
        self._timer = timer

    def cancel(self) -> None:
        self._scheduler._discard(self._timer)


class QtScheduler:
    """Temporizadores de un solo disparo sobre el event loop de Qt."""

    def __init__(self, parent: QObject | None = None) -> None:
        self._parent = parent
        self._clock = QElapsedTimer()
        self._clock.start()
        self._timers: set[QTimer] = set()

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> _QtTimerHandle:
        timer = QTimer(self._parent)
        timer.setSingleShot(True)
        timer.timeout.connect(lambda: self._fire(timer, callback))
        self._timers.add(timer)
        timer.start(max(0, int(delay_ms)))
        return _QtTimerHandle(self, timer)

    def now_ms(self) -> int:
        return int(self._clock.elapsed())

    def pending_timers(self) -> int:
        return len(self._timers)

    def _fire(self, timer: QTimer, callback: Callable[[], None]) -> None:
        if timer not in self._timers:
            return
        self._discard(timer)
        callback()

    def _discard(self, timer: QTimer) -> None:
        if timer in self._timers:
            self._timers.discard(timer)
            timer.stop()
            timer.deleteLater()


class _ResultRelay(QObject):
    delivered = Signal(object)


class _IoTask(QRunnable):
    def __init__(self, task_id: int, operation: Callable[[], Any], relay: _ResultRelay) -> None:
        super().__init__()
        self._task_id = task_id
        self._operation = operation
        self._relay = relay

    def run(self) -> None:
        try:
            result = self._operation()
        except Exception as exc:  # noqa: BLE001
            self._relay.delivered.emit((self._task_id, False, exc))
            return
        self._relay.delivered.emit((self._task_id, True, result))


class QtIoExecutor(QObject):
    """Ejecuta E/S bloqueante en un QThreadPool y entrega el resultado en el hilo del loop.

    El relay vive en el hilo que crea el ejecutor; la conexión en cola
    garantiza que los callbacks nunca corren en un worker.
    """

    def __init__(self, max_workers: int = 4, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._pool = QThreadPool(self)
        self._pool.setMaxThreadCount(max_workers)
        self._relay = _ResultRelay(self)
        self._relay.delivered.connect(self._on_delivered, Qt.ConnectionType.QueuedConnection)
        self._ids = itertools.count(1)
        self._callbacks: dict[int, tuple[Callable[[Any], None], Callable[[Exception], None]]] = {}

    def submit(
        self,
        operation: Callable[[], Any],
        on_success: Callable[[Any], None],
        on_failure: Callable[[Exception], None],
    ) -> None:
        task_id = next(self._ids)
        self._callbacks[task_id] = (on_success, on_failure)
        self._pool.start(_IoTask(task_id, operation, self._relay))

    def pending(self) -> int:
        return len(self._callbacks)

    def shutdown(self, timeout_ms: int = 5000) -> bool:
        self._callbacks.clear()
        return self._pool.waitForDone(timeout_ms)

    @Slot(object)
    def _on_delivered(self, message: tuple[int, bool, Any]) -> None:
        task_id, ok, value = message
        callbacks = self._callbacks.pop(task_id, None)
        if callbacks is None:
            return
        on_success, on_failure = callbacks
        if ok:
            on_success(value)
        else:
            on_failure(value)
