from __future__ import annotations

import logging
from typing import Callable

from tablero.application.reconciler import RefreshReconciler
from tablero.core import metrics
from tablero.core.metrics import MetricsRegistry
from tablero.domain.models import (
    PUSH_CAPABLE_STATES,
    ConnectionState,
    PushEvent,
    Record,
    TransportState,
)
from tablero.domain.ports import (
    IoExecutorPort,
    PushChannelPort,
    PushEnablerPort,
    PushSubscription,
    SchedulerPort,
    TimerHandle,
)
from tablero.domain.sync_errors import ChannelError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 5000
DEFAULT_RECONNECT_BASE_MS = 1000
DEFAULT_RECONNECT_CAP_MS = 30000
DEFAULT_MAX_RECONNECT_ATTEMPTS = 10
DEFAULT_MAX_SETUP_ATTEMPTS = 5

TransportListener = Callable[[TransportState, ConnectionState], None]

_CONNECTION_BY_STATE = {
    TransportState.POLLING_ONLY: ConnectionState.DISCONNECTED,
    TransportState.ATTEMPTING_PUSH: ConnectionState.CONNECTING,
    TransportState.PUSH_CONNECTED: ConnectionState.CONNECTED,
    TransportState.PUSH_RECONNECTING: ConnectionState.ERROR,
    TransportState.PUSH_DISABLED: ConnectionState.DISCONNECTED,
}


def reconnect_delay_ms(
    attempt: int,
    base_ms: int = DEFAULT_RECONNECT_BASE_MS,
    cap_ms: int = DEFAULT_RECONNECT_CAP_MS,
) -> int:
    return min(base_ms * (2**attempt), cap_ms)


class _ChannelListener:
    """Escucha ligada a una suscripción concreta; las de suscripciones viejas se ignoran."""

    def __init__(self, manager: "RealtimeTransportManager", generation: int) -> None:
        self._manager = manager
        self._generation = generation

    def on_open(self) -> None:
        self._manager._on_channel_open(self._generation)

    def on_event(self, event: PushEvent) -> None:
        self._manager._on_channel_event(self._generation, event)

    def on_error(self, error: ChannelError) -> None:
        self._manager._on_channel_error(self._generation, error)


class RealtimeTransportManager:
    """Ciclo de vida de la conexión: polling fijo más canal push opcional.

    El polling es la red de seguridad y corre siempre, con o sin push. El
    canal push solo adelanta refrescos; si se degrada se reintenta con
    backoff exponencial y, agotados los intentos o cerrado de forma
    terminal, queda deshabilitado para el resto de la sesión.
    """

    def __init__(
        self,
        scheduler: SchedulerPort,
        executor: IoExecutorPort,
        fetch: Callable[[], list[Record]],
        reconciler: RefreshReconciler,
        *,
        push_channel: PushChannelPort | None = None,
        push_enabler: PushEnablerPort | None = None,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        reconnect_base_ms: int = DEFAULT_RECONNECT_BASE_MS,
        reconnect_cap_ms: int = DEFAULT_RECONNECT_CAP_MS,
        max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS,
        max_setup_attempts: int = DEFAULT_MAX_SETUP_ATTEMPTS,
        metrics_registry: MetricsRegistry | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._executor = executor
        self._fetch = fetch
        self._reconciler = reconciler
        self._push_channel = push_channel
        self._push_enabler = push_enabler
        self._poll_interval_ms = poll_interval_ms
        self._reconnect_base_ms = reconnect_base_ms
        self._reconnect_cap_ms = reconnect_cap_ms
        self._max_reconnect_attempts = max_reconnect_attempts
        self._max_setup_attempts = max_setup_attempts
        self._metrics = metrics_registry or metrics.metrics_registry

        self._state = TransportState.POLLING_ONLY
        self._connection_state = ConnectionState.DISCONNECTED
        self._listeners: list[TransportListener] = []
        self._active = False
        self._hidden = False
        self._push_capable_before_hide = False
        self._connect_when_visible = False
        self._reconnect_attempts = 0
        self._generation = 0
        self._subscription: PushSubscription | None = None

        self._poll_timer: TimerHandle | None = None
        self._reconnect_timer: TimerHandle | None = None
        self._cooldown_timer: TimerHandle | None = None

        self._fetch_in_flight = False
        self._refresh_again = False
        self._initial_fetch_settled = False
        self._has_fetched_successfully = False

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection_state

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def polling_active(self) -> bool:
        return self._poll_timer is not None

    @property
    def rate_limited(self) -> bool:
        return self._cooldown_timer is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    def add_listener(self, listener: TransportListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    # -- ciclo de vida -----------------------------------------------------

    def start(self) -> None:
        if self._active:
            return
        self._active = True
        self._hidden = False
        self._fetch_in_flight = False
        self._refresh_again = False
        self._initial_fetch_settled = False
        logger.info("Transporte iniciado (polling cada %s ms)", self._poll_interval_ms)
        self.refresh()

    def stop(self) -> None:
        if not self._active:
            return
        self._active = False
        self._stop_polling()
        self._cancel_timer("_cooldown_timer")
        self._cancel_timer("_reconnect_timer")
        self._close_subscription()
        self._reconnect_attempts = 0
        self._has_fetched_successfully = False
        self._push_capable_before_hide = False
        self._connect_when_visible = False
        # PUSH_DISABLED dura toda la sesión; el resto vuelve a empezar desde polling.
        if self._state == TransportState.PUSH_DISABLED:
            self._set_state(self._state, ConnectionState.DISCONNECTED)
        else:
            self._set_state(TransportState.POLLING_ONLY)
        logger.info("Transporte detenido")

    def set_visible(self, visible: bool) -> None:
        if not self._active or visible == (not self._hidden):
            return
        if not visible:
            self._hidden = True
            self._push_capable_before_hide = self._state in PUSH_CAPABLE_STATES
            self._stop_polling()
            self._cancel_timer("_reconnect_timer")
            self._close_subscription()
            if self._push_capable_before_hide:
                self._set_state(TransportState.PUSH_RECONNECTING, ConnectionState.DISCONNECTED)
            logger.info("Vista oculta: polling y push suspendidos")
            return
        self._hidden = False
        logger.info("Vista visible: refresco inmediato y reanudación")
        self.refresh()
        self._start_polling()
        resume_push = self._push_capable_before_hide or self._connect_when_visible
        if resume_push and self._state != TransportState.PUSH_DISABLED:
            self._connect()

    # -- refresco y polling ------------------------------------------------

    def refresh(self) -> None:
        if not self._active:
            return
        if self.rate_limited:
            logger.debug("Refresco omitido: enfriamiento por límite de peticiones")
            return
        if self._fetch_in_flight:
            self._refresh_again = True
            return
        self._fetch_in_flight = True
        self._executor.submit(self._fetch, self._on_fetch_succeeded, self._on_fetch_failed)

    def suspend_polling(self, cooldown_ms: int) -> None:
        self._stop_polling()
        self._refresh_again = False
        self._cancel_timer("_cooldown_timer")
        if self._active:
            self._cooldown_timer = self._scheduler.call_later(cooldown_ms, self._on_cooldown_elapsed)

    def _on_fetch_succeeded(self, records: list[Record]) -> None:
        if not self._active:
            return
        self._fetch_in_flight = False
        self._reconciler.reconcile(records)
        first_success = not self._has_fetched_successfully
        self._has_fetched_successfully = True
        self._after_fetch_settled()
        if first_success:
            self._request_push()

    def _on_fetch_failed(self, exc: Exception) -> None:
        if not self._active:
            return
        self._fetch_in_flight = False
        self._reconciler.handle_fetch_error(exc)
        self._after_fetch_settled()

    def _after_fetch_settled(self) -> None:
        if not self._initial_fetch_settled:
            self._initial_fetch_settled = True
            self._start_polling()
        if self._refresh_again:
            self._refresh_again = False
            self.refresh()

    def _start_polling(self) -> None:
        if not self._active or self._hidden or self.rate_limited or not self._initial_fetch_settled:
            return
        self._cancel_timer("_poll_timer")
        self._poll_timer = self._scheduler.call_later(self._poll_interval_ms, self._on_poll_tick)

    def _stop_polling(self) -> None:
        self._cancel_timer("_poll_timer")

    def _on_poll_tick(self) -> None:
        self._poll_timer = None
        self.refresh()
        self._start_polling()

    def _on_cooldown_elapsed(self) -> None:
        self._cooldown_timer = None
        logger.info("Fin del enfriamiento por límite de peticiones; se reanuda el polling")
        self._start_polling()

    # -- canal push --------------------------------------------------------

    def _request_push(self) -> None:
        if self._push_channel is None or self._state != TransportState.POLLING_ONLY:
            return
        self._set_state(TransportState.ATTEMPTING_PUSH)
        if self._push_enabler is None:
            self._connect()
            return
        self._executor.submit(self._push_enabler.enable_push, self._on_push_enabled, self._on_push_enable_failed)

    def _on_push_enabled(self, enabled: bool) -> None:
        if not self._active or self._state != TransportState.ATTEMPTING_PUSH:
            return
        if not enabled:
            self._disable_push("el servidor no habilitó las notificaciones push")
            return
        logger.info("Notificaciones push habilitadas")
        self._connect()

    def _on_push_enable_failed(self, exc: Exception) -> None:
        if not self._active:
            return
        logger.warning("No se pudieron habilitar las notificaciones push: %s", exc)
        self._disable_push("fallo al habilitar push")

    def _connect(self) -> None:
        if not self._active or self._push_channel is None:
            return
        if self._state == TransportState.PUSH_DISABLED:
            return
        if self._hidden:
            # Se conecta al volver a mostrarse la vista.
            self._connect_when_visible = True
            return
        self._connect_when_visible = False
        self._cancel_timer("_reconnect_timer")
        self._close_subscription()
        self._generation += 1
        generation = self._generation
        try:
            subscription = self._push_channel.subscribe(_ChannelListener(self, generation))
        except Exception as exc:  # noqa: BLE001
            self._on_setup_failed(exc)
            return
        if generation == self._generation:
            self._subscription = subscription
        else:
            subscription.close()

    def _on_channel_open(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        self._reconnect_attempts = 0
        self._cancel_timer("_reconnect_timer")
        self._set_state(TransportState.PUSH_CONNECTED)
        logger.info("Canal push conectado")

    def _on_channel_event(self, generation: int, event: PushEvent) -> None:
        if not self._is_current(generation):
            return
        if event.type == "changed":
            logger.info("Aviso push de cambios en la hoja; refrescando")
            self.refresh()
        elif event.type == "connected":
            logger.info("Canal push establecido, client_id=%s", event.client_id)
        elif event.type == "ping":
            logger.debug("Ping del canal push")
        else:
            logger.debug("Evento push desconocido: %s", event.type)

    def _on_channel_error(self, generation: int, error: ChannelError) -> None:
        if not self._is_current(generation):
            return
        self._close_subscription()
        if error.terminal or self._reconnect_attempts > self._max_reconnect_attempts:
            self._disable_push(f"canal cerrado ({error})")
            return
        logger.warning("Error en el canal push: %s", error)
        self._schedule_reconnect()

    def _on_setup_failed(self, exc: Exception) -> None:
        self._subscription = None
        if self._reconnect_attempts > self._max_setup_attempts:
            self._disable_push(f"demasiados fallos al abrir el canal ({exc})")
            return
        logger.warning("No se pudo abrir el canal push: %s", exc)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        self._reconnect_attempts += 1
        delay = reconnect_delay_ms(self._reconnect_attempts, self._reconnect_base_ms, self._reconnect_cap_ms)
        self._set_state(TransportState.PUSH_RECONNECTING)
        self._cancel_timer("_reconnect_timer")
        self._reconnect_timer = self._scheduler.call_later(delay, self._on_reconnect_elapsed)
        logger.info("Reconexión push en %s ms (intento %s)", delay, self._reconnect_attempts)

    def _on_reconnect_elapsed(self) -> None:
        self._reconnect_timer = None
        if self._state != TransportState.PUSH_RECONNECTING:
            return
        self._metrics.incrementar(metrics.PUSH_RECONNECTS)
        self._connect()

    def _disable_push(self, reason: str) -> None:
        self._cancel_timer("_reconnect_timer")
        self._close_subscription()
        self._metrics.incrementar(metrics.PUSH_DISABLED)
        self._set_state(TransportState.PUSH_DISABLED)
        logger.info("Push deshabilitado para la sesión (%s); solo polling", reason)

    def _close_subscription(self) -> None:
        subscription, self._subscription = self._subscription, None
        self._generation += 1
        if subscription is None:
            return
        try:
            subscription.close()
        except Exception:  # noqa: BLE001
            logger.debug("Error al cerrar la suscripción push", exc_info=True)

    def _is_current(self, generation: int) -> bool:
        return self._active and not self._hidden and generation == self._generation

    # -- utilidades --------------------------------------------------------

    def _cancel_timer(self, attribute: str) -> None:
        timer: TimerHandle | None = getattr(self, attribute)
        if timer is not None:
            timer.cancel()
            setattr(self, attribute, None)

    def _set_state(self, state: TransportState, connection_state: ConnectionState | None = None) -> None:
        resolved_connection = connection_state or _CONNECTION_BY_STATE[state]
        if state == self._state and resolved_connection == self._connection_state:
            return
        self._state = state
        self._connection_state = resolved_connection
        for listener in list(self._listeners):
            listener(state, resolved_connection)
