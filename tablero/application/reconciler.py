from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Iterable

from tablero.application.record_store import RecordStore, compute_fingerprint
from tablero.core import metrics
from tablero.core.metrics import MetricsRegistry
from tablero.domain.models import Record
from tablero.domain.sync_errors import RateLimited

logger = logging.getLogger(__name__)

RATE_LIMIT_COOLDOWN_MS = 5 * 60 * 1000


class ReconcileResult(str, Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    DEFERRED = "deferred"


class RefreshReconciler:
    """Vuelca fotos del servidor en el RecordStore sin pisar ediciones locales.

    Mientras quede cualquier mutación pendiente (en cola o en vuelo) la foto
    se descarta entera: un merge parcial por registro seguiría dejando
    carreras entre registros con y sin cambios locales en la misma foto.
    """

    def __init__(
        self,
        store: RecordStore,
        has_pending_mutations: Callable[[], bool],
        clock: Callable[[], int],
        *,
        on_rate_limited: Callable[[int], None] | None = None,
        rate_limit_cooldown_ms: int = RATE_LIMIT_COOLDOWN_MS,
        metrics_registry: MetricsRegistry | None = None,
    ) -> None:
        self._store = store
        self._has_pending_mutations = has_pending_mutations
        self._clock = clock
        self._on_rate_limited = on_rate_limited
        self._rate_limit_cooldown_ms = rate_limit_cooldown_ms
        self._metrics = metrics_registry or metrics.metrics_registry

    def reconcile(self, fresh_snapshot: Iterable[Record]) -> ReconcileResult:
        if self._has_pending_mutations():
            self._metrics.incrementar(metrics.RECONCILE_SKIPPED_PENDING)
            logger.debug("Reconciliación aplazada: hay mutaciones pendientes")
            return ReconcileResult.DEFERRED
        records = list(fresh_snapshot)
        fingerprint = compute_fingerprint(records)
        if fingerprint == self._store.fingerprint:
            self._metrics.incrementar(metrics.RECONCILE_UNCHANGED)
            return ReconcileResult.UNCHANGED
        self._store.replace_all(records, fingerprint=fingerprint, updated_at_ms=self._clock())
        self._metrics.incrementar(metrics.RECONCILE_APPLIED)
        logger.info("Datos actualizados desde la hoja: %s registros", len(records))
        return ReconcileResult.APPLIED

    def handle_fetch_error(self, exc: Exception) -> None:
        if isinstance(exc, RateLimited):
            self._metrics.incrementar(metrics.FETCH_RATE_LIMITED)
            logger.warning(
                "Límite de peticiones alcanzado; polling en pausa %s ms",
                self._rate_limit_cooldown_ms,
            )
            if self._on_rate_limited is not None:
                self._on_rate_limited(self._rate_limit_cooldown_ms)
            return
        logger.warning("Error al refrescar datos: %s", exc)
