from __future__ import annotations

from contextlib import contextmanager
from threading import Lock
from time import perf_counter
from typing import Any, Iterator

FLUSH_REQUESTS = "flush.requests"
FLUSH_FAILURES = "flush.failures"
FLUSH_DROPPED = "flush.dropped"
RECONCILE_APPLIED = "reconcile.applied"
RECONCILE_UNCHANGED = "reconcile.unchanged"
RECONCILE_SKIPPED_PENDING = "reconcile.skipped_pending"
FETCH_RATE_LIMITED = "fetch.rate_limited"
PUSH_RECONNECTS = "push.reconnects"
PUSH_DISABLED = "push.disabled"
FETCH_LATENCY_MS = "latency.fetch_ms"
WRITE_LATENCY_MS = "latency.write_ms"


class MetricsRegistry:
    """Contadores y latencias del motor de sincronización.

    El registro es compartido por los componentes del mismo proceso; los
    workers de red también escriben aquí, de ahí el lock.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: dict[str, int] = {}
        self._timings: dict[str, list[float]] = {}

    def contador(self, nombre: str) -> int:
        with self._lock:
            return self._counters.get(nombre, 0)

    def incrementar(self, nombre: str, valor: int = 1) -> None:
        with self._lock:
            self._counters[nombre] = self._counters.get(nombre, 0) + valor

    def registrar_tiempo(self, nombre: str, milisegundos: float) -> None:
        with self._lock:
            self._timings.setdefault(nombre, []).append(milisegundos)

    @contextmanager
    def cronometro(self, nombre: str) -> Iterator[None]:
        inicio = perf_counter()
        try:
            yield
        finally:
            self.registrar_tiempo(nombre, (perf_counter() - inicio) * 1000)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._timings.clear()

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            counters = dict(self._counters)
            timings = {name: list(values) for name, values in self._timings.items()}
        return {
            "counters": counters,
            "timings_ms": {
                name: {
                    "count": len(values),
                    "last": values[-1],
                    "avg": sum(values) / len(values),
                    "max": max(values),
                }
                for name, values in timings.items()
                if values
            },
        }


metrics_registry = MetricsRegistry()
