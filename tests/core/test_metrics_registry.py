from __future__ import annotations

from threading import Thread

from tablero.core import metrics


def test_incrementar_contador() -> None:
    registry = metrics.MetricsRegistry()

    registry.incrementar(metrics.FLUSH_REQUESTS)
    registry.incrementar(metrics.FLUSH_REQUESTS, 2)

    assert registry.contador(metrics.FLUSH_REQUESTS) == 3
    assert registry.contador(metrics.FLUSH_FAILURES) == 0


def test_registrar_latencia() -> None:
    registry = metrics.MetricsRegistry()

    registry.registrar_tiempo(metrics.FETCH_LATENCY_MS, 12.5)
    registry.registrar_tiempo(metrics.FETCH_LATENCY_MS, 7.5)

    timing = registry.snapshot()["timings_ms"][metrics.FETCH_LATENCY_MS]
    assert timing["count"] == 2
    assert timing["last"] == 7.5
    assert timing["avg"] == 10.0
    assert timing["max"] == 12.5


def test_cronometro_registra_aunque_falle_la_operacion() -> None:
    registry = metrics.MetricsRegistry()

    try:
        with registry.cronometro(metrics.WRITE_LATENCY_MS):
            raise RuntimeError("fallo de red")
    except RuntimeError:
        pass

    assert registry.snapshot()["timings_ms"][metrics.WRITE_LATENCY_MS]["count"] == 1


def test_reset_vacia_contadores_y_tiempos() -> None:
    registry = metrics.MetricsRegistry()
    registry.incrementar(metrics.PUSH_RECONNECTS)
    registry.registrar_tiempo(metrics.FETCH_LATENCY_MS, 1.0)

    registry.reset()

    assert registry.snapshot() == {"counters": {}, "timings_ms": {}}


def test_incrementos_concurrentes_no_pierden_valores() -> None:
    registry = metrics.MetricsRegistry()

    def _worker() -> None:
        for _ in range(500):
            registry.incrementar(metrics.RECONCILE_APPLIED)

    threads = [Thread(target=_worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert registry.contador(metrics.RECONCILE_APPLIED) == 2000
