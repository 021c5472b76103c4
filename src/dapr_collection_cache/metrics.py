"""Métricas de cache por região.

As chaves reportadas têm o formato ``{região}:{chave}`` (ver ``metric_key``);
os coletores agregam por região a partir desse prefixo.
"""

import logging
from collections import defaultdict
from collections.abc import Hashable
from dataclasses import dataclass, replace
from threading import Lock

from opentelemetry import metrics as otel_metrics

from .constants import REGION_SEPARATOR
from .protocols import CacheMetrics

logger = logging.getLogger(__name__)

__all__ = [
    "CacheMetrics",
    "CacheStats",
    "InMemoryMetrics",
    "NoOpMetrics",
    "OpenTelemetryMetrics",
    "metric_key",
    "region_of",
]


def metric_key(region: str, key: Hashable) -> str:
    """Monta a chave reportada às métricas para uma entrada de uma região.

    Raises:
        ValueError: Se o nome da região contém o separador ``:``
    """
    if REGION_SEPARATOR in region:
        raise ValueError(f"Nome de região não pode conter {REGION_SEPARATOR!r}: {region!r}")
    return f"{region}{REGION_SEPARATOR}{key}"


def region_of(key: str) -> str:
    """Região de uma chave no formato ``região:chave``."""
    return key.partition(REGION_SEPARATOR)[0]


class NoOpMetrics:
    """Coletor de métricas que não faz nada (default)."""

    def record_hit(self, key: str, latency: float) -> None:
        pass

    def record_miss(self, key: str, latency: float) -> None:
        pass

    def record_write(self, key: str, size: int) -> None:
        pass

    def record_error(self, key: str, error: Exception) -> None:
        pass


@dataclass
class CacheStats:
    """Contadores de uma chave, de uma região ou do cache inteiro."""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    errors: int = 0
    hit_latency: float = 0.0
    miss_latency: float = 0.0

    @property
    def total_operations(self) -> int:
        return self.hits + self.misses

    @property
    def hit_ratio(self) -> float:
        total = self.total_operations
        return self.hits / total if total else 0.0

    @property
    def avg_hit_latency_ms(self) -> float:
        return self.hit_latency / self.hits * 1000 if self.hits else 0.0

    @property
    def avg_miss_latency_ms(self) -> float:
        return self.miss_latency / self.misses * 1000 if self.misses else 0.0


class OpenTelemetryMetrics:
    """Coletor de métricas usando OpenTelemetry.

    Instrumentos (atributo ``region`` em todos):
    - cache.hits / cache.misses / cache.writes (counters)
    - cache.errors (counter, com ``error_type``)
    - cache.latency (histogram, segundos, com ``operation`` hit ou miss)

    A chave individual não vira atributo: buscas em lote explodiriam a
    cardinalidade.

    Example:
        ```python
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry import metrics

        metrics.set_meter_provider(MeterProvider())
        repository = create_caching_proxy(UserRepository(), metrics=OpenTelemetryMetrics())
        ```
    """

    def __init__(self, meter_name: str = "dapr_collection_cache") -> None:
        meter = otel_metrics.get_meter(meter_name)
        self._counters = {
            name: meter.create_counter(f"cache.{name}", description=description, unit="1")
            for name, description in (
                ("hits", "Leituras atendidas pelo cache"),
                ("misses", "Leituras que foram à origem"),
                ("writes", "Entradas gravadas no cache"),
                ("errors", "Falhas de acesso ao cache"),
            )
        }
        self._latency = meter.create_histogram("cache.latency", description="Latência das leituras", unit="s")

    def record_hit(self, key: str, latency: float) -> None:
        region = region_of(key)
        self._counters["hits"].add(1, {"region": region})
        self._latency.record(latency, {"operation": "hit", "region": region})

    def record_miss(self, key: str, latency: float) -> None:
        region = region_of(key)
        self._counters["misses"].add(1, {"region": region})
        self._latency.record(latency, {"operation": "miss", "region": region})

    def record_write(self, key: str, size: int) -> None:
        self._counters["writes"].add(1, {"region": region_of(key)})

    def record_error(self, key: str, error: Exception) -> None:
        self._counters["errors"].add(1, {"region": region_of(key), "error_type": type(error).__name__})


class InMemoryMetrics:
    """Coletor de métricas em memória, agregado por chave e por região.

    Útil para desenvolvimento e testes. Thread-safe.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._overall = CacheStats()
        self._by_region: dict[str, CacheStats] = defaultdict(CacheStats)
        self._by_key: dict[str, CacheStats] = defaultdict(CacheStats)

    def _levels(self, key: str) -> tuple[CacheStats, CacheStats, CacheStats]:
        return self._overall, self._by_region[region_of(key)], self._by_key[key]

    def record_hit(self, key: str, latency: float) -> None:
        with self._lock:
            for stats in self._levels(key):
                stats.hits += 1
                stats.hit_latency += latency

    def record_miss(self, key: str, latency: float) -> None:
        with self._lock:
            for stats in self._levels(key):
                stats.misses += 1
                stats.miss_latency += latency

    def record_write(self, key: str, size: int) -> None:
        with self._lock:
            for stats in self._levels(key):
                stats.writes += 1

    def record_error(self, key: str, error: Exception) -> None:
        with self._lock:
            for stats in self._levels(key):
                stats.errors += 1

    def get_stats(self) -> CacheStats:
        """Totais de todas as regiões."""
        with self._lock:
            return replace(self._overall)

    def get_region_stats(self, region: str) -> CacheStats:
        """Totais de uma região (zerados se nada foi registrado)."""
        with self._lock:
            stats = self._by_region.get(region)
            return replace(stats) if stats is not None else CacheStats()

    def get_key_stats(self, key: str) -> CacheStats | None:
        """Contadores de uma entrada (formato ``região:chave``)."""
        with self._lock:
            stats = self._by_key.get(key)
            return replace(stats) if stats is not None else None

    @property
    def regions(self) -> list[str]:
        with self._lock:
            return sorted(self._by_region)

    def reset(self) -> None:
        """Zera todas as estatísticas."""
        with self._lock:
            self._overall = CacheStats()
            self._by_region.clear()
            self._by_key.clear()
