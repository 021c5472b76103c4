"""Testes para os coletores de métricas."""

import threading
from unittest.mock import MagicMock, call, patch

import pytest

from dapr_collection_cache.metrics import (
    CacheStats,
    InMemoryMetrics,
    NoOpMetrics,
    OpenTelemetryMetrics,
    metric_key,
    region_of,
)


def _record_all(metrics) -> None:
    metrics.record_hit("users:1", 0.001)
    metrics.record_miss("users:2", 0.002)
    metrics.record_write("users:2", 128)
    metrics.record_error("users:3", ConnectionError("offline"))


class TestNoOpMetrics:
    """Testes para NoOpMetrics."""

    def test_accepts_every_event(self) -> None:
        """Deve aceitar todos os eventos sem efeito colateral."""
        _record_all(NoOpMetrics())


class TestCacheStats:
    """Testes para CacheStats."""

    @pytest.mark.parametrize(
        "hits, misses, ratio",
        [(3, 1, 0.75), (0, 4, 0.0), (0, 0, 0.0)],
    )
    def test_hit_ratio(self, hits: int, misses: int, ratio: float) -> None:
        """Deve calcular a razão de hits sobre leituras."""
        stats = CacheStats(hits=hits, misses=misses)
        assert stats.total_operations == hits + misses
        assert stats.hit_ratio == ratio

    def test_average_latencies(self) -> None:
        """Deve calcular as latências médias em ms."""
        stats = CacheStats(hits=2, misses=4, hit_latency=0.004, miss_latency=0.02)
        assert stats.avg_hit_latency_ms == pytest.approx(2.0)
        assert stats.avg_miss_latency_ms == pytest.approx(5.0)

    def test_average_latencies_without_reads(self) -> None:
        """Sem leituras as médias ficam zeradas."""
        assert (CacheStats().avg_hit_latency_ms, CacheStats().avg_miss_latency_ms) == (0.0, 0.0)


class TestMetricKey:
    """Testes para metric_key e region_of."""

    def test_formats_region_and_key(self) -> None:
        """Deve montar chave no formato região:chave."""
        assert metric_key("users", 42) == "users:42"

    def test_region_of(self) -> None:
        """Deve extrair a região mesmo com ':' na chave."""
        assert region_of("users:a:b") == "users"
        assert region_of(metric_key("users", ("x", 1))) == "users"

    def test_region_with_separator_raises(self) -> None:
        """Região com ':' não pode ser separada da chave depois."""
        with pytest.raises(ValueError, match="tenant:users"):
            metric_key("tenant:users", 1)


class TestInMemoryMetrics:
    """Testes para InMemoryMetrics."""

    @pytest.fixture
    def metrics(self) -> InMemoryMetrics:
        collector = InMemoryMetrics()
        _record_all(collector)
        return collector

    def test_overall_totals(self, metrics: InMemoryMetrics) -> None:
        """Deve somar os eventos de todas as chaves."""
        stats = metrics.get_stats()

        assert (stats.hits, stats.misses, stats.writes, stats.errors) == (1, 1, 1, 1)
        assert stats.hit_latency == pytest.approx(0.001)
        assert stats.miss_latency == pytest.approx(0.002)

    def test_per_key_stats(self, metrics: InMemoryMetrics) -> None:
        """Deve manter contadores separados por entrada."""
        metrics.record_hit("users:1", 0.001)

        assert metrics.get_key_stats("users:1").hits == 2
        assert metrics.get_key_stats("users:2").writes == 1
        assert metrics.get_key_stats("users:99") is None

    def test_per_region_stats(self, metrics: InMemoryMetrics) -> None:
        """Deve agregar as chaves de cada região."""
        metrics.record_hit("orders:1", 0.001)

        users = metrics.get_region_stats("users")
        assert (users.hits, users.misses, users.writes, users.errors) == (1, 1, 1, 1)
        assert metrics.get_region_stats("orders").hits == 1
        assert metrics.get_region_stats("missing") == CacheStats()
        assert metrics.regions == ["orders", "users"]

    def test_returned_stats_are_copies(self, metrics: InMemoryMetrics) -> None:
        """Alterar o retorno não deve afetar o coletor."""
        metrics.get_stats().hits = 100
        metrics.get_region_stats("users").hits = 100
        metrics.get_key_stats("users:1").hits = 100

        assert metrics.get_stats().hits == 1
        assert metrics.get_region_stats("users").hits == 1
        assert metrics.get_key_stats("users:1").hits == 1

    def test_reset(self, metrics: InMemoryMetrics) -> None:
        """Deve descartar tudo que foi registrado."""
        metrics.reset()

        assert metrics.get_stats() == CacheStats()
        assert metrics.get_key_stats("users:1") is None
        assert metrics.regions == []

    def test_concurrent_records(self) -> None:
        """Registros concorrentes não devem se perder."""
        metrics = InMemoryMetrics()

        def record() -> None:
            for i in range(200):
                metrics.record_hit(f"users:{i % 5}", 0.001)

        threads = [threading.Thread(target=record) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert metrics.get_region_stats("users").hits == 1600
        assert metrics.get_key_stats("users:0").hits == 320


class TestOpenTelemetryMetrics:
    """Testes para OpenTelemetryMetrics."""

    @pytest.fixture
    def meter(self) -> MagicMock:
        meter = MagicMock()
        # Um mock distinto por instrumento, indexado pelo nome
        meter.instruments = {}

        def create(name: str, **kwargs) -> MagicMock:
            return meter.instruments.setdefault(name, MagicMock(name=name))

        meter.create_counter.side_effect = create
        meter.create_histogram.side_effect = create
        return meter

    @pytest.fixture
    def otel(self, meter: MagicMock):
        with patch("dapr_collection_cache.metrics.otel_metrics") as otel:
            otel.get_meter.return_value = meter
            yield otel

    def test_creates_instruments(self, otel: MagicMock, meter: MagicMock) -> None:
        """Deve criar os quatro counters e o histogram de latência."""
        OpenTelemetryMetrics()

        otel.get_meter.assert_called_once_with("dapr_collection_cache")
        assert sorted(meter.instruments) == [
            "cache.errors",
            "cache.hits",
            "cache.latency",
            "cache.misses",
            "cache.writes",
        ]

    def test_custom_meter_name(self, otel: MagicMock, meter: MagicMock) -> None:
        """Deve usar o nome de meter informado."""
        OpenTelemetryMetrics("orders_service")
        otel.get_meter.assert_called_once_with("orders_service")

    def test_reads_record_counter_and_latency(self, otel: MagicMock, meter: MagicMock) -> None:
        """Hits e misses devem alimentar seu counter e o histogram, com a região."""
        metrics = OpenTelemetryMetrics()
        metrics.record_hit("users:42", 0.005)
        metrics.record_miss("orders:7", 0.003)

        meter.instruments["cache.hits"].add.assert_called_once_with(1, {"region": "users"})
        meter.instruments["cache.misses"].add.assert_called_once_with(1, {"region": "orders"})
        assert meter.instruments["cache.latency"].record.call_args_list == [
            call(0.005, {"operation": "hit", "region": "users"}),
            call(0.003, {"operation": "miss", "region": "orders"}),
        ]

    def test_writes_and_errors(self, otel: MagicMock, meter: MagicMock) -> None:
        """Erros devem levar o tipo da exceção como atributo."""
        metrics = OpenTelemetryMetrics()
        metrics.record_write("users:42", 64)
        metrics.record_error("users:42", TimeoutError("slow"))

        meter.instruments["cache.writes"].add.assert_called_once_with(1, {"region": "users"})
        meter.instruments["cache.errors"].add.assert_called_once_with(
            1, {"region": "users", "error_type": "TimeoutError"}
        )
