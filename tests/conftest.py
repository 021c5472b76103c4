"""Configuração de fixtures para testes."""

import pytest

from dapr_collection_cache.cache import InMemoryCacheManager
from dapr_collection_cache.metrics import InMemoryMetrics
from dapr_collection_cache.registry import StrategyRegistry


@pytest.fixture
def sample_items() -> dict:
    """Itens de exemplo indexados por id."""
    return {
        "a": {"id": "a", "name": "Item A", "active": True},
        "b": {"id": "b", "name": "Item B", "active": True},
        "c": {"id": "c", "name": "Item C", "active": False},
    }


@pytest.fixture
def cache_manager() -> InMemoryCacheManager:
    """Manager de regiões em memória criadas sob demanda."""
    return InMemoryCacheManager()


@pytest.fixture
def registry(cache_manager: InMemoryCacheManager) -> StrategyRegistry:
    """Registro com o manager em memória como default."""
    return StrategyRegistry(cache_manager=cache_manager)


@pytest.fixture
def in_memory_metrics() -> InMemoryMetrics:
    """Coletor de métricas em memória."""
    return InMemoryMetrics()
