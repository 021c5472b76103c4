"""dapr-collection-cache: Cache declarativo por elemento para coleções.

Métodos que buscam um registro por chave, vários registros por um conjunto
de chaves ou todos os registros compartilham uma única região de cache por
chave: a busca em lote só vai à origem para as chaves ausentes e popula o
cache com cada par retornado.

Uso básico:
    ```python
    from dapr_collection_cache import (
        DaprCacheManager,
        StrategyRegistry,
        cache_config,
        cacheable,
        collection_cacheable,
        create_caching_proxy,
    )

    @cache_config(cache_names="users")
    class UserRepository:
        @cacheable()
        def find_by_id(self, user_id: int) -> dict | None:
            return db.find(user_id)

        @collection_cacheable()
        def find_by_ids(self, user_ids: set[int]) -> dict[int, dict]:
            return db.find_many(user_ids)

        @collection_cacheable()
        async def find_all(self) -> dict[int, dict]:
            return await db.find_all()

    repository = create_caching_proxy(
        UserRepository(),
        StrategyRegistry(cache_manager=DaprCacheManager(store_name="cache", ttl_seconds=300)),
    )

    repository.find_by_ids({1, 2})   # busca 1 e 2 na origem
    repository.find_by_id(1)         # hit
    repository.find_by_ids({1, 3})   # busca apenas 3

    # Invalidação
    repository.find_by_id.invalidate()
    ```

Com métricas OpenTelemetry:
    ```python
    from dapr_collection_cache import OpenTelemetryMetrics, create_caching_proxy

    repository = create_caching_proxy(UserRepository(), metrics=OpenTelemetryMetrics())
    ```
"""

__version__ = "0.1.0"

# Declaração
from .annotations import CacheAnnotation, CacheConfigAnnotation, cache_config, cacheable, collection_cacheable

# Backend
from .backend import DaprStateBackend

# Runtime
from .bulk import BulkCacheAside

# Regiões de cache
from .cache import MISSING, InMemoryCache, InMemoryCacheManager
from .dapr_cache import DaprCache, DaprCacheManager

# Deduplicação (uso avançado)
from .deduplication import NOT_FOUND, DeduplicationManager, ThreadDeduplicationManager

# Configuração
from .config import CacheSettings
from .defaults import CacheConfigDefaults, DefaultCacheConfig

# Exceções
from .exceptions import (
    CacheConfigurationError,
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    CacheSerializationError,
)
from .expressions import SimpleExpressionEvaluator

# Interceptação
from .interceptor import CachedMethod, CacheInterceptor, CachingProxy, create_caching_proxy

# Geração de chaves
from .key_generator import EMPTY_KEY, SimpleKey, SimpleKeyGenerator, StateKeyEncoder

# Métricas
from .metrics import (
    CacheStats,
    InMemoryMetrics,
    NoOpMetrics,
    OpenTelemetryMetrics,
)
from .operation_source import CacheOperationSource

# Operações
from .operations import CacheableOperation, CacheOperation, CollectionCacheableOperation
from .parser import CacheAnnotationParser

# Protocols (para extensibilidade)
from .protocols import Cache, CacheManager, CacheMetrics, CacheResolver, ExpressionEvaluator, KeyGenerator
from .protocols import Serializer as SerializerProtocol
from .registry import SimpleCacheResolver, StrategyRegistry

# Serialização
from .serializer import MsgPackSerializer

__all__ = [
    # Declaração
    "cacheable",
    "collection_cacheable",
    "cache_config",
    "CacheAnnotation",
    "CacheConfigAnnotation",
    # Interceptação
    "create_caching_proxy",
    "CacheInterceptor",
    "CachingProxy",
    "CachedMethod",
    "StrategyRegistry",
    "SimpleCacheResolver",
    # Resolução
    "CacheAnnotationParser",
    "CacheOperationSource",
    "CacheConfigDefaults",
    "DefaultCacheConfig",
    "CacheOperation",
    "CacheableOperation",
    "CollectionCacheableOperation",
    # Runtime
    "BulkCacheAside",
    "DeduplicationManager",
    "ThreadDeduplicationManager",
    "NOT_FOUND",
    # Regiões de cache
    "MISSING",
    "InMemoryCache",
    "InMemoryCacheManager",
    "DaprCache",
    "DaprCacheManager",
    "DaprStateBackend",
    "CacheSettings",
    # Serialização e chaves
    "MsgPackSerializer",
    "SimpleKey",
    "SimpleKeyGenerator",
    "EMPTY_KEY",
    "StateKeyEncoder",
    "SimpleExpressionEvaluator",
    # Métricas
    "CacheMetrics",
    "CacheStats",
    "NoOpMetrics",
    "InMemoryMetrics",
    "OpenTelemetryMetrics",
    # Exceções
    "CacheError",
    "CacheConfigurationError",
    "CacheConnectionError",
    "CacheSerializationError",
    "CacheKeyError",
    # Protocols
    "Cache",
    "CacheManager",
    "CacheResolver",
    "KeyGenerator",
    "ExpressionEvaluator",
    "SerializerProtocol",
]
