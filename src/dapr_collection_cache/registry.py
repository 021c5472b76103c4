"""Registro de estratégias nomeadas e resolução de regiões de cache.

Operações referenciam ``cache_manager``, ``cache_resolver`` e
``key_generator`` por nome; o ``StrategyRegistry`` traduz esses nomes em
instâncias durante a montagem do proxy.
"""

import logging
from collections.abc import Sequence

from .constants import (
    ERROR_CACHE_NOT_FOUND,
    ERROR_NO_CACHE_MANAGER,
    ERROR_NO_CACHE_RESOLVED,
    ERROR_UNKNOWN_STRATEGY,
)
from .exceptions import CacheConfigurationError
from .expressions import SimpleExpressionEvaluator
from .key_generator import SimpleKeyGenerator
from .operations import CacheOperation
from .protocols import Cache, CacheManager, CacheResolver, ExpressionEvaluator, KeyGenerator

logger = logging.getLogger(__name__)


class SimpleCacheResolver:
    """Resolve as regiões de uma operação pelos seus ``cache_names``."""

    def __init__(self, cache_manager: CacheManager) -> None:
        self._cache_manager = cache_manager

    @property
    def cache_manager(self) -> CacheManager:
        return self._cache_manager

    def resolve_caches(self, operation: CacheOperation) -> Sequence[Cache]:
        caches = []
        for name in operation.cache_names:
            cache = self._cache_manager.get_cache(name)
            if cache is None:
                raise CacheConfigurationError(ERROR_CACHE_NOT_FOUND.format(name=name, operation=operation))
            caches.append(cache)
        return caches


class StrategyRegistry:
    """Estratégias disponíveis para a montagem de proxies.

    Attributes:
        default_cache_manager: Usado quando a operação não define
            ``cache_manager`` nem ``cache_resolver``
        default_key_generator: Usado quando a operação não define ``key``
            nem ``key_generator``
        expression_evaluator: Avaliador de ``key``/``condition``/``unless``

    Example:
        ```python
        registry = StrategyRegistry(cache_manager=DaprCacheManager(store_name="cache"))
        registry.register_cache_manager("local", InMemoryCacheManager())
        registry.register_key_generator("by_tenant", TenantKeyGenerator())
        ```
    """

    def __init__(
        self,
        cache_manager: CacheManager | None = None,
        key_generator: KeyGenerator | None = None,
        expression_evaluator: ExpressionEvaluator | None = None,
    ) -> None:
        self.default_cache_manager = cache_manager
        self.default_key_generator: KeyGenerator = key_generator or SimpleKeyGenerator()
        self.expression_evaluator: ExpressionEvaluator = expression_evaluator or SimpleExpressionEvaluator()
        self._cache_managers: dict[str, CacheManager] = {}
        self._cache_resolvers: dict[str, CacheResolver] = {}
        self._key_generators: dict[str, KeyGenerator] = {}

    def register_cache_manager(self, name: str, cache_manager: CacheManager) -> None:
        self._cache_managers[name] = cache_manager

    def register_cache_resolver(self, name: str, cache_resolver: CacheResolver) -> None:
        self._cache_resolvers[name] = cache_resolver

    def register_key_generator(self, name: str, key_generator: KeyGenerator) -> None:
        self._key_generators[name] = key_generator

    def get_cache_manager(self, name: str, element: str) -> CacheManager:
        return self._lookup(self._cache_managers, "cache manager", name, element)

    def get_cache_resolver(self, name: str, element: str) -> CacheResolver:
        return self._lookup(self._cache_resolvers, "cache resolver", name, element)

    def get_key_generator(self, name: str, element: str) -> KeyGenerator:
        return self._lookup(self._key_generators, "key generator", name, element)

    def resolve_key_generator(self, operation: CacheOperation, element: str) -> KeyGenerator:
        if operation.key_generator:
            return self.get_key_generator(operation.key_generator, element)
        return self.default_key_generator

    def resolve_caches(self, operation: CacheOperation, element: str) -> list[Cache]:
        """Resolve as regiões da operação.

        Um ``cache_resolver`` nomeado tem prioridade; caso contrário, as
        regiões vêm do ``cache_manager`` nomeado ou do manager default.

        Raises:
            CacheConfigurationError: Se uma estratégia não existir ou se
                nenhuma região for resolvida
        """
        if operation.cache_resolver:
            resolver = self.get_cache_resolver(operation.cache_resolver, element)
        else:
            if operation.cache_manager:
                manager = self.get_cache_manager(operation.cache_manager, element)
            elif self.default_cache_manager is not None:
                manager = self.default_cache_manager
            else:
                raise CacheConfigurationError(ERROR_NO_CACHE_MANAGER.format(element=element), element=element)
            resolver = SimpleCacheResolver(manager)

        caches = list(resolver.resolve_caches(operation))
        if not caches:
            raise CacheConfigurationError(ERROR_NO_CACHE_RESOLVED.format(element=element), element=element)
        logger.debug(f"Regiões resolvidas para {element}: {[cache.name for cache in caches]}")
        return caches

    @staticmethod
    def _lookup(strategies: dict, kind: str, name: str, element: str):
        strategy = strategies.get(name)
        if strategy is None:
            raise CacheConfigurationError(
                ERROR_UNKNOWN_STRATEGY.format(kind=kind, name=name, element=element),
                element=element,
            )
        return strategy
