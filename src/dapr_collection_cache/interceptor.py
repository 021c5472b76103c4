"""Interceptação de métodos anotados.

``create_caching_proxy(target)`` resolve as operações de cache da classe de
``target``, monta um ``BulkCacheAside`` por método e devolve um proxy que
intercepta esses métodos. Os demais atributos são delegados ao alvo.

O formato da chamada é inferido da assinatura:

- ``@cacheable``: chave única, gerada pelo ``key`` ou pelo key generator
- ``@collection_cacheable`` sem parâmetros: busca completa (``get_all``)
- ``@collection_cacheable`` com um único parâmetro: coleção de chaves
  (``get_many``); o método recebe apenas as chaves ausentes, no mesmo tipo
  de coleção recebido

Exemplo:
    ```python
    @cache_config(cache_names="users")
    class UserRepository:
        @cacheable()
        def find_by_id(self, user_id: int) -> dict | None: ...

        @collection_cacheable()
        def find_by_ids(self, user_ids: list[int]) -> dict[int, dict]: ...

        @collection_cacheable()
        def find_all(self) -> dict[int, dict]: ...

    repository = create_caching_proxy(UserRepository(), StrategyRegistry(DaprCacheManager()))
    repository.find_by_ids([1, 2, 3])
    repository.find_by_id(1)  # hit
    repository.find_by_id.invalidate()
    ```
"""

import inspect
import logging
from collections.abc import Callable, Hashable, Iterable, Mapping
from functools import wraps
from threading import Lock
from typing import Any

from .annotation_source import MethodElement
from .bulk import BulkCacheAside, Unless
from .cache import InMemoryCacheManager
from .constants import (
    ERROR_CACHE_NAME_SEPARATOR,
    ERROR_COLLECTION_SIGNATURE,
    ERROR_SYNC_MULTIPLE_CACHES,
    ERROR_SYNC_WITH_UNLESS,
    REGION_SEPARATOR,
)
from .deduplication import DeduplicationManager, ThreadDeduplicationManager
from .exceptions import CacheConfigurationError
from .metrics import NoOpMetrics
from .operation_source import CacheOperationSource
from .operations import CacheOperation, CollectionCacheableOperation
from .protocols import Cache, CacheMetrics, ExpressionEvaluator, KeyGenerator
from .registry import StrategyRegistry

logger = logging.getLogger(__name__)

SHAPE_ONE = "one"
SHAPE_MANY = "many"
SHAPE_ALL = "all"

_COLLECTION_PARAMETER_KINDS = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
    inspect.Parameter.KEYWORD_ONLY,
)


def _same_collection(original: Any, keys: list[Hashable]) -> Any:
    """Converte as chaves para o tipo de coleção recebido pelo método."""
    if isinstance(original, frozenset):
        return frozenset(keys)
    if isinstance(original, set):
        return set(keys)
    if isinstance(original, tuple):
        return tuple(keys)
    return keys


def _call_shape(operation: CacheOperation, signature: inspect.Signature, element: str) -> str:
    if not isinstance(operation, CollectionCacheableOperation):
        return SHAPE_ONE
    parameters = list(signature.parameters.values())
    if not parameters:
        return SHAPE_ALL
    if len(parameters) == 1 and parameters[0].kind in _COLLECTION_PARAMETER_KINDS:
        return SHAPE_MANY
    raise CacheConfigurationError(ERROR_COLLECTION_SIGNATURE.format(element=element), element=element)


def _check_cache_names(bulk_caches: list, element: str) -> None:
    for cache in bulk_caches:
        if REGION_SEPARATOR in cache.name:
            raise CacheConfigurationError(
                ERROR_CACHE_NAME_SEPARATOR.format(name=cache.name, element=element, separator=REGION_SEPARATOR),
                element=element,
            )


def _check_sync(operation: CacheOperation, bulk_caches: list, element: str) -> None:
    if not operation.sync:
        return
    if len(bulk_caches) > 1:
        names = [cache.name for cache in bulk_caches]
        raise CacheConfigurationError(
            ERROR_SYNC_MULTIPLE_CACHES.format(element=element, count=len(names), names=names),
            element=element,
        )
    if operation.unless:
        raise CacheConfigurationError(ERROR_SYNC_WITH_UNLESS.format(element=element), element=element)


class CachedMethodDefinition:
    """Tudo que uma chamada interceptada precisa, resolvido na montagem.

    Attributes:
        element: Nome de diagnóstico do método
        operation: Operação aplicada
        bulk: Algoritmo cache-aside sobre as regiões da operação
        shape: ``"one"``, ``"many"`` ou ``"all"``
    """

    def __init__(
        self,
        element: str,
        operation: CacheOperation,
        bulk: BulkCacheAside,
        shape: str,
        signature: inspect.Signature,
        key_generator: KeyGenerator,
        evaluator: ExpressionEvaluator,
    ) -> None:
        self.element = element
        self.operation = operation
        self.bulk = bulk
        self.shape = shape
        self.signature = signature
        self.key_generator = key_generator
        self.evaluator = evaluator
        self.collection_parameter = next(iter(signature.parameters.values())) if shape == SHAPE_MANY else None


class CachedMethod:
    """Método de um alvo interceptado pelo cache.

    Detecta automaticamente se o método é sync ou async e usa o modo
    apropriado do ``BulkCacheAside``.
    """

    def __init__(self, definition: CachedMethodDefinition, target: Any, func: Callable[..., Any]) -> None:
        self._definition = definition
        self._target = target
        self._func = func
        self._is_async = inspect.iscoroutinefunction(func)

        # Preserva metadados do método original
        wraps(func)(self)

    @property
    def definition(self) -> CachedMethodDefinition:
        return self._definition

    @property
    def operation(self) -> CacheOperation:
        return self._definition.operation

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        if self._is_async:
            return self._call_async(*args, **kwargs)
        return self._call_sync(*args, **kwargs)

    # ========== Argumentos e expressões ==========

    def _bind(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> inspect.BoundArguments:
        bound = self._definition.signature.bind(*args, **kwargs)
        bound.apply_defaults()
        return bound

    def _variables(self, bound: inspect.BoundArguments) -> dict[str, Any]:
        variables = dict(bound.arguments)
        variables.setdefault("args", bound.args)
        return variables

    def _condition_passes(self, variables: Mapping[str, Any]) -> bool:
        condition = self._definition.operation.condition
        if not condition:
            return True
        return bool(self._definition.evaluator.evaluate(condition, variables))

    def _unless(self, variables: Mapping[str, Any]) -> Unless | None:
        unless = self._definition.operation.unless
        if not unless:
            return None
        evaluator = self._definition.evaluator
        return lambda value: bool(evaluator.evaluate(unless, {**variables, "result": value}))

    def _key(self, bound: inspect.BoundArguments, variables: Mapping[str, Any]) -> Hashable:
        definition = self._definition
        if definition.operation.key:
            return definition.evaluator.evaluate(definition.operation.key, variables)
        return definition.key_generator.generate(self._target, self._func, bound.args, bound.kwargs)

    def _keys_argument(self, bound: inspect.BoundArguments) -> Iterable[Hashable]:
        parameter = self._definition.collection_parameter
        keys = bound.arguments[parameter.name]
        if isinstance(keys, (str, bytes)) or not isinstance(keys, Iterable):
            raise TypeError(f"{self._definition.element} espera uma coleção de chaves, recebeu {type(keys).__name__}")
        return keys

    def _call_with_keys(self, original: Any, keys: list[Hashable]) -> Any:
        parameter = self._definition.collection_parameter
        collection = _same_collection(original, keys)
        if parameter.kind is inspect.Parameter.KEYWORD_ONLY:
            return self._func(**{parameter.name: collection})
        return self._func(collection)

    # ========== Execução ==========

    def _call_sync(self, *args: Any, **kwargs: Any) -> Any:
        bound = self._bind(args, kwargs)
        variables = self._variables(bound)
        if not self._condition_passes(variables):
            return self._func(*args, **kwargs)

        bulk = self._definition.bulk
        unless = self._unless(variables)
        shape = self._definition.shape
        if shape == SHAPE_ALL:
            return bulk.get_all(self._func, unless)
        if shape == SHAPE_MANY:
            keys = self._keys_argument(bound)
            return bulk.get_many(keys, lambda misses: self._call_with_keys(keys, misses), unless)
        return bulk.get_one(self._key(bound, variables), lambda: self._func(*args, **kwargs), unless)

    async def _call_async(self, *args: Any, **kwargs: Any) -> Any:
        bound = self._bind(args, kwargs)
        variables = self._variables(bound)
        if not self._condition_passes(variables):
            return await self._func(*args, **kwargs)

        bulk = self._definition.bulk
        unless = self._unless(variables)
        shape = self._definition.shape
        if shape == SHAPE_ALL:
            return await bulk.get_all_async(self._func, unless)
        if shape == SHAPE_MANY:
            keys = self._keys_argument(bound)

            async def load_many(misses: list[Hashable]) -> Any:
                return await self._call_with_keys(keys, misses)

            return await bulk.get_many_async(keys, load_many, unless)

        async def load_one() -> Any:
            return await self._func(*args, **kwargs)

        return await bulk.get_one_async(self._key(bound, variables), load_one, unless)

    # ========== Invalidação ==========

    def invalidate(self) -> None:
        """Limpa as regiões de cache deste método (sync)."""
        self._definition.bulk.invalidate()

    async def invalidate_async(self) -> None:
        """Limpa as regiões de cache deste método (async)."""
        await self._definition.bulk.invalidate_async()


class CachingProxy:
    """Proxy que intercepta os métodos com cache de um alvo.

    Atributos sem operação de cache são lidos diretamente do alvo.
    """

    def __init__(self, target: Any, methods: Mapping[str, CachedMethod]) -> None:
        object.__setattr__(self, "_target", target)
        object.__setattr__(self, "_methods", dict(methods))

    @property
    def cached_methods(self) -> dict[str, CachedMethod]:
        return dict(self._methods)

    def __getattr__(self, name: str) -> Any:
        methods = object.__getattribute__(self, "_methods")
        if name in methods:
            return methods[name]
        return getattr(object.__getattribute__(self, "_target"), name)

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._target, name, value)

    def __repr__(self) -> str:
        return f"CachingProxy({self._target!r})"


class CacheInterceptor:
    """Monta proxies de cache a partir das operações declaradas.

    Proxies montados pelo mesmo interceptor compartilham a deduplicação
    por região resolvida: ``find_by_id`` e ``find_by_ids`` sobre a mesma região
    aguardam as buscas um do outro quando ``sync=True``.

    Attributes:
        registry: Estratégias nomeadas e defaults
        metrics: Coletor de métricas (default: NoOpMetrics)
    """

    def __init__(
        self,
        registry: StrategyRegistry | None = None,
        metrics: CacheMetrics | None = None,
        operation_source: CacheOperationSource | None = None,
    ) -> None:
        self.registry = registry or StrategyRegistry(cache_manager=InMemoryCacheManager())
        self.metrics = metrics or NoOpMetrics()
        self.operation_source = operation_source or CacheOperationSource()
        # id(região) -> (região, managers); a região fica viva enquanto o id for chave
        self._deduplication: dict[int, tuple[Cache, DeduplicationManager, ThreadDeduplicationManager]] = {}
        self._lock = Lock()

    def _deduplication_for(self, cache: Cache) -> tuple[DeduplicationManager, ThreadDeduplicationManager]:
        with self._lock:
            entry = self._deduplication.get(id(cache))
            if entry is None:
                entry = (cache, DeduplicationManager(), ThreadDeduplicationManager())
                self._deduplication[id(cache)] = entry
            return entry[1], entry[2]

    def create_proxy(self, target: Any) -> CachingProxy:
        """Cria o proxy de cache para ``target``.

        Raises:
            CacheConfigurationError: Se alguma operação da classe for inválida
        """
        cls = type(target)
        methods: dict[str, CachedMethod] = {}
        for name, operations in self.operation_source.get_operation_table(cls).items():
            element = str(MethodElement(cls, name))
            func = getattr(target, name)
            try:
                definition = self.wire(element, operations, func)
            except CacheConfigurationError as e:
                logger.error(f"Falha ao montar cache de {element}: {e}")
                raise
            methods[name] = CachedMethod(definition, target, func)
        logger.debug(f"Proxy de cache criado para {cls.__qualname__}: {sorted(methods)}")
        return CachingProxy(target, methods)

    def wire(
        self,
        element: str,
        operations: tuple[CacheOperation, ...],
        func: Callable[..., Any],
    ) -> CachedMethodDefinition:
        """Resolve estratégias e regiões de uma operação e valida a montagem."""
        if len(operations) > 1:
            logger.warning(f"{element} tem {len(operations)} operações de cache; usando {operations[0]}")
        operation = operations[0]

        key_generator = self.registry.resolve_key_generator(operation, element)
        caches = self.registry.resolve_caches(operation, element)
        _check_cache_names(caches, element)
        _check_sync(operation, caches, element)
        signature = inspect.signature(func)
        shape = _call_shape(operation, signature, element)

        deduplication = thread_deduplication = None
        if operation.sync:
            deduplication, thread_deduplication = self._deduplication_for(caches[0])
        bulk = BulkCacheAside(
            caches,
            sync=operation.sync,
            metrics=self.metrics,
            deduplication=deduplication,
            thread_deduplication=thread_deduplication,
        )
        logger.debug(f"Cache montado para {element}: {shape} em {[cache.name for cache in caches]}")
        return CachedMethodDefinition(
            element,
            operation,
            bulk,
            shape,
            signature,
            key_generator,
            self.registry.expression_evaluator,
        )


def create_caching_proxy(
    target: Any,
    registry: StrategyRegistry | None = None,
    metrics: CacheMetrics | None = None,
) -> CachingProxy:
    """Cria um proxy de cache para ``target`` com um interceptor próprio.

    Args:
        target: Instância cujos métodos anotados serão interceptados
        registry: Estratégias nomeadas (default: regiões em memória)
        metrics: Coletor de métricas (default: NoOpMetrics)

    Returns:
        Proxy com os métodos interceptados
    """
    return CacheInterceptor(registry, metrics).create_proxy(target)
