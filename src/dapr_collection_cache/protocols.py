"""Protocols para extensibilidade da biblioteca.

Define interfaces que permitem implementações customizadas de:
- Cache / CacheManager / CacheResolver: localização e acesso às regiões de cache
- KeyGenerator: Geração de chaves a partir da invocação
- ExpressionEvaluator: Avaliação de ``key``, ``condition`` e ``unless``
- Serializer: Serialização/deserialização de dados
- CacheMetrics: Coleta de métricas
"""

from collections.abc import Callable, Hashable, Mapping, Sequence
from typing import Any, Protocol

from .operations import CacheOperation


class Cache(Protocol):
    """Protocol para uma região de cache (chave → valor).

    ``get``/``get_async`` retornam ``MISSING`` (de ``cache.py``) quando a chave
    não existe, para que ``None`` possa ser um valor legítimo.
    As operações em lote retornam/recebem apenas as chaves presentes.
    """

    @property
    def name(self) -> str:
        """Nome da região."""
        ...

    def get(self, key: Hashable) -> Any: ...

    def get_many(self, keys: Sequence[Hashable]) -> dict[Hashable, Any]: ...

    def put(self, key: Hashable, value: Any) -> None: ...

    def put_many(self, entries: Mapping[Hashable, Any]) -> None: ...

    def clear(self) -> None: ...

    async def get_async(self, key: Hashable) -> Any: ...

    async def get_many_async(self, keys: Sequence[Hashable]) -> dict[Hashable, Any]: ...

    async def put_async(self, key: Hashable, value: Any) -> None: ...

    async def put_many_async(self, entries: Mapping[Hashable, Any]) -> None: ...

    async def clear_async(self) -> None: ...


class CacheManager(Protocol):
    """Protocol para provedores de regiões de cache por nome."""

    def get_cache(self, name: str) -> Cache | None:
        """Retorna a região ``name`` ou None se não puder ser fornecida."""
        ...


class CacheResolver(Protocol):
    """Protocol para estratégias que escolhem as regiões de uma operação.

    Example:
        ```python
        class TenantCacheResolver:
            def resolve_caches(self, operation):
                return [manager.get_cache(f"{tenant}:{name}") for name in operation.cache_names]
        ```
    """

    def resolve_caches(self, operation: CacheOperation) -> Sequence[Cache]: ...


class KeyGenerator(Protocol):
    """Protocol para geradores de chave de cache.

    Implemente este protocol para customizar como a chave de uma invocação
    de chave única é derivada dos argumentos.
    """

    def generate(
        self,
        target: Any,
        func: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> Hashable:
        """Gera a chave de cache.

        Args:
            target: Instância alvo (ou None para funções livres)
            func: Função original
            args: Argumentos posicionais, sem ``self``/``cls``
            kwargs: Argumentos nomeados

        Returns:
            Chave hashable
        """
        ...


class ExpressionEvaluator(Protocol):
    """Protocol para avaliadores de expressões de ``key``/``condition``/``unless``."""

    def evaluate(self, expression: str, variables: Mapping[str, Any]) -> Any: ...


class Serializer(Protocol):
    """Protocol para serialização de dados.

    Implemente este protocol para usar formatos de serialização
    customizados (JSON, Protocol Buffers, etc.).
    """

    def serialize(self, data: Any) -> bytes:
        """Serializa dados Python para bytes.

        Raises:
            CacheSerializationError: Se falhar ao serializar
        """
        ...

    def deserialize(self, data: bytes) -> Any:
        """Deserializa bytes para dados Python.

        Raises:
            CacheSerializationError: Se falhar ao deserializar
        """
        ...


class CacheMetrics(Protocol):
    """Protocol para coleta de métricas de cache.

    Example:
        ```python
        class PrometheusMetrics:
            def record_hit(self, key: str, latency: float) -> None:
                cache_hits_total.labels(key=key).inc()
                cache_latency.labels(operation="hit").observe(latency)
        ```
    """

    def record_hit(self, key: str, latency: float) -> None:
        """Registra cache hit."""
        ...

    def record_miss(self, key: str, latency: float) -> None:
        """Registra cache miss."""
        ...

    def record_write(self, key: str, size: int) -> None:
        """Registra escrita no cache (size em bytes, ou 0 quando desconhecido)."""
        ...

    def record_error(self, key: str, error: Exception) -> None:
        """Registra erro de cache."""
        ...
