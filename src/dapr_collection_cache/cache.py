"""Regiões de cache em memória."""

import logging
from collections.abc import Hashable, Iterable, Mapping, Sequence
from threading import Lock
from typing import Any, Final

logger = logging.getLogger(__name__)


class _Missing:
    """Sentinela para chave ausente (``None`` é um valor válido no cache)."""

    _instance: "_Missing | None" = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Final = _Missing()


class InMemoryCache:
    """Região de cache em um dict protegido por lock.

    Cada get/put é atômico; não há expiração nem limite de tamanho.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._store: dict[Hashable, Any] = {}
        self._lock = Lock()

    @property
    def name(self) -> str:
        return self._name

    def get(self, key: Hashable) -> Any:
        with self._lock:
            return self._store.get(key, MISSING)

    def get_many(self, keys: Sequence[Hashable]) -> dict[Hashable, Any]:
        with self._lock:
            return {key: self._store[key] for key in keys if key in self._store}

    def put(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._store[key] = value

    def put_many(self, entries: Mapping[Hashable, Any]) -> None:
        with self._lock:
            self._store.update(entries)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
        logger.debug(f"Região '{self._name}' limpa")

    async def get_async(self, key: Hashable) -> Any:
        return self.get(key)

    async def get_many_async(self, keys: Sequence[Hashable]) -> dict[Hashable, Any]:
        return self.get_many(keys)

    async def put_async(self, key: Hashable, value: Any) -> None:
        self.put(key, value)

    async def put_many_async(self, entries: Mapping[Hashable, Any]) -> None:
        self.put_many(entries)

    async def clear_async(self) -> None:
        self.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._store


class InMemoryCacheManager:
    """Fornece regiões ``InMemoryCache`` por nome.

    Com ``cache_names`` informado, apenas essas regiões existem; sem ele,
    regiões são criadas sob demanda.
    """

    def __init__(self, cache_names: Iterable[str] | None = None) -> None:
        self._dynamic = cache_names is None
        self._caches: dict[str, InMemoryCache] = {name: InMemoryCache(name) for name in cache_names or ()}
        self._lock = Lock()

    def get_cache(self, name: str) -> InMemoryCache | None:
        cache = self._caches.get(name)
        if cache is None and self._dynamic:
            with self._lock:
                cache = self._caches.setdefault(name, InMemoryCache(name))
        return cache

    @property
    def cache_names(self) -> list[str]:
        return list(self._caches)

    def clear_all(self) -> None:
        """Limpa todas as regiões existentes."""
        for cache in list(self._caches.values()):
            cache.clear()
