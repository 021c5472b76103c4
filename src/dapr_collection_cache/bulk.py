"""Cache-aside por elemento para buscas de chave única, em lote e completas.

Uma operação resolvida vira um ``BulkCacheAside`` sobre suas regiões:

- ``get_one``: lê a chave; no miss chama o loader e grava o valor
- ``get_many``: lê todas as chaves e chama o loader uma única vez com as
  chaves ausentes, gravando cada par retornado individualmente
- ``get_all``: sempre chama o loader e grava cada par retornado
- ``invalidate``: limpa todas as regiões

Falhas do cache degradam para miss (a leitura vira busca na origem e a
escrita é ignorada), sempre logadas e registradas nas métricas. Falhas do
loader propagam sem alterar o cache.
"""

import logging
import time
from collections.abc import Awaitable, Callable, Hashable, Iterable, Mapping, Sequence
from typing import Any

from .constants import REGION_SEPARATOR
from .deduplication import NOT_FOUND, DeduplicationManager, ThreadDeduplicationManager
from .metrics import NoOpMetrics, metric_key
from .protocols import Cache, CacheMetrics

logger = logging.getLogger(__name__)

Unless = Callable[[Any], bool]


def unique_keys(keys: Iterable[Hashable]) -> list[Hashable]:
    """Remove chaves duplicadas preservando a ordem."""
    return list(dict.fromkeys(keys))


def _select(keys: Sequence[Hashable], loaded: Mapping[Hashable, Any] | None) -> dict[Hashable, Any]:
    # Chaves retornadas e não pedidas são ignoradas
    if not loaded:
        return {}
    return {key: loaded[key] for key in keys if key in loaded}


def _storable(entries: Mapping[Hashable, Any], unless: Unless | None) -> dict[Hashable, Any]:
    if unless is None:
        return dict(entries)
    return {key: value for key, value in entries.items() if not unless(value)}


class BulkCacheAside:
    """Algoritmo cache-aside de uma operação sobre suas regiões.

    Com várias regiões, a leitura usa a primeira que tiver a chave e a
    escrita vai para todas. Com ``sync=True`` (apenas uma região), misses
    concorrentes da mesma chave compartilham uma única chamada ao loader,
    inclusive entre ``get_one`` e ``get_many``.

    Attributes:
        caches: Regiões da operação, em ordem de consulta
        sync: Se a busca na origem é deduplicada por chave
    """

    def __init__(
        self,
        caches: Sequence[Cache],
        *,
        sync: bool = False,
        metrics: CacheMetrics | None = None,
        deduplication: DeduplicationManager | None = None,
        thread_deduplication: ThreadDeduplicationManager | None = None,
    ) -> None:
        if not caches:
            raise ValueError("Pelo menos uma região de cache é necessária")
        if sync and len(caches) != 1:
            raise ValueError(f"sync=True exige exatamente uma região, recebeu {len(caches)}")
        invalid = [cache.name for cache in caches if REGION_SEPARATOR in cache.name]
        if invalid:
            raise ValueError(f"Nomes de região não podem conter {REGION_SEPARATOR!r}: {invalid}")
        self._caches = tuple(caches)
        self._sync = sync
        self._metrics = metrics or NoOpMetrics()
        self._deduplication = deduplication or DeduplicationManager()
        self._thread_deduplication = thread_deduplication or ThreadDeduplicationManager()

    @property
    def caches(self) -> tuple[Cache, ...]:
        return self._caches

    @property
    def sync(self) -> bool:
        return self._sync

    # ========== Métricas e logs ==========

    def _record_reads(
        self,
        hit_regions: Mapping[Hashable, str],
        misses: Sequence[Hashable],
        latency: float,
    ) -> None:
        for key, region in hit_regions.items():
            logger.debug(f"Cache hit: {metric_key(region, key)}")
            self._metrics.record_hit(metric_key(region, key), latency)
        region = self._caches[0].name
        for key in misses:
            logger.debug(f"Cache miss: {metric_key(region, key)}")
            self._metrics.record_miss(metric_key(region, key), latency)

    def _read_failed(self, cache: Cache, keys: Sequence[Hashable], error: Exception) -> None:
        logger.warning(f"Erro ao buscar cache na região '{cache.name}': {error}")
        for key in keys:
            self._metrics.record_error(metric_key(cache.name, key), error)

    def _written(self, cache: Cache, entries: Mapping[Hashable, Any]) -> None:
        for key in entries:
            self._metrics.record_write(metric_key(cache.name, key), 0)

    def _write_failed(self, cache: Cache, entries: Mapping[Hashable, Any], error: Exception) -> None:
        logger.warning(f"Erro ao salvar cache na região '{cache.name}': {error}")
        for key in entries:
            self._metrics.record_error(metric_key(cache.name, key), error)

    # ========== Síncrono ==========

    def _read(self, keys: Sequence[Hashable], record: bool = True) -> dict[Hashable, Any]:
        found: dict[Hashable, Any] = {}
        hit_regions: dict[Hashable, str] = {}
        remaining = list(keys)
        start = time.perf_counter()
        for cache in self._caches:
            if not remaining:
                break
            try:
                hits = cache.get_many(remaining)
            except Exception as e:
                self._read_failed(cache, remaining, e)
                continue
            for key in remaining:
                if key in hits:
                    found[key] = hits[key]
                    hit_regions[key] = cache.name
            remaining = [key for key in remaining if key not in hits]
        if record:
            self._record_reads(hit_regions, remaining, time.perf_counter() - start)
        return found

    def _write(self, entries: Mapping[Hashable, Any], unless: Unless | None) -> None:
        entries = _storable(entries, unless)
        if not entries:
            return
        for cache in self._caches:
            try:
                cache.put_many(entries)
            except Exception as e:
                self._write_failed(cache, entries, e)
            else:
                self._written(cache, entries)

    def _load_one(self, key: Hashable, loader: Callable[[], Any], unless: Unless | None, recheck: bool) -> Any:
        if recheck:
            found = self._read([key], record=False)
            if key in found:
                return found[key]
        value = loader()
        if value is None:
            return NOT_FOUND
        self._write({key: value}, unless)
        return value

    def _load_many(
        self,
        keys: Sequence[Hashable],
        loader: Callable[[list[Hashable]], Mapping[Hashable, Any] | None],
        unless: Unless | None,
        recheck: bool,
    ) -> dict[Hashable, Any]:
        result: dict[Hashable, Any] = {}
        if recheck:
            result = self._read(keys, record=False)
            keys = [key for key in keys if key not in result]
            if not keys:
                return result
        fetched = _select(keys, loader(list(keys)))
        self._write(fetched, unless)
        result.update(fetched)
        return result

    def get_one(self, key: Hashable, loader: Callable[[], Any], unless: Unless | None = None) -> Any:
        """Retorna o valor da chave, chamando ``loader()`` apenas no miss.

        Um loader que retorna None indica "não encontrado": None é
        retornado e nada é gravado.
        """
        found = self._read([key])
        if key in found:
            return found[key]
        if self._sync:
            value = self._thread_deduplication.deduplicate(key, lambda: self._load_one(key, loader, unless, True))
        else:
            value = self._load_one(key, loader, unless, False)
        return None if value is NOT_FOUND else value

    def get_many(
        self,
        keys: Iterable[Hashable],
        loader: Callable[[list[Hashable]], Mapping[Hashable, Any] | None],
        unless: Unless | None = None,
    ) -> dict[Hashable, Any]:
        """Retorna os pares encontrados, com no máximo uma chamada a ``loader``.

        ``loader`` recebe apenas as chaves ausentes do cache, na ordem em
        que foram pedidas. Chaves que nem o cache nem o loader têm são
        omitidas do resultado.
        """
        requested = unique_keys(keys)
        if not requested:
            return {}
        found = self._read(requested)
        misses = [key for key in requested if key not in found]
        if misses:
            if self._sync:
                loaded = self._thread_deduplication.deduplicate_many(
                    misses, lambda claimed: self._load_many(claimed, loader, unless, True)
                )
            else:
                loaded = self._load_many(misses, loader, unless, False)
            found.update((key, value) for key, value in loaded.items() if value is not NOT_FOUND)
        return {key: found[key] for key in requested if key in found}

    def get_all(self, loader: Callable[[], Mapping[Hashable, Any]], unless: Unless | None = None) -> Mapping[Hashable, Any]:
        """Chama ``loader()`` sempre e grava cada par retornado."""
        loaded = loader()
        if loaded:
            self._write(loaded, unless)
        return loaded

    def invalidate(self) -> None:
        """Limpa todas as regiões da operação."""
        for cache in self._caches:
            cache.clear()
            logger.debug(f"Região invalidada: {cache.name}")

    # ========== Assíncrono ==========

    async def _read_async(self, keys: Sequence[Hashable], record: bool = True) -> dict[Hashable, Any]:
        found: dict[Hashable, Any] = {}
        hit_regions: dict[Hashable, str] = {}
        remaining = list(keys)
        start = time.perf_counter()
        for cache in self._caches:
            if not remaining:
                break
            try:
                hits = await cache.get_many_async(remaining)
            except Exception as e:
                self._read_failed(cache, remaining, e)
                continue
            for key in remaining:
                if key in hits:
                    found[key] = hits[key]
                    hit_regions[key] = cache.name
            remaining = [key for key in remaining if key not in hits]
        if record:
            self._record_reads(hit_regions, remaining, time.perf_counter() - start)
        return found

    async def _write_async(self, entries: Mapping[Hashable, Any], unless: Unless | None) -> None:
        entries = _storable(entries, unless)
        if not entries:
            return
        for cache in self._caches:
            try:
                await cache.put_many_async(entries)
            except Exception as e:
                self._write_failed(cache, entries, e)
            else:
                self._written(cache, entries)

    async def _load_one_async(
        self,
        key: Hashable,
        loader: Callable[[], Awaitable[Any]],
        unless: Unless | None,
        recheck: bool,
    ) -> Any:
        if recheck:
            found = await self._read_async([key], record=False)
            if key in found:
                return found[key]
        value = await loader()
        if value is None:
            return NOT_FOUND
        await self._write_async({key: value}, unless)
        return value

    async def _load_many_async(
        self,
        keys: Sequence[Hashable],
        loader: Callable[[list[Hashable]], Awaitable[Mapping[Hashable, Any] | None]],
        unless: Unless | None,
        recheck: bool,
    ) -> dict[Hashable, Any]:
        result: dict[Hashable, Any] = {}
        if recheck:
            result = await self._read_async(keys, record=False)
            keys = [key for key in keys if key not in result]
            if not keys:
                return result
        fetched = _select(keys, await loader(list(keys)))
        await self._write_async(fetched, unless)
        result.update(fetched)
        return result

    async def get_one_async(
        self,
        key: Hashable,
        loader: Callable[[], Awaitable[Any]],
        unless: Unless | None = None,
    ) -> Any:
        """Versão assíncrona de ``get_one``."""
        found = await self._read_async([key])
        if key in found:
            return found[key]
        if self._sync:

            async def compute() -> Any:
                return await self._load_one_async(key, loader, unless, True)

            value = await self._deduplication.deduplicate(key, compute)
        else:
            value = await self._load_one_async(key, loader, unless, False)
        return None if value is NOT_FOUND else value

    async def get_many_async(
        self,
        keys: Iterable[Hashable],
        loader: Callable[[list[Hashable]], Awaitable[Mapping[Hashable, Any] | None]],
        unless: Unless | None = None,
    ) -> dict[Hashable, Any]:
        """Versão assíncrona de ``get_many``."""
        requested = unique_keys(keys)
        if not requested:
            return {}
        found = await self._read_async(requested)
        misses = [key for key in requested if key not in found]
        if misses:
            if self._sync:

                async def compute(claimed: Sequence[Hashable]) -> dict[Hashable, Any]:
                    return await self._load_many_async(claimed, loader, unless, True)

                loaded = await self._deduplication.deduplicate_many(misses, compute)
            else:
                loaded = await self._load_many_async(misses, loader, unless, False)
            found.update((key, value) for key, value in loaded.items() if value is not NOT_FOUND)
        return {key: found[key] for key in requested if key in found}

    async def get_all_async(
        self,
        loader: Callable[[], Awaitable[Mapping[Hashable, Any]]],
        unless: Unless | None = None,
    ) -> Mapping[Hashable, Any]:
        """Versão assíncrona de ``get_all``."""
        loaded = await loader()
        if loaded:
            await self._write_async(loaded, unless)
        return loaded

    async def invalidate_async(self) -> None:
        """Versão assíncrona de ``invalidate``."""
        for cache in self._caches:
            await cache.clear_async()
            logger.debug(f"Região invalidada: {cache.name}")
