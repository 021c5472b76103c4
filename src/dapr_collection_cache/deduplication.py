"""Deduplicação de cache miss (thundering herd protection).

Uma chamada "reivindica" as chaves que ninguém está computando e aguarda
as demais. Uma busca em lote reivindica todas as chaves que vai buscar, de
modo que chamadas de chave única concorrentes aguardam o lote em vez de
repetir a busca.
"""

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable, Hashable, Mapping, Sequence
from concurrent.futures import Future
from typing import Any, Final, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _NotFound:
    """Sentinela para chave que a computação não retornou."""

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


NOT_FOUND: Final = _NotFound()


def _consume_exception(future: asyncio.Future[Any]) -> None:
    # Evita "Future exception was never retrieved" quando não há waiters
    if not future.cancelled():
        future.exception()


class DeduplicationManager:
    """Gerenciador de deduplicação para corrotinas.

    Quando múltiplas chamadas concorrentes tentam computar o mesmo valor
    (cache miss), apenas uma computação é executada e o resultado é
    compartilhado com todas as chamadas aguardando.

    Exemplo:
        ```python
        manager = DeduplicationManager()

        async def expensive_compute():
            await asyncio.sleep(1)
            return "result"

        # Apenas uma computação é executada, mesmo com 10 chamadas
        results = await asyncio.gather(*[
            manager.deduplicate("key", expensive_compute)
            for _ in range(10)
        ])
        ```
    """

    def __init__(self) -> None:
        """Inicializa o gerenciador de deduplicação."""
        self._pending: dict[Hashable, asyncio.Future[Any]] = {}
        # asyncio.Lock é criado lazy para evitar "no current event loop" em Python 3.10+
        # quando a classe é instanciada antes de um event loop existir (ex: tempo de wiring)
        self._lock: asyncio.Lock | None = None

    def _get_lock(self) -> asyncio.Lock:
        """Obtém ou cria lock assíncrono (lazy init)."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def deduplicate(
        self,
        key: Hashable,
        compute_func: Callable[[], Awaitable[T]],
    ) -> T:
        """Executa computação de uma chave com deduplicação.

        Se a chave já está sendo computada (inclusive por um lote), aguarda e
        retorna o mesmo resultado; ``NOT_FOUND`` quando o lote não a trouxe.

        Raises:
            Exception: Propaga exceções da computação para todos os waiters
        """

        async def compute_one(keys: Sequence[Hashable]) -> dict[Hashable, Any]:
            return {key: await compute_func()}

        results = await self.deduplicate_many([key], compute_one)
        return results[key]

    async def deduplicate_many(
        self,
        keys: Sequence[Hashable],
        compute_func: Callable[[Sequence[Hashable]], Awaitable[Mapping[Hashable, Any]]],
    ) -> dict[Hashable, Any]:
        """Executa computação em lote com deduplicação por chave.

        ``compute_func`` recebe apenas as chaves reivindicadas por esta
        chamada; chaves já em andamento são aguardadas depois.

        Args:
            keys: Chaves desejadas (sem duplicatas)
            compute_func: Função async que busca as chaves reivindicadas

        Returns:
            Valor de cada chave pedida, ou ``NOT_FOUND``
        """
        owned: dict[Hashable, asyncio.Future[Any]] = {}
        waiting: dict[Hashable, asyncio.Future[Any]] = {}

        async with self._get_lock():
            loop = asyncio.get_running_loop()
            for key in keys:
                pending_future = self._pending.get(key)
                if pending_future is None:
                    future = loop.create_future()
                    future.add_done_callback(_consume_exception)
                    self._pending[key] = future
                    owned[key] = future
                else:
                    waiting[key] = pending_future

        if waiting:
            logger.debug(f"Aguardando computação existente para: {list(waiting)}")

        results: dict[Hashable, Any] = {}
        if owned:
            try:
                logger.debug(f"Iniciando computação para: {list(owned)}")
                computed = await compute_func(list(owned))
            except asyncio.CancelledError:
                for future in owned.values():
                    future.cancel()
                raise
            except Exception as e:
                # Propaga a exceção para todos os waiters
                for future in owned.values():
                    if not future.done():
                        future.set_exception(e)
                raise
            else:
                for key, future in owned.items():
                    value = computed.get(key, NOT_FOUND)
                    if not future.done():
                        future.set_result(value)
                    results[key] = value
            finally:
                async with self._get_lock():
                    for key, future in owned.items():
                        if self._pending.get(key) is future:
                            del self._pending[key]

        # Aguarda FORA do lock; shield evita que o cancelamento de um waiter
        # cancele a computação compartilhada
        for key, future in waiting.items():
            results[key] = await asyncio.shield(future)

        return {key: results[key] for key in keys}

    async def is_pending(self, key: Hashable) -> bool:
        """Verifica se há computação pendente para a chave."""
        async with self._get_lock():
            return key in self._pending

    async def pending_count(self) -> int:
        """Retorna número de computações pendentes."""
        async with self._get_lock():
            return len(self._pending)

    async def clear(self) -> int:
        """Limpa computações pendentes (cancela todas).

        Returns:
            Número de computações canceladas
        """
        async with self._get_lock():
            count = len(self._pending)
            for future in self._pending.values():
                if not future.done():
                    future.cancel()
            self._pending.clear()
            return count


class ThreadDeduplicationManager:
    """Equivalente de ``DeduplicationManager`` para chamadas síncronas em threads."""

    def __init__(self) -> None:
        self._pending: dict[Hashable, Future[Any]] = {}
        self._lock = threading.Lock()

    def deduplicate(self, key: Hashable, compute_func: Callable[[], T]) -> T:
        """Executa computação de uma chave com deduplicação."""
        results = self.deduplicate_many([key], lambda keys: {key: compute_func()})
        return results[key]

    def deduplicate_many(
        self,
        keys: Sequence[Hashable],
        compute_func: Callable[[Sequence[Hashable]], Mapping[Hashable, Any]],
    ) -> dict[Hashable, Any]:
        """Executa computação em lote com deduplicação por chave.

        Returns:
            Valor de cada chave pedida, ou ``NOT_FOUND``
        """
        owned: dict[Hashable, Future[Any]] = {}
        waiting: dict[Hashable, Future[Any]] = {}

        with self._lock:
            for key in keys:
                pending_future = self._pending.get(key)
                if pending_future is None:
                    future: Future[Any] = Future()
                    self._pending[key] = future
                    owned[key] = future
                else:
                    waiting[key] = pending_future

        if waiting:
            logger.debug(f"Aguardando computação existente para: {list(waiting)}")

        results: dict[Hashable, Any] = {}
        if owned:
            try:
                logger.debug(f"Iniciando computação para: {list(owned)}")
                computed = compute_func(list(owned))
            except BaseException as e:
                for future in owned.values():
                    if not future.done():
                        future.set_exception(e)
                raise
            else:
                for key, future in owned.items():
                    value = computed.get(key, NOT_FOUND)
                    if not future.done():
                        future.set_result(value)
                    results[key] = value
            finally:
                with self._lock:
                    for key, future in owned.items():
                        if self._pending.get(key) is future:
                            del self._pending[key]

        for key, future in waiting.items():
            results[key] = future.result()

        return {key: results[key] for key in keys}

    def is_pending(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._pending

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def clear(self) -> int:
        """Limpa computações pendentes (cancela todas).

        Returns:
            Número de computações canceladas
        """
        with self._lock:
            count = len(self._pending)
            for future in self._pending.values():
                future.cancel()
            self._pending.clear()
            return count
