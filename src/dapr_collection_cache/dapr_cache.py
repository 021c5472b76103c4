"""Regiões de cache sobre o Dapr State Store."""

import logging
import uuid
from collections.abc import Hashable, Mapping, Sequence
from threading import Lock
from typing import Any

from .backend import DaprStateBackend
from .cache import MISSING
from .config import CacheSettings
from .constants import GENERATION_KEY_SUFFIX, INITIAL_GENERATION
from .exceptions import CacheError
from .key_generator import StateKeyEncoder
from .protocols import Serializer
from .serializer import MsgPackSerializer

logger = logging.getLogger(__name__)


class DaprCache:
    """Região de cache persistida no Dapr State Store.

    Cada entrada vira uma chave ``{prefix}:{região}:{geração}:{hash}``.
    ``clear()`` grava uma geração nova para a região: entradas antigas
    deixam de ser alcançáveis e expiram pelo TTL do Dapr.

    Attributes:
        name: Nome da região
        ttl_seconds: TTL das entradas
    """

    def __init__(
        self,
        name: str,
        backend: DaprStateBackend,
        serializer: Serializer,
        encoder: StateKeyEncoder,
        ttl_seconds: int,
    ) -> None:
        self._name = name
        self._backend = backend
        self._serializer = serializer
        self._encoder = encoder
        self._ttl_seconds = ttl_seconds
        self._generation_key = encoder.generation_key(name, GENERATION_KEY_SUFFIX)

    @property
    def name(self) -> str:
        return self._name

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def _decode_generation(self, data: bytes | None) -> str:
        return data.decode("utf-8") if data else INITIAL_GENERATION

    # Só a chave ausente vale como geração inicial; falhas de leitura propagam
    def _current_generation(self) -> str:
        return self._decode_generation(self._backend.get_strict(self._generation_key))

    async def _current_generation_async(self) -> str:
        return self._decode_generation(await self._backend.get_strict_async(self._generation_key))

    def _state_keys(self, generation: str, keys: Sequence[Hashable]) -> dict[str, Hashable]:
        return {self._encoder.encode(self._name, generation, key): key for key in keys}

    def _serialize_entries(self, generation: str, entries: Mapping[Hashable, Any]) -> dict[str, bytes]:
        return {
            self._encoder.encode(self._name, generation, key): self._serializer.serialize(value)
            for key, value in entries.items()
        }

    def _deserialize_found(self, state_keys: Mapping[str, Hashable], found: Mapping[str, bytes]) -> dict[Hashable, Any]:
        return {state_keys[state_key]: self._serializer.deserialize(data) for state_key, data in found.items()}

    def _raise_unsaved(self, count: int) -> None:
        raise CacheError(f"Falha ao salvar {count} entrada(s) na região '{self._name}'")

    # ========== Síncrono ==========

    def get(self, key: Hashable) -> Any:
        found = self.get_many([key])
        return found.get(key, MISSING)

    def get_many(self, keys: Sequence[Hashable]) -> dict[Hashable, Any]:
        if not keys:
            return {}
        generation = self._current_generation()
        state_keys = self._state_keys(generation, keys)
        if len(state_keys) == 1:
            state_key = next(iter(state_keys))
            data = self._backend.get(state_key)
            found = {state_key: data} if data is not None else {}
        else:
            found = self._backend.get_many(list(state_keys))
        return self._deserialize_found(state_keys, found)

    def put(self, key: Hashable, value: Any) -> None:
        self.put_many({key: value})

    def put_many(self, entries: Mapping[Hashable, Any]) -> None:
        if not entries:
            return
        generation = self._current_generation()
        if not self._backend.set_many(self._serialize_entries(generation, entries), self._ttl_seconds):
            self._raise_unsaved(len(entries))

    def clear(self) -> None:
        generation = uuid.uuid4().hex
        if not self._backend.set(self._generation_key, generation.encode("utf-8"), None):
            raise CacheError(f"Falha ao limpar a região '{self._name}'")
        logger.debug(f"Região '{self._name}' limpa (nova geração {generation})")

    # ========== Assíncrono ==========

    async def get_async(self, key: Hashable) -> Any:
        found = await self.get_many_async([key])
        return found.get(key, MISSING)

    async def get_many_async(self, keys: Sequence[Hashable]) -> dict[Hashable, Any]:
        if not keys:
            return {}
        generation = await self._current_generation_async()
        state_keys = self._state_keys(generation, keys)
        if len(state_keys) == 1:
            state_key = next(iter(state_keys))
            data = await self._backend.get_async(state_key)
            found = {state_key: data} if data is not None else {}
        else:
            found = await self._backend.get_many_async(list(state_keys))
        return self._deserialize_found(state_keys, found)

    async def put_async(self, key: Hashable, value: Any) -> None:
        await self.put_many_async({key: value})

    async def put_many_async(self, entries: Mapping[Hashable, Any]) -> None:
        if not entries:
            return
        generation = await self._current_generation_async()
        if not await self._backend.set_many_async(self._serialize_entries(generation, entries), self._ttl_seconds):
            self._raise_unsaved(len(entries))

    async def clear_async(self) -> None:
        generation = uuid.uuid4().hex
        if not await self._backend.set_async(self._generation_key, generation.encode("utf-8"), None):
            raise CacheError(f"Falha ao limpar a região '{self._name}'")
        logger.debug(f"Região '{self._name}' limpa (nova geração {generation})")


# Backends por store_name para reutilização dos clientes HTTP
_backends: dict[str, DaprStateBackend] = {}


def _get_backend(store_name: str) -> DaprStateBackend:
    """Obtém ou cria backend para o store (setdefault é atômico em CPython)."""
    backend = _backends.get(store_name)
    if backend is None:
        backend = _backends.setdefault(store_name, DaprStateBackend(store_name))
    return backend


class DaprCacheManager:
    """Fornece regiões ``DaprCache`` de um state store, criadas sob demanda.

    Store, TTL e prefixo seguem a precedência parâmetro > variável de
    ambiente > default (ver ``CacheSettings``).
    """

    def __init__(
        self,
        store_name: str | None = None,
        ttl_seconds: int | None = None,
        key_prefix: str | None = None,
        serializer: Serializer | None = None,
        backend: DaprStateBackend | None = None,
    ) -> None:
        self._store_name = CacheSettings.resolve_store_name(store_name)
        self._ttl_seconds = CacheSettings.resolve_ttl_seconds(ttl_seconds)
        self._encoder = StateKeyEncoder(CacheSettings.resolve_key_prefix(key_prefix))
        self._serializer = serializer or MsgPackSerializer()
        self._backend = backend or _get_backend(self._store_name)
        self._caches: dict[str, DaprCache] = {}
        self._lock = Lock()

    @property
    def store_name(self) -> str:
        return self._store_name

    @property
    def backend(self) -> DaprStateBackend:
        return self._backend

    def get_cache(self, name: str) -> DaprCache:
        cache = self._caches.get(name)
        if cache is None:
            with self._lock:
                cache = self._caches.get(name)
                if cache is None:
                    cache = DaprCache(name, self._backend, self._serializer, self._encoder, self._ttl_seconds)
                    self._caches[name] = cache
                    logger.debug(f"Região '{name}' criada no store '{self._store_name}'")
        return cache
