"""Acesso ao Dapr State Store pela API HTTP do sidecar.

Endpoints usados (``{store}`` é o nome do state store):

- ``GET /v1.0/state/{store}/{key}``: uma chave
- ``POST /v1.0/state/{store}/bulk``: várias chaves em uma chamada
- ``POST /v1.0/state/{store}``: grava uma ou mais entradas

Valores trafegam como base64 dentro do JSON.
"""

import asyncio
import base64
import binascii
import logging
import os
from collections.abc import Mapping, Sequence
from threading import Lock
from typing import Any

import httpx

from .constants import DEFAULT_BULK_PARALLELISM
from .exceptions import CacheConnectionError, CacheError, CacheKeyError

logger = logging.getLogger(__name__)

DAPR_HTTP_HOST_ENV = "DAPR_HTTP_HOST"
DAPR_HTTP_PORT_ENV = "DAPR_HTTP_PORT"
DEFAULT_SIDECAR_URL = "http://127.0.0.1:3500"
DEFAULT_HTTP_TIMEOUT = 5.0


def sidecar_url() -> str:
    """URL do sidecar a partir de ``DAPR_HTTP_HOST``/``DAPR_HTTP_PORT``."""
    host = os.getenv(DAPR_HTTP_HOST_ENV)
    port = os.getenv(DAPR_HTTP_PORT_ENV)
    if host is None and port is None:
        return DEFAULT_SIDECAR_URL
    return f"http://{host or '127.0.0.1'}:{port or 3500}"


class DaprStateBackend:
    """Cliente do state store de um sidecar Dapr, com métodos sync e async.

    Os clientes httpx são criados no primeiro uso de cada modo e reutilizados
    até ``close``/``aclose``.

    Args:
        store_name: Componente de state store configurado no Dapr
        timeout: Timeout das requisições, em segundos
        dapr_url: URL do sidecar; por padrão vem do ambiente
        bulk_parallelism: Paralelismo pedido ao sidecar nas buscas em lote

    Raises:
        CacheKeyError: Se store_name for vazio
    """

    def __init__(
        self,
        store_name: str,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        dapr_url: str | None = None,
        bulk_parallelism: int = DEFAULT_BULK_PARALLELISM,
    ) -> None:
        if not store_name:
            raise CacheKeyError("store_name não pode ser vazio")

        self._store_name = store_name
        self._client_options = {"base_url": dapr_url or sidecar_url(), "timeout": timeout}
        self._bulk_parallelism = bulk_parallelism

        self._sync_client: httpx.Client | None = None
        self._async_client: httpx.AsyncClient | None = None
        self._client_lock = Lock()
        # Criado no primeiro uso async: o construtor pode rodar fora de um event loop
        self._async_lock: asyncio.Lock | None = None

    @property
    def store_name(self) -> str:
        return self._store_name

    @property
    def base_url(self) -> str:
        """URL do sidecar usada pelos clientes."""
        return self._client_options["base_url"]

    def _get_sync_client(self) -> httpx.Client:
        with self._client_lock:
            if self._sync_client is None:
                self._sync_client = httpx.Client(**self._client_options)
            return self._sync_client

    async def _get_async_client(self) -> httpx.AsyncClient:
        if self._async_lock is None:
            self._async_lock = asyncio.Lock()
        async with self._async_lock:
            if self._async_client is None:
                self._async_client = httpx.AsyncClient(**self._client_options)
            return self._async_client

    def _state_url(self, key: str | None = None) -> str:
        base = f"/v1.0/state/{self._store_name}"
        return f"{base}/{key}" if key else base

    def _bulk_url(self) -> str:
        return self._state_url("bulk")

    def _encode_value(self, value: bytes) -> str:
        return base64.b64encode(value).decode("ascii")

    def _decode_value(self, data: Any) -> bytes | None:
        """Converte o ``data`` devolvido pelo sidecar em bytes.

        Strings que não são base64 válido são devolvidas como UTF-8 (valores
        gravados por outros clientes); tipos JSON não textuais viram None.
        """
        if data is None or isinstance(data, bytes):
            return data
        if not isinstance(data, str):
            return None
        try:
            return base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError):
            return data.encode("utf-8")

    def _check_key(self, key: str) -> None:
        if not key:
            raise CacheKeyError("Chave não pode ser vazia", key=key)

    def _save_payload(self, entries: Mapping[str, bytes], ttl_seconds: int | None) -> list[dict[str, Any]]:
        payload = []
        for key, value in entries.items():
            self._check_key(key)
            item: dict[str, Any] = {"key": key, "value": self._encode_value(value)}
            # Sem TTL o item não expira
            if ttl_seconds is not None:
                item["metadata"] = {"ttlInSeconds": str(ttl_seconds)}
            payload.append(item)
        return payload

    def _bulk_payload(self, keys: Sequence[str]) -> dict[str, Any]:
        for key in keys:
            self._check_key(key)
        return {"keys": list(keys), "parallelism": self._bulk_parallelism}

    def _parse_get_response(self, key: str, response: httpx.Response) -> bytes | None:
        if response.status_code not in (200, 204):
            logger.warning(f"Status {response.status_code} do Dapr ao buscar {key}")
            return None
        if response.status_code == 204 or not response.content:
            logger.debug(f"Chave ausente no state store: {key}")
            return None
        try:
            return self._decode_value(response.json())
        except ValueError as e:
            logger.warning(f"Resposta do Dapr para {key} não é JSON: {e}")
            return None

    def _parse_bulk_response(self, response: httpx.Response) -> dict[str, bytes]:
        if response.status_code != 200:
            logger.warning(f"Resposta inesperada do Dapr na busca em lote: {response.status_code}")
            return {}
        try:
            items = response.json()
        except ValueError as e:
            logger.warning(f"Erro ao decodificar resposta da busca em lote: {e}")
            return {}

        found: dict[str, bytes] = {}
        for item in items or ():
            if item.get("error"):
                logger.warning(f"Erro do Dapr para chave {item.get('key')}: {item['error']}")
                continue
            value = self._decode_value(item.get("data"))
            if value is not None:
                found[item["key"]] = value
        logger.debug(f"Busca em lote: {len(found)}/{len(items or ())} chaves encontradas")
        return found

    def _is_saved(self, response: httpx.Response, count: int) -> bool:
        if response.status_code in (200, 201, 204):
            logger.debug(f"{count} entrada(s) gravada(s) no state store")
            return True
        logger.warning(f"Status {response.status_code} do Dapr ao gravar {count} entrada(s)")
        return False

    # ========== Transporte ==========

    def _request(
        self, method: str, url: str, action: str, key: str | None = None, **kwargs: Any
    ) -> httpx.Response | None:
        """Envia a requisição ao sidecar; None em timeout.

        Raises:
            CacheConnectionError: Em falha de transporte (conexão, protocolo)
        """
        try:
            return self._get_sync_client().request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout ao {action}: {e}")
            return None
        except httpx.TransportError as e:
            raise CacheConnectionError(f"Falha ao {action} no sidecar Dapr: {e}", key=key) from e

    async def _request_async(
        self, method: str, url: str, action: str, key: str | None = None, **kwargs: Any
    ) -> httpx.Response | None:
        """Versão assíncrona de ``_request``."""
        try:
            client = await self._get_async_client()
            return await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout ao {action}: {e}")
            return None
        except httpx.TransportError as e:
            raise CacheConnectionError(f"Falha ao {action} no sidecar Dapr: {e}", key=key) from e

    def _require_get_response(self, key: str, response: httpx.Response | None) -> bytes | None:
        """Como ``_parse_get_response``, mas só devolve None se a chave não existe."""
        if response is None:
            raise CacheConnectionError(f"Timeout ao ler a chave {key}", key=key)
        if response.status_code == 204 or (response.status_code == 200 and not response.content):
            return None
        if response.status_code != 200:
            raise CacheError(f"Status {response.status_code} do Dapr ao ler a chave {key}", key=key)
        try:
            return self._decode_value(response.json())
        except ValueError as e:
            raise CacheError(f"Resposta do Dapr para {key} não é JSON: {e}", key=key) from e

    # ========== Métodos Síncronos ==========

    def get(self, key: str) -> bytes | None:
        """Busca valor do cache (síncrono).

        Returns:
            Valor em bytes ou None se não encontrado

        Raises:
            CacheConnectionError: Se não conseguir falar com o sidecar
        """
        self._check_key(key)
        response = self._request("GET", self._state_url(key), f"buscar a chave {key}", key=key)
        return None if response is None else self._parse_get_response(key, response)

    def get_strict(self, key: str) -> bytes | None:
        """Busca um valor distinguindo chave ausente de leitura que falhou.

        Returns:
            Valor em bytes ou None apenas se a chave não existe

        Raises:
            CacheConnectionError: Em timeout ou falha de transporte
            CacheError: Em status inesperado ou resposta inválida
        """
        self._check_key(key)
        response = self._request("GET", self._state_url(key), f"buscar a chave {key}", key=key)
        return self._require_get_response(key, response)

    def get_many(self, keys: Sequence[str]) -> dict[str, bytes]:
        """Busca vários valores em uma única chamada (síncrono).

        Returns:
            Mapeamento apenas com as chaves encontradas
        """
        if not keys:
            return {}
        payload = self._bulk_payload(keys)
        response = self._request("POST", self._bulk_url(), f"buscar {len(keys)} chaves", json=payload)
        return {} if response is None else self._parse_bulk_response(response)

    def set(self, key: str, value: bytes, ttl_seconds: int | None) -> bool:
        """Armazena um valor (síncrono)."""
        return self.set_many({key: value}, ttl_seconds)

    def set_many(self, entries: Mapping[str, bytes], ttl_seconds: int | None) -> bool:
        """Armazena vários valores em uma única chamada (síncrono).

        Returns:
            True se todos foram aceitos pelo sidecar
        """
        if not entries:
            return True
        payload = self._save_payload(entries, ttl_seconds)
        response = self._request("POST", self._state_url(), f"salvar {len(payload)} chave(s)", json=payload)
        return response is not None and self._is_saved(response, len(payload))

    # ========== Métodos Assíncronos ==========

    async def get_async(self, key: str) -> bytes | None:
        """Busca valor do cache (assíncrono)."""
        self._check_key(key)
        response = await self._request_async("GET", self._state_url(key), f"buscar a chave {key}", key=key)
        return None if response is None else self._parse_get_response(key, response)

    async def get_strict_async(self, key: str) -> bytes | None:
        """Versão assíncrona de ``get_strict``."""
        self._check_key(key)
        response = await self._request_async("GET", self._state_url(key), f"buscar a chave {key}", key=key)
        return self._require_get_response(key, response)

    async def get_many_async(self, keys: Sequence[str]) -> dict[str, bytes]:
        """Busca vários valores em uma única chamada (assíncrono)."""
        if not keys:
            return {}
        payload = self._bulk_payload(keys)
        response = await self._request_async("POST", self._bulk_url(), f"buscar {len(keys)} chaves", json=payload)
        return {} if response is None else self._parse_bulk_response(response)

    async def set_async(self, key: str, value: bytes, ttl_seconds: int | None) -> bool:
        """Armazena um valor (assíncrono)."""
        return await self.set_many_async({key: value}, ttl_seconds)

    async def set_many_async(self, entries: Mapping[str, bytes], ttl_seconds: int | None) -> bool:
        """Armazena vários valores em uma única chamada (assíncrono)."""
        if not entries:
            return True
        payload = self._save_payload(entries, ttl_seconds)
        response = await self._request_async(
            "POST", self._state_url(), f"salvar {len(payload)} chave(s)", json=payload
        )
        return response is not None and self._is_saved(response, len(payload))

    # ========== Gerenciamento de Recursos ==========

    def close(self) -> None:
        """Fecha cliente HTTP síncrono."""
        if self._sync_client is not None:
            self._sync_client.close()
            self._sync_client = None

    async def aclose(self) -> None:
        """Fecha cliente HTTP assíncrono."""
        if self._async_client is not None:
            await self._async_client.aclose()
            self._async_client = None

    def __enter__(self) -> "DaprStateBackend":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    async def __aenter__(self) -> "DaprStateBackend":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()
