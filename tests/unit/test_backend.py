"""Testes para o backend Dapr State."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from dapr_collection_cache.backend import DaprStateBackend, sidecar_url
from dapr_collection_cache.exceptions import CacheConnectionError, CacheError, CacheKeyError


def _response(status_code: int, json_data: object = None, content: bytes = b"x") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.content = content
    response.json.return_value = json_data
    return response


class TestSidecarUrl:
    """Testes para sidecar_url."""

    def test_default_url(self) -> None:
        """Deve retornar URL padrão."""
        with patch.dict("os.environ", {}, clear=True):
            assert sidecar_url() == "http://127.0.0.1:3500"

    def test_custom_host_and_port(self) -> None:
        """Deve usar variáveis de ambiente."""
        with patch.dict("os.environ", {"DAPR_HTTP_HOST": "custom", "DAPR_HTTP_PORT": "3501"}):
            assert sidecar_url() == "http://custom:3501"


class TestDaprStateBackend:
    """Testes para DaprStateBackend."""

    def test_init_with_store_name(self) -> None:
        """Deve inicializar com nome do store."""
        backend = DaprStateBackend("my-store")
        assert backend.store_name == "my-store"

    def test_init_empty_store_name_raises_error(self) -> None:
        """Deve lançar erro com store_name vazio."""
        with pytest.raises(CacheKeyError):
            DaprStateBackend("")

    def test_init_with_custom_url(self) -> None:
        """Deve aceitar URL customizada."""
        backend = DaprStateBackend("store", dapr_url="http://custom:3501")
        assert backend.base_url == "http://custom:3501"

    def test_state_and_bulk_urls(self) -> None:
        """Deve construir URLs da API de state."""
        backend = DaprStateBackend("mystore")
        assert backend._state_url() == "/v1.0/state/mystore"
        assert backend._state_url("mykey") == "/v1.0/state/mystore/mykey"
        assert backend._bulk_url() == "/v1.0/state/mystore/bulk"

    def test_encode_value(self) -> None:
        """Deve codificar valor em base64."""
        backend = DaprStateBackend("store")
        assert backend._encode_value(b"hello") == "aGVsbG8="

    def test_decode_value(self) -> None:
        """Deve decodificar base64, bytes e None."""
        backend = DaprStateBackend("store")
        assert backend._decode_value("aGVsbG8=") == b"hello"
        assert backend._decode_value(b"hello") == b"hello"
        assert backend._decode_value(None) is None

    def test_decode_value_invalid_base64_returns_utf8(self) -> None:
        """Deve retornar string como UTF-8 se não for base64 válido."""
        backend = DaprStateBackend("store")
        assert backend._decode_value("not-base64!") == b"not-base64!"

    def test_decode_value_non_string_non_bytes_returns_none(self) -> None:
        """Deve retornar None para tipos não suportados."""
        backend = DaprStateBackend("store")
        assert backend._decode_value(12345) is None

    def test_save_payload_with_ttl(self) -> None:
        """Deve incluir ttlInSeconds como string nos metadados."""
        backend = DaprStateBackend("store")
        payload = backend._save_payload({"k": b"hello"}, 60)
        assert payload == [{"key": "k", "value": "aGVsbG8=", "metadata": {"ttlInSeconds": "60"}}]

    def test_save_payload_without_ttl(self) -> None:
        """Sem TTL o item não deve ter metadados."""
        backend = DaprStateBackend("store")
        payload = backend._save_payload({"k": b"hello"}, None)
        assert payload == [{"key": "k", "value": "aGVsbG8="}]

    def test_bulk_payload(self) -> None:
        """Deve enviar chaves e paralelismo."""
        backend = DaprStateBackend("store", bulk_parallelism=4)
        assert backend._bulk_payload(["a", "b"]) == {"keys": ["a", "b"], "parallelism": 4}

    def test_get_empty_key_raises_error(self) -> None:
        """Deve lançar erro para chave vazia no get."""
        backend = DaprStateBackend("store")
        with pytest.raises(CacheKeyError):
            backend.get("")

    def test_set_many_empty_key_raises_error(self) -> None:
        """Deve lançar erro para chave vazia no set_many."""
        backend = DaprStateBackend("store")
        with pytest.raises(CacheKeyError):
            backend.set_many({"ok": b"1", "": b"2"}, 3600)

    def test_context_manager_sync(self) -> None:
        """Deve funcionar como context manager síncrono."""
        with DaprStateBackend("store") as backend:
            assert backend.store_name == "store"

    @pytest.mark.asyncio
    async def test_context_manager_async(self) -> None:
        """Deve funcionar como context manager assíncrono."""
        async with DaprStateBackend("store") as backend:
            assert backend.store_name == "store"


@pytest.fixture
def sync_client() -> MagicMock:
    return MagicMock(spec=httpx.Client)


@pytest.fixture
def sync_backend(sync_client: MagicMock) -> DaprStateBackend:
    backend = DaprStateBackend("store", dapr_url="http://test:3500")
    backend._sync_client = sync_client
    return backend


@pytest.fixture
def async_client() -> MagicMock:
    client = MagicMock(spec=httpx.AsyncClient)
    client.request = AsyncMock()
    return client


@pytest.fixture
def async_backend(async_client: MagicMock) -> DaprStateBackend:
    backend = DaprStateBackend("store", dapr_url="http://test:3500")
    backend._async_client = async_client
    return backend


class TestDaprStateBackendHttpSync:
    """Testes para operações HTTP síncronas."""

    def test_get_cache_hit(self, sync_backend: DaprStateBackend, sync_client: MagicMock) -> None:
        """Deve retornar valor decodificado para hit."""
        sync_client.request.return_value = _response(200, "aGVsbG8=")

        assert sync_backend.get("mykey") == b"hello"
        sync_client.request.assert_called_once_with("GET", "/v1.0/state/store/mykey")

    @pytest.mark.parametrize(
        "response",
        [_response(204, content=b""), _response(200, content=b""), _response(500)],
        ids=["no-content", "empty-body", "server-error"],
    )
    def test_get_miss(self, sync_backend: DaprStateBackend, sync_client: MagicMock, response: MagicMock) -> None:
        """Deve retornar None quando o sidecar não devolve valor."""
        sync_client.request.return_value = response
        assert sync_backend.get("mykey") is None

    def test_get_invalid_json_returns_none(self, sync_backend: DaprStateBackend, sync_client: MagicMock) -> None:
        """Deve retornar None se a resposta não for JSON."""
        response = _response(200)
        response.json.side_effect = ValueError("invalid json")
        sync_client.request.return_value = response

        assert sync_backend.get("mykey") is None

    def test_get_strict_hit(self, sync_backend: DaprStateBackend, sync_client: MagicMock) -> None:
        """Deve retornar o valor decodificado na leitura estrita."""
        sync_client.request.return_value = _response(200, "aGVsbG8=")

        assert sync_backend.get_strict("mykey") == b"hello"
        sync_client.request.assert_called_once_with("GET", "/v1.0/state/store/mykey")

    @pytest.mark.parametrize(
        "response",
        [_response(204, content=b""), _response(200, content=b"")],
        ids=["no-content", "empty-body"],
    )
    def test_get_strict_absent_key(
        self, sync_backend: DaprStateBackend, sync_client: MagicMock, response: MagicMock
    ) -> None:
        """Só a chave ausente deve virar None na leitura estrita."""
        sync_client.request.return_value = response
        assert sync_backend.get_strict("mykey") is None

    def test_get_strict_unexpected_status_raises(self, sync_backend: DaprStateBackend, sync_client: MagicMock) -> None:
        """Status inesperado deve levantar CacheError em vez de parecer ausência."""
        sync_client.request.return_value = _response(500)

        with pytest.raises(CacheError, match="500"):
            sync_backend.get_strict("mykey")

    def test_get_strict_invalid_json_raises(self, sync_backend: DaprStateBackend, sync_client: MagicMock) -> None:
        """Resposta que não é JSON deve levantar CacheError."""
        response = _response(200)
        response.json.side_effect = ValueError("invalid json")
        sync_client.request.return_value = response

        with pytest.raises(CacheError):
            sync_backend.get_strict("mykey")

    @pytest.mark.parametrize(
        "error",
        [httpx.ReadTimeout("Timeout"), httpx.ConnectError("Connection refused")],
        ids=["timeout", "connect-error"],
    )
    def test_get_strict_transport_failure_raises(
        self, sync_backend: DaprStateBackend, sync_client: MagicMock, error: Exception
    ) -> None:
        """Timeout e falha de conexão devem levantar CacheConnectionError."""
        sync_client.request.side_effect = error

        with pytest.raises(CacheConnectionError):
            sync_backend.get_strict("mykey")

    def test_get_many_returns_found_keys(self, sync_backend: DaprStateBackend, sync_client: MagicMock) -> None:
        """Deve retornar apenas as chaves encontradas, ignorando erros por item."""
        sync_client.request.return_value = _response(
            200, [{"key": "a", "data": "aGVsbG8="}, {"key": "b"}, {"key": "c", "error": "boom"}]
        )

        assert sync_backend.get_many(["a", "b", "c"]) == {"a": b"hello"}
        sync_client.request.assert_called_once_with(
            "POST", "/v1.0/state/store/bulk", json={"keys": ["a", "b", "c"], "parallelism": 10}
        )

    def test_get_many_without_keys_skips_sidecar(self, sync_backend: DaprStateBackend, sync_client: MagicMock) -> None:
        """Não deve chamar o sidecar sem chaves."""
        assert sync_backend.get_many([]) == {}
        sync_client.request.assert_not_called()

    def test_get_many_unexpected_status(self, sync_backend: DaprStateBackend, sync_client: MagicMock) -> None:
        """Deve retornar dict vazio para status inesperado."""
        sync_client.request.return_value = _response(500)
        assert sync_backend.get_many(["a"]) == {}

    def test_set_posts_entry_with_ttl(self, sync_backend: DaprStateBackend, sync_client: MagicMock) -> None:
        """Deve salvar a entrada com ttlInSeconds."""
        sync_client.request.return_value = _response(204)

        assert sync_backend.set("mykey", b"hello", 3600) is True
        sync_client.request.assert_called_once_with(
            "POST",
            "/v1.0/state/store",
            json=[{"key": "mykey", "value": "aGVsbG8=", "metadata": {"ttlInSeconds": "3600"}}],
        )

    def test_set_many_single_request(self, sync_backend: DaprStateBackend, sync_client: MagicMock) -> None:
        """Deve salvar todas as entradas em uma única chamada."""
        sync_client.request.return_value = _response(201)

        assert sync_backend.set_many({"a": b"1", "b": b"2"}, 60) is True
        sync_client.request.assert_called_once()
        assert [item["key"] for item in sync_client.request.call_args.kwargs["json"]] == ["a", "b"]

    def test_set_many_without_entries_skips_sidecar(
        self, sync_backend: DaprStateBackend, sync_client: MagicMock
    ) -> None:
        """Sem entradas não há o que salvar."""
        assert sync_backend.set_many({}, 60) is True
        sync_client.request.assert_not_called()

    def test_set_rejected(self, sync_backend: DaprStateBackend, sync_client: MagicMock) -> None:
        """Deve retornar False quando o sidecar rejeita a gravação."""
        sync_client.request.return_value = _response(500)
        assert sync_backend.set("mykey", b"value", 3600) is False

    @pytest.mark.parametrize(
        "call",
        [
            lambda backend: backend.get("mykey"),
            lambda backend: backend.get_many(["a"]),
            lambda backend: backend.set("mykey", b"value", 60),
        ],
        ids=["get", "get_many", "set"],
    )
    def test_transport_error_raises_connection_error(
        self, sync_backend: DaprStateBackend, sync_client: MagicMock, call
    ) -> None:
        """Falhas de transporte devem virar CacheConnectionError."""
        sync_client.request.side_effect = httpx.ConnectError("Connection refused")

        with pytest.raises(CacheConnectionError):
            call(sync_backend)

    def test_protocol_error_raises_connection_error(
        self, sync_backend: DaprStateBackend, sync_client: MagicMock
    ) -> None:
        """Erros de protocolo também são falhas de transporte."""
        sync_client.request.side_effect = httpx.RemoteProtocolError("Server disconnected")

        with pytest.raises(CacheConnectionError):
            sync_backend.get("mykey")

    @pytest.mark.parametrize(
        "call, fallback",
        [
            (lambda backend: backend.get("mykey"), None),
            (lambda backend: backend.get_many(["a"]), {}),
            (lambda backend: backend.set("mykey", b"value", 60), False),
        ],
        ids=["get", "get_many", "set"],
    )
    def test_timeout_returns_fallback(
        self, sync_backend: DaprStateBackend, sync_client: MagicMock, call, fallback
    ) -> None:
        """Timeout deve ser logado e devolver o valor neutro da operação."""
        sync_client.request.side_effect = httpx.ReadTimeout("Timeout")
        assert call(sync_backend) == fallback

    def test_client_created_lazily(self) -> None:
        """Deve criar o cliente HTTP apenas no primeiro uso."""
        backend = DaprStateBackend("store", dapr_url="http://test:3500", timeout=2.0)
        assert backend._sync_client is None

        with patch("dapr_collection_cache.backend.httpx.Client") as client_class:
            client = backend._get_sync_client()
            assert backend._get_sync_client() is client

        client_class.assert_called_once_with(base_url="http://test:3500", timeout=2.0)

    def test_close_with_client(self, sync_backend: DaprStateBackend, sync_client: MagicMock) -> None:
        """Deve fechar cliente sync."""
        sync_backend.close()
        sync_client.close.assert_called_once()
        assert sync_backend._sync_client is None

    def test_close_without_client(self) -> None:
        """Deve funcionar mesmo sem cliente."""
        DaprStateBackend("store", dapr_url="http://test:3500").close()


class TestDaprStateBackendHttpAsync:
    """Testes para operações HTTP assíncronas."""

    @pytest.mark.asyncio
    async def test_get_async_cache_hit(self, async_backend: DaprStateBackend, async_client: MagicMock) -> None:
        """Deve retornar valor decodificado para hit."""
        async_client.request.return_value = _response(200, "aGVsbG8=")

        assert await async_backend.get_async("mykey") == b"hello"
        async_client.request.assert_awaited_once_with("GET", "/v1.0/state/store/mykey")

    @pytest.mark.asyncio
    async def test_get_async_miss(self, async_backend: DaprStateBackend, async_client: MagicMock) -> None:
        """Deve retornar None para status 204."""
        async_client.request.return_value = _response(204, content=b"")
        assert await async_backend.get_async("mykey") is None

    @pytest.mark.asyncio
    async def test_get_strict_async(self, async_backend: DaprStateBackend, async_client: MagicMock) -> None:
        """Deve distinguir chave ausente de timeout na leitura estrita async."""
        async_client.request.return_value = _response(204, content=b"")
        assert await async_backend.get_strict_async("mykey") is None

        async_client.request.side_effect = httpx.ConnectTimeout("Timeout")
        with pytest.raises(CacheConnectionError):
            await async_backend.get_strict_async("mykey")

    @pytest.mark.asyncio
    async def test_get_async_empty_key_raises_error(self) -> None:
        """Deve lançar erro para chave vazia no get_async."""
        with pytest.raises(CacheKeyError):
            await DaprStateBackend("store").get_async("")

    @pytest.mark.asyncio
    async def test_get_many_async(self, async_backend: DaprStateBackend, async_client: MagicMock) -> None:
        """Deve buscar em lote de forma assíncrona."""
        async_client.request.return_value = _response(200, [{"key": "a", "data": "aGVsbG8="}])

        assert await async_backend.get_many_async(["a", "b"]) == {"a": b"hello"}
        async_client.request.assert_awaited_once_with(
            "POST", "/v1.0/state/store/bulk", json={"keys": ["a", "b"], "parallelism": 10}
        )

    @pytest.mark.asyncio
    async def test_set_many_async_without_ttl(self, async_backend: DaprStateBackend, async_client: MagicMock) -> None:
        """Sem TTL as entradas vão sem metadados."""
        async_client.request.return_value = _response(204)

        assert await async_backend.set_many_async({"a": b"hello"}, None) is True
        async_client.request.assert_awaited_once_with(
            "POST", "/v1.0/state/store", json=[{"key": "a", "value": "aGVsbG8="}]
        )

    @pytest.mark.asyncio
    async def test_set_async_rejected(self, async_backend: DaprStateBackend, async_client: MagicMock) -> None:
        """Deve retornar False para set falho."""
        async_client.request.return_value = _response(500)
        assert await async_backend.set_async("mykey", b"value", 3600) is False

    @pytest.mark.asyncio
    async def test_connect_error(self, async_backend: DaprStateBackend, async_client: MagicMock) -> None:
        """Deve lançar CacheConnectionError em erro de conexão."""
        async_client.request.side_effect = httpx.ConnectError("Connection refused")

        with pytest.raises(CacheConnectionError):
            await async_backend.set_many_async({"a": b"1"}, 60)

    @pytest.mark.asyncio
    async def test_timeout(self, async_backend: DaprStateBackend, async_client: MagicMock) -> None:
        """Deve devolver o valor neutro em timeout."""
        async_client.request.side_effect = httpx.ConnectTimeout("Timeout")

        assert await async_backend.get_async("mykey") is None
        assert await async_backend.get_many_async(["a"]) == {}

    @pytest.mark.asyncio
    async def test_aclose_with_client(self, async_backend: DaprStateBackend, async_client: MagicMock) -> None:
        """Deve fechar cliente async."""
        async_client.aclose = AsyncMock()

        await async_backend.aclose()

        async_client.aclose.assert_awaited_once()
        assert async_backend._async_client is None
