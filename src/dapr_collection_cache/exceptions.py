"""Exceções do dapr-collection-cache."""


class CacheError(Exception):
    """Erro base para operações de cache."""

    def __init__(self, message: str, key: str | None = None) -> None:
        self.key = key
        super().__init__(message)


class CacheConnectionError(CacheError):
    """Erro de conexão com o sidecar Dapr."""

    pass


class CacheSerializationError(CacheError):
    """Erro de serialização/deserialização de dados."""

    pass


class CacheKeyError(CacheError):
    """Erro relacionado à chave de cache (vazia, inválida, etc.)."""

    pass


class CacheConfigurationError(CacheError):
    """Configuração declarativa de cache inválida.

    Levantado durante a montagem (wiring) de um tipo anotado. Não deve ser
    tratado: aborta a inicialização do componente afetado.

    Attributes:
        element: Nome do elemento anotado que originou o erro
    """

    def __init__(self, message: str, element: str | None = None) -> None:
        self.element = element
        super().__init__(message)
