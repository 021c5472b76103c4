"""Defaults de cache por tipo declarante (``@cache_config``)."""

import logging
from threading import Lock

from .annotation_source import describe_type, find_type_config
from .operations import CacheOperationBuilder

logger = logging.getLogger(__name__)


class DefaultCacheConfig:
    """Defaults de um tipo, calculados uma única vez no primeiro uso.

    O cálculo é idempotente: chamadas concorrentes chegam ao mesmo resultado.
    Os quatro campos são publicados juntos, depois de lidos da anotação.
    """

    def __init__(self, target: type) -> None:
        self._target = target
        self._cache_names: tuple[str, ...] = ()
        self._key_generator = ""
        self._cache_manager = ""
        self._cache_resolver = ""
        self._initialized = False

    @property
    def target(self) -> type:
        return self._target

    @property
    def cache_names(self) -> tuple[str, ...]:
        self._ensure_initialized()
        return self._cache_names

    @property
    def key_generator(self) -> str:
        self._ensure_initialized()
        return self._key_generator

    @property
    def cache_manager(self) -> str:
        self._ensure_initialized()
        return self._cache_manager

    @property
    def cache_resolver(self) -> str:
        self._ensure_initialized()
        return self._cache_resolver

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        annotation = find_type_config(self._target)
        if annotation is not None:
            self._cache_names = annotation.cache_names
            self._key_generator = annotation.key_generator
            self._cache_manager = annotation.cache_manager
            self._cache_resolver = annotation.cache_resolver
            logger.debug(f"Defaults de cache carregados para {describe_type(self._target)}: {annotation}")
        self._initialized = True

    def apply_default(self, builder: CacheOperationBuilder) -> None:
        """Aplica os defaults do tipo ao builder.

        Ordem:
        1. cache_names: só quando a operação não declarou nenhum
        2. key_generator: só sem ``key`` nem ``key_generator`` próprios
        3. localização: nada é herdado se a operação já definiu cache_manager
           ou cache_resolver; senão o resolver default tem prioridade sobre
           o manager default
        """
        self._ensure_initialized()

        if not builder.cache_names and self._cache_names:
            builder.set_cache_names(self._cache_names)

        if not builder.key and not builder.key_generator and self._key_generator:
            builder.key_generator = self._key_generator

        if builder.cache_manager or builder.cache_resolver:
            # A operação escolheu sua estratégia; nada é herdado
            pass
        elif self._cache_resolver:
            builder.cache_resolver = self._cache_resolver
        elif self._cache_manager:
            builder.cache_manager = self._cache_manager


class CacheConfigDefaults:
    """Registro memoizado de ``DefaultCacheConfig`` por tipo.

    O primeiro acesso a um tipo calcula sob lock (quem chega depois aguarda
    e reutiliza o mesmo objeto); acessos seguintes não usam lock.
    """

    def __init__(self) -> None:
        self._configs: dict[type, DefaultCacheConfig] = {}
        self._lock = Lock()

    def for_type(self, target: type) -> DefaultCacheConfig:
        config = self._configs.get(target)
        if config is not None:
            return config
        with self._lock:
            config = self._configs.get(target)
            if config is None:
                config = DefaultCacheConfig(target)
                config._ensure_initialized()
                self._configs[target] = config
        return config

    def clear(self) -> None:
        with self._lock:
            self._configs.clear()
