"""Geração de chaves de cache e codificação de chaves para o state store."""

import hashlib
import json
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from .exceptions import CacheKeyError


@dataclass(frozen=True)
class SimpleKey:
    """Chave composta por vários argumentos (ou nenhum)."""

    params: tuple[Any, ...] = ()


EMPTY_KEY = SimpleKey()


class SimpleKeyGenerator:
    """Gerador de chaves padrão.

    - sem argumentos: ``EMPTY_KEY``
    - um único argumento posicional: o próprio argumento
    - demais casos: ``SimpleKey`` com os argumentos e kwargs ordenados

    Com um único argumento, ``find_by_id(k)`` e o elemento ``k`` de
    ``find_by_ids([k])`` caem na mesma entrada do cache.
    """

    def generate(
        self,
        target: Any,
        func: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> Hashable:
        if not kwargs:
            if not args:
                return EMPTY_KEY
            if len(args) == 1:
                return args[0]
        return SimpleKey(tuple(args) + tuple(sorted(kwargs.items())))


class StateKeyEncoder:
    """Converte chaves Python arbitrárias em chaves string determinísticas.

    Formato: ``{prefix}:{region}:{generation}:{hash}``, onde o hash é o
    SHA256 (16 primeiros dígitos hex) da chave normalizada em JSON.

    Attributes:
        prefix: Prefixo para todas as chaves geradas
    """

    def __init__(self, prefix: str = "cache") -> None:
        """Inicializa o encoder.

        Raises:
            ValueError: Se prefix for vazio
        """
        if not prefix:
            raise ValueError("Prefix não pode ser vazio")
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        """Prefixo das chaves."""
        return self._prefix

    def encode(self, region: str, generation: str, key: Hashable) -> str:
        """Constrói a chave de estado de uma entrada."""
        return f"{self._prefix}:{region}:{generation}:{self.hash_key(key)}"

    def generation_key(self, region: str, suffix: str) -> str:
        """Chave onde a geração corrente de uma região é guardada."""
        return f"{self._prefix}:{region}:{suffix}"

    def hash_key(self, key: Hashable) -> str:
        """Calcula hash SHA256 da chave.

        Raises:
            CacheKeyError: Se a chave contém um tipo sem forma estável
        """
        serialized = json.dumps({"type": type(key).__qualname__, "key": self._normalize(key)}, sort_keys=True)
        return hashlib.sha256(serialized.encode()).hexdigest()[:16]

    def _normalize(self, obj: Any) -> Any:
        """Normaliza objeto para serialização JSON.

        Aceita primitivos, ``SimpleKey``, coleções desses tipos e alguns
        tipos com representação textual estável (UUID, Decimal, datas, Enum).
        Qualquer outro tipo levanta ``CacheKeyError``: ``str()`` de objetos
        arbitrários não distingue chaves diferentes nem é estável entre
        processos.
        """
        if obj is None or isinstance(obj, (bool, int, float, str)):
            return obj
        if isinstance(obj, bytes):
            return obj.hex()
        if isinstance(obj, SimpleKey):
            return {"params": self._normalize(obj.params)}
        if isinstance(obj, Enum):
            return [type(obj).__qualname__, self._normalize(obj.value)]
        if isinstance(obj, (UUID, Decimal)):
            return str(obj)
        if isinstance(obj, (datetime, date, time)):
            return obj.isoformat()
        if isinstance(obj, (list, tuple)):
            return [self._normalize(item) for item in obj]
        if isinstance(obj, (set, frozenset, dict)):
            items = obj.items() if isinstance(obj, dict) else obj
            normalized = [self._normalize(list(item) if isinstance(obj, dict) else item) for item in items]
            # Tipos mistos ({1, "a"}) não são comparáveis entre si
            return sorted(normalized, key=lambda x: (type(x).__name__, json.dumps(x, sort_keys=True)))
        raise CacheKeyError(
            f"Tipo de chave não suportado: {type(obj).__qualname__}. "
            "Use primitivos, tuplas, SimpleKey ou tipos com forma textual estável",
            key=repr(obj),
        )
