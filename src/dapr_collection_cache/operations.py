"""
Cache operation descriptors.

A descriptor is the resolved configuration of one cache-enabled method:
built once at wiring time from a declarative annotation plus the type-level
defaults, validated, and immutable afterwards.
"""

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class CacheOperation:
    """Base descriptor shared by every kind of cache operation.

    Empty strings mean "not set".
    """

    name: str
    cache_names: tuple[str, ...] = ()
    key: str = ""
    key_generator: str = ""
    condition: str = ""
    unless: str = ""
    cache_manager: str = ""
    cache_resolver: str = ""
    sync: bool = False


@dataclass(frozen=True)
class CacheableOperation(CacheOperation):
    """Single-key read-through operation (``get_one``)."""


@dataclass(frozen=True)
class CollectionCacheableOperation(CacheOperation):
    """Per-element operation over key collections (``get_many`` / ``get_all``)."""


class CacheOperationBuilder:
    """Mutable builder for cache operation descriptors.

    Mirrors the descriptor fields with setters so defaults can be applied
    step by step before the immutable descriptor is produced.
    """

    operation_class: type[CacheOperation] = CacheableOperation

    def __init__(self) -> None:
        self.name = ""
        self.cache_names: tuple[str, ...] = ()
        self.key = ""
        self.key_generator = ""
        self.condition = ""
        self.unless = ""
        self.cache_manager = ""
        self.cache_resolver = ""
        self.sync = False

    def set_cache_names(self, cache_names: Iterable[str]) -> None:
        self.cache_names = tuple(dict.fromkeys(name for name in cache_names if name))

    def build(self) -> CacheOperation:
        return self.operation_class(
            name=self.name,
            cache_names=self.cache_names,
            key=self.key,
            key_generator=self.key_generator,
            condition=self.condition,
            unless=self.unless,
            cache_manager=self.cache_manager,
            cache_resolver=self.cache_resolver,
            sync=self.sync,
        )


class CacheableOperationBuilder(CacheOperationBuilder):
    operation_class = CacheableOperation


class CollectionCacheableOperationBuilder(CacheOperationBuilder):
    operation_class = CollectionCacheableOperation
