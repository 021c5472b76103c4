"""
Ahead-of-time table of cache operations per class.

The table for a class is computed once, on first request, and looked up by
method name afterwards. Method-level declarations win; methods without any
fall back to the class-level declarations.
"""

import inspect
import logging
from collections.abc import Mapping
from threading import Lock
from types import FunctionType, MappingProxyType

from .annotation_source import describe_type
from .operations import CacheOperation
from .parser import CacheAnnotationParser

logger = logging.getLogger(__name__)


def _public_methods(cls: type) -> list[str]:
    names = []
    for name in dir(cls):
        if name.startswith("_"):
            continue
        member = inspect.getattr_static(cls, name)
        if isinstance(member, FunctionType | staticmethod | classmethod):
            names.append(name)
    return names


class CacheOperationSource:
    """Resolves and memoizes the cache operations of every public method of a class."""

    def __init__(self, parser: CacheAnnotationParser | None = None) -> None:
        self._parser = parser or CacheAnnotationParser()
        self._tables: dict[type, Mapping[str, tuple[CacheOperation, ...]]] = {}
        self._lock = Lock()

    def get_operation_table(self, cls: type) -> Mapping[str, tuple[CacheOperation, ...]]:
        """Return ``{method name: operations}`` for the cached methods of ``cls``.

        Raises:
            CacheConfigurationError: If any declaration on ``cls`` is invalid
        """
        table = self._tables.get(cls)
        if table is not None:
            return table
        with self._lock:
            table = self._tables.get(cls)
            if table is None:
                table = self._build_table(cls)
                self._tables[cls] = table
        return table

    def get_operations(self, cls: type, name: str) -> tuple[CacheOperation, ...]:
        return self.get_operation_table(cls).get(name, ())

    def _build_table(self, cls: type) -> Mapping[str, tuple[CacheOperation, ...]]:
        type_operations = self._parser.parse_type_annotations(cls)
        table: dict[str, tuple[CacheOperation, ...]] = {}
        for name in _public_methods(cls):
            operations = self._parser.parse_method_annotations(cls, name) or type_operations
            if operations:
                table[name] = operations
        logger.debug(f"Operações de cache resolvidas para {describe_type(cls)}: {sorted(table)}")
        return MappingProxyType(table)
