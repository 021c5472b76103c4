"""Conversão de anotações declarativas em descritores de operação validados."""

import logging

from .annotation_source import (
    AnnotatedElement,
    MethodElement,
    describe_element,
    find_local_annotations,
    find_merged_annotations,
)
from .annotations import CacheAnnotation
from .constants import KIND_CACHEABLE, KIND_COLLECTION_CACHEABLE
from .defaults import CacheConfigDefaults, DefaultCacheConfig
from .operations import (
    CacheableOperationBuilder,
    CacheOperation,
    CacheOperationBuilder,
    CollectionCacheableOperationBuilder,
)
from .validators import validate_cache_operation

logger = logging.getLogger(__name__)

_BUILDERS: dict[str, type[CacheOperationBuilder]] = {
    KIND_CACHEABLE: CacheableOperationBuilder,
    KIND_COLLECTION_CACHEABLE: CollectionCacheableOperationBuilder,
}


def declaring_type(cls: type, name: str) -> type:
    for klass in cls.__mro__:
        if name in klass.__dict__:
            return klass
    return cls


class CacheAnnotationParser:
    """Resolve as operações de cache de um tipo ou método.

    Primeiro resolve com a visão de toda a hierarquia. Se isso produzir mais
    de uma operação, resolve de novo apenas com o que foi declarado no
    próprio elemento: se houver resultado local, ele substitui por completo
    o resultado herdado.

    Attributes:
        kinds: Tipos de anotação tratados, na ordem em que são resolvidos
    """

    def __init__(
        self,
        defaults: CacheConfigDefaults | None = None,
        kinds: tuple[str, ...] = (KIND_CACHEABLE, KIND_COLLECTION_CACHEABLE),
    ) -> None:
        self._defaults = defaults or CacheConfigDefaults()
        self.kinds = kinds

    def parse_type_annotations(self, cls: type) -> tuple[CacheOperation, ...]:
        """Operações declaradas no nível da classe."""
        return self._parse(self._defaults.for_type(cls), cls)

    def parse_method_annotations(self, cls: type, name: str) -> tuple[CacheOperation, ...]:
        """Operações declaradas em um método, resolvido através de ``cls``.

        Os defaults vêm do tipo que declara o método (o primeiro no MRO que o define).
        """
        return self._parse(self._defaults.for_type(declaring_type(cls, name)), MethodElement(cls, name))

    def _parse(self, defaults: DefaultCacheConfig, element: AnnotatedElement) -> tuple[CacheOperation, ...]:
        operations: list[CacheOperation] = []
        for kind in self.kinds:
            operations.extend(self._parse_kind(defaults, element, kind))
        return tuple(operations)

    def _parse_kind(
        self, defaults: DefaultCacheConfig, element: AnnotatedElement, kind: str
    ) -> tuple[CacheOperation, ...]:
        operations = self._parse_annotations(defaults, element, kind, local_only=False)
        if len(operations) > 1:
            # Declarações locais sobrescrevem as herdadas
            local_operations = self._parse_annotations(defaults, element, kind, local_only=True)
            if local_operations:
                logger.debug(f"Operações locais sobrescrevem as herdadas em {describe_element(element)}")
                return local_operations
        return operations

    def _parse_annotations(
        self, defaults: DefaultCacheConfig, element: AnnotatedElement, kind: str, local_only: bool
    ) -> tuple[CacheOperation, ...]:
        if local_only:
            annotations = find_local_annotations(element, kind)
        else:
            annotations = find_merged_annotations(element, kind)
        return tuple(self.build_operation(element, defaults, annotation) for annotation in annotations)

    def build_operation(
        self, element: AnnotatedElement, defaults: DefaultCacheConfig, annotation: CacheAnnotation
    ) -> CacheOperation:
        """Monta, aplica defaults e valida uma operação.

        Raises:
            CacheConfigurationError: Se a operação resultante for inválida
        """
        name = describe_element(element)
        builder = _BUILDERS[annotation.kind]()
        builder.name = name
        builder.set_cache_names(annotation.cache_names)
        builder.condition = annotation.condition
        builder.unless = annotation.unless
        builder.key = annotation.key
        builder.key_generator = annotation.key_generator
        builder.cache_manager = annotation.cache_manager
        builder.cache_resolver = annotation.cache_resolver
        builder.sync = annotation.sync

        defaults.apply_default(builder)
        operation = builder.build()
        validate_cache_operation(name, operation)
        return operation
