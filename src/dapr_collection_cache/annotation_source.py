"""Descoberta de anotações de cache em classes e métodos.

Dois modos de busca:
- merged: percorre ``cls.__mro__`` (classe, superclasses e mixins/interfaces)
- local: considera apenas o que foi declarado no próprio elemento
"""

from dataclasses import dataclass

from .annotations import CacheAnnotation, CacheConfigAnnotation, get_declared_annotations
from .constants import CACHE_CONFIG_ATTR


@dataclass(frozen=True)
class MethodElement:
    """Referência a um método pelo tipo através do qual é resolvido."""

    owner: type
    name: str

    def __str__(self) -> str:
        return f"{describe_type(self.owner)}.{self.name}"


AnnotatedElement = type | MethodElement


def describe_type(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


def describe_element(element: AnnotatedElement) -> str:
    """Nome de diagnóstico de um elemento anotado."""
    if isinstance(element, MethodElement):
        return str(element)
    return describe_type(element)


def _declared_on(klass: type, element: AnnotatedElement) -> tuple[CacheAnnotation, ...]:
    if isinstance(element, MethodElement):
        member = klass.__dict__.get(element.name)
        if member is None:
            return ()
        return get_declared_annotations(member)
    return get_declared_annotations(klass)


def _owner(element: AnnotatedElement) -> type:
    return element.owner if isinstance(element, MethodElement) else element


def find_merged_annotations(element: AnnotatedElement, kind: str) -> tuple[CacheAnnotation, ...]:
    """Busca anotações do tipo ``kind`` em toda a hierarquia do elemento.

    A ordem segue o MRO (o próprio tipo primeiro). Anotações iguais
    declaradas em mais de um nível aparecem uma única vez.
    """
    found: dict[CacheAnnotation, None] = {}
    for klass in _owner(element).__mro__:
        for annotation in _declared_on(klass, element):
            if annotation.kind == kind:
                found.setdefault(annotation, None)
    return tuple(found)


def find_local_annotations(element: AnnotatedElement, kind: str) -> tuple[CacheAnnotation, ...]:
    """Busca anotações do tipo ``kind`` declaradas diretamente no elemento."""
    local = _declared_on(_owner(element), element)
    return tuple(dict.fromkeys(annotation for annotation in local if annotation.kind == kind))


def find_type_config(cls: type) -> CacheConfigAnnotation | None:
    """Retorna o ``@cache_config`` mais próximo na hierarquia de ``cls``."""
    for klass in cls.__mro__:
        annotation = klass.__dict__.get(CACHE_CONFIG_ATTR)
        if isinstance(annotation, CacheConfigAnnotation):
            return annotation
    return None
