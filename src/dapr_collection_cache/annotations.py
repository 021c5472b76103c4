"""Decorators declarativos de cache.

Os decorators deste módulo não alteram o comportamento da função decorada:
apenas registram um conjunto de atributos (a "anotação") que é lido depois,
na montagem do proxy de cache (ver ``interceptor.create_caching_proxy``).

Uso:
    ```python
    @cache_config(cache_names=("items",))
    class ItemRepository:
        @cacheable()
        def find_by_id(self, item_id: str) -> Item | None: ...

        @collection_cacheable()
        def find_by_ids(self, item_ids: set[str]) -> dict[str, Item]: ...

        @collection_cacheable()
        def find_all(self) -> dict[str, Item]: ...
    ```
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from .constants import CACHE_ANNOTATIONS_ATTR, CACHE_CONFIG_ATTR, KIND_CACHEABLE, KIND_COLLECTION_CACHEABLE

T = TypeVar("T")


@dataclass(frozen=True)
class CacheAnnotation:
    """Atributos brutos de um ``@cacheable``/``@collection_cacheable``.

    Strings vazias significam "não definido".
    """

    kind: str
    cache_names: tuple[str, ...] = ()
    key: str = ""
    key_generator: str = ""
    condition: str = ""
    unless: str = ""
    cache_manager: str = ""
    cache_resolver: str = ""
    sync: bool = False


@dataclass(frozen=True)
class CacheConfigAnnotation:
    """Defaults de cache declarados no nível do tipo."""

    cache_names: tuple[str, ...] = ()
    key_generator: str = ""
    cache_manager: str = ""
    cache_resolver: str = ""


def _normalize_names(cache_names: str | Iterable[str]) -> tuple[str, ...]:
    """Normaliza nomes de cache para tupla ordenada e sem repetições."""
    if isinstance(cache_names, str):
        cache_names = (cache_names,)
    return tuple(dict.fromkeys(name for name in cache_names if name))


def _annotate(target: T, annotation: CacheAnnotation) -> T:
    # staticmethod/classmethod: anota a função subjacente
    holder = getattr(target, "__func__", target)
    existing: tuple[CacheAnnotation, ...] = holder.__dict__.get(CACHE_ANNOTATIONS_ATTR, ())
    # Decorators são aplicados de baixo para cima; mantém a ordem de declaração
    setattr(holder, CACHE_ANNOTATIONS_ATTR, (annotation, *existing))
    return target


def _make_annotation(
    kind: str,
    cache_names: str | Iterable[str],
    key: str,
    key_generator: str,
    condition: str,
    unless: str,
    cache_manager: str,
    cache_resolver: str,
    sync: bool,
) -> CacheAnnotation:
    return CacheAnnotation(
        kind=kind,
        cache_names=_normalize_names(cache_names),
        key=key,
        key_generator=key_generator,
        condition=condition,
        unless=unless,
        cache_manager=cache_manager,
        cache_resolver=cache_resolver,
        sync=sync,
    )


def cacheable(
    cache_names: str | Iterable[str] = (),
    *,
    key: str = "",
    key_generator: str = "",
    condition: str = "",
    unless: str = "",
    cache_manager: str = "",
    cache_resolver: str = "",
    sync: bool = False,
) -> Callable[[T], T]:
    """Marca um método (ou todos os métodos públicos de uma classe) como cache por chave única.

    Args:
        cache_names: Regiões de cache alvo (default: as de ``@cache_config``)
        key: Expressão que calcula a chave a partir dos argumentos
        key_generator: Nome de um KeyGenerator registrado
        condition: Expressão avaliada antes da chamada; falsa ignora o cache
        unless: Expressão avaliada sobre ``result``; verdadeira não armazena
        cache_manager: Nome de um CacheManager registrado
        cache_resolver: Nome de um CacheResolver registrado
        sync: Garante no máximo uma computação em andamento por chave

    Returns:
        Decorator que registra a anotação e devolve o alvo inalterado
    """
    annotation = _make_annotation(
        KIND_CACHEABLE, cache_names, key, key_generator, condition, unless, cache_manager, cache_resolver, sync
    )
    return lambda target: _annotate(target, annotation)


def collection_cacheable(
    cache_names: str | Iterable[str] = (),
    *,
    key: str = "",
    key_generator: str = "",
    condition: str = "",
    unless: str = "",
    cache_manager: str = "",
    cache_resolver: str = "",
    sync: bool = False,
) -> Callable[[T], T]:
    """Marca um método que retorna um mapeamento chave→valor para cache por elemento.

    O método decorado deve receber uma única coleção de chaves (busca em lote)
    ou nenhum argumento (busca completa). Os parâmetros têm o mesmo significado
    de ``cacheable``.
    """
    annotation = _make_annotation(
        KIND_COLLECTION_CACHEABLE,
        cache_names,
        key,
        key_generator,
        condition,
        unless,
        cache_manager,
        cache_resolver,
        sync,
    )
    return lambda target: _annotate(target, annotation)


def cache_config(
    cache_names: str | Iterable[str] = (),
    *,
    key_generator: str = "",
    cache_manager: str = "",
    cache_resolver: str = "",
) -> Callable[[type[T]], type[T]]:
    """Declara defaults de cache compartilhados pelas operações de uma classe."""
    annotation = CacheConfigAnnotation(
        cache_names=_normalize_names(cache_names),
        key_generator=key_generator,
        cache_manager=cache_manager,
        cache_resolver=cache_resolver,
    )

    def decorator(cls: type[T]) -> type[T]:
        setattr(cls, CACHE_CONFIG_ATTR, annotation)
        return cls

    return decorator


def get_declared_annotations(element: Any) -> tuple[CacheAnnotation, ...]:
    """Retorna as anotações declaradas diretamente em uma função ou classe."""
    holder = getattr(element, "__func__", element)
    return tuple(getattr(holder, "__dict__", {}).get(CACHE_ANNOTATIONS_ATTR, ()))
