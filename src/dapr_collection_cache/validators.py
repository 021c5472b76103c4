"""
Validation of cache operation descriptors and settings.

Descriptor checks are fail-fast: the first violated rule raises and the
remaining rules are not evaluated.
"""

from .constants import (
    ERROR_CACHE_MANAGER_AND_RESOLVER,
    ERROR_KEY_AND_KEY_GENERATOR,
    ERROR_KEY_PREFIX_EMPTY,
    ERROR_STORE_NAME_EMPTY,
    ERROR_TTL_INVALID,
    MIN_TTL_SECONDS,
)
from .exceptions import CacheConfigurationError
from .operations import CacheOperation


def validate_cache_operation(element: str, operation: CacheOperation) -> None:
    """Validate mutually exclusive attributes of a cache operation.

    Args:
        element: Diagnostic name of the annotated element
        operation: Descriptor to validate

    Raises:
        CacheConfigurationError: If 'key' and 'key_generator' are both set, or
            'cache_manager' and 'cache_resolver' are both set
    """
    if operation.key and operation.key_generator:
        raise CacheConfigurationError(ERROR_KEY_AND_KEY_GENERATOR.format(element=element), element=element)
    if operation.cache_manager and operation.cache_resolver:
        raise CacheConfigurationError(ERROR_CACHE_MANAGER_AND_RESOLVER.format(element=element), element=element)


def validate_store_name(store_name: str) -> None:
    """Validate Dapr state store name.

    Raises:
        ValueError: If store name is empty or whitespace-only
    """
    if not store_name or not store_name.strip():
        raise ValueError(ERROR_STORE_NAME_EMPTY)


def validate_key_prefix(key_prefix: str) -> None:
    """Validate state key prefix.

    Raises:
        ValueError: If key prefix is empty or whitespace-only
    """
    if not key_prefix or not key_prefix.strip():
        raise ValueError(ERROR_KEY_PREFIX_EMPTY)


def validate_ttl_seconds(ttl_seconds: int) -> None:
    """Validate TTL parameter (>= 1 second per Dapr constraints).

    Raises:
        ValueError: If TTL is not an int or is below the minimum
    """
    # bool é subclasse de int
    if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int) or ttl_seconds < MIN_TTL_SECONDS:
        raise ValueError(ERROR_TTL_INVALID.format(value=ttl_seconds))
