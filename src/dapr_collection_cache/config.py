"""
Configuration management for the Dapr-backed caches.

Resolution precedence:

1. Explicit parameter (highest precedence)
2. Environment variable
3. Default value (lowest precedence)
"""

import os

from .constants import DEFAULT_KEY_PREFIX, DEFAULT_STORE_NAME, DEFAULT_TTL_SECONDS
from .validators import validate_key_prefix, validate_store_name, validate_ttl_seconds


class CacheSettings:
    """Environment-aware defaults for ``DaprCacheManager``."""

    # Environment variable names
    ENV_DEFAULT_STORE_NAME = "DAPR_CACHE_DEFAULT_STORE_NAME"
    ENV_DEFAULT_TTL_SECONDS = "DAPR_CACHE_DEFAULT_TTL_SECONDS"
    ENV_DEFAULT_KEY_PREFIX = "DAPR_CACHE_DEFAULT_KEY_PREFIX"

    @classmethod
    def resolve_store_name(cls, explicit_value: str | None = None) -> str:
        """Resolve store name following precedence rules.

        Args:
            explicit_value: Explicit store name

        Returns:
            Resolved and validated store name
        """
        if explicit_value is not None:
            validate_store_name(explicit_value)
            return explicit_value

        env_value = os.getenv(cls.ENV_DEFAULT_STORE_NAME)
        if env_value:
            return env_value

        return DEFAULT_STORE_NAME

    @classmethod
    def resolve_ttl_seconds(cls, explicit_value: int | None = None) -> int:
        """Resolve TTL seconds following precedence rules.

        Raises:
            ValueError: If the explicit or environment value is not a valid TTL
        """
        if explicit_value is not None:
            validate_ttl_seconds(explicit_value)
            return explicit_value

        env_value = os.getenv(cls.ENV_DEFAULT_TTL_SECONDS)
        if env_value:
            try:
                ttl_seconds = int(env_value)
            except ValueError as e:
                raise ValueError(f"{cls.ENV_DEFAULT_TTL_SECONDS} must be an integer, got {env_value!r}") from e
            validate_ttl_seconds(ttl_seconds)
            return ttl_seconds

        return DEFAULT_TTL_SECONDS

    @classmethod
    def resolve_key_prefix(cls, explicit_value: str | None = None) -> str:
        """Resolve state key prefix following precedence rules."""
        if explicit_value is not None:
            validate_key_prefix(explicit_value)
            return explicit_value

        env_value = os.getenv(cls.ENV_DEFAULT_KEY_PREFIX)
        if env_value:
            return env_value

        return DEFAULT_KEY_PREFIX
