"""
Constants for the caching configuration and runtime.

Defines default values and error message templates used throughout
the package to eliminate magic strings.
"""

# Annotation kinds
KIND_CACHEABLE = "cacheable"
KIND_COLLECTION_CACHEABLE = "collection_cacheable"

# Attributes where declarative settings are stored
CACHE_ANNOTATIONS_ATTR = "__cache_annotations__"
CACHE_CONFIG_ATTR = "__cache_config__"

# Defaults
DEFAULT_STORE_NAME = "cache"
DEFAULT_TTL_SECONDS = 3600
DEFAULT_KEY_PREFIX = "cache"
MIN_TTL_SECONDS = 1
DEFAULT_BULK_PARALLELISM = 10
GENERATION_KEY_SUFFIX = "__generation__"
INITIAL_GENERATION = "0"
# Separa região e chave nas chaves de métricas e do state store
REGION_SEPARATOR = ":"

# Error message templates
ERROR_KEY_AND_KEY_GENERATOR = (
    "Invalid cache annotation configuration on '{element}'. Both 'key' and 'key_generator' "
    "attributes have been set. These attributes are mutually exclusive: either set the "
    "expression used to compute the key at runtime or set the name of the key generator to use."
)
ERROR_CACHE_MANAGER_AND_RESOLVER = (
    "Invalid cache annotation configuration on '{element}'. Both 'cache_manager' and "
    "'cache_resolver' attributes have been set. These attributes are mutually exclusive: "
    "the cache manager is used to configure a default cache resolver if none is set. "
    "If a cache resolver is set, the cache manager won't be used."
)
ERROR_SYNC_MULTIPLE_CACHES = (
    "Invalid cache annotation configuration on '{element}'. 'sync=True' only allows a single "
    "cache, got {count}: {names}"
)
ERROR_SYNC_WITH_UNLESS = (
    "Invalid cache annotation configuration on '{element}'. 'unless' is not supported together with 'sync=True'"
)
ERROR_NO_CACHE_RESOLVED = (
    "No cache could be resolved for '{element}'. At least one cache name should be specified "
    "on the operation or through cache_config"
)
ERROR_UNKNOWN_STRATEGY = "No {kind} named '{name}' is registered (required by '{element}')"
ERROR_NO_CACHE_MANAGER = "No cache manager is available to resolve caches for '{element}'"
ERROR_COLLECTION_SIGNATURE = (
    "'{element}' is declared collection_cacheable but its signature is neither '()' nor a single "
    "collection parameter"
)
ERROR_TTL_INVALID = "ttl_seconds must be >= 1, got {value}"
ERROR_STORE_NAME_EMPTY = "store_name cannot be empty or whitespace-only"
ERROR_KEY_PREFIX_EMPTY = "key_prefix cannot be empty or whitespace-only"
ERROR_UNKNOWN_VARIABLE = "Unknown variable '{name}' in cache expression '{expression}'"
ERROR_EMPTY_EXPRESSION = "Cache expression cannot be empty"
ERROR_CACHE_NOT_FOUND = "Cannot find cache named '{name}' for {operation}"
ERROR_CACHE_NAME_SEPARATOR = "Invalid cache name {name!r} on '{element}': cache names cannot contain {separator!r}"
