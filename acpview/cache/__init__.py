"""Resource cache: stores, key schemes, and monotonic writes."""

from .keys import (
    CacheKey,
    canonical_key,
    classify_key,
    key_matches,
    legacy_key,
    parse_cache_key,
    server_slug,
)
from .resource_cache import (
    ResourceCache,
    last_updated_of,
    serialize_resource,
    with_source,
)
from .store import FileStore, KeyValueStore, MemoryStore

__all__ = [
    "CacheKey",
    "canonical_key",
    "classify_key",
    "key_matches",
    "legacy_key",
    "parse_cache_key",
    "server_slug",
    "ResourceCache",
    "last_updated_of",
    "serialize_resource",
    "with_source",
    "FileStore",
    "KeyValueStore",
    "MemoryStore",
]
