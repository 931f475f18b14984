"""Resource cache on top of a :class:`KeyValueStore`.

Writes follow one rule: the ``meta.lastUpdated`` stored under a key never
goes backwards.  An incoming copy replaces the cached one only when it is
strictly newer; ties and copies without ``lastUpdated`` keep what is
already there.  A cached copy whose ``lastUpdated`` cannot be read is
always replaced.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from datetime import datetime
from typing import Any

from ..resources.dates import parse_fhir_datetime
from .keys import canonical_key, key_matches
from .store import KeyValueStore

logger = logging.getLogger(__name__)


def last_updated_of(resource: dict[str, Any]) -> datetime | None:
    meta = resource.get("meta")
    if not isinstance(meta, dict):
        return None
    return parse_fhir_datetime(meta.get("lastUpdated"))


def with_source(resource: dict[str, Any], server_url: str) -> dict[str, Any]:
    """Copy of *resource* with ``meta.source`` set to *server_url*."""
    stamped = dict(resource)
    meta = stamped.get("meta")
    meta = dict(meta) if isinstance(meta, dict) else {}
    meta["source"] = server_url
    stamped["meta"] = meta
    return stamped


def serialize_resource(resource: dict[str, Any]) -> str:
    """Pretty-printed JSON, compact if pretty-printing fails."""
    try:
        return json.dumps(resource, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return json.dumps(resource, default=str)


class ResourceCache:
    """Reads and monotonic writes of FHIR resources in a key/value store."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self._write_lock = asyncio.Lock()

    async def keys(self) -> list[str]:
        return await self.store.keys()

    async def get_text(self, key: str) -> str | None:
        return await self.store.get_string(key)

    async def get(self, key: str) -> dict[str, Any] | None:
        """Decoded JSON under *key*; ``None`` when missing or unreadable."""
        text = await self.store.get_string(key)
        if not text:
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Unreadable cache entry %s", key)
            return None
        return data if isinstance(data, dict) else None

    async def find_keys(self, resource_type: str, resource_id: str) -> list[str]:
        return [k for k in await self.store.keys() if key_matches(k, resource_type, resource_id)]

    async def has_resource(self, resource_type: str, resource_id: str) -> bool:
        return bool(await self.find_keys(resource_type, resource_id))

    async def put(self, server_url: str, resource: dict[str, Any]) -> bool:
        """Store *resource* under its canonical key for *server_url*.

        Resources without an ``id`` get a random one so they still land in
        the cache.  Returns ``True`` if the store was written.
        """
        resource_type = resource.get("resourceType") or "Resource"
        resource_id = resource.get("id") or str(uuid.uuid4())
        key = canonical_key(server_url, resource_type, resource_id)
        return await self.put_at(key, resource)

    async def put_at(self, key: str, resource: dict[str, Any]) -> bool:
        async with self._write_lock:
            if await self.store.contains_key(key) and not await self._is_newer(key, resource):
                logger.debug("Kept cached copy of %s (incoming not newer)", key)
                return False
            await self.store.set_string(key, serialize_resource(resource))
            return True

    async def _is_newer(self, key: str, resource: dict[str, Any]) -> bool:
        existing = await self.get(key)
        if existing is None:
            return True
        existing_updated = last_updated_of(existing)
        if existing_updated is None:
            return True
        incoming_updated = last_updated_of(resource)
        return incoming_updated is not None and incoming_updated > existing_updated
