"""Cache key construction and classification.

Two key schemes exist in caches written by earlier versions:

* canonical: ``{serverSlug}_{resourceType}_{id}``, e.g.
  ``server_fire_ly_Encounter_enc-1``
* legacy: ``{resourceType}-{id}-{yyyymmdd}``, e.g.
  ``Encounter-enc-1-20240601``

All writes use the canonical scheme.  Legacy keys are still recognized when
reading, and keys matching neither scheme are classified by looking for a
resource-type token in the key.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from urllib.parse import urlsplit

from ..errors import CacheKeyError
from ..resources.models import ResourceType

_TYPE_RE = r"[A-Z][A-Za-z]+"
_ID_RE = r"[A-Za-z0-9\-\.]{1,64}"

_CANONICAL_RE = re.compile(rf"^(?P<slug>.+)_(?P<type>{_TYPE_RE})_(?P<id>{_ID_RE})$")
_LEGACY_RE = re.compile(rf"^(?P<type>{_TYPE_RE})-(?P<id>{_ID_RE})-(?P<stamp>\d{{8}})$")

# QuestionnaireResponse before Procedure, PractitionerRole before Practitioner:
# the longer token contains (or sits next to) the shorter one.
_TOKEN_ORDER: tuple[ResourceType, ...] = (
    ResourceType.QUESTIONNAIRE_RESPONSE,
    ResourceType.PROCEDURE,
    ResourceType.ENCOUNTER,
    ResourceType.OBSERVATION,
    ResourceType.GOAL,
    ResourceType.CONSENT,
    ResourceType.PRACTITIONER_ROLE,
    ResourceType.PRACTITIONER,
    ResourceType.RELATED_PERSON,
    ResourceType.ORGANIZATION,
    ResourceType.PATIENT,
    ResourceType.OPERATION_OUTCOME,
)


@dataclass(frozen=True)
class CacheKey:
    """A parsed cache key."""

    resource_type: str
    resource_id: str
    server_slug: str | None = None
    stamp: str | None = None

    @property
    def is_legacy(self) -> bool:
        return self.server_slug is None

    def __str__(self) -> str:
        if self.server_slug is None:
            return f"{self.resource_type}-{self.resource_id}-{self.stamp or ''}"
        return f"{self.server_slug}_{self.resource_type}_{self.resource_id}"


def server_slug(server_url: str) -> str:
    """Readable per-server key prefix.

    ``https://server.fire.ly`` → ``server_fire_ly``;
    ``http://hapi.fhir.org/baseR4`` → ``hapi_fhir_org_baseR4``.
    """
    parts = urlsplit(server_url.strip())
    if not parts.scheme or not parts.hostname:
        raise CacheKeyError(f"Not an absolute server URL: {server_url!r}")
    host = parts.hostname.replace(".", "_")
    path = parts.path.strip("/").replace("/", "_")
    return f"{host}_{path}".rstrip("_")


def canonical_key(server_url: str, resource_type: str, resource_id: str) -> str:
    return f"{server_slug(server_url)}_{resource_type}_{resource_id}"


def legacy_key(resource_type: str, resource_id: str, day: date | None = None) -> str:
    day = day or date.today()
    return f"{resource_type}-{resource_id}-{day:%Y%m%d}"


def parse_cache_key(key: str) -> CacheKey | None:
    """Parse *key* under either scheme; ``None`` if it matches neither."""
    m = _LEGACY_RE.match(key)
    if m:
        return CacheKey(m.group("type"), m.group("id"), stamp=m.group("stamp"))
    m = _CANONICAL_RE.match(key)
    if m:
        return CacheKey(m.group("type"), m.group("id"), server_slug=m.group("slug"))
    return None


def classify_key(key: str) -> str | None:
    """Resource type a key holds, or ``None`` when it cannot be told."""
    parsed = parse_cache_key(key)
    if parsed is not None:
        return parsed.resource_type
    for token in _TOKEN_ORDER:
        if token.value in key:
            return token.value
    return None


def key_matches(key: str, resource_type: str, resource_id: str) -> bool:
    """Whether *key* stores ``resource_type/resource_id`` from any server."""
    parsed = parse_cache_key(key)
    if parsed is not None:
        return parsed.resource_type == resource_type and parsed.resource_id == resource_id
    return key.startswith(f"{resource_type}-{resource_id}")
