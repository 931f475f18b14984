"""Transitive resolution of references between ACP resources.

Search results point at resources the searches did not return: the
practitioner who performed a procedure, the participants of an encounter,
the organization behind a practitioner role.  :class:`ReferenceResolver`
fetches these into the cache, then follows the references of what it
fetched, for at most ``reference_resolution_depth`` passes.

Only references on the configured server are followed.  Absolute URLs to
other servers are dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from ..cache.resource_cache import ResourceCache, with_source
from ..config import AcpViewConfig, clamp_resolution_depth
from ..fhir.client import FhirSearch
from ..resources.models import (
    Consent,
    ConsentProvision,
    Encounter,
    FhirResource,
    Observation,
    PractitionerRole,
    Procedure,
    Reference,
    is_operation_outcome,
    parse_resource,
)
from ..utils.logging import log_resolution_pass

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def _refs(*references: Reference | None) -> list[str]:
    return [r.reference for r in references if r is not None and r.reference]


def _provision_actor_refs(provisions: Iterable[ConsentProvision]) -> list[str]:
    return _refs(*(actor.reference for p in provisions for actor in p.actor))


def extract_references(resource: FhirResource) -> list[str]:
    """Raw outbound references relevant to ACP linking."""
    if isinstance(resource, Procedure):
        return _refs(resource.encounter, *(p.actor for p in resource.performer))
    if isinstance(resource, Encounter):
        return _refs(*(p.individual for p in resource.participant), resource.subject)
    if isinstance(resource, Consent):
        nested = resource.provision.provision if resource.provision else []
        return _provision_actor_refs(nested)
    if isinstance(resource, Observation):
        return _refs(*resource.performer)
    if isinstance(resource, PractitionerRole):
        return _refs(resource.practitioner, resource.organization)
    return []


def normalize_reference(reference: str | None, server_url: str) -> str | None:
    """Relative ``Type/id`` form of *reference*, or ``None`` to drop it.

    Absolute URLs under *server_url* become relative; other absolute URLs,
    contained (``#id``) and ``urn:`` references are dropped.  A trailing
    ``/_history/{version}`` is removed.
    """
    if not reference:
        return None
    ref = reference.strip()
    base = server_url.rstrip("/")
    if base and ref.startswith(base + "/"):
        ref = ref[len(base):].lstrip("/")
    elif ref.startswith(("http://", "https://")):
        return None
    if ref.startswith(("#", "urn:")):
        return None
    if "/_history/" in ref:
        ref = ref.split("/_history/", 1)[0]
    return ref or None


def split_reference(reference: str) -> tuple[str, str] | None:
    """``(resource_type, id)`` from the last two path segments."""
    parts = [p for p in reference.split("/") if p]
    if len(parts) < 2:
        return None
    return parts[-2], parts[-1]


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


@dataclass
class ResolutionResult:
    """What a resolution run added to the cache."""

    fetched: list[dict[str, Any]] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    passes: int = 0

    def to_bundle(self) -> dict[str, Any]:
        return {
            "resourceType": "Bundle",
            "type": "collection",
            "total": len(self.fetched),
            "entry": [{"resource": r} for r in self.fetched],
        }


class ReferenceResolver:
    """Fetch referenced resources missing from the cache, pass by pass.

    Parameters
    ----------
    client:
        Client for the configured server.
    cache:
        Cache that receives fetched resources.
    config:
        Supplies ``server_url`` and ``reference_resolution_depth``.
    """

    def __init__(self, client: FhirSearch, cache: ResourceCache, config: AcpViewConfig) -> None:
        self.client = client
        self.cache = cache
        self.config = config

    @property
    def depth(self) -> int:
        return clamp_resolution_depth(self.config.reference_resolution_depth)

    def collect(self, resource: dict[str, Any] | FhirResource, frontier: dict[str, None]) -> None:
        """Add *resource*'s normalized references to *frontier* (ordered set)."""
        if isinstance(resource, dict):
            try:
                resource = parse_resource(resource)
            except ValueError:
                return
        for raw in extract_references(resource):
            normalized = normalize_reference(raw, self.config.server_url)
            if normalized:
                frontier.setdefault(normalized, None)

    async def resolve(self, resources: Iterable[dict[str, Any] | FhirResource]) -> ResolutionResult:
        """Resolve references reachable from *resources*.

        Each pass handles only references not handled before.  Resolution
        stops when a pass finds nothing new or after ``depth`` passes;
        whatever is left unresolved at that point stays unresolved.
        """
        result = ResolutionResult()
        frontier: dict[str, None] = {}
        for resource in resources:
            self.collect(resource, frontier)

        processed: set[str] = set()
        while result.passes < self.depth:
            pending = [ref for ref in frontier if ref not in processed]
            if not pending:
                break
            result.passes += 1
            fetched_before = len(result.fetched)
            for ref in pending:
                processed.add(ref)
                fetched = await self._resolve_one(ref, result)
                if fetched is not None:
                    self.collect(fetched, frontier)
            log_resolution_pass(logger, result.passes, len(pending), len(result.fetched) - fetched_before)
        return result

    async def _resolve_one(self, ref: str, result: ResolutionResult) -> dict[str, Any] | None:
        parts = split_reference(ref)
        if parts is None:
            return None
        resource_type, resource_id = parts
        if await self.cache.has_resource(resource_type, resource_id):
            return None

        try:
            resource = await self.client.get(f"{resource_type}/{resource_id}")
        except Exception as exc:
            logger.warning("Error fetching reference %s: %s", ref, exc)
            result.failed.append(ref)
            return None

        if not isinstance(resource, dict) or is_operation_outcome(resource):
            logger.warning("Reference %s did not resolve to a resource", ref)
            result.failed.append(ref)
            return None

        resource = with_source(resource, self.config.server_url)
        resource.setdefault("id", resource_id)
        await self.cache.put(self.config.server_url, resource)
        result.fetched.append(resource)
        return resource
