"""Create, read, update, delete and search CRMI artifacts on a FHIR server."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import quote

from ..config import AcpViewConfig
from ..errors import AcpViewError, ArtifactStatusError
from ..fhir.client import FhirClient
from ..resources.models import OperationOutcome, is_operation_outcome
from .artifacts import (
    ARTIFACT_TYPES,
    PublicationStatus,
    artifact_status,
    generate_canonical_url,
    validate_status_transition,
)

logger = logging.getLogger(__name__)

SEARCH_PAGE_SIZE = 50


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _check_type(resource_type: Optional[str]) -> str:
    if resource_type not in ARTIFACT_TYPES:
        raise AcpViewError(f"Not a CRMI artifact type: {resource_type!r} (expected one of {', '.join(ARTIFACT_TYPES)})")
    return resource_type


def build_search_query(title: Optional[str] = None, status: PublicationStatus | str | None = None) -> str:
    """Query string for an artifact search, newest first."""
    parts = []
    if title and title.strip():
        parts.append(f"title:contains={quote(title, safe='')}")
    if status is not None and PublicationStatus(status) is not PublicationStatus.UNKNOWN:
        parts.append(f"status={PublicationStatus(status).value}")
    parts.append("_sort=-_lastUpdated")
    parts.append(f"_count={SEARCH_PAGE_SIZE}")
    return "&".join(parts)


class CrmiArtifactService:
    """Authoring operations for ``ActivityDefinition`` and ``ChargeItemDefinition``.

    Writes return whatever the server sent back: the stored resource, an
    ``OperationOutcome``, or ``None`` for an empty body.

    Parameters
    ----------
    client:
        Client for the server holding the artifacts.
    canonical_base_url:
        Base for generated canonical URLs (``AcpViewConfig.canonical_base_url``).
    """

    def __init__(self, client: FhirClient, canonical_base_url: str) -> None:
        self.client = client
        self.canonical_base_url = canonical_base_url.rstrip("/")

    @classmethod
    def from_config(cls, client: FhirClient, config: AcpViewConfig) -> CrmiArtifactService:
        return cls(client, config.canonical_base_url)

    def canonical_url(self, resource_type: str, name: Optional[str]) -> str:
        return generate_canonical_url(self.canonical_base_url, _check_type(resource_type), name)

    async def search(
        self,
        resource_type: str,
        title: Optional[str] = None,
        status: PublicationStatus | str | None = None,
    ) -> dict[str, Any]:
        return await self.client.search(_check_type(resource_type), build_search_query(title, status))

    async def read(self, resource_type: str, resource_id: str) -> dict[str, Any] | None:
        return await self.client.get(f"{_check_type(resource_type)}/{resource_id}")

    async def create(self, resource: dict[str, Any]) -> dict[str, Any] | None:
        """POST a new artifact.

        ``date`` defaults to now and ``status`` to draft.  A missing ``url``
        is generated from ``name`` (or ``title``).  *resource* itself is not
        modified.
        """
        resource_type = _check_type(resource.get("resourceType"))
        artifact = dict(resource)
        artifact.setdefault("date", _now())
        artifact.setdefault("status", PublicationStatus.DRAFT.value)
        if not artifact.get("url"):
            artifact["url"] = self.canonical_url(resource_type, artifact.get("name") or artifact.get("title"))
        logger.info("creating %s %s (%s)", resource_type, artifact["url"], artifact["status"])
        return await self.client.create(artifact)

    async def update(self, resource: dict[str, Any]) -> dict[str, Any] | None:
        """PUT an existing artifact, stamping ``date`` with the current time."""
        _check_type(resource.get("resourceType"))
        artifact = {**resource, "date": _now()}
        return await self.client.update(artifact)

    async def delete(self, resource_type: str, resource_id: str) -> dict[str, Any] | None:
        logger.info("deleting %s/%s", resource_type, resource_id)
        return await self.client.delete(_check_type(resource_type), resource_id)

    async def transition_status(
        self,
        resource_type: str,
        resource_id: str,
        target: PublicationStatus | str,
    ) -> dict[str, Any] | None:
        """Move a stored artifact to *target* and save it.

        Raises
        ------
        ArtifactStatusError
            When the lifecycle does not allow the move.
        AcpViewError
            When the artifact cannot be read.
        """
        target = PublicationStatus(target)
        current = await self.read(resource_type, resource_id)
        if not current or is_operation_outcome(current):
            detail = OperationOutcome.model_validate(current).summary() if current else "empty response"
            raise AcpViewError(f"Cannot read {resource_type}/{resource_id}: {detail}")

        status = artifact_status(current)
        ok, message = validate_status_transition(status, target)
        if not ok:
            raise ArtifactStatusError(message or "Invalid status transition", status.value, target.value)
        if status is target:
            return current
        logger.info("%s/%s: %s -> %s", resource_type, resource_id, status.value, target.value)
        return await self.update({**current, "status": target.value})
