"""CRMI artifact authoring (ActivityDefinition, ChargeItemDefinition).

- :mod:`.artifacts`: canonical URLs, publication lifecycle, extension helpers
- :mod:`.service`: server operations on top of :class:`~acpview.fhir.FhirClient`
"""

from .artifacts import (
    ARTIFACT_TYPES,
    PublicationStatus,
    generate_canonical_url,
    sanitize_name,
    valid_transitions,
    validate_status_transition,
)
from .service import CrmiArtifactService, build_search_query

__all__ = [
    "ARTIFACT_TYPES",
    "PublicationStatus",
    "generate_canonical_url",
    "sanitize_name",
    "valid_transitions",
    "validate_status_transition",
    "CrmiArtifactService",
    "build_search_query",
]
