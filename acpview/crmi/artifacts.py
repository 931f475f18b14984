"""CRMI artifact rules: canonical URLs, publication lifecycle, extensions.

Artifacts are plain FHIR JSON dicts (``ActivityDefinition`` and
``ChargeItemDefinition``).  Nothing here talks to a server.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

ARTIFACT_TYPES = ("ActivityDefinition", "ChargeItemDefinition")

USAGE_EXTENSION = "http://hl7.org/fhir/StructureDefinition/artifact-usage"
COPYRIGHT_LABEL_EXTENSION = "http://hl7.org/fhir/StructureDefinition/artifact-copyrightLabel"
ARTIFACT_COMMENT_EXTENSION = "http://hl7.org/fhir/StructureDefinition/cqf-artifactComment"
PUBLICATION_DATE_EXTENSION = "http://hl7.org/fhir/StructureDefinition/cqf-publicationDate"
PUBLICATION_STATUS_EXTENSION = "http://hl7.org/fhir/StructureDefinition/cqf-publicationStatus"
KNOWLEDGE_CAPABILITY_EXTENSION = "http://hl7.org/fhir/StructureDefinition/cqf-knowledgeCapability"
KNOWLEDGE_LEVEL_EXTENSION = "http://hl7.org/fhir/StructureDefinition/cqf-knowledgeRepresentationLevel"


class PublicationStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    RETIRED = "retired"
    UNKNOWN = "unknown"


# Allowed targets per status; staying put is always allowed.
_TRANSITIONS: dict[PublicationStatus, tuple[PublicationStatus, ...]] = {
    PublicationStatus.DRAFT: (PublicationStatus.DRAFT, PublicationStatus.ACTIVE, PublicationStatus.RETIRED),
    PublicationStatus.ACTIVE: (PublicationStatus.ACTIVE, PublicationStatus.RETIRED),
    PublicationStatus.RETIRED: (PublicationStatus.RETIRED,),
    PublicationStatus.UNKNOWN: tuple(PublicationStatus),
}


def sanitize_name(name: str | None) -> str:
    """Lowercase, spaces and underscores to dashes, keep letters, digits and dashes.

    >>> sanitize_name("ACP Talk_v2 (NL)")
    'acp-talk-v2-nl'
    """
    if not name or not name.strip():
        return "unnamed"
    lowered = name.lower().replace(" ", "-").replace("_", "-")
    return "".join(c for c in lowered if c.isalnum() or c == "-") or "unnamed"


def generate_canonical_url(base_url: str, resource_type: str, name: str | None) -> str:
    return f"{base_url.rstrip('/')}/{resource_type}/{sanitize_name(name)}"


def valid_transitions(current: PublicationStatus | str) -> list[PublicationStatus]:
    """Statuses an artifact in *current* may move to, *current* included."""
    current = PublicationStatus(current)
    return list(_TRANSITIONS[current])


def validate_status_transition(
    current: PublicationStatus | str,
    target: PublicationStatus | str,
) -> tuple[bool, str | None]:
    """Check a lifecycle move; returns ``(ok, message)``.

    Draft may become active or retired, active may become retired, retired
    is final.  Going back requires a new version of the artifact.  An
    artifact in ``unknown`` may move anywhere.
    """
    current = PublicationStatus(current)
    target = PublicationStatus(target)
    if target in _TRANSITIONS[current]:
        return True, None
    if current in (PublicationStatus.ACTIVE, PublicationStatus.RETIRED) and target is not PublicationStatus.UNKNOWN:
        article = "An" if current is PublicationStatus.ACTIVE else "A"
        return False, (
            f"{article} {current.value} artifact cannot transition back to {target.value}. "
            "Create a new version instead."
        )
    return False, f"Unknown status transition from {current.value} to {target.value}"


def artifact_status(resource: dict[str, Any]) -> PublicationStatus:
    """Status of *resource*; missing or unrecognised values read as ``unknown``."""
    try:
        return PublicationStatus(resource.get("status") or "unknown")
    except ValueError:
        return PublicationStatus.UNKNOWN


# ---------------------------------------------------------------------------
# Extensions
# ---------------------------------------------------------------------------


def get_extension_value(resource: dict[str, Any], url: str, value_key: str) -> str | None:
    for ext in resource.get("extension") or []:
        if isinstance(ext, dict) and ext.get("url") == url:
            return ext.get(value_key)
    return None


def set_extension_value(resource: dict[str, Any], url: str, value_key: str, value: str | None) -> None:
    """Replace every extension with *url* by one carrying *value*.

    A blank *value* only removes.  Non-artifact resources are left alone.
    """
    if resource.get("resourceType") not in ARTIFACT_TYPES:
        return
    kept = [e for e in resource.get("extension") or [] if not (isinstance(e, dict) and e.get("url") == url)]
    if value and value.strip():
        kept.append({"url": url, value_key: value})
    if kept:
        resource["extension"] = kept
    else:
        resource.pop("extension", None)


def get_usage(resource: dict[str, Any]) -> str | None:
    return get_extension_value(resource, USAGE_EXTENSION, "valueMarkdown")


def set_usage(resource: dict[str, Any], usage: str | None) -> None:
    set_extension_value(resource, USAGE_EXTENSION, "valueMarkdown", usage)


def get_copyright_label(resource: dict[str, Any]) -> str | None:
    return get_extension_value(resource, COPYRIGHT_LABEL_EXTENSION, "valueString")


def set_copyright_label(resource: dict[str, Any], label: str | None) -> None:
    set_extension_value(resource, COPYRIGHT_LABEL_EXTENSION, "valueString", label)
