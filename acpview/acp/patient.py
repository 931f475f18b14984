"""Patient and source display helpers."""

from __future__ import annotations

from urllib.parse import urlsplit

from ..resources.models import Patient
from .constants import LEGALLY_CAPABLE_EXTENSION_URL, UNKNOWN_DISPLAY


def patient_name(patient: Patient | None) -> str:
    """Given names and family name of the first name, or ``"Unknown"``."""
    if patient is None or not patient.name:
        return "Unknown"
    name = patient.name[0]
    given = " ".join(name.given)
    return f"{given} {name.family or ''}".strip() or "Unknown"


def legally_capable_info(patient: Patient | None) -> tuple[bool | None, str | None]:
    """``(capable, comment)`` from the legally-capable extension.

    Both are ``None`` when the patient or the extension is missing.
    """
    if patient is None:
        return None, None
    ext = next((e for e in patient.extension if e.url == LEGALLY_CAPABLE_EXTENSION_URL), None)
    if ext is None:
        return None, None
    capable = next((e.value_boolean for e in ext.extension if e.url == "legallyCapable"), None)
    comment = next((e.value_string for e in ext.extension if e.url == "legallyCapableComment"), None)
    return capable, comment


def legally_capable_text(patient: Patient | None) -> str:
    capable, _ = legally_capable_info(patient)
    if capable is True:
        return "Wilsbekwaam"
    if capable is False:
        return "Niet wilsbekwaam"
    return "Status onbekend"


def source_label(source: str | None) -> str:
    """Short label for a ``meta.source`` value.

    ``urn:oid:1.2.3|Label`` gives ``Label``; an absolute URL gives its host.
    """
    if source is None or not source.strip():
        return UNKNOWN_DISPLAY
    if "|" in source:
        return source.split("|")[-1].strip()
    parts = urlsplit(source)
    if parts.scheme and parts.hostname:
        return parts.hostname
    return source
