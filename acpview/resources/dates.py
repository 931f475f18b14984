"""FHIR date/dateTime/instant parsing.

FHIR ``dateTime`` values may be partial (``"2024"``, ``"2024-05"``).  All
parsed values are timezone-aware; values without an offset are taken as UTC
so that comparisons between resources from different servers never mix
naive and aware datetimes.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

MIN_DATETIME = datetime.min.replace(tzinfo=timezone.utc)

_YEAR_RE = re.compile(r"^\d{4}$")
_YEAR_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def ensure_aware(value: datetime) -> datetime:
    """Return *value* with UTC attached when it has no timezone."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_fhir_datetime(value: Any) -> datetime | None:
    """Parse a FHIR date, dateTime or instant.

    Returns ``None`` for empty or unparseable input.
    """
    if isinstance(value, datetime):
        return ensure_aware(value)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None

    if _YEAR_RE.match(text):
        return datetime(int(text), 1, 1, tzinfo=timezone.utc)
    m = _YEAR_MONTH_RE.match(text)
    if m:
        try:
            return datetime(int(m.group(1)), int(m.group(2)), 1, tzinfo=timezone.utc)
        except ValueError:
            return None

    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return ensure_aware(parsed)


def sort_key(value: Any) -> datetime:
    """Sort key that places missing or unparseable values first."""
    return parse_fhir_datetime(value) or MIN_DATETIME
