"""Exception types raised by acpview."""

from __future__ import annotations


class AcpViewError(Exception):
    """Base class for acpview errors."""


class FhirClientError(AcpViewError):
    """A FHIR request failed without a usable FHIR payload.

    Transport failures, timeouts, and HTTP error statuses that carry no
    ``OperationOutcome`` end up here.  An ``OperationOutcome`` body is never
    raised; it is returned to the caller in place of the expected resource.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CacheKeyError(AcpViewError):
    """A cache key could not be built or parsed."""


class ArtifactStatusError(AcpViewError):
    """A CRMI artifact status change breaks the draft → active → retired lifecycle."""

    def __init__(self, message: str, current: str, target: str) -> None:
        super().__init__(message)
        self.current = current
        self.target = target
