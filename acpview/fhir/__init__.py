"""FHIR REST collaborator."""

from .client import FhirClient, FhirSearch, empty_searchset

__all__ = ["FhirClient", "FhirSearch", "empty_searchset"]
