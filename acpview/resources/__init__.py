"""FHIR resource models and date helpers."""

from .dates import MIN_DATETIME, parse_fhir_datetime
from .models import (
    RESOURCE_MODELS,
    CodeableConcept,
    Coding,
    Consent,
    ConsentProvision,
    Encounter,
    Extension,
    FhirResource,
    GenericResource,
    Goal,
    HumanName,
    Identifier,
    Meta,
    Observation,
    OperationOutcome,
    Organization,
    Patient,
    Period,
    Practitioner,
    PractitionerRole,
    Procedure,
    QuestionnaireResponse,
    Reference,
    RelatedPerson,
    ResourceType,
    is_operation_outcome,
    model_for,
    parse_resource,
)

__all__ = [
    "MIN_DATETIME",
    "parse_fhir_datetime",
    "RESOURCE_MODELS",
    "CodeableConcept",
    "Coding",
    "Consent",
    "ConsentProvision",
    "Encounter",
    "Extension",
    "FhirResource",
    "GenericResource",
    "Goal",
    "HumanName",
    "Identifier",
    "Meta",
    "Observation",
    "OperationOutcome",
    "Organization",
    "Patient",
    "Period",
    "Practitioner",
    "PractitionerRole",
    "Procedure",
    "QuestionnaireResponse",
    "Reference",
    "RelatedPerson",
    "ResourceType",
    "is_operation_outcome",
    "model_for",
    "parse_resource",
]
