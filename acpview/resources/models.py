"""Typed views over the FHIR R4 resources the ACP engine reads.

Only the elements the engine inspects are declared.  Every model allows
extra fields, so anything else in the JSON survives validation untouched
and ``to_fhir()`` gives back a dict with the original keys.

Dispatch on ``resourceType`` goes through :data:`RESOURCE_MODELS`, a closed
table of the supported kinds.  Anything else parses as
:class:`GenericResource`.
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .dates import parse_fhir_datetime


class ResourceType(str, Enum):
    """Resource kinds with a dedicated model."""

    PATIENT = "Patient"
    PRACTITIONER = "Practitioner"
    PRACTITIONER_ROLE = "PractitionerRole"
    ORGANIZATION = "Organization"
    RELATED_PERSON = "RelatedPerson"
    ENCOUNTER = "Encounter"
    PROCEDURE = "Procedure"
    CONSENT = "Consent"
    GOAL = "Goal"
    OBSERVATION = "Observation"
    QUESTIONNAIRE_RESPONSE = "QuestionnaireResponse"
    OPERATION_OUTCOME = "OperationOutcome"


class FhirElement(BaseModel):
    """Base for all FHIR datatypes: camelCase on the wire, extras kept."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


# ---------------------------------------------------------------------------
# Datatypes
# ---------------------------------------------------------------------------


class Coding(FhirElement):
    system: str | None = None
    code: str | None = None
    display: str | None = None


class CodeableConcept(FhirElement):
    coding: list[Coding] = Field(default_factory=list)
    text: str | None = None

    def codes(self) -> list[str]:
        return [c.code for c in self.coding if c.code]

    def has_code(self, *codes: str) -> bool:
        return any(c.code in codes for c in self.coding)


class Identifier(FhirElement):
    system: str | None = None
    value: str | None = None


class Reference(FhirElement):
    reference: str | None = None
    display: str | None = None

    def matches(self, target_id: str | None) -> bool:
        """Loose match used when linking resources across servers.

        True when the reference string ends with *target_id* or contains
        ``/{target_id}``.
        """
        if not target_id or not self.reference:
            return False
        return self.reference.endswith(target_id) or f"/{target_id}" in self.reference


class Period(FhirElement):
    start: str | None = None
    end: str | None = None


class HumanName(FhirElement):
    use: str | None = None
    text: str | None = None
    family: str | None = None
    given: list[str] = Field(default_factory=list)


class Extension(FhirElement):
    url: str | None = None
    value_string: str | None = None
    value_boolean: bool | None = None
    extension: list[Extension] = Field(default_factory=list)


class Meta(FhirElement):
    last_updated: datetime | None = None
    source: str | None = None

    @field_validator("last_updated", mode="before")
    @classmethod
    def _parse_last_updated(cls, value: Any) -> datetime | None:
        return parse_fhir_datetime(value)


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


class FhirResource(FhirElement):
    """Common resource header."""

    resource_type: str
    id: str | None = None
    meta: Meta | None = None
    identifier: list[Identifier] = Field(default_factory=list)
    extension: list[Extension] = Field(default_factory=list)
    modifier_extension: list[Extension] = Field(default_factory=list)

    @property
    def last_updated(self) -> datetime | None:
        return self.meta.last_updated if self.meta else None

    @property
    def source(self) -> str | None:
        return self.meta.source if self.meta else None

    def identifiers(self) -> list[Identifier]:
        return list(self.identifier)

    def to_fhir(self) -> dict[str, Any]:
        """Serialize back to FHIR JSON (camelCase keys, no nulls)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GenericResource(FhirResource):
    """Any resource kind without a dedicated model."""


class Patient(FhirResource):
    resource_type: Literal["Patient"] = "Patient"
    name: list[HumanName] = Field(default_factory=list)
    birth_date: str | None = None


class Practitioner(FhirResource):
    resource_type: Literal["Practitioner"] = "Practitioner"
    name: list[HumanName] = Field(default_factory=list)


class PractitionerRole(FhirResource):
    resource_type: Literal["PractitionerRole"] = "PractitionerRole"
    practitioner: Reference | None = None
    organization: Reference | None = None
    code: list[CodeableConcept] = Field(default_factory=list)
    specialty: list[CodeableConcept] = Field(default_factory=list)


class Organization(FhirResource):
    resource_type: Literal["Organization"] = "Organization"
    name: str | None = None


class RelatedPerson(FhirResource):
    resource_type: Literal["RelatedPerson"] = "RelatedPerson"
    patient: Reference | None = None
    name: list[HumanName] = Field(default_factory=list)
    relationship: list[CodeableConcept] = Field(default_factory=list)


class EncounterParticipant(FhirElement):
    type: list[CodeableConcept] = Field(default_factory=list)
    individual: Reference | None = None


class Encounter(FhirResource):
    resource_type: Literal["Encounter"] = "Encounter"
    status: str | None = None
    subject: Reference | None = None
    participant: list[EncounterParticipant] = Field(default_factory=list)
    period: Period | None = None
    reason_reference: list[Reference] = Field(default_factory=list)


class ProcedurePerformer(FhirElement):
    function: CodeableConcept | None = None
    actor: Reference | None = None


class Procedure(FhirResource):
    resource_type: Literal["Procedure"] = "Procedure"
    status: str | None = None
    code: CodeableConcept | None = None
    subject: Reference | None = None
    encounter: Reference | None = None
    performed_date_time: str | None = None
    performer: list[ProcedurePerformer] = Field(default_factory=list)


class ConsentActor(FhirElement):
    role: CodeableConcept | None = None
    reference: Reference | None = None


class ConsentProvision(FhirElement):
    type: str | None = None
    actor: list[ConsentActor] = Field(default_factory=list)
    code: list[CodeableConcept] = Field(default_factory=list)
    provision: list[ConsentProvision] = Field(default_factory=list)

    def first_coding(self) -> Coding | None:
        if self.code and self.code[0].coding:
            return self.code[0].coding[0]
        return None


class Consent(FhirResource):
    resource_type: Literal["Consent"] = "Consent"
    status: str | None = None
    scope: CodeableConcept | None = None
    category: list[CodeableConcept] = Field(default_factory=list)
    patient: Reference | None = None
    date_time: str | None = None
    provision: ConsentProvision | None = None


class Goal(FhirResource):
    resource_type: Literal["Goal"] = "Goal"
    lifecycle_status: str | None = None
    description: CodeableConcept | None = None
    subject: Reference | None = None
    status_date: str | None = None


class Observation(FhirResource):
    resource_type: Literal["Observation"] = "Observation"
    status: str | None = None
    code: CodeableConcept | None = None
    subject: Reference | None = None
    encounter: Reference | None = None
    effective_date_time: str | None = None
    issued: str | None = None
    performer: list[Reference] = Field(default_factory=list)


class QuestionnaireResponse(FhirResource):
    resource_type: Literal["QuestionnaireResponse"] = "QuestionnaireResponse"
    # 0..1 in R4, unlike most resources
    identifier: Identifier | None = None  # type: ignore[assignment]
    questionnaire: str | None = None
    status: str | None = None
    subject: Reference | None = None
    encounter: Reference | None = None
    authored: str | None = None
    author: Reference | None = None

    def identifiers(self) -> list[Identifier]:
        return [self.identifier] if self.identifier else []


class OperationOutcomeIssue(FhirElement):
    severity: str | None = None
    code: str | None = None
    diagnostics: str | None = None


class OperationOutcome(FhirResource):
    resource_type: Literal["OperationOutcome"] = "OperationOutcome"
    issue: list[OperationOutcomeIssue] = Field(default_factory=list)

    def summary(self) -> str:
        """``"{severity}: {diagnostics}"`` of the first issue."""
        if not self.issue:
            return "Server returned an error (OperationOutcome)"
        first = self.issue[0]
        return f"{first.severity}: {first.diagnostics}"


RESOURCE_MODELS: dict[ResourceType, type[FhirResource]] = {
    ResourceType.PATIENT: Patient,
    ResourceType.PRACTITIONER: Practitioner,
    ResourceType.PRACTITIONER_ROLE: PractitionerRole,
    ResourceType.ORGANIZATION: Organization,
    ResourceType.RELATED_PERSON: RelatedPerson,
    ResourceType.ENCOUNTER: Encounter,
    ResourceType.PROCEDURE: Procedure,
    ResourceType.CONSENT: Consent,
    ResourceType.GOAL: Goal,
    ResourceType.OBSERVATION: Observation,
    ResourceType.QUESTIONNAIRE_RESPONSE: QuestionnaireResponse,
    ResourceType.OPERATION_OUTCOME: OperationOutcome,
}


def model_for(resource_type: str) -> type[FhirResource]:
    """Return the model class for *resource_type* (``GenericResource`` if none)."""
    try:
        return RESOURCE_MODELS[ResourceType(resource_type)]
    except ValueError:
        return GenericResource


def parse_resource(data: dict[str, Any] | str) -> FhirResource:
    """Validate FHIR JSON into its typed model.

    Raises
    ------
    ValueError
        If *data* is not a JSON object with a ``resourceType``.  pydantic's
        ``ValidationError`` is a ``ValueError`` subclass, so callers can
        catch both with one clause.
    """
    if isinstance(data, str):
        data = json.loads(data)
    if not isinstance(data, dict):
        raise ValueError("FHIR resource must be a JSON object")
    resource_type = data.get("resourceType")
    if not isinstance(resource_type, str) or not resource_type:
        raise ValueError("FHIR resource has no resourceType")
    return model_for(resource_type).model_validate(data)


def is_operation_outcome(data: Any) -> bool:
    return isinstance(data, dict) and data.get("resourceType") == ResourceType.OPERATION_OUTCOME.value
