"""View models produced by the ACP reconciler."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from ..resources.dates import MIN_DATETIME
from ..resources.models import (
    Consent,
    Encounter,
    Goal,
    Observation,
    Patient,
    Procedure,
    QuestionnaireResponse,
)


class ParticipantInfo(BaseModel):
    """Someone involved in an ACP conversation."""

    display: str
    reference: str
    is_practitioner: bool
    role: str | None = None


class AcpEncounterView(BaseModel):
    """An ACP conversation: encounter plus its procedure, forms and vitals."""

    encounter: Encounter
    procedure: Procedure | None = None
    date: datetime = MIN_DATETIME
    participants: list[ParticipantInfo] = Field(default_factory=list)
    questionnaire_responses: list[QuestionnaireResponse] = Field(default_factory=list)
    observations: list[Observation] = Field(default_factory=list)

    @property
    def has_date(self) -> bool:
        return self.date != MIN_DATETIME


class DirectiveCategory(str, Enum):
    PERMIT = "permit"
    DENY = "deny"
    OTHER = "other"


class TreatmentDirectiveView(BaseModel):
    """Newest consent for one treatment (provision code)."""

    consent: Consent
    title: str
    category: DirectiveCategory
    date: datetime | None = None
    specification_other: str | None = None


class IntegratedDataset(BaseModel):
    """Everything the ACP overview shows for one patient."""

    current_patient: Patient | None = None
    acp_encounters: list[AcpEncounterView] = Field(default_factory=list)
    unlinked_questionnaires: list[QuestionnaireResponse] = Field(default_factory=list)
    patient_goals: list[Goal] = Field(default_factory=list)
    latest_goal: Goal | None = None
    all_consents: list[Consent] = Field(default_factory=list)
    permits: list[TreatmentDirectiveView] = Field(default_factory=list)
    denials: list[TreatmentDirectiveView] = Field(default_factory=list)
    others: list[TreatmentDirectiveView] = Field(default_factory=list)
    all_observations: list[Observation] = Field(default_factory=list)
    latest_observations: list[Observation] = Field(default_factory=list)
