"""Catalog of ACP searches for a patient."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .constants import (
    ACP_PROCEDURE_CODE,
    ACP_QUESTIONNAIRE_URL,
    ADVANCE_DIRECTIVE_CATEGORY,
    ADVANCE_DIRECTIVE_SCOPE,
    CONSENT_CATEGORY_SYSTEM,
    CONSENT_SCOPE_SYSTEM,
    GOAL_CODES,
    ICD_DEVICE_VALUESET,
    OBSERVATION_CODES,
    SNOMED,
    TREATMENT_CATEGORY,
    TREATMENT_SCOPE,
)


class QueryStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class AcpQuery:
    """One search and its latest outcome.

    ``result`` holds the Bundle of the last run; a bare OperationOutcome
    response is wrapped into a one-entry Bundle first.
    """

    title: str
    resource_type: str
    query_string: str
    description: str = ""
    status: QueryStatus = QueryStatus.PENDING
    result: dict[str, Any] | None = None
    error_message: str | None = None

    @property
    def entries(self) -> list[dict[str, Any]]:
        if not self.result:
            return []
        return [e for e in self.result.get("entry") or [] if isinstance(e, dict)]

    @property
    def resources(self) -> list[dict[str, Any]]:
        return [e["resource"] for e in self.entries if isinstance(e.get("resource"), dict)]

    @property
    def url(self) -> str:
        return f"{self.resource_type}?{self.query_string}" if self.query_string else self.resource_type


def build_acp_queries(patient_id: str) -> list[AcpQuery]:
    """The fixed, ordered list of ACP searches for *patient_id*."""
    patient = f"Patient/{patient_id}"
    return [
        AcpQuery(
            title="ACP Procedures and Encounters",
            resource_type="Procedure",
            query_string=f"patient={patient}&code={SNOMED}|{ACP_PROCEDURE_CODE}&_include=Procedure:encounter",
        ),
        AcpQuery(
            title="Treatment Directives",
            resource_type="Consent",
            query_string=(
                f"patient={patient}&scope={CONSENT_SCOPE_SYSTEM}|{TREATMENT_SCOPE}"
                f"&category={SNOMED}|{TREATMENT_CATEGORY}&_include=Consent:actor"
            ),
        ),
        AcpQuery(
            title="Advance Directives",
            resource_type="Consent",
            query_string=(
                f"patient={patient}&scope={CONSENT_SCOPE_SYSTEM}|{ADVANCE_DIRECTIVE_SCOPE}"
                f"&category={CONSENT_CATEGORY_SYSTEM}|{ADVANCE_DIRECTIVE_CATEGORY}&_include=Consent:actor"
            ),
        ),
        AcpQuery(
            title="Medical Policy Goals",
            resource_type="Goal",
            query_string=f"patient={patient}&description={SNOMED}|{','.join(GOAL_CODES)}",
        ),
        AcpQuery(
            title="Specific Care Observations",
            resource_type="Observation",
            query_string=f"patient={patient}&code={SNOMED}|{','.join(OBSERVATION_CODES)}",
        ),
        AcpQuery(
            title="ICD Medical Devices",
            resource_type="DeviceUseStatement",
            query_string=(
                f"patient={patient}&device.type:in={ICD_DEVICE_VALUESET}"
                "&_include=DeviceUseStatement:device"
            ),
        ),
        AcpQuery(
            title="Communications",
            resource_type="Communication",
            query_string=f"patient={patient}&reason-code={SNOMED}|{ACP_PROCEDURE_CODE}",
        ),
        AcpQuery(
            title="ACP Forms",
            resource_type="QuestionnaireResponse",
            query_string=f"subject={patient}&questionnaire={ACP_QUESTIONNAIRE_URL}",
        ),
    ]
