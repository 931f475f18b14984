"""Terminology used by the ACP (Advance Care Planning) implementation guide.

These values go into search URLs and linking rules exactly as written.
"""

from __future__ import annotations

SNOMED = "http://snomed.info/sct"
CONSENT_SCOPE_SYSTEM = "http://terminology.hl7.org/CodeSystem/consentscope"
CONSENT_CATEGORY_SYSTEM = "http://terminology.hl7.org/CodeSystem/consentcategorycodes"

# Advance care planning (procedure)
ACP_PROCEDURE_CODE = "713603004"

TREATMENT_SCOPE = "treatment"
ADVANCE_DIRECTIVE_SCOPE = "adr"
TREATMENT_CATEGORY = "129125009"
ADVANCE_DIRECTIVE_CATEGORY = "acd"

GOAL_CODES: tuple[str, ...] = ("385987000", "1351964001", "713148004")
OBSERVATION_CODES: tuple[str, ...] = (
    "153851000146100",
    "395091006",
    "340171000146104",
    "247751003",
)

ICD_DEVICE_VALUESET = "https://api.iknl.nl/docs/pzp/r4/ValueSet/ACP-MedicalDeviceProductType-ICD"
ACP_QUESTIONNAIRE_URL = "https://api.iknl.nl/docs/pzp/r4/Questionnaire/ACP-zib2020"
LEGALLY_CAPABLE_EXTENSION_URL = (
    "https://api.iknl.nl/docs/pzp/r4/StructureDefinition/ext-LegallyCapable-MedicalTreatmentDecisions"
)

# Display fallback used throughout the Dutch-language IG.
UNKNOWN_DISPLAY = "Onbekend"
