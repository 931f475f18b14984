"""Integrated ACP view built from everything in the resource cache.

The cache holds copies of resources fetched from several servers at
different times.  :class:`AcpDataReconciler` reads all of it back, drops
duplicate encounters, links each ACP encounter to its procedure, forms and
observations, and picks the current goal, directives and observations.

The reconciler only reads.  Entries that cannot be parsed are skipped, so a
damaged cache gives an incomplete dataset, never an exception.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime

from ..cache.keys import classify_key, key_matches
from ..cache.resource_cache import ResourceCache
from ..resources.dates import MIN_DATETIME, parse_fhir_datetime, sort_key
from ..resources.models import (
    Consent,
    Encounter,
    FhirResource,
    Goal,
    Observation,
    Patient,
    Procedure,
    QuestionnaireResponse,
    ResourceType,
    parse_resource,
)
from .constants import ACP_PROCEDURE_CODE, GOAL_CODES, OBSERVATION_CODES, UNKNOWN_DISPLAY
from .dedup import deduplicate
from .models import (
    AcpEncounterView,
    DirectiveCategory,
    IntegratedDataset,
    ParticipantInfo,
    TreatmentDirectiveView,
)

logger = logging.getLogger(__name__)

_LOADED_TYPES = frozenset(
    {
        ResourceType.PROCEDURE.value,
        ResourceType.ENCOUNTER.value,
        ResourceType.QUESTIONNAIRE_RESPONSE.value,
        ResourceType.OBSERVATION.value,
        ResourceType.GOAL.value,
        ResourceType.CONSENT.value,
    }
)


# ---------------------------------------------------------------------------
# Encounters
# ---------------------------------------------------------------------------


def is_acp_procedure(procedure: Procedure | None) -> bool:
    return procedure is not None and procedure.code is not None and procedure.code.has_code(ACP_PROCEDURE_CODE)


def linked_procedures(encounter: Encounter, procedures: Iterable[Procedure]) -> list[Procedure]:
    """Procedures tied to *encounter* in either direction."""
    return [
        p
        for p in procedures
        if any(r.matches(p.id) for r in encounter.reason_reference)
        or (p.encounter is not None and p.encounter.matches(encounter.id))
    ]


def display_date(encounter: Encounter, procedure: Procedure | None) -> datetime:
    """Encounter start, else procedure date, else the minimum datetime."""
    start = parse_fhir_datetime(encounter.period.start) if encounter.period else None
    if start is not None:
        return start
    if procedure is not None:
        performed = parse_fhir_datetime(procedure.performed_date_time)
        if performed is not None:
            return performed
    return MIN_DATETIME


def collect_participants(encounter: Encounter, procedure: Procedure | None) -> list[ParticipantInfo]:
    """Encounter participants followed by procedure performers not already listed."""
    participants: list[ParticipantInfo] = []
    for p in encounter.participant:
        if p.individual is None:
            continue
        reference = p.individual.reference or ""
        participants.append(
            ParticipantInfo(
                display=p.individual.display or UNKNOWN_DISPLAY,
                reference=reference,
                is_practitioner="Practitioner" in reference,
            )
        )

    if procedure is not None:
        for performer in procedure.performer:
            actor = performer.actor
            if actor is None:
                continue
            reference = actor.reference or ""
            if any(x.reference == reference for x in participants):
                continue
            participants.append(
                ParticipantInfo(
                    display=actor.display or UNKNOWN_DISPLAY,
                    reference=reference,
                    is_practitioner="Practitioner" in reference,
                    role=performer.function.text if performer.function else None,
                )
            )
    return participants


def build_encounter_views(
    encounters: Sequence[Encounter],
    procedures: Sequence[Procedure],
    questionnaire_responses: Sequence[QuestionnaireResponse],
    observations: Sequence[Observation],
) -> tuple[list[AcpEncounterView], list[QuestionnaireResponse]]:
    """Encounter views plus the questionnaire responses no encounter claimed.

    Only encounters with at least one linked procedure produce a view.
    Unlinked responses are sorted newest first by ``authored``.
    """
    views: list[AcpEncounterView] = []
    linked_qr_ids: set[str] = set()

    for encounter in deduplicate(encounters):
        linked = linked_procedures(encounter, procedures)
        if not linked:
            continue
        procedure = next((p for p in linked if is_acp_procedure(p)), linked[0])

        forms = [qr for qr in questionnaire_responses if qr.encounter and qr.encounter.matches(encounter.id)]
        linked_qr_ids.update(qr.id for qr in forms if qr.id)
        vitals = [o for o in observations if o.encounter and o.encounter.matches(encounter.id)]

        views.append(
            AcpEncounterView(
                encounter=encounter,
                procedure=procedure,
                date=display_date(encounter, procedure),
                participants=collect_participants(encounter, procedure),
                questionnaire_responses=forms,
                observations=vitals,
            )
        )

    unlinked = [qr for qr in questionnaire_responses if qr.id and qr.id not in linked_qr_ids]
    unlinked.sort(key=lambda qr: sort_key(qr.authored), reverse=True)
    return views, unlinked


# ---------------------------------------------------------------------------
# Goals, directives, observations
# ---------------------------------------------------------------------------


def filter_goals(goals: Iterable[Goal]) -> list[Goal]:
    return [g for g in goals if g.description is not None and g.description.has_code(*GOAL_CODES)]


def latest_goal(goals: Sequence[Goal]) -> Goal | None:
    if not goals:
        return None
    return max(goals, key=lambda g: sort_key(g.status_date))


def _provision_code(consent: Consent) -> str:
    coding = consent.provision.first_coding() if consent.provision else None
    return (coding.code if coding else None) or "Unknown"


def _directive_title(consent: Consent) -> str:
    if consent.provision is None or not consent.provision.code:
        return UNKNOWN_DISPLAY
    concept = consent.provision.code[0]
    first = concept.coding[0] if concept.coding else None
    return (first.display if first else None) or concept.text or UNKNOWN_DISPLAY


def to_directive(consent: Consent) -> TreatmentDirectiveView:
    provision_type = consent.provision.type if consent.provision else None
    if provision_type == DirectiveCategory.PERMIT.value:
        category = DirectiveCategory.PERMIT
    elif provision_type == DirectiveCategory.DENY.value:
        category = DirectiveCategory.DENY
    else:
        category = DirectiveCategory.OTHER

    specification = None
    if category is DirectiveCategory.OTHER:
        specification = next(
            (e.value_string for e in consent.modifier_extension if e.value_string is not None),
            None,
        )

    return TreatmentDirectiveView(
        consent=consent,
        title=_directive_title(consent),
        category=category,
        date=parse_fhir_datetime(consent.date_time),
        specification_other=specification,
    )


def classify_consents(consents: Iterable[Consent]) -> dict[DirectiveCategory, list[TreatmentDirectiveView]]:
    """Newest active consent per provision code, bucketed by provision type."""
    groups: dict[str, list[Consent]] = {}
    for consent in consents:
        if consent.status == "active":
            groups.setdefault(_provision_code(consent), []).append(consent)

    buckets: dict[DirectiveCategory, list[TreatmentDirectiveView]] = {c: [] for c in DirectiveCategory}
    for group in groups.values():
        newest = max(group, key=lambda c: sort_key(c.date_time))
        directive = to_directive(newest)
        buckets[directive.category].append(directive)
    return buckets


def _observation_time(observation: Observation) -> str:
    return observation.effective_date_time or observation.issued or ""


def latest_observations(observations: Iterable[Observation]) -> list[Observation]:
    """Latest observation for each of the tracked observation codes."""
    groups: dict[str, list[Observation]] = {}
    for obs in observations:
        if obs.code is None:
            continue
        code = next((c.code for c in obs.code.coding if c.code in OBSERVATION_CODES), None)
        if code is not None:
            groups.setdefault(code, []).append(obs)
    return [max(group, key=_observation_time) for group in groups.values()]


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class AcpDataReconciler:
    """Builds an :class:`IntegratedDataset` from a :class:`ResourceCache`."""

    def __init__(self, cache: ResourceCache) -> None:
        self.cache = cache

    async def load(self, patient: Patient | None) -> IntegratedDataset:
        data = IntegratedDataset()
        if patient is None:
            return data

        keys = await self.cache.keys()
        data.current_patient = await self._load_patient(patient, keys)
        loaded = await self._load_resources(keys)

        procedures: list[Procedure] = loaded[ResourceType.PROCEDURE.value]  # type: ignore[assignment]
        encounters: list[Encounter] = loaded[ResourceType.ENCOUNTER.value]  # type: ignore[assignment]
        forms: list[QuestionnaireResponse] = loaded[ResourceType.QUESTIONNAIRE_RESPONSE.value]  # type: ignore[assignment]
        data.all_observations = loaded[ResourceType.OBSERVATION.value]  # type: ignore[assignment]
        data.all_consents = loaded[ResourceType.CONSENT.value]  # type: ignore[assignment]

        data.patient_goals = filter_goals(loaded[ResourceType.GOAL.value])  # type: ignore[arg-type]
        data.latest_goal = latest_goal(data.patient_goals)

        directives = classify_consents(data.all_consents)
        data.permits = directives[DirectiveCategory.PERMIT]
        data.denials = directives[DirectiveCategory.DENY]
        data.others = directives[DirectiveCategory.OTHER]

        data.latest_observations = latest_observations(data.all_observations)

        data.acp_encounters, data.unlinked_questionnaires = build_encounter_views(
            encounters, procedures, forms, data.all_observations
        )
        logger.info(
            "Reconciled %d ACP encounters, %d directives, %d observations for Patient/%s",
            len(data.acp_encounters),
            len(data.permits) + len(data.denials) + len(data.others),
            len(data.latest_observations),
            patient.id,
        )
        return data

    async def _load_patient(self, patient: Patient, keys: list[str]) -> Patient:
        """Cached copy of *patient* when there is one, else *patient* itself."""
        if not patient.id:
            return patient
        for key in keys:
            if not key_matches(key, ResourceType.PATIENT.value, patient.id):
                continue
            resource = await self._read(key)
            if isinstance(resource, Patient):
                return resource
            break
        return patient

    async def _load_resources(self, keys: list[str]) -> dict[str, list[FhirResource]]:
        loaded: dict[str, list[FhirResource]] = {t: [] for t in _LOADED_TYPES}
        for key in keys:
            resource_type = classify_key(key)
            if resource_type not in _LOADED_TYPES:
                continue
            resource = await self._read(key)
            if resource is None:
                continue
            if resource.resource_type != resource_type:
                logger.debug("Skipping %s: holds a %s", key, resource.resource_type)
                continue
            loaded[resource_type].append(resource)
        return loaded

    async def _read(self, key: str) -> FhirResource | None:
        text = await self.cache.get_text(key)
        if not text:
            return None
        try:
            return parse_resource(text)
        except ValueError as exc:
            logger.debug("Skipping unreadable cache entry %s: %s", key, exc)
            return None
