"""
ACPVIEW - Advance Care Planning sync and reconciliation for FHIR

Pulls ACP resources for a patient from a FHIR server into a local cache,
resolves the resources they reference, and reconciles the cache into one
integrated view: ACP conversations with their procedure, participants,
forms and vitals; treatment directives; goals; and latest observations.

Main Components:
    - acpview.acp: query catalog, executor, reference resolver, reconciler
    - acpview.cache: key/value stores and the monotonic resource cache
    - acpview.fhir: async FHIR REST client
    - acpview.crmi: CRMI artifact authoring (ActivityDefinition, ChargeItemDefinition)
    - acpview.cli: ``acpview`` command-line entry point
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
