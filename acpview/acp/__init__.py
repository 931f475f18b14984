"""ACP (Advance Care Planning) sync and reconciliation engine.

- :mod:`.queries`: the fixed catalog of ACP searches
- :mod:`.executor`: runs searches and caches the results
- :mod:`.references`: fetches referenced resources, depth-bounded
- :mod:`.dedup`: identifier-based duplicate collapsing
- :mod:`.reconciler`: builds the integrated view from the cache
"""

from .dedup import deduplicate, identifier_components
from .executor import QueryExecutor
from .models import (
    AcpEncounterView,
    DirectiveCategory,
    IntegratedDataset,
    ParticipantInfo,
    TreatmentDirectiveView,
)
from .queries import AcpQuery, QueryStatus, build_acp_queries
from .reconciler import AcpDataReconciler
from .references import ReferenceResolver, ResolutionResult, extract_references, normalize_reference

__all__ = [
    "deduplicate",
    "identifier_components",
    "QueryExecutor",
    "AcpEncounterView",
    "DirectiveCategory",
    "IntegratedDataset",
    "ParticipantInfo",
    "TreatmentDirectiveView",
    "AcpQuery",
    "QueryStatus",
    "build_acp_queries",
    "AcpDataReconciler",
    "ReferenceResolver",
    "ResolutionResult",
    "extract_references",
    "normalize_reference",
]
