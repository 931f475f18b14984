"""Execution of ACP catalog queries against a FHIR server.

Each query moves ``PENDING → RUNNING → SUCCESS | ERROR``.  A failed query is
not retried; the caller runs it again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from ..cache.resource_cache import ResourceCache, with_source
from ..config import AcpViewConfig
from ..fhir.client import FhirClient, FhirSearch
from ..resources.models import OperationOutcome, is_operation_outcome
from ..utils.logging import log_query_outcome
from .queries import AcpQuery, QueryStatus
from .references import ReferenceResolver

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], FhirClient]


def wrap_outcome(outcome: dict[str, Any]) -> dict[str, Any]:
    """One-entry searchset Bundle around a bare OperationOutcome."""
    return {
        "resourceType": "Bundle",
        "type": "searchset",
        "total": 1,
        "entry": [{"resource": outcome}],
    }


def find_error(bundle: dict[str, Any]) -> str | None:
    """Message of the first OperationOutcome entry in *bundle*, if any."""
    for entry in bundle.get("entry") or []:
        resource = entry.get("resource") if isinstance(entry, dict) else None
        if is_operation_outcome(resource):
            try:
                return OperationOutcome.model_validate(resource).summary()
            except ValueError:
                return "Server returned an error (OperationOutcome)"
    return None


def _same_server(a: str, b: str) -> bool:
    return a.rstrip("/") == b.rstrip("/")


class QueryExecutor:
    """Runs :class:`AcpQuery` objects and caches what they return.

    Parameters
    ----------
    client:
        Client for the configured server (``config.server_url``).
    cache:
        Destination for search results.
    config:
        Explicit configuration; nothing is read from global state.
    client_factory:
        Builds a client for an alternate server.  Defaults to
        :meth:`FhirClient.from_config`.
    """

    def __init__(
        self,
        client: FhirSearch,
        cache: ResourceCache,
        config: AcpViewConfig,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.config = config
        self.client_factory = client_factory or (lambda url: FhirClient.from_config(config, server_url=url))

    async def execute(self, query: AcpQuery, server_url: str | None = None) -> AcpQuery:
        """Run *query* against the configured server or *server_url*.

        A query that is already running is left alone.
        """
        if query.status is QueryStatus.RUNNING:
            return query

        query.status = QueryStatus.RUNNING
        query.error_message = None
        query.result = None
        effective_url = (server_url or self.config.server_url).rstrip("/")

        try:
            response = await self._search(query, effective_url)
            bundle = wrap_outcome(response) if is_operation_outcome(response) else response
            query.result = bundle

            error = find_error(bundle)
            if error is not None:
                query.error_message = error
                query.status = QueryStatus.ERROR
            else:
                await self._persist(bundle, effective_url)
                query.status = QueryStatus.SUCCESS
        except Exception as exc:
            logger.error("Query %r failed: %s", query.title, exc)
            query.error_message = str(exc)
            query.status = QueryStatus.ERROR

        log_query_outcome(logger, query.title, query.status.value, len(query.entries), query.error_message)
        return query

    async def execute_all(self, queries: Iterable[AcpQuery], server_url: str | None = None) -> list[AcpQuery]:
        """Run *queries* one after another."""
        return [await self.execute(q, server_url) for q in queries]

    async def resolve_references(self, queries: Iterable[AcpQuery]) -> AcpQuery:
        """Resolve references reachable from the results of *queries*.

        The outcome is reported as a query of its own, with the newly fetched
        resources as its result Bundle.
        """
        resolve_query = AcpQuery(
            title="Fetching referenced resources",
            resource_type="RelatedPerson, PractitionerRole, Practitioner, etc.",
            query_string="",
            status=QueryStatus.RUNNING,
        )
        resolver = ReferenceResolver(self.client, self.cache, self.config)
        resources = [r for q in queries for r in q.resources]
        try:
            result = await resolver.resolve(resources)
        except Exception as exc:
            logger.error("Reference resolution failed: %s", exc)
            resolve_query.error_message = str(exc)
            resolve_query.status = QueryStatus.ERROR
            return resolve_query
        resolve_query.result = result.to_bundle()
        resolve_query.status = QueryStatus.SUCCESS
        return resolve_query

    async def find_patient_id(self, system: str, value: str, server_url: str | None = None) -> str | None:
        """Logical id of the Patient with identifier ``system|value``."""
        try:
            if server_url is None or _same_server(server_url, self.config.server_url):
                patient = await self.client.search_patient_by_identifier(system, value)
            else:
                async with self.client_factory(server_url) as client:
                    patient = await client.search_patient_by_identifier(system, value)
        except Exception as exc:
            logger.warning("Error finding patient on %s: %s", server_url or self.config.server_url, exc)
            return None
        return patient.get("id") if patient else None

    # ------------------------------------------------------------------

    async def _search(self, query: AcpQuery, server_url: str) -> dict[str, Any]:
        if _same_server(server_url, self.config.server_url):
            return await self.client.search(query.resource_type, query.query_string)
        async with self.client_factory(server_url) as client:
            return await client.search(query.resource_type, query.query_string)

    async def _persist(self, bundle: dict[str, Any], server_url: str) -> int:
        written = 0
        for entry in bundle.get("entry") or []:
            resource = entry.get("resource") if isinstance(entry, dict) else None
            if not isinstance(resource, dict):
                continue
            if await self.cache.put(server_url, with_source(resource, server_url)):
                written += 1
        return written
