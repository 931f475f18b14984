"""Async FHIR REST client.

Thin wrapper over ``httpx.AsyncClient``.  The sync engine reads through:

- :meth:`FhirClient.search`: ``GET {type}?{query}`` returning a Bundle
- :meth:`FhirClient.get`: ``GET {path}`` returning any resource

Artifact authoring writes through :meth:`FhirClient.create`,
:meth:`FhirClient.update` and :meth:`FhirClient.delete`.

Servers report failures as an ``OperationOutcome``, sometimes with a 2xx
status and sometimes with a 4xx/5xx one.  Either way the outcome is returned
in place of the expected resource and callers detect it structurally.
Failures that carry no FHIR payload raise :class:`FhirClientError`.

Every request has a timeout (``AcpViewConfig.request_timeout``).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import httpx

from ..config import AcpViewConfig
from ..errors import FhirClientError
from ..resources.models import is_operation_outcome

logger = logging.getLogger(__name__)

FHIR_JSON = "application/fhir+json"


def empty_searchset() -> dict[str, Any]:
    return {"resourceType": "Bundle", "type": "searchset", "total": 0, "entry": []}


def _resource_type(resource: dict[str, Any]) -> str:
    resource_type = resource.get("resourceType")
    if not resource_type:
        raise FhirClientError("Resource has no resourceType")
    return resource_type


class FhirSearch(Protocol):
    """What the executor and resolver need from a FHIR server."""

    async def search(self, resource_type: str, query_string: str) -> dict[str, Any]: ...

    async def get(self, path: str) -> dict[str, Any] | None: ...

    async def search_patient_by_identifier(self, system: str, value: str) -> dict[str, Any] | None: ...


class FhirClient:
    """FHIR client bound to one server base URL.

    Parameters
    ----------
    base_url:
        Server base, e.g. ``https://server.fire.ly``.
    timeout:
        Per-request timeout in seconds.
    headers:
        Extra headers for every request (e.g. conformance-mode headers).
    transport:
        Optional ``httpx`` transport, used by tests to stub the server.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        request_headers = {"Accept": FHIR_JSON}
        request_headers.update(headers or {})
        self._http = httpx.AsyncClient(
            base_url=self.base_url + "/",
            timeout=timeout,
            headers=request_headers,
            follow_redirects=True,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: AcpViewConfig,
        server_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> FhirClient:
        return cls(
            server_url or config.server_url,
            timeout=config.request_timeout,
            headers=config.extra_headers,
            transport=transport,
        )

    async def __aenter__(self) -> FhirClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def get(self, path: str) -> dict[str, Any] | None:
        """Fetch ``{base}/{path}``.

        Returns the decoded resource, an ``OperationOutcome`` when the server
        sent one, or ``None`` for an empty 2xx body.

        Raises
        ------
        FhirClientError
            On transport errors, timeouts, non-JSON bodies, or error statuses
            without an ``OperationOutcome``.
        """
        return await self._send("GET", path)

    async def create(self, resource: dict[str, Any]) -> dict[str, Any] | None:
        """``POST {type}``; returns the stored resource or an OperationOutcome."""
        return await self._send("POST", _resource_type(resource), body=resource)

    async def update(self, resource: dict[str, Any]) -> dict[str, Any] | None:
        """``PUT {type}/{id}``; *resource* must carry an id."""
        resource_id = resource.get("id")
        if not resource_id:
            raise FhirClientError(f"Cannot update a {resource.get('resourceType')} without an id")
        return await self._send("PUT", f"{_resource_type(resource)}/{resource_id}", body=resource)

    async def delete(self, resource_type: str, resource_id: str) -> dict[str, Any] | None:
        """``DELETE {type}/{id}``; most servers answer with an empty body."""
        return await self._send("DELETE", f"{resource_type}/{resource_id}")

    async def search(self, resource_type: str, query_string: str) -> dict[str, Any]:
        """Run a search and return the Bundle (or an OperationOutcome)."""
        path = f"{resource_type}?{query_string}" if query_string else resource_type
        resource = await self.get(path)
        if resource is None:
            return empty_searchset()
        if resource.get("resourceType") not in ("Bundle", "OperationOutcome"):
            raise FhirClientError(
                f"Search {path} returned {resource.get('resourceType')!r}, expected a Bundle"
            )
        return resource

    async def search_patient_by_identifier(self, system: str, value: str) -> dict[str, Any] | None:
        """First Patient matching ``identifier={system}|{value}``, if any."""
        bundle = await self.search("Patient", f"identifier={system}|{value}")
        for entry in bundle.get("entry") or []:
            resource = entry.get("resource") or {}
            if resource.get("resourceType") == "Patient":
                return resource
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _send(self, method: str, path: str, body: dict[str, Any] | None = None) -> dict[str, Any] | None:
        relative = path.lstrip("/")
        kwargs: dict[str, Any] = {}
        if body is not None:
            kwargs["content"] = json.dumps(body).encode("utf-8")
            kwargs["headers"] = {"Content-Type": FHIR_JSON}
        try:
            response = await self._http.request(method, relative, **kwargs)
        except httpx.TimeoutException as exc:
            raise FhirClientError(f"Timed out on {method} {relative}") from exc
        except httpx.HTTPError as exc:
            raise FhirClientError(f"{method} {relative} failed: {exc}") from exc
        return self._read(response, relative)

    @staticmethod
    def _read(response: httpx.Response, path: str) -> dict[str, Any] | None:
        body: Any = None
        if response.content:
            try:
                body = response.json()
            except (json.JSONDecodeError, UnicodeDecodeError):
                body = None

        if is_operation_outcome(body):
            if response.is_error:
                logger.debug("%s returned HTTP %s with OperationOutcome", path, response.status_code)
            return body

        if response.is_error:
            raise FhirClientError(
                f"HTTP {response.status_code} for {path}", status_code=response.status_code
            )
        if not response.content:
            return None
        if not isinstance(body, dict):
            raise FhirClientError(f"Response for {path} is not a FHIR JSON resource")
        return body
