"""Tests for CRMI artifact rules and the artifact service."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

SERVER = "https://server.fire.ly"
BASE = "https://acp.example.nl/fhir"


class TestSanitizeName:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("ACP Talk", "acp-talk"),
            ("advance_care_planning", "advance-care-planning"),
            ("Gesprek (v2)!", "gesprek-v2"),
            ("already-clean-123", "already-clean-123"),
            ("Zorgverlener Één", "zorgverlener-één"),
            ("", "unnamed"),
            ("   ", "unnamed"),
            (None, "unnamed"),
            ("!!!", "unnamed"),
        ],
    )
    def test_sanitize(self, name, expected):
        from acpview.crmi import sanitize_name

        assert sanitize_name(name) == expected

    def test_canonical_url_trims_base_slash(self):
        from acpview.crmi import generate_canonical_url

        url = generate_canonical_url(BASE + "/", "ActivityDefinition", "ACP Talk")
        assert url == f"{BASE}/ActivityDefinition/acp-talk"


class TestStatusTransitions:
    @pytest.mark.parametrize(
        "current, target, valid",
        [
            ("draft", "draft", True),
            ("draft", "active", True),
            ("draft", "retired", True),
            ("active", "active", True),
            ("active", "retired", True),
            ("active", "draft", False),
            ("retired", "retired", True),
            ("retired", "draft", False),
            ("retired", "active", False),
            ("unknown", "draft", True),
            ("unknown", "active", True),
            ("unknown", "retired", True),
            ("draft", "unknown", False),
            ("active", "unknown", False),
        ],
    )
    def test_table(self, current, target, valid):
        from acpview.crmi import validate_status_transition

        ok, message = validate_status_transition(current, target)
        assert ok is valid
        assert (message is None) is valid

    def test_messages(self):
        from acpview.crmi import validate_status_transition

        assert validate_status_transition("active", "draft")[1] == (
            "An active artifact cannot transition back to draft. Create a new version instead."
        )
        assert validate_status_transition("retired", "active")[1] == (
            "A retired artifact cannot transition back to active. Create a new version instead."
        )
        assert validate_status_transition("draft", "unknown")[1] == "Unknown status transition from draft to unknown"

    def test_valid_transitions(self):
        from acpview.crmi import PublicationStatus, valid_transitions

        assert valid_transitions("draft") == [PublicationStatus.DRAFT, PublicationStatus.ACTIVE, PublicationStatus.RETIRED]
        assert valid_transitions(PublicationStatus.ACTIVE) == [PublicationStatus.ACTIVE, PublicationStatus.RETIRED]
        assert valid_transitions("retired") == [PublicationStatus.RETIRED]
        assert valid_transitions("unknown") == list(PublicationStatus)

    def test_transitions_agree_with_validation(self):
        from acpview.crmi import PublicationStatus, valid_transitions, validate_status_transition

        for current in PublicationStatus:
            allowed = set(valid_transitions(current))
            for target in PublicationStatus:
                assert validate_status_transition(current, target)[0] is (target in allowed)

    def test_artifact_status_defaults_to_unknown(self):
        from acpview.crmi.artifacts import PublicationStatus, artifact_status

        assert artifact_status({"status": "active"}) is PublicationStatus.ACTIVE
        assert artifact_status({}) is PublicationStatus.UNKNOWN
        assert artifact_status({"status": "obsolete"}) is PublicationStatus.UNKNOWN


class TestExtensions:
    def test_usage_replaced_and_removed(self):
        from acpview.crmi.artifacts import USAGE_EXTENSION, get_usage, set_usage

        resource = {
            "resourceType": "ActivityDefinition",
            "extension": [{"url": USAGE_EXTENSION, "valueMarkdown": "old"}, {"url": "urn:other", "valueString": "x"}],
        }
        set_usage(resource, "Use during ACP conversations")
        assert get_usage(resource) == "Use during ACP conversations"
        assert [e["url"] for e in resource["extension"]] == ["urn:other", USAGE_EXTENSION]

        set_usage(resource, "  ")
        assert get_usage(resource) is None
        assert resource["extension"] == [{"url": "urn:other", "valueString": "x"}]

    def test_copyright_label(self):
        from acpview.crmi.artifacts import get_copyright_label, set_copyright_label

        resource = {"resourceType": "ChargeItemDefinition"}
        set_copyright_label(resource, "© 2024 Example")
        assert get_copyright_label(resource) == "© 2024 Example"
        set_copyright_label(resource, None)
        assert "extension" not in resource

    def test_other_resources_untouched(self):
        from acpview.crmi.artifacts import set_usage

        resource = {"resourceType": "Procedure"}
        set_usage(resource, "text")
        assert resource == {"resourceType": "Procedure"}


class TestBuildSearchQuery:
    def test_defaults(self):
        from acpview.crmi import build_search_query

        assert build_search_query() == "_sort=-_lastUpdated&_count=50"

    def test_title_and_status(self):
        from acpview.crmi import build_search_query

        query = build_search_query("ACP gesprek", "active")
        assert query == "title:contains=ACP%20gesprek&status=active&_sort=-_lastUpdated&_count=50"

    def test_unknown_status_not_filtered(self):
        from acpview.crmi import build_search_query

        assert "status" not in build_search_query(status="unknown")


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class FakeArtifactServer:
    """In-memory artifact store behind an httpx.MockTransport."""

    def __init__(self, stored=None):
        self.stored = dict(stored or {})
        self.requests: list[tuple[str, str]] = []
        self.bodies: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.lstrip("/")
        self.requests.append((request.method, path))
        if request.content:
            self.bodies.append(json.loads(request.content))
        if request.method == "GET" and "/" not in path:
            return httpx.Response(200, json={"resourceType": "Bundle", "type": "searchset", "entry": []})
        if request.method == "GET":
            if path in self.stored:
                return httpx.Response(200, json=self.stored[path])
            return httpx.Response(
                404,
                json={"resourceType": "OperationOutcome", "issue": [{"severity": "error", "diagnostics": "not-found"}]},
            )
        if request.method == "POST":
            return httpx.Response(201, json={**self.bodies[-1], "id": "new-1"})
        if request.method == "PUT":
            self.stored[path] = self.bodies[-1]
            return httpx.Response(200, json=self.bodies[-1])
        return httpx.Response(204)


def _service(server):
    from acpview.crmi import CrmiArtifactService
    from acpview.fhir.client import FhirClient

    client = FhirClient(SERVER, transport=httpx.MockTransport(server))
    return CrmiArtifactService(client, BASE)


def _run(service, coro_fn):
    async def run():
        async with service.client:
            return await coro_fn(service)

    return asyncio.run(run())


class TestCrmiArtifactService:
    def test_create_defaults(self):
        server = FakeArtifactServer()
        resource = {"resourceType": "ActivityDefinition", "name": "ACP Talk"}
        created = _run(_service(server), lambda s: s.create(resource))

        sent = server.bodies[0]
        assert server.requests == [("POST", "ActivityDefinition")]
        assert sent["status"] == "draft"
        assert sent["date"]
        assert sent["url"] == f"{BASE}/ActivityDefinition/acp-talk"
        assert created["id"] == "new-1"
        assert resource == {"resourceType": "ActivityDefinition", "name": "ACP Talk"}

    def test_create_keeps_given_values(self):
        server = FakeArtifactServer()
        resource = {
            "resourceType": "ChargeItemDefinition",
            "status": "active",
            "date": "2024-01-01",
            "url": "https://other.example/ChargeItemDefinition/x",
        }
        _run(_service(server), lambda s: s.create(resource))
        assert server.bodies[0]["status"] == "active"
        assert server.bodies[0]["date"] == "2024-01-01"
        assert server.bodies[0]["url"] == "https://other.example/ChargeItemDefinition/x"

    def test_update_stamps_date(self):
        server = FakeArtifactServer()
        _run(
            _service(server),
            lambda s: s.update({"resourceType": "ActivityDefinition", "id": "ad-1", "date": "2020-01-01"}),
        )
        assert server.requests == [("PUT", "ActivityDefinition/ad-1")]
        assert server.bodies[0]["date"] != "2020-01-01"

    def test_rejects_other_resource_types(self):
        from acpview.errors import AcpViewError

        server = FakeArtifactServer()
        with pytest.raises(AcpViewError, match="Not a CRMI artifact type"):
            _run(_service(server), lambda s: s.create({"resourceType": "Procedure"}))
        assert server.requests == []

    def test_search_sends_query(self):
        server = FakeArtifactServer()
        bundle = _run(_service(server), lambda s: s.search("ChargeItemDefinition", status="retired"))
        assert bundle["resourceType"] == "Bundle"
        assert server.requests == [("GET", "ChargeItemDefinition")]

    def test_delete(self):
        server = FakeArtifactServer()
        assert _run(_service(server), lambda s: s.delete("ActivityDefinition", "ad-1")) is None
        assert server.requests == [("DELETE", "ActivityDefinition/ad-1")]

    def test_transition_saves_new_status(self):
        server = FakeArtifactServer(
            {"ActivityDefinition/ad-1": {"resourceType": "ActivityDefinition", "id": "ad-1", "status": "draft"}}
        )
        result = _run(_service(server), lambda s: s.transition_status("ActivityDefinition", "ad-1", "active"))
        assert result["status"] == "active"
        assert server.requests == [("GET", "ActivityDefinition/ad-1"), ("PUT", "ActivityDefinition/ad-1")]

    def test_invalid_transition_raises_without_write(self):
        from acpview.errors import ArtifactStatusError

        server = FakeArtifactServer(
            {"ActivityDefinition/ad-1": {"resourceType": "ActivityDefinition", "id": "ad-1", "status": "retired"}}
        )
        with pytest.raises(ArtifactStatusError) as exc_info:
            _run(_service(server), lambda s: s.transition_status("ActivityDefinition", "ad-1", "active"))
        assert exc_info.value.current == "retired"
        assert exc_info.value.target == "active"
        assert [m for m, _ in server.requests] == ["GET"]

    def test_same_status_is_noop(self):
        server = FakeArtifactServer(
            {"ActivityDefinition/ad-1": {"resourceType": "ActivityDefinition", "id": "ad-1", "status": "active"}}
        )
        _run(_service(server), lambda s: s.transition_status("ActivityDefinition", "ad-1", "active"))
        assert [m for m, _ in server.requests] == ["GET"]

    def test_missing_artifact_raises(self):
        from acpview.errors import AcpViewError

        with pytest.raises(AcpViewError, match="not-found"):
            _run(_service(FakeArtifactServer()), lambda s: s.transition_status("ActivityDefinition", "nope", "active"))

    def test_from_config(self):
        from acpview.config import AcpViewConfig
        from acpview.crmi import CrmiArtifactService
        from acpview.fhir.client import FhirClient

        config = AcpViewConfig(canonical_base_url=BASE + "/")
        client = FhirClient.from_config(config)
        service = CrmiArtifactService.from_config(client, config)
        assert service.canonical_url("ChargeItemDefinition", "Tarief ACP") == (
            f"{BASE}/ChargeItemDefinition/tarief-acp"
        )
        asyncio.run(client.aclose())
