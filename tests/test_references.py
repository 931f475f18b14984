"""Tests for reference extraction, normalization and depth-bounded resolution."""

from __future__ import annotations

import asyncio

import pytest

SERVER = "https://server.fire.ly"


class FakeServer:
    """In-memory stand-in for FhirClient.get, recording every path asked for."""

    def __init__(self, resources: dict[str, dict], failing: set[str] = frozenset()):
        self.resources = resources
        self.failing = failing
        self.calls: list[str] = []

    async def get(self, path):
        self.calls.append(path)
        if path in self.failing:
            from acpview.errors import FhirClientError

            raise FhirClientError(f"HTTP 500 for {path}", status_code=500)
        if path in self.resources:
            return dict(self.resources[path])
        return {
            "resourceType": "OperationOutcome",
            "issue": [{"severity": "error", "diagnostics": "not-found"}],
        }

    async def search(self, resource_type, query_string):
        raise AssertionError("search is not used by the resolver")


def _resolver(server, depth=2, store=None):
    from acpview.acp.references import ReferenceResolver
    from acpview.cache import MemoryStore, ResourceCache
    from acpview.config import AcpViewConfig

    store = store if store is not None else MemoryStore()
    config = AcpViewConfig(server_url=SERVER, reference_resolution_depth=depth)
    return ReferenceResolver(server, ResourceCache(store), config), store


PROCEDURE = {
    "resourceType": "Procedure",
    "id": "proc1",
    "encounter": {"reference": "Encounter/E1"},
}
ENCOUNTER = {
    "resourceType": "Encounter",
    "id": "E1",
    "participant": [{"individual": {"reference": "PractitionerRole/PR1"}}],
}
ROLE = {
    "resourceType": "PractitionerRole",
    "id": "PR1",
    "practitioner": {"reference": "Practitioner/P1"},
    "organization": {"reference": "Organization/O1"},
}


class TestExtractReferences:
    def test_procedure(self):
        from acpview.acp.references import extract_references
        from acpview.resources.models import parse_resource

        proc = parse_resource(
            {
                **PROCEDURE,
                "performer": [{"actor": {"reference": "Practitioner/P1"}}, {"function": {"text": "arts"}}],
            }
        )
        assert extract_references(proc) == ["Encounter/E1", "Practitioner/P1"]

    def test_encounter_includes_subject(self):
        from acpview.acp.references import extract_references
        from acpview.resources.models import parse_resource

        enc = parse_resource({**ENCOUNTER, "subject": {"reference": "Patient/pat1"}})
        assert extract_references(enc) == ["PractitionerRole/PR1", "Patient/pat1"]

    def test_consent_nested_provision_actors(self):
        from acpview.acp.references import extract_references
        from acpview.resources.models import parse_resource

        consent = parse_resource(
            {
                "resourceType": "Consent",
                "provision": {
                    "actor": [{"reference": {"reference": "RelatedPerson/top"}}],
                    "provision": [{"actor": [{"reference": {"reference": "RelatedPerson/rp1"}}]}],
                },
            }
        )
        assert extract_references(consent) == ["RelatedPerson/rp1"]

    def test_observation_and_role(self):
        from acpview.acp.references import extract_references
        from acpview.resources.models import parse_resource

        obs = parse_resource({"resourceType": "Observation", "performer": [{"reference": "Practitioner/P2"}]})
        assert extract_references(obs) == ["Practitioner/P2"]
        assert extract_references(parse_resource(ROLE)) == ["Practitioner/P1", "Organization/O1"]

    def test_other_kinds_have_none(self):
        from acpview.acp.references import extract_references
        from acpview.resources.models import parse_resource

        assert extract_references(parse_resource({"resourceType": "Goal", "subject": {"reference": "Patient/1"}})) == []


class TestNormalizeReference:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Encounter/E1", "Encounter/E1"),
            ("https://server.fire.ly/Encounter/E1", "Encounter/E1"),
            ("https://server.fire.ly/Encounter/E1/_history/3", "Encounter/E1"),
            ("Practitioner/P1/_history/2", "Practitioner/P1"),
            ("http://hapi.fhir.org/baseR4/Encounter/E1", None),
            ("#contained-1", None),
            ("urn:uuid:1234", None),
            ("", None),
            (None, None),
        ],
    )
    def test_normalize(self, raw, expected):
        from acpview.acp.references import normalize_reference

        assert normalize_reference(raw, SERVER) == expected


class TestReferenceResolver:
    def test_depth_two_fetches_two_levels(self):
        server = FakeServer(
            {
                "Encounter/E1": ENCOUNTER,
                "PractitionerRole/PR1": ROLE,
                "Practitioner/P1": {"resourceType": "Practitioner", "id": "P1"},
            }
        )
        resolver, store = _resolver(server, depth=2)
        result = asyncio.run(resolver.resolve([PROCEDURE]))

        keys = store.snapshot()
        assert "server_fire_ly_Encounter_E1" in keys
        assert "server_fire_ly_PractitionerRole_PR1" in keys
        # PR1's own references are a third level
        assert "Practitioner/P1" not in server.calls
        assert "Organization/O1" not in server.calls
        assert result.passes == 2
        assert server.calls == ["Encounter/E1", "PractitionerRole/PR1"]

    def test_encounter_then_practitioner(self):
        server = FakeServer(
            {
                "Encounter/E1": {
                    "resourceType": "Encounter",
                    "id": "E1",
                    "participant": [{"individual": {"reference": "Practitioner/P1"}}],
                },
                "Practitioner/P1": {"resourceType": "Practitioner", "id": "P1"},
            }
        )
        resolver, store = _resolver(server, depth=2)
        asyncio.run(resolver.resolve([PROCEDURE]))
        assert set(store.snapshot()) == {"server_fire_ly_Encounter_E1", "server_fire_ly_Practitioner_P1"}

    def test_depth_one_fetches_only_first_level(self):
        server = FakeServer({"Encounter/E1": ENCOUNTER, "PractitionerRole/PR1": ROLE})
        resolver, store = _resolver(server, depth=1)
        result = asyncio.run(resolver.resolve([PROCEDURE]))

        assert server.calls == ["Encounter/E1"]
        assert list(store.snapshot()) == ["server_fire_ly_Encounter_E1"]
        assert result.passes == 1

    def test_depth_is_clamped(self):
        from acpview.acp.references import ReferenceResolver
        from acpview.cache import MemoryStore, ResourceCache
        from acpview.config import AcpViewConfig

        config = AcpViewConfig(server_url=SERVER)
        config.reference_resolution_depth = 50
        resolver = ReferenceResolver(FakeServer({}), ResourceCache(MemoryStore()), config)
        assert resolver.depth == 5

    def test_stops_when_nothing_new(self):
        server = FakeServer({"Encounter/E1": {"resourceType": "Encounter", "id": "E1"}})
        resolver, _ = _resolver(server, depth=5)
        result = asyncio.run(resolver.resolve([PROCEDURE]))
        assert result.passes == 1

    def test_cached_references_are_not_fetched(self):
        from acpview.cache import MemoryStore

        store = MemoryStore({"Encounter-E1-20240101": '{"resourceType": "Encounter", "id": "E1"}'})
        server = FakeServer({})
        resolver, _ = _resolver(server, store=store)
        asyncio.run(resolver.resolve([PROCEDURE]))
        assert server.calls == []

    def test_failures_are_skipped(self):
        server = FakeServer(
            {"Practitioner/P2": {"resourceType": "Practitioner", "id": "P2"}},
            failing={"Encounter/E1"},
        )
        resolver, store = _resolver(server)
        proc = {**PROCEDURE, "performer": [{"actor": {"reference": "Practitioner/P2"}}, {"actor": {"reference": "Practitioner/gone"}}]}
        result = asyncio.run(resolver.resolve([proc]))

        assert result.failed == ["Encounter/E1", "Practitioner/gone"]
        assert [r["id"] for r in result.fetched] == ["P2"]
        assert list(store.snapshot()) == ["server_fire_ly_Practitioner_P2"]

    def test_fetched_resources_carry_source(self):
        server = FakeServer({"Encounter/E1": {"resourceType": "Encounter", "id": "E1"}})
        resolver, _ = _resolver(server)
        result = asyncio.run(resolver.resolve([PROCEDURE]))
        assert result.fetched[0]["meta"]["source"] == SERVER

    def test_each_reference_requested_once(self):
        server = FakeServer({"Encounter/E1": {"resourceType": "Encounter", "id": "E1"}})
        resolver, _ = _resolver(server)
        other = {**PROCEDURE, "id": "proc2", "encounter": {"reference": f"{SERVER}/Encounter/E1"}}
        asyncio.run(resolver.resolve([PROCEDURE, other]))
        assert server.calls == ["Encounter/E1"]

    def test_result_bundle(self):
        server = FakeServer({"Encounter/E1": {"resourceType": "Encounter", "id": "E1"}})
        resolver, _ = _resolver(server)
        bundle = asyncio.run(resolver.resolve([PROCEDURE])).to_bundle()
        assert bundle["resourceType"] == "Bundle"
        assert bundle["total"] == 1
        assert bundle["entry"][0]["resource"]["id"] == "E1"
