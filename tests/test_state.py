"""Tests for AppState observers and the client provider."""

import asyncio


def _patient(pid, family="Smit"):
    from acpview.resources.models import Patient

    return Patient.model_validate({"resourceType": "Patient", "id": pid, "name": [{"family": family}]})


class TestAppState:
    def test_notifies_on_change_only(self):
        from acpview.state import AppState

        state = AppState("https://server.fire.ly")
        seen = []
        state.subscribe(lambda s: seen.append(s.server_url))

        assert state.set_server_url("http://hapi.fhir.org/baseR4") is True
        assert state.set_server_url("http://hapi.fhir.org/baseR4/") is False
        assert seen == ["http://hapi.fhir.org/baseR4"]

    def test_patient_compared_by_id(self):
        from acpview.state import AppState

        state = AppState("https://server.fire.ly")
        calls = []
        state.subscribe(lambda s: calls.append(s.patient.id if s.patient else None))

        assert state.set_patient(_patient("p1")) is True
        assert state.set_patient(_patient("p1", family="Changed")) is False
        assert state.set_patient(_patient("p2")) is True
        assert state.set_patient(None) is True
        assert state.set_patient(None) is False
        assert calls == ["p1", "p2", None]

    def test_subscribe_is_idempotent_and_unsubscribe(self):
        from acpview.state import AppState

        state = AppState("https://server.fire.ly")
        calls = []

        def observer(s):
            calls.append(s.server_url)

        state.subscribe(observer)
        state.subscribe(observer)
        state.set_server_url("https://a.example")
        state.unsubscribe(observer)
        state.unsubscribe(observer)
        state.set_server_url("https://b.example")
        assert calls == ["https://a.example"]


class FakeClient:
    def __init__(self, base_url):
        self.base_url = base_url
        self.closed = False

    async def aclose(self):
        self.closed = True


class TestFhirClientProvider:
    def test_rebuilds_client_on_server_change(self):
        from acpview.config import AcpViewConfig
        from acpview.state import AppState, FhirClientProvider

        state = AppState("https://server.fire.ly")
        provider = FhirClientProvider(state, AcpViewConfig(), factory=FakeClient)
        first = provider.client
        assert first.base_url == "https://server.fire.ly"

        state.set_patient(_patient("p1"))
        assert provider.client is first

        state.set_server_url("http://hapi.fhir.org/baseR4")
        second = provider.client
        assert second is not first
        assert second.base_url == "http://hapi.fhir.org/baseR4"

        asyncio.run(provider.aclose())
        assert first.closed and second.closed

    def test_default_factory_uses_config(self):
        from acpview.config import AcpViewConfig
        from acpview.state import AppState, FhirClientProvider

        state = AppState("https://example.org/fhir")
        provider = FhirClientProvider(state, AcpViewConfig(request_timeout=3))
        assert provider.client.base_url == "https://example.org/fhir"
        asyncio.run(provider.aclose())
