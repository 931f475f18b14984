"""Session state: current server and patient, with change observers.

Setters report whether anything changed and notify observers only when it
did.  Observers are plain callables registered with :meth:`AppState.subscribe`.

Meant for applications that keep one engine alive across server and
patient switches; the CLI builds a fresh client per command instead.
"""

from __future__ import annotations

from collections.abc import Callable

from .config import AcpViewConfig
from .fhir.client import FhirClient
from .resources.models import Patient

Observer = Callable[["AppState"], None]


class AppState:
    def __init__(self, server_url: str, patient: Patient | None = None) -> None:
        self._server_url = server_url.rstrip("/")
        self._patient = patient
        self._observers: list[Observer] = []

    @property
    def server_url(self) -> str:
        return self._server_url

    @property
    def patient(self) -> Patient | None:
        return self._patient

    def subscribe(self, observer: Observer) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def unsubscribe(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def set_server_url(self, url: str) -> bool:
        url = url.rstrip("/")
        if url == self._server_url:
            return False
        self._server_url = url
        self._notify()
        return True

    def set_patient(self, patient: Patient | None) -> bool:
        current = self._patient.id if self._patient else None
        incoming = patient.id if patient else None
        if current == incoming:
            return False
        self._patient = patient
        self._notify()
        return True

    def _notify(self) -> None:
        for observer in list(self._observers):
            observer(self)


class FhirClientProvider:
    """Keeps a :class:`FhirClient` pointed at the state's current server.

    Replaced clients are closed by :meth:`aclose`.
    """

    def __init__(
        self,
        state: AppState,
        config: AcpViewConfig,
        factory: Callable[[str], FhirClient] | None = None,
    ) -> None:
        self._state = state
        self._factory = factory or (lambda url: FhirClient.from_config(config, server_url=url))
        self._client = self._factory(state.server_url)
        self._retired: list[FhirClient] = []
        state.subscribe(self._on_state_change)

    @property
    def client(self) -> FhirClient:
        return self._client

    def _on_state_change(self, state: AppState) -> None:
        if self._client.base_url != state.server_url:
            self._retired.append(self._client)
            self._client = self._factory(state.server_url)

    async def aclose(self) -> None:
        self._state.unsubscribe(self._on_state_change)
        for client in [*self._retired, self._client]:
            await client.aclose()
        self._retired.clear()
