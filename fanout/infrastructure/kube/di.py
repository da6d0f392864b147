"""DI provider for the Kubernetes adapters."""

from typing import AsyncIterable, NewType

import httpx
from dishka import Provider, provide

from fanout.config import Config
from fanout.domain.shared.port.control_plane import ControlPlane
from fanout.domain.shared.port.event_recorder import EventRecorder
from fanout.domain.shared.port.secret_resolver import SecretResolver
from fanout.infrastructure.kube.client import KubeControlPlane
from fanout.infrastructure.kube.events import KubeEventRecorder
from fanout.infrastructure.kube.secret import KubeSecretResolver
from fanout.util.di.scope import Scope

# Disambiguate from the API-source httpx.AsyncClient
KubeHttpClient = NewType("KubeHttpClient", httpx.AsyncClient)


def create_kube_client(config: Config) -> httpx.AsyncClient:
    """HTTP client bound to the API server with credentials and CA applied."""
    kube = config.kube
    headers = {"Accept": "application/json"}
    token = kube.resolved_token()
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return httpx.AsyncClient(
        base_url=kube.resolved_url(),
        headers=headers,
        verify=kube.resolved_verify(),
        timeout=httpx.Timeout(kube.request_timeout),
    )


class KubeProvider(Provider):
    """Control plane, secrets and events, all APP-scoped."""

    @provide(scope=Scope.APP)
    async def get_kube_http_client(self, config: Config) -> AsyncIterable[KubeHttpClient]:
        client = create_kube_client(config)
        yield KubeHttpClient(client)
        await client.aclose()

    @provide(scope=Scope.APP, provides=ControlPlane)
    def get_control_plane(self, client: KubeHttpClient, config: Config) -> KubeControlPlane:
        return KubeControlPlane(client, watch_timeout_seconds=config.kube.watch_timeout_seconds)

    @provide(scope=Scope.APP, provides=SecretResolver)
    def get_secret_resolver(self, control_plane: ControlPlane) -> KubeSecretResolver:
        return KubeSecretResolver(control_plane)

    @provide(scope=Scope.APP, provides=EventRecorder)
    def get_event_recorder(self, control_plane: ControlPlane) -> KubeEventRecorder:
        return KubeEventRecorder(control_plane)
