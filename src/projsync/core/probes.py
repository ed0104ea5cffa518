"""Outbound daemon queries: capabilities, metrics availability, unbind."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from projsync.config import SyncSettings
from projsync.errors import RemoteProbeError
from projsync.models.capabilities import ProjectCapabilities


class CapabilityProbe(Protocol):
    """Async query for a project's capabilities."""

    async def __call__(self, project_id: str) -> ProjectCapabilities:
        """Return capabilities or raise on failure."""


class MetricsProbe(Protocol):
    """Async query for whether a project exposes a metrics endpoint."""

    async def __call__(self, project_id: str) -> bool:
        """Return availability or raise on failure."""


class UnbindRequester(Protocol):
    """Async request asking the daemon to forget a project."""

    async def __call__(self, project_id: str) -> None:
        """Return once the daemon accepted the request; raise if rejected."""


@dataclass(slots=True)
class ProjectProbes:
    """The outbound calls a project model depends on."""

    capabilities: CapabilityProbe
    metrics: MetricsProbe
    unbind: UnbindRequester

    @classmethod
    def from_client(cls, client: DaemonClient) -> ProjectProbes:
        return cls(
            capabilities=client.get_capabilities,
            metrics=client.are_metrics_available,
            unbind=client.request_unbind,
        )


class DaemonClient:
    """REST client for the daemon's per-project endpoints."""

    def __init__(
        self,
        settings: SyncSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or SyncSettings()
        self._client = httpx.AsyncClient(
            base_url=self._settings.daemon_url,
            timeout=self._settings.request_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_capabilities(self, project_id: str) -> ProjectCapabilities:
        response = await self._request("GET", project_id, "capabilities")
        return ProjectCapabilities.from_payload(self._json_object(response, project_id))

    async def are_metrics_available(self, project_id: str) -> bool:
        response = await self._request("GET", project_id, "metrics/status")
        available = self._json_object(response, project_id).get("metricsAvailable")
        if not isinstance(available, bool):
            msg = "metrics status payload missing boolean metricsAvailable"
            raise RemoteProbeError(msg, project_id=project_id)
        return available

    async def request_unbind(self, project_id: str) -> None:
        await self._request("POST", project_id, "unbind")

    async def _request(self, method: str, project_id: str, path: str) -> httpx.Response:
        url = f"/api/v1/projects/{project_id}/{path}"
        try:
            response = await self._client.request(method, url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            msg = f"{method} {url} returned http status {status_code}"
            raise RemoteProbeError(msg, project_id=project_id, status_code=status_code) from exc
        except httpx.HTTPError as exc:
            msg = f"{method} {url} failed: {exc}"
            raise RemoteProbeError(msg, project_id=project_id) from exc
        return response

    @staticmethod
    def _json_object(response: httpx.Response, project_id: str) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            msg = "daemon returned a non-JSON body"
            raise RemoteProbeError(msg, project_id=project_id) from exc
        if not isinstance(payload, dict):
            msg = "daemon returned a non-object JSON body"
            raise RemoteProbeError(msg, project_id=project_id)
        return payload
