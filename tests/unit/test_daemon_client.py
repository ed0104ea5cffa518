import httpx
import pytest

from projsync.config import SyncSettings
from projsync.core.probes import DaemonClient, ProjectProbes
from projsync.errors import RemoteProbeError
from projsync.models.capabilities import StartMode


def _client(transport: httpx.MockTransport) -> DaemonClient:
    return DaemonClient(SyncSettings(daemon_url="http://daemon.test"), transport=transport)


@pytest.mark.asyncio
async def test_get_capabilities_parses_payload() -> None:
    seen: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        return httpx.Response(
            200,
            json={"startModes": ["run", "debug", "later"], "controlCommands": ["restart"]},
        )

    client = _client(httpx.MockTransport(handler))
    capabilities = await client.get_capabilities("p1")
    await client.aclose()

    assert seen == [("GET", "/api/v1/projects/p1/capabilities")]
    assert capabilities.start_modes == {StartMode.RUN, StartMode.DEBUG}
    assert capabilities.supports_debug


@pytest.mark.asyncio
async def test_metrics_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/projects/p1/metrics/status"
        return httpx.Response(200, json={"metricsAvailable": True})

    client = _client(httpx.MockTransport(handler))
    assert await client.are_metrics_available("p1")
    await client.aclose()


@pytest.mark.asyncio
async def test_metrics_status_requires_boolean() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"metricsAvailable": "yes"})

    client = _client(httpx.MockTransport(handler))
    with pytest.raises(RemoteProbeError):
        await client.are_metrics_available("p1")
    await client.aclose()


@pytest.mark.asyncio
async def test_http_error_status_is_wrapped() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "no such project"})

    client = _client(httpx.MockTransport(handler))
    with pytest.raises(RemoteProbeError) as exc_info:
        await client.get_capabilities("missing")
    await client.aclose()

    assert exc_info.value.status_code == 404
    assert exc_info.value.project_id == "missing"


@pytest.mark.asyncio
async def test_transport_error_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(httpx.MockTransport(handler))
    with pytest.raises(RemoteProbeError) as exc_info:
        await client.request_unbind("p1")
    await client.aclose()

    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_non_json_body_is_rejected() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>oops</html>")

    client = _client(httpx.MockTransport(handler))
    with pytest.raises(RemoteProbeError):
        await client.get_capabilities("p1")
    await client.aclose()


@pytest.mark.asyncio
async def test_client_callables_post_unbind() -> None:
    seen: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        return httpx.Response(202)

    client = _client(httpx.MockTransport(handler))
    probes = ProjectProbes.from_client(client)
    await probes.unbind("p1")
    await client.aclose()

    assert seen == [("POST", "/api/v1/projects/p1/unbind")]
