import asyncio
from pathlib import Path

import pytest

from projsync.core.probes import ProjectProbes
from projsync.core.project_model import DeletionStatus, ProjectModel
from projsync.errors import RemoteProbeError
from projsync.models.capabilities import ALL_CAPABILITIES, ProjectCapabilities
from tests.support.fakes import FakeDaemon, RecordingLifecycle, snapshot


@pytest.mark.asyncio
async def test_deletion_success_tears_down_and_removes_files(tmp_path: Path) -> None:
    project_dir = tmp_path / "demo"
    (project_dir / "src").mkdir(parents=True)
    (project_dir / "src" / "app.js").write_text("console.log('hi')\n", encoding="utf-8")
    daemon = FakeDaemon()
    model = ProjectModel(snapshot(locOnDisk=str(project_dir)), probes=daemon.probes())

    request = asyncio.create_task(model.request_deletion(delete_files=True))
    await asyncio.sleep(0)
    assert daemon.unbind_calls == ["p1"]
    assert model.is_pending_deletion

    settled = await model.on_deletion_result({"projectID": "p1", "status": "success"})
    outcome = await request

    assert settled == outcome
    assert outcome.status is DeletionStatus.DELETED
    assert outcome.error is None
    assert model.is_disposed
    assert not project_dir.exists()


@pytest.mark.asyncio
async def test_deletion_keeps_files_unless_asked() -> None:
    lifecycle = RecordingLifecycle()
    model = ProjectModel(snapshot(), probes=FakeDaemon().probes(), lifecycle=lifecycle)

    request = asyncio.create_task(model.request_deletion())
    await asyncio.sleep(0)
    await model.on_deletion_result({"status": "success"})
    outcome = await request

    assert outcome.deleted
    assert "release_debug_config" in lifecycle.names()
    assert "teardown" in lifecycle.names()
    assert "remove_project_files" not in lifecycle.names()


@pytest.mark.asyncio
async def test_deletion_failure_resolves_and_allows_retry() -> None:
    model = ProjectModel(snapshot(), probes=FakeDaemon().probes())

    request = asyncio.create_task(model.request_deletion())
    await asyncio.sleep(0)
    await model.on_deletion_result({"projectID": "p1", "status": "failed"})
    outcome = await request

    assert outcome.status is DeletionStatus.FAILED
    assert outcome.error == "Error deleting demo"
    assert not model.is_pending_deletion
    assert not model.is_disposed

    retry = asyncio.create_task(model.request_deletion())
    await asyncio.sleep(0)
    assert model.is_pending_deletion
    await model.on_deletion_result({"status": "success"})
    assert (await retry).deleted


@pytest.mark.asyncio
async def test_rejected_unbind_resolves_immediately() -> None:
    daemon = FakeDaemon(unbind_error=RemoteProbeError("409 conflict", project_id="p1"))
    model = ProjectModel(snapshot(), probes=daemon.probes())

    outcome = await model.request_deletion()

    assert outcome.status is DeletionStatus.REJECTED
    assert outcome.error == "409 conflict"
    assert not model.is_pending_deletion


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_leave_deletion_pending() -> None:
    unbind_started = asyncio.Event()
    release_unbind = asyncio.Event()
    unbind_calls: list[str] = []

    async def capabilities(_: str) -> ProjectCapabilities:
        return ALL_CAPABILITIES

    async def metrics(_: str) -> bool:
        return False

    async def unbind(project_id: str) -> None:
        unbind_calls.append(project_id)
        if len(unbind_calls) == 1:
            unbind_started.set()
            await release_unbind.wait()

    model = ProjectModel(
        snapshot(),
        probes=ProjectProbes(capabilities=capabilities, metrics=metrics, unbind=unbind),
    )

    first = asyncio.create_task(model.request_deletion())
    await unbind_started.wait()
    first.cancel()
    with pytest.raises(asyncio.CancelledError):
        await first
    assert not model.is_pending_deletion

    retry = asyncio.create_task(model.request_deletion())
    await asyncio.sleep(0)
    assert model.is_pending_deletion
    await model.on_deletion_result({"status": "success"})

    outcome = await asyncio.wait_for(retry, timeout=1.0)
    assert outcome.deleted
    assert unbind_calls == ["p1", "p1"]


@pytest.mark.asyncio
async def test_second_request_joins_pending_deletion() -> None:
    daemon = FakeDaemon()
    model = ProjectModel(snapshot(), probes=daemon.probes())

    first = asyncio.create_task(model.request_deletion())
    await asyncio.sleep(0)
    second = asyncio.create_task(model.request_deletion())
    await asyncio.sleep(0)
    await model.on_deletion_result({"status": "success"})

    assert (await first).deleted
    assert (await second).deleted
    assert daemon.unbind_calls == ["p1"]


@pytest.mark.asyncio
async def test_unexpected_deletion_event_is_ignored(caplog: pytest.LogCaptureFixture) -> None:
    model = ProjectModel(snapshot(), probes=FakeDaemon().probes())

    assert await model.on_deletion_result({"status": "success"}) is None
    assert not model.is_disposed
    assert "not pending deletion" in caplog.text


@pytest.mark.asyncio
async def test_dispose_settles_pending_deletion() -> None:
    model = ProjectModel(snapshot(), probes=FakeDaemon().probes())

    request = asyncio.create_task(model.request_deletion())
    await asyncio.sleep(0)
    await model.dispose()

    outcome = await request
    assert outcome.status is DeletionStatus.FAILED
