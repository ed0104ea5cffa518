import asyncio

import pytest

from projsync.core.restart import (
    REASON_CONNECTION_LOST,
    REASON_PROJECT_DISABLED,
    REASON_STOPPED_DURING_RESTART,
    RestartMachine,
    RestartStatus,
)
from projsync.models.capabilities import StartMode
from projsync.models.state import AppState


def test_machine_requires_running_loop() -> None:
    with pytest.raises(RuntimeError):
        RestartMachine("demo", StartMode.RUN, 1.0)


@pytest.mark.asyncio
async def test_settles_exactly_once() -> None:
    finished: list[RestartMachine] = []
    machine = RestartMachine("demo", StartMode.RUN, 5.0, on_finish=finished.append)

    assert machine.is_pending
    assert machine.succeed()
    assert not machine.fail("late failure")
    assert not machine.cancel("late cancel")

    outcome = await machine.wait()
    assert outcome.status is RestartStatus.SUCCEEDED
    assert outcome.succeeded
    assert outcome.finished_at is not None
    assert finished == [machine]


@pytest.mark.asyncio
async def test_timeout_fails_the_restart() -> None:
    loop = asyncio.get_running_loop()
    started = loop.time()
    machine = RestartMachine("demo", StartMode.DEBUG, 0.1)

    outcome = await machine.wait()

    assert outcome.status is RestartStatus.FAILED
    assert outcome.reason == "timeout after 0.1s"
    assert loop.time() - started >= 0.09


@pytest.mark.asyncio
async def test_settling_cancels_the_timer() -> None:
    machine = RestartMachine("demo", StartMode.RUN, 0.05)
    machine.cancel(REASON_CONNECTION_LOST)

    await asyncio.sleep(0.1)

    assert machine.outcome.status is RestartStatus.CANCELLED
    assert machine.outcome.reason == REASON_CONNECTION_LOST


@pytest.mark.asyncio
async def test_disconnect_and_disable_reasons() -> None:
    disconnected = RestartMachine("demo", StartMode.RUN, 5.0)
    disabled = RestartMachine("demo", StartMode.RUN, 5.0)

    disconnected.on_disconnect_or_disable(True)
    disabled.on_disconnect_or_disable(False)

    assert disconnected.outcome.reason == REASON_CONNECTION_LOST
    assert disabled.outcome.reason == REASON_PROJECT_DISABLED
    assert disabled.outcome.terminal


@pytest.mark.asyncio
async def test_run_state_progression_succeeds() -> None:
    machine = RestartMachine("demo", StartMode.RUN, 5.0)

    machine.on_state_change(AppState.STARTED)
    assert machine.is_pending
    machine.on_state_change(AppState.STOPPED)
    machine.on_state_change(AppState.STARTING)
    assert machine.is_pending
    machine.on_state_change(AppState.STARTED)

    assert machine.outcome.status is RestartStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_debug_progression_may_skip_intermediate_state() -> None:
    machine = RestartMachine("demo", StartMode.DEBUG_NO_INIT, 5.0)

    machine.on_state_change(AppState.STOPPED)
    machine.on_state_change(AppState.STARTED)
    assert machine.is_pending
    machine.on_state_change(AppState.DEBUGGING)

    assert machine.outcome.succeeded


@pytest.mark.asyncio
async def test_stopping_again_after_start_fails() -> None:
    machine = RestartMachine("demo", StartMode.RUN, 5.0)

    machine.on_state_change(AppState.STOPPED)
    machine.on_state_change(AppState.STARTING)
    machine.on_state_change(AppState.STOPPED)

    assert machine.outcome.status is RestartStatus.FAILED
    assert machine.outcome.reason == REASON_STOPPED_DURING_RESTART


@pytest.mark.asyncio
async def test_failing_finish_callback_still_resolves() -> None:
    def explode(_: RestartMachine) -> None:
        raise RuntimeError("subscriber bug")

    machine = RestartMachine("demo", StartMode.RUN, 5.0, on_finish=explode)
    machine.fail("boom")

    outcome = await machine.wait()
    assert outcome.reason == "boom"
