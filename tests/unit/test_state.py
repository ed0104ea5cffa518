from projsync.models.capabilities import StartMode
from projsync.models.state import AppState, BuildState, ProjectState, StateUpdate


def test_initial_state_is_unknown() -> None:
    state = ProjectState("demo")

    assert state.app_state is AppState.UNKNOWN
    assert state.build_state is BuildState.UNKNOWN
    assert state.is_enabled
    assert str(state) == "Unknown"


def test_app_and_build_status_mapping() -> None:
    state = ProjectState("demo")

    changed = state.update(
        StateUpdate(app_status="started", build_status="success", build_detail=" done ")
    )

    assert changed
    assert state.app_state is AppState.STARTED
    assert state.build_state is BuildState.BUILT
    assert state.build_detail == "done"
    assert state.is_started
    assert str(state) == "Running | Build Succeeded - done"


def test_repeated_update_reports_no_change() -> None:
    state = ProjectState("demo")
    update = StateUpdate(app_status="stopped", build_status="inProgress")

    assert state.update(update)
    assert not state.update(update)
    assert state.is_building


def test_debug_start_mode_maps_started_to_debugging() -> None:
    state = ProjectState("demo")

    state.update(StateUpdate(app_status="starting", start_mode="debug"))
    assert state.app_state is AppState.DEBUG_STARTING
    assert state.is_starting

    state.update(StateUpdate(app_status="started"))
    assert state.app_state is AppState.DEBUGGING
    assert state.start_mode is StartMode.DEBUG


def test_start_mode_alone_flips_a_live_app() -> None:
    state = ProjectState("demo")
    state.update(StateUpdate(app_status="started", start_mode="debug"))

    assert state.update(StateUpdate(start_mode="run"))
    assert state.app_state is AppState.STARTED


def test_closed_disables_and_open_resets() -> None:
    state = ProjectState("demo")
    state.update(StateUpdate(app_status="started", build_status="success"))

    assert state.update(StateUpdate(state="closed", app_status="started"))
    assert not state.is_enabled
    assert state.app_state is AppState.DISABLED
    assert state.build_state is BuildState.DISABLED
    assert str(state) == "Disabled"

    assert state.update(StateUpdate(state="open"))
    assert state.is_enabled
    assert state.app_state is AppState.UNKNOWN


def test_unknown_values_degrade_to_unknown() -> None:
    state = ProjectState("demo")
    state.update(StateUpdate(app_status="started", build_status="success"))

    state.update(StateUpdate(app_status="levitating", build_status="melting", start_mode="x"))

    assert state.app_state is AppState.UNKNOWN
    assert state.build_state is BuildState.UNKNOWN
    assert state.start_mode is None
