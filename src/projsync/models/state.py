"""Composite run/build state of a project."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from projsync.models.capabilities import StartMode

logger = logging.getLogger(__name__)


class AppState(StrEnum):
    """Application state as displayed to the user."""

    STARTED = "Running"
    STARTING = "Starting"
    STOPPING = "Stopping"
    STOPPED = "Stopped"
    DEBUGGING = "Debugging"
    DEBUG_STARTING = "Starting - Debug"
    DISABLED = "Disabled"
    UNKNOWN = "Unknown"


class BuildState(StrEnum):
    """Build state as displayed to the user."""

    BUILT = "Build Succeeded"
    BUILDING = "Building"
    BUILD_FAILED = "Build Failed"
    BUILD_QUEUED = "Build Queued"
    DISABLED = "Disabled"
    UNKNOWN = "Unknown"


_APP_STATUS = {
    "started": AppState.STARTED,
    "starting": AppState.STARTING,
    "stopping": AppState.STOPPING,
    "stopped": AppState.STOPPED,
    "unknown": AppState.UNKNOWN,
}

_BUILD_STATUS = {
    "success": BuildState.BUILT,
    "inprogress": BuildState.BUILDING,
    "queued": BuildState.BUILD_QUEUED,
    "failed": BuildState.BUILD_FAILED,
    "unknown": BuildState.UNKNOWN,
}

STATE_CLOSED = "closed"
STATE_OPEN = "open"


@dataclass(slots=True)
class StateUpdate:
    """State fields carried by one inbound payload; None means absent."""

    app_status: str | None = None
    build_status: str | None = None
    build_detail: str | None = None
    start_mode: str | None = None
    state: str | None = None


class ProjectState:
    """Run/build sub-model; ``update`` reports whether anything observable changed."""

    def __init__(self, project_name: str) -> None:
        self._project_name = project_name
        self.app_state = AppState.UNKNOWN
        self.build_state = BuildState.UNKNOWN
        self.build_detail = ""
        self.start_mode: StartMode | None = None

    def update(self, payload: StateUpdate) -> bool:
        before = self.snapshot()

        if payload.start_mode is not None:
            mode = StartMode.parse(payload.start_mode)
            if mode is None:
                logger.warning(
                    "Unknown startMode %r for %s, ignoring it",
                    payload.start_mode,
                    self._project_name,
                )
            else:
                self.start_mode = mode

        if payload.state == STATE_CLOSED:
            self.app_state = AppState.DISABLED
            self.build_state = BuildState.DISABLED
            self.build_detail = ""
            return self.snapshot() != before

        if payload.state == STATE_OPEN and self.app_state is AppState.DISABLED:
            self.app_state = AppState.UNKNOWN
            self.build_state = BuildState.UNKNOWN

        if payload.app_status is not None:
            self.app_state = self._resolve_app_state(payload.app_status)
        elif self.is_started or self.is_starting:
            # startMode alone can flip run <-> debug for a live app
            self.app_state = self._with_start_mode(self.app_state)

        if payload.build_status is not None:
            build_state = _BUILD_STATUS.get(payload.build_status.lower())
            if build_state is None:
                logger.warning(
                    "Unknown buildStatus %r for %s", payload.build_status, self._project_name
                )
                build_state = BuildState.UNKNOWN
            self.build_state = build_state

        if payload.build_detail is not None:
            self.build_detail = payload.build_detail.strip()

        return self.snapshot() != before

    def snapshot(self) -> tuple[AppState, BuildState, str, StartMode | None]:
        return (self.app_state, self.build_state, self.build_detail, self.start_mode)

    def _resolve_app_state(self, app_status: str) -> AppState:
        state = _APP_STATUS.get(app_status.lower())
        if state is None:
            logger.warning("Unknown appStatus %r for %s", app_status, self._project_name)
            return AppState.UNKNOWN
        return self._with_start_mode(state)

    def _with_start_mode(self, state: AppState) -> AppState:
        debug = self.start_mode is not None and self.start_mode.is_debug
        if state in (AppState.STARTED, AppState.DEBUGGING):
            return AppState.DEBUGGING if debug else AppState.STARTED
        if state in (AppState.STARTING, AppState.DEBUG_STARTING):
            return AppState.DEBUG_STARTING if debug else AppState.STARTING
        return state

    @property
    def is_enabled(self) -> bool:
        return self.app_state is not AppState.DISABLED

    @property
    def is_started(self) -> bool:
        return self.app_state in (AppState.STARTED, AppState.DEBUGGING)

    @property
    def is_starting(self) -> bool:
        return self.app_state in (AppState.STARTING, AppState.DEBUG_STARTING)

    @property
    def is_building(self) -> bool:
        return self.build_state in (BuildState.BUILDING, BuildState.BUILD_QUEUED)

    def __str__(self) -> str:
        if not self.is_enabled:
            return str(AppState.DISABLED)
        parts = [str(self.app_state)]
        if self.build_state is not BuildState.UNKNOWN:
            build = str(self.build_state)
            if self.build_detail:
                build = f"{build} - {self.build_detail}"
            parts.append(build)
        return " | ".join(parts)
