"""Bounded state machine for one in-flight restart request."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import TypeAlias

from projsync.models.capabilities import StartMode
from projsync.models.state import AppState

logger = logging.getLogger(__name__)

REASON_CONNECTION_LOST = "connection lost"
REASON_PROJECT_DISABLED = "project disabled"
REASON_STOPPED_DURING_RESTART = "application stopped while restarting"

# App states a project walks through when restarting into each mode.
_EXPECTED_STATES: dict[StartMode, tuple[AppState, ...]] = {
    StartMode.RUN: (AppState.STOPPED, AppState.STARTING, AppState.STARTED),
    StartMode.DEBUG: (AppState.STOPPED, AppState.DEBUG_STARTING, AppState.DEBUGGING),
    StartMode.DEBUG_NO_INIT: (AppState.STOPPED, AppState.DEBUG_STARTING, AppState.DEBUGGING),
}


class RestartStatus(StrEnum):
    """Lifecycle of a restart request."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True, frozen=True)
class RestartOutcome:
    """Settled (or pending) result of a restart request."""

    status: RestartStatus
    start_mode: StartMode
    reason: str | None = None
    finished_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is RestartStatus.SUCCEEDED

    @property
    def terminal(self) -> bool:
        return self.status is not RestartStatus.PENDING


FinishCallback: TypeAlias = Callable[["RestartMachine"], None]


class RestartMachine:
    """Track one restart until it succeeds, fails, times out, or is cancelled.

    The machine settles exactly once. On settling it cancels its timer, invokes
    ``on_finish`` so the owner can detach it, and resolves the completion future
    returned by ``wait()``. Must be created while an event loop is running.
    """

    def __init__(
        self,
        project_name: str,
        start_mode: StartMode,
        timeout_seconds: float,
        *,
        on_finish: FinishCallback | None = None,
    ) -> None:
        loop = asyncio.get_running_loop()
        self._project_name = project_name
        self._start_mode = start_mode
        self._timeout_seconds = timeout_seconds
        self._on_finish = on_finish
        self._future: asyncio.Future[RestartOutcome] = loop.create_future()
        self._outcome = RestartOutcome(status=RestartStatus.PENDING, start_mode=start_mode)
        self._expected = _EXPECTED_STATES[start_mode]
        self._next_state = 0
        self.requested_at = datetime.now(UTC)
        self.deadline = loop.time() + timeout_seconds
        self._timer = loop.call_later(timeout_seconds, self._on_timeout)
        logger.debug(
            "%s: restart into %s requested, timeout %gs", project_name, start_mode, timeout_seconds
        )

    @property
    def start_mode(self) -> StartMode:
        return self._start_mode

    @property
    def timeout_seconds(self) -> float:
        return self._timeout_seconds

    @property
    def outcome(self) -> RestartOutcome:
        return self._outcome

    @property
    def is_pending(self) -> bool:
        return self._outcome.status is RestartStatus.PENDING

    async def wait(self) -> RestartOutcome:
        """Wait for the settled outcome; cancelling the waiter does not cancel the restart."""
        return await asyncio.shield(self._future)

    def on_state_change(self, app_state: AppState) -> None:
        """Advance through the expected app states; the final one settles as success."""
        if not self.is_pending:
            return
        if self._next_state == 0:
            # the app is usually still running when the restart is requested
            if app_state is AppState.STOPPED:
                self._next_state = 1
            return

        remaining = self._expected[self._next_state :]
        if app_state in remaining:
            self._next_state = self._expected.index(app_state) + 1
            if self._next_state == len(self._expected):
                logger.debug("%s: reached %s, restart complete", self._project_name, app_state)
                self.succeed()
            return

        if app_state is AppState.STOPPED and self._next_state > 1:
            self.fail(REASON_STOPPED_DURING_RESTART)

    def succeed(self) -> bool:
        return self._settle(RestartStatus.SUCCEEDED, None)

    def fail(self, reason: str) -> bool:
        return self._settle(RestartStatus.FAILED, reason)

    def cancel(self, reason: str) -> bool:
        return self._settle(RestartStatus.CANCELLED, reason)

    def on_disconnect_or_disable(self, is_disconnect: bool) -> bool:
        reason = REASON_CONNECTION_LOST if is_disconnect else REASON_PROJECT_DISABLED
        return self.cancel(reason)

    def _on_timeout(self) -> None:
        self.fail(f"timeout after {self._timeout_seconds:g}s")

    def _settle(self, status: RestartStatus, reason: str | None) -> bool:
        if not self.is_pending:
            logger.debug(
                "%s: restart already %s, ignoring %s",
                self._project_name,
                self._outcome.status,
                status,
            )
            return False

        self._timer.cancel()
        self._outcome = RestartOutcome(
            status=status,
            start_mode=self._start_mode,
            reason=reason,
            finished_at=datetime.now(UTC),
        )
        if status is RestartStatus.SUCCEEDED:
            logger.info("%s: restart into %s succeeded", self._project_name, self._start_mode)
        else:
            logger.warning("%s: restart %s: %s", self._project_name, status, reason)

        if self._on_finish is not None:
            try:
                self._on_finish(self)
            except Exception:  # noqa: BLE001
                logger.exception("%s: restart finish callback failed", self._project_name)
        if not self._future.done():
            self._future.set_result(self._outcome)
        return True
