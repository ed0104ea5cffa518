"""Local model of one remote project, reconciled against daemon events."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, TypeAlias, TypeVar
from urllib.parse import urlsplit

from projsync.config import SyncSettings
from projsync.core.lifecycle import DefaultLifecycle, ProjectLifecycle
from projsync.core.notifier import ChangeNotifier
from projsync.core.probes import ProjectProbes
from projsync.core.restart import RestartMachine, RestartOutcome
from projsync.errors import ValidationError
from projsync.models.capabilities import (
    ALL_CAPABILITIES,
    NO_CAPABILITIES,
    ProjectCapabilities,
    StartMode,
)
from projsync.models.events import (
    DeletionResultEvent,
    ProjectSnapshot,
    RestartResultEvent,
    SettingsChangedEvent,
)
from projsync.models.ports import PortSet
from projsync.models.state import AppState, BuildState, ProjectState

logger = logging.getLogger(__name__)

T = TypeVar("T")
Payload: TypeAlias = T | Mapping[str, Any]


@dataclass(slots=True)
class ReconcileResult:
    """Summary of one merge into the model."""

    state: ProjectState
    changes: set[str] = field(default_factory=set)
    rejected: dict[str, str] = field(default_factory=dict)
    accepted: bool = True
    error: str | None = None

    @property
    def changed(self) -> bool:
        return bool(self.changes)


class DeletionStatus(StrEnum):
    """How a deletion request settled."""

    DELETED = "deleted"
    FAILED = "failed"
    REJECTED = "rejected"


@dataclass(slots=True, frozen=True)
class DeletionOutcome:
    """Settled result of a deletion request."""

    status: DeletionStatus
    error: str | None = None

    @property
    def deleted(self) -> bool:
        return self.status is DeletionStatus.DELETED


@dataclass(slots=True)
class _PendingDeletion:
    future: asyncio.Future[DeletionOutcome]
    delete_files: bool


class ProjectModel:
    """Aggregate state of one remote project.

    All mutation happens on the event loop thread, one event at a time. Inbound
    payloads go through ``reconcile`` and the ``on_*`` event methods, which log
    and skip malformed input instead of raising.
    """

    def __init__(
        self,
        snapshot: Payload[ProjectSnapshot],
        *,
        probes: ProjectProbes,
        notifier: ChangeNotifier | None = None,
        lifecycle: ProjectLifecycle | None = None,
        settings: SyncSettings | None = None,
    ) -> None:
        parsed, _ = ProjectSnapshot.from_payload(snapshot)
        self._id = parsed.project_id
        self.name = parsed.name or parsed.project_id
        self.project_type = parsed.project_type or "unknown"
        self.language = parsed.language or "Unknown"
        self.extension_name = parsed.extension_name
        self.local_path = Path(parsed.loc_on_disk) if parsed.loc_on_disk else None
        # source location inside the container, used for debug source mapping
        self.container_app_root = parsed.extension_container_app_root or parsed.container_app_root

        self._probes = probes
        self._notifier = notifier or ChangeNotifier()
        self._lifecycle: ProjectLifecycle = lifecycle or DefaultLifecycle()
        self._settings = settings or SyncSettings()

        self._state = ProjectState(self.name)
        self._ports = PortSet(owner=self.name)
        self._container_id: str | None = None
        self._context_root = ""
        self._auto_build_enabled = False
        self._inject_metrics_enabled = False
        self._uses_https = False
        self._last_build: datetime | None = None
        self._last_image_build: datetime | None = None
        self._app_base_url: str | None = None
        self._capabilities_ready = False
        self._capabilities: ProjectCapabilities | None = None
        self._metrics_available = False

        self._restart: RestartMachine | None = None
        self._pending_deletion: _PendingDeletion | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._generations = {"capabilities": 0, "metrics": 0}
        self._initialized = False
        self._disposed = False

        self._apply(parsed, dispatch=False)
        logger.info(
            "Created %s project %s with ID %s at %s",
            self.project_type,
            self.name,
            self.id,
            self.local_path,
        )

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"ProjectModel(id={self.id!r}, name={self.name!r}, state={str(self._state)!r})"

    async def initialize(self) -> None:
        """Run both probes in parallel; the model is ready once they settle."""
        await asyncio.gather(self.refresh_capabilities(), self.refresh_metrics_available())
        self._initialized = True

    ##### Reconciliation

    def reconcile(self, snapshot: Payload[ProjectSnapshot]) -> ReconcileResult:
        """Merge a partial snapshot; absent fields are left untouched."""
        try:
            parsed, dropped = ProjectSnapshot.from_payload(snapshot)
        except ValidationError as exc:
            logger.error("%s: discarding unparseable snapshot: %s", self.name, exc)
            return ReconcileResult(state=self._state, accepted=False, error=str(exc))

        if parsed.project_id != self.id:
            logger.error(
                "Project %s received status update for wrong project %s",
                self.id,
                parsed.project_id,
            )
            return ReconcileResult(state=self._state, accepted=False, error="project id mismatch")

        try:
            result = self._apply(parsed, dispatch=True)
        except Exception as exc:  # noqa: BLE001
            logger.exception("%s: unexpected failure reconciling snapshot", self.name)
            self._notify()
            return ReconcileResult(state=self._state, rejected=dropped, error=str(exc))
        result.rejected.update(dropped)
        return result

    def _apply(self, snapshot: ProjectSnapshot, *, dispatch: bool) -> ReconcileResult:
        result = ReconcileResult(state=self._state)
        changes = result.changes
        sent = snapshot.model_fields_set
        refresh_capabilities = False
        refresh_metrics = False

        if "container_id" in sent and self._set_container_id(snapshot.container_id):
            changes.add("container_id")
        if snapshot.last_build is not None:
            if self._set_timestamp("_last_build", snapshot.last_build, result):
                changes.add("last_build")
        if snapshot.last_image_build is not None:
            if self._set_timestamp("_last_image_build", snapshot.last_image_build, result):
                changes.add("last_image_build")
        if snapshot.auto_build is not None and snapshot.auto_build != self._auto_build_enabled:
            self._auto_build_enabled = snapshot.auto_build
            changes.add("auto_build_enabled")
        if (
            snapshot.inject_metrics is not None
            and snapshot.inject_metrics != self._inject_metrics_enabled
        ):
            self._inject_metrics_enabled = snapshot.inject_metrics
            changes.add("inject_metrics_enabled")
            refresh_metrics = True

        if snapshot.is_https is not None and snapshot.is_https != self._uses_https:
            self._uses_https = snapshot.is_https
            changes.add("uses_https")

        if snapshot.context_root:
            context_root = _strip_leading_slash(snapshot.context_root)
            if context_root != self._context_root:
                self._context_root = context_root
                changes.add("context_root")

        if snapshot.app_base_url:
            if not _has_scheme_and_authority(snapshot.app_base_url):
                logger.error(
                    'Bad appBaseURL "%s" provided; missing scheme or authority',
                    snapshot.app_base_url,
                )
                result.rejected["app_base_url"] = snapshot.app_base_url
            if snapshot.app_base_url != self._app_base_url:
                self._app_base_url = snapshot.app_base_url
                changes.add("app_base_url")

        if (
            snapshot.capabilities_ready is not None
            and snapshot.capabilities_ready != self._capabilities_ready
        ):
            self._capabilities_ready = snapshot.capabilities_ready
            changes.add("capabilities_ready")
            refresh_capabilities = True

        was_enabled = self._state.is_enabled
        old_state = str(self._state)
        if self._state.update(snapshot.state_update()):
            changes.add("state")
            start_mode = f", startMode={snapshot.start_mode}" if snapshot.start_mode else ""
            logger.debug("%s went from %s to %s%s", self.name, old_state, self._state, start_mode)
            if dispatch and was_enabled and not self._state.is_enabled:
                self._handle_disable()
            elif dispatch and not was_enabled and self._state.is_enabled:
                self._handle_enable()
                refresh_capabilities = True
                refresh_metrics = True

        if snapshot.ports is not None:
            port_change = self._ports.apply(snapshot.ports.present())
            changes.update(f"ports.{key}" for key in port_change.changed)
            result.rejected.update({f"ports.{k}": v for k, v in port_change.rejected.items()})
        elif self._state.is_started:
            logger.error(
                "%s: no ports were provided for an app that is supposed to be started", self.name
            )

        if self._restart is not None:
            self._restart.on_state_change(self._state.app_state)

        if dispatch:
            if refresh_capabilities:
                self._spawn("capabilities", self.refresh_capabilities)
            if refresh_metrics:
                self._spawn("metrics", self.refresh_metrics_available)
            self._notify()
        return result

    def on_settings_changed(self, event: Payload[SettingsChangedEvent]) -> ReconcileResult:
        """Apply a settings-changed event; a failure status is reported but still applied."""
        try:
            parsed, dropped = SettingsChangedEvent.from_payload(event)
        except ValidationError as exc:
            logger.error("%s: discarding unparseable settings event: %s", self.name, exc)
            return ReconcileResult(state=self._state, accepted=False, error=str(exc))
        if parsed.project_id is not None and parsed.project_id != self.id:
            logger.error("Project %s received settings event for %s", self.id, parsed.project_id)
            return ReconcileResult(state=self._state, accepted=False, error="project id mismatch")

        logger.debug("Project settings changed for %s: %s", self.name, parsed)
        result = ReconcileResult(state=self._state, rejected=dropped)
        if not parsed.succeeded:
            result.error = "Project settings update failed"
            if parsed.error:
                result.error = f"{result.error}: {parsed.error}"
            logger.error("%s: %s", self.name, result.error)

        if parsed.context_root:
            context_root = _strip_leading_slash(parsed.context_root)
            if context_root != self._context_root:
                self._context_root = context_root
                result.changes.add("context_root")
                logger.info("ContextRoot for %s now %s", self.name, context_root)

        if parsed.ports is not None:
            sent = parsed.ports.present()
            internal = {
                key: sent[key] for key in ("internal_port", "internal_debug_port") if key in sent
            }
            if internal:
                port_change = self._ports.apply(internal)
                result.changes.update(f"ports.{key}" for key in port_change.changed)
                result.rejected.update(
                    {f"ports.{k}": v for k, v in port_change.rejected.items()}
                )
            else:
                logger.error("%s: received unexpected ports response: %s", self.name, sent)

        if result.changes:
            self._notify()
        return result

    ##### Restart

    def request_restart(
        self,
        start_mode: StartMode | str,
        timeout_seconds: float | None = None,
    ) -> bool:
        """Start tracking a restart; False if one is already pending or the mode is unknown."""
        mode = StartMode.parse(start_mode)
        if mode is None:
            logger.error("%s: cannot restart into unknown start mode %r", self.name, start_mode)
            return False
        if self._restart is not None:
            logger.error("%s: restart requested while already restarting", self.name)
            return False

        timeout = timeout_seconds
        if timeout is None:
            timeout = self._settings.restart_timeout_seconds
        if timeout <= 0:
            logger.error("%s: restart timeout must be positive, got %r", self.name, timeout)
            return False
        try:
            self._restart = RestartMachine(
                self.name,
                mode,
                timeout,
                on_finish=self._on_restart_finish,
            )
        except RuntimeError:
            logger.exception("%s: restart requires a running event loop", self.name)
            return False
        self._notify()
        return True

    def on_restart_result(self, event: Payload[RestartResultEvent]) -> RestartOutcome | None:
        """Settle the pending restart from the daemon's result event."""
        machine = self._restart
        if machine is None:
            logger.error("%s: received restart event without a pending restart", self.name)
            return None

        generic_error = f"Failed to restart {self.name}"
        try:
            parsed, _ = RestartResultEvent.from_payload(event)
        except ValidationError as exc:
            logger.error("%s: unparseable restart event: %s", self.name, exc)
            machine.fail(generic_error)
            return machine.outcome

        if not parsed.succeeded:
            logger.error("%s: restart failed, response is %s", self.name, parsed)
            machine.fail(parsed.error_msg or generic_error)
            return machine.outcome

        sent = parsed.ports.present() if parsed.ports is not None else {}
        if not sent or StartMode.parse(parsed.start_mode) is None:
            # success must carry both ports and a known start mode
            logger.error("%s, payload: %s", generic_error, parsed)
            machine.fail(generic_error)
            return machine.outcome

        ports = replace(self._ports)
        if ports.apply(sent).rejected:
            logger.error("%s, invalid ports: %s", generic_error, sent)
            machine.fail(generic_error)
        else:
            logger.debug("%s: restart event is valid", self.name)
            self._ports = ports
            if parsed.container_id:
                self._set_container_id(parsed.container_id)
            self._notify()
            machine.succeed()
        return machine.outcome

    def _on_restart_finish(self, machine: RestartMachine) -> None:
        if self._restart is machine:
            self._restart = None
            self._notify()

    ##### Probes

    async def refresh_capabilities(self) -> ProjectCapabilities:
        """Re-query capabilities; failures resolve to no capabilities."""
        token = self._next_generation("capabilities")
        if not self._state.is_enabled or not self._capabilities_ready:
            # the daemon has nothing to answer until the project is enabled and ready
            capabilities = NO_CAPABILITIES
        else:
            try:
                capabilities = await self._probes.capabilities(self.id)
            except Exception:  # noqa: BLE001
                logger.exception("Error retrieving capabilities for %s", self.name)
                capabilities = NO_CAPABILITIES

        if token != self._generations["capabilities"]:
            logger.debug("%s: discarding stale capabilities result", self.name)
            return self.capabilities
        if capabilities != self._capabilities:
            self._capabilities = capabilities
            self._notify()
        return capabilities

    async def refresh_metrics_available(self) -> bool:
        """Re-query metrics availability; failures keep the cached value."""
        token = self._next_generation("metrics")
        try:
            available = bool(await self._probes.metrics(self.id))
        except Exception:  # noqa: BLE001
            logger.exception("Error checking metrics status for %s", self.name)
            return self._metrics_available

        if token != self._generations["metrics"]:
            logger.debug("%s: discarding stale metrics result", self.name)
            return self._metrics_available
        if available != self._metrics_available:
            self._metrics_available = available
            self._notify()
        return available

    async def wait_for_refreshes(self) -> None:
        """Wait until every fire-and-forget refresh has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _next_generation(self, probe: str) -> int:
        self._generations[probe] += 1
        return self._generations[probe]

    def _spawn(self, name: str, factory: Callable[[], Coroutine[Any, Any, Any]]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("%s: no running event loop, skipped %s refresh", self.name, name)
            return
        task = loop.create_task(factory(), name=f"{self.id}:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    ##### Enable / disable / connection

    def _handle_enable(self) -> None:
        logger.info("%s has been enabled", self.name)
        self._lifecycle.on_reconnect_or_enable(self)

    def _handle_disable(self) -> None:
        logger.info("%s has been disabled", self.name)
        if self._restart is not None:
            self._restart.on_disconnect_or_disable(False)
        self._next_generation("capabilities")
        self._capabilities = NO_CAPABILITIES
        self._lifecycle.on_disable(self)

    def on_connection_reconnect(self) -> None:
        self._lifecycle.on_reconnect_or_enable(self)

    def on_connection_disconnect(self) -> None:
        if self._restart is not None:
            self._restart.on_disconnect_or_disable(True)
        self._lifecycle.on_disconnect(self)

    def set_auto_build(self, enabled: bool | None) -> bool:
        if enabled is None or enabled == self._auto_build_enabled:
            return False
        self._auto_build_enabled = enabled
        logger.debug("New autoBuild for %s is %s", self.name, enabled)
        self._notify()
        return True

    def set_inject_metrics(self, enabled: bool | None) -> bool:
        if enabled is None or enabled == self._inject_metrics_enabled:
            return False
        self._inject_metrics_enabled = enabled
        logger.debug("New injectMetrics for %s is %s", self.name, enabled)
        self._spawn("metrics", self.refresh_metrics_available)
        self._notify()
        return True

    ##### Deletion

    async def request_deletion(self, delete_files: bool = False) -> DeletionOutcome:
        """Unbind the project and wait for the daemon's deletion-result event."""
        if self._pending_deletion is not None:
            logger.warning("%s: deletion already pending, joining it", self.name)
            return await asyncio.shield(self._pending_deletion.future)

        logger.debug("Deleting %s", self.name)
        pending = _PendingDeletion(
            future=asyncio.get_running_loop().create_future(),
            delete_files=delete_files,
        )
        self._pending_deletion = pending
        try:
            await self._probes.unbind(self.id)
        except asyncio.CancelledError:
            self._resolve_deletion(
                pending, DeletionOutcome(DeletionStatus.REJECTED, "deletion request cancelled")
            )
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("%s: unbind request failed: %s", self.name, exc)
            self._resolve_deletion(pending, DeletionOutcome(DeletionStatus.REJECTED, str(exc)))
        return await asyncio.shield(pending.future)

    async def on_deletion_result(
        self, event: Payload[DeletionResultEvent]
    ) -> DeletionOutcome | None:
        """Settle the pending deletion; on success tear down local state first."""
        pending = self._pending_deletion
        if pending is None:
            logger.error("Received deletion event for %s that was not pending deletion", self.name)
            return None

        try:
            parsed, _ = DeletionResultEvent.from_payload(event)
            succeeded = parsed.succeeded
        except ValidationError as exc:
            logger.error("%s: unparseable deletion event: %s", self.name, exc)
            succeeded = False

        if not succeeded:
            logger.error("Received bad deletion event for %s: %s", self.name, event)
            outcome = DeletionOutcome(DeletionStatus.FAILED, f"Error deleting {self.name}")
            self._resolve_deletion(pending, outcome)
            return outcome

        logger.info("%s was deleted from the daemon", self.name)
        self._pending_deletion = None
        error: str | None = None
        try:
            await self._lifecycle.release_debug_config(self)
            teardown: list[Coroutine[Any, Any, Any]] = [self.dispose()]
            if pending.delete_files:
                teardown.append(self._lifecycle.remove_project_files(self))
            await asyncio.gather(*teardown)
        except Exception as exc:  # noqa: BLE001
            logger.exception("%s: local teardown after deletion failed", self.name)
            error = str(exc)
        outcome = DeletionOutcome(DeletionStatus.DELETED, error)
        self._resolve_deletion(pending, outcome)
        logger.debug("Finished deleting %s", self.name)
        return outcome

    def _resolve_deletion(self, pending: _PendingDeletion, outcome: DeletionOutcome) -> None:
        if self._pending_deletion is pending:
            self._pending_deletion = None
        if not pending.future.done():
            pending.future.set_result(outcome)

    async def dispose(self) -> None:
        """Release everything this model holds; pending operations are settled."""
        if self._disposed:
            return
        self._disposed = True
        if self._restart is not None:
            self._restart.cancel("project disposed")
        if self._pending_deletion is not None:
            self._resolve_deletion(
                self._pending_deletion,
                DeletionOutcome(DeletionStatus.FAILED, "project disposed before deletion finished"),
            )
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self._lifecycle.teardown(self)
        self._notify()

    ##### Setters

    def _set_container_id(self, container_id: str | None) -> bool:
        if container_id == self._container_id:
            return False
        self._container_id = container_id
        if container_id == "":
            logger.warning("Empty containerID for %s", self.name)
        shown = "None" if container_id is None else container_id[:8]
        logger.debug("New containerID for %s is %s", self.name, shown)
        return True

    def _set_timestamp(self, attr: str, millis: int, result: ReconcileResult) -> bool:
        try:
            value = datetime.fromtimestamp(millis / 1000, UTC)
        except (OverflowError, OSError, ValueError):
            logger.warning("Invalid timestamp %r for %s of %s", millis, attr.lstrip("_"), self.name)
            result.rejected[attr.lstrip("_")] = str(millis)
            return False
        if value == getattr(self, attr):
            return False
        setattr(self, attr, value)
        return True

    def _notify(self) -> None:
        self._notifier.notify(self)

    ##### Getters

    @property
    def id(self) -> str:
        return self._id

    @property
    def state(self) -> ProjectState:
        return self._state

    @property
    def app_state(self) -> AppState:
        return self._state.app_state

    @property
    def build_state(self) -> BuildState:
        return self._state.build_state

    @property
    def ports(self) -> PortSet:
        """A copy; ports only change through inbound events."""
        return replace(self._ports)

    @property
    def container_id(self) -> str | None:
        return self._container_id

    @property
    def context_root(self) -> str:
        return self._context_root

    @property
    def auto_build_enabled(self) -> bool:
        return self._auto_build_enabled

    @property
    def inject_metrics_enabled(self) -> bool:
        return self._inject_metrics_enabled

    @property
    def uses_https(self) -> bool:
        return self._uses_https

    @property
    def last_build(self) -> datetime | None:
        return self._last_build

    @property
    def last_image_build(self) -> datetime | None:
        return self._last_image_build

    @property
    def app_base_url(self) -> str | None:
        return self._app_base_url

    @property
    def capabilities_ready(self) -> bool:
        return self._capabilities_ready

    @property
    def capabilities(self) -> ProjectCapabilities:
        if self._capabilities is None:
            # only before the first probe settles; don't block the UI
            return ALL_CAPABILITIES
        return self._capabilities

    @property
    def metrics_available(self) -> bool:
        return self._metrics_available

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    @property
    def is_restarting(self) -> bool:
        return self._restart is not None

    @property
    def pending_restart(self) -> RestartMachine | None:
        return self._restart

    @property
    def is_pending_deletion(self) -> bool:
        return self._pending_deletion is not None

    @property
    def has_context_root(self) -> bool:
        return bool(self._context_root) and self._context_root != "/"

    @property
    def app_url(self) -> str | None:
        if self._app_base_url:
            if not _has_scheme_and_authority(self._app_base_url):
                return self._app_base_url
            parts = urlsplit(self._app_base_url)
            return f"{parts.scheme}://{parts.netloc}/{self._context_root}"
        if self._ports.app_port is None:
            return None
        scheme = "https" if self._uses_https else "http"
        return f"{scheme}://{self._settings.host}:{self._ports.app_port}/{self._context_root}"

    @property
    def debug_url(self) -> str | None:
        if self._ports.debug_port is None:
            return None
        return f"{self._settings.host}:{self._ports.debug_port}"

    @property
    def has_app_monitor(self) -> bool:
        return self._metrics_available

    @property
    def has_perf_dashboard(self) -> bool:
        return self._metrics_available or self._inject_metrics_enabled

    @property
    def app_monitor_url(self) -> str | None:
        dashboard_path = self._settings.dashboard_path_for(self.language)
        if not self._inject_metrics_enabled and dashboard_path and self._metrics_available:
            app_url = self.app_url
            if app_url is None:
                return None
            return f"{app_url.rstrip('/')}/{dashboard_path}/?theme=dark"

        base = self._settings.daemon_url.rstrip("/")
        path = self._settings.performance_dashboard_path.strip("/")
        return f"{base}/{path}/{self.language.lower()}?theme=dark&projectID={self.id}"


def _strip_leading_slash(context_root: str) -> str:
    return context_root[1:] if context_root.startswith("/") else context_root


def _has_scheme_and_authority(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc)
