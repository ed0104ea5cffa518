"""Per-connection collection of project models and inbound event routing."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any, TypeAlias

from projsync.config import SyncSettings
from projsync.core.lifecycle import ProjectLifecycle
from projsync.core.notifier import ChangeNotifier
from projsync.core.probes import ProjectProbes
from projsync.core.project_model import DeletionOutcome, ProjectModel, ReconcileResult
from projsync.core.restart import RestartOutcome
from projsync.errors import ValidationError
from projsync.models.events import DaemonEventType, ProjectSnapshot

logger = logging.getLogger(__name__)

DispatchResult: TypeAlias = ProjectModel | ReconcileResult | RestartOutcome | DeletionOutcome | None


class ProjectRegistry:
    """Own one ``ProjectModel`` per remote project id on a daemon connection."""

    def __init__(
        self,
        *,
        probes: ProjectProbes,
        settings: SyncSettings | None = None,
        notifier: ChangeNotifier | None = None,
        lifecycle: ProjectLifecycle | None = None,
    ) -> None:
        self._probes = probes
        self._settings = settings or SyncSettings()
        self._notifier = notifier or ChangeNotifier()
        self._lifecycle = lifecycle
        self._projects: dict[str, ProjectModel] = {}
        self._connected = True

    @property
    def notifier(self) -> ChangeNotifier:
        return self._notifier

    @property
    def settings(self) -> SyncSettings:
        return self._settings

    @property
    def connected(self) -> bool:
        return self._connected

    def get(self, project_id: str) -> ProjectModel | None:
        return self._projects.get(project_id)

    def list_projects(self) -> list[ProjectModel]:
        """Known projects ordered by name."""
        return sorted(self._projects.values(), key=lambda model: (model.name.lower(), model.id))

    async def add(self, snapshot: ProjectSnapshot | Mapping[str, Any]) -> ProjectModel:
        """Create, initialize and register a model; an existing id is reconciled instead."""
        parsed, _ = ProjectSnapshot.from_payload(snapshot)
        existing = self._projects.get(parsed.project_id)
        if existing is not None:
            existing.reconcile(parsed)
            return existing

        model = ProjectModel(
            parsed,
            probes=self._probes,
            notifier=self._notifier,
            lifecycle=self._lifecycle,
            settings=self._settings,
        )
        self._projects[model.id] = model
        await model.initialize()
        self._notifier.notify(model)
        return model

    async def sync(self, snapshots: list[Mapping[str, Any]]) -> list[ProjectModel]:
        """Reconcile against a full project list: add new, update known, drop missing."""
        seen: set[str] = set()
        models: list[ProjectModel] = []
        for snapshot in snapshots:
            try:
                model = await self.add(snapshot)
            except ValidationError as exc:
                logger.error("Skipping unparseable project in list: %s", exc)
                continue
            seen.add(model.id)
            models.append(model)

        for project_id in set(self._projects) - seen:
            logger.info("Project %s is no longer known to the daemon", project_id)
            await self.remove(project_id)
        return models

    async def delete(
        self,
        project_id: str,
        *,
        delete_files: bool = False,
    ) -> DeletionOutcome | None:
        """Request deletion upstream; the model is dropped once the daemon confirms it."""
        model = self._projects.get(project_id)
        if model is None:
            return None
        outcome = await model.request_deletion(delete_files)
        if outcome.deleted:
            self._projects.pop(project_id, None)
        return outcome

    async def remove(self, project_id: str) -> bool:
        model = self._projects.pop(project_id, None)
        if model is None:
            return False
        await model.dispose()
        return True

    async def dispatch(
        self,
        event: DaemonEventType | str,
        payload: Mapping[str, Any],
    ) -> DispatchResult:
        """Route one named daemon event to the project it references.

        Unknown events, and events for unknown projects, are logged and dropped.
        """
        try:
            event_type = DaemonEventType(event)
        except ValueError:
            logger.debug("Ignoring unhandled daemon event %s", event)
            return None

        project_id = _project_id(payload)
        if project_id is None:
            logger.error("Daemon event %s carried no project id: %s", event_type, payload)
            return None

        if event_type is DaemonEventType.PROJECT_CREATION and project_id not in self._projects:
            try:
                return await self.add(payload)
            except ValidationError as exc:
                logger.error("Could not create project from %s event: %s", event_type, exc)
                return None

        model = self._projects.get(project_id)
        if model is None:
            logger.warning("Received %s for unknown project %s", event_type, project_id)
            return None

        match event_type:
            case DaemonEventType.PROJECT_SETTINGS_CHANGED:
                return model.on_settings_changed(payload)
            case DaemonEventType.PROJECT_RESTART_RESULT:
                return model.on_restart_result(payload)
            case DaemonEventType.PROJECT_DELETION:
                outcome = await model.on_deletion_result(payload)
                if outcome is not None and outcome.deleted:
                    self._projects.pop(project_id, None)
                return outcome
            case DaemonEventType.PROJECT_CLOSED:
                return model.reconcile({**payload, "state": "closed"})
            case _:
                return model.reconcile(payload)

    def on_disconnect(self) -> None:
        """Propagate connection loss; pending restarts are cancelled."""
        self._connected = False
        for model in list(self._projects.values()):
            model.on_connection_disconnect()

    def on_reconnect(self) -> None:
        self._connected = True
        for model in list(self._projects.values()):
            model.on_connection_reconnect()

    async def close(self) -> None:
        """Tear down every model; the connection is going away."""
        self.on_disconnect()
        models = list(self._projects.values())
        self._projects.clear()
        await asyncio.gather(*(model.dispose() for model in models))


def _project_id(payload: Mapping[str, Any]) -> str | None:
    for key in ("projectID", "id", "project_id"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return None
