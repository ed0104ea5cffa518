"""Project API schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from projsync.core.project_model import DeletionOutcome, ProjectModel
from projsync.core.restart import RestartOutcome
from projsync.models.capabilities import StartMode


class ProjectSummary(BaseModel):
    """Observable state of one project model."""

    id: str
    name: str
    project_type: str
    language: str
    app_state: str
    build_state: str
    build_detail: str
    start_mode: StartMode | None
    ports: dict[str, int | None]
    container_id: str | None
    context_root: str
    app_url: str | None
    debug_url: str | None
    auto_build_enabled: bool
    inject_metrics_enabled: bool
    metrics_available: bool
    capabilities_ready: bool
    start_modes: list[StartMode]
    is_restarting: bool
    last_build: datetime | None
    last_image_build: datetime | None

    @classmethod
    def from_model(cls, model: ProjectModel) -> ProjectSummary:
        return cls(
            id=model.id,
            name=model.name,
            project_type=model.project_type,
            language=model.language,
            app_state=model.app_state.value,
            build_state=model.build_state.value,
            build_detail=model.state.build_detail,
            start_mode=model.state.start_mode,
            ports=model.ports.as_dict(),
            container_id=model.container_id,
            context_root=model.context_root,
            app_url=model.app_url,
            debug_url=model.debug_url,
            auto_build_enabled=model.auto_build_enabled,
            inject_metrics_enabled=model.inject_metrics_enabled,
            metrics_available=model.metrics_available,
            capabilities_ready=model.capabilities_ready,
            start_modes=sorted(model.capabilities.start_modes),
            is_restarting=model.is_restarting,
            last_build=model.last_build,
            last_image_build=model.last_image_build,
        )


class ProjectsResponse(BaseModel):
    """Collection response for projects."""

    items: list[ProjectSummary]


class RestartRequest(BaseModel):
    """Payload for requesting a restart."""

    start_mode: StartMode = StartMode.RUN
    timeout_seconds: float | None = Field(default=None, gt=0)
    wait: bool = False


class RestartResponse(BaseModel):
    """Restart outcome; ``pending`` when the caller did not wait."""

    status: str
    start_mode: StartMode
    reason: str | None = None

    @classmethod
    def from_outcome(cls, outcome: RestartOutcome) -> RestartResponse:
        return cls(
            status=outcome.status.value,
            start_mode=outcome.start_mode,
            reason=outcome.reason,
        )


class DeletionResponse(BaseModel):
    """Deletion outcome."""

    status: str
    error: str | None = None

    @classmethod
    def from_outcome(cls, outcome: DeletionOutcome) -> DeletionResponse:
        return cls(status=outcome.status.value, error=outcome.error)
