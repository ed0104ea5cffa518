"""Project routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from projsync.api.deps import get_registry
from projsync.api.schemas.projects import (
    DeletionResponse,
    ProjectsResponse,
    ProjectSummary,
    RestartRequest,
    RestartResponse,
)
from projsync.core.project_model import ProjectModel
from projsync.core.registry import ProjectRegistry

router = APIRouter(prefix="/api/v1/projects", tags=["projects"])


def require_project(project_id: str, registry: ProjectRegistry) -> ProjectModel:
    """Load project model or return 404."""
    model = registry.get(project_id)
    if model is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return model


@router.get("", response_model=ProjectsResponse)
async def list_projects(registry: ProjectRegistry = Depends(get_registry)) -> ProjectsResponse:
    return ProjectsResponse(
        items=[ProjectSummary.from_model(model) for model in registry.list_projects()]
    )


@router.get("/{project_id}")
async def get_project(
    project_id: str,
    registry: ProjectRegistry = Depends(get_registry),
) -> dict[str, ProjectSummary]:
    model = require_project(project_id, registry)
    return {"project": ProjectSummary.from_model(model)}


@router.post("/{project_id}/restart", response_model=RestartResponse)
async def restart_project(
    project_id: str,
    request: RestartRequest,
    registry: ProjectRegistry = Depends(get_registry),
) -> RestartResponse:
    model = require_project(project_id, registry)
    if not model.capabilities.supports_start_mode(request.start_mode):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"{model.name} does not support start mode {request.start_mode}",
        )
    if not model.request_restart(request.start_mode, request.timeout_seconds):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"{model.name} is already restarting",
        )

    machine = model.pending_restart
    if machine is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Restart already settled")
    if not request.wait:
        return RestartResponse.from_outcome(machine.outcome)
    return RestartResponse.from_outcome(await machine.wait())


@router.delete("/{project_id}", response_model=DeletionResponse)
async def delete_project(
    project_id: str,
    delete_files: bool = False,
    registry: ProjectRegistry = Depends(get_registry),
) -> DeletionResponse:
    require_project(project_id, registry)
    outcome = await registry.delete(project_id, delete_files=delete_files)
    if outcome is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return DeletionResponse.from_outcome(outcome)
