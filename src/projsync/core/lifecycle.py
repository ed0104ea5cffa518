"""Hooks into collaborators that depend on a project's lifecycle."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from projsync.core.project_model import ProjectModel

logger = logging.getLogger(__name__)


class ProjectLifecycle(Protocol):
    """Collaborator surface: log management, debug configs, on-disk files."""

    def on_reconnect_or_enable(self, model: ProjectModel) -> None:
        """Logs may be available again."""

    def on_disconnect(self, model: ProjectModel) -> None:
        """The daemon connection was lost."""

    def on_disable(self, model: ProjectModel) -> None:
        """The project was disabled; dependent log streams should be torn down."""

    async def release_debug_config(self, model: ProjectModel) -> None:
        """Remove any debug launch configuration created for the project."""

    async def remove_project_files(self, model: ProjectModel) -> None:
        """Delete the project's directory from the local filesystem."""

    async def teardown(self, model: ProjectModel) -> None:
        """Release everything held for the project; it is gone."""


class DefaultLifecycle:
    """Lifecycle with no external collaborators except the local filesystem."""

    def on_reconnect_or_enable(self, model: ProjectModel) -> None:
        logger.debug("%s logs may be available", model)

    def on_disconnect(self, model: ProjectModel) -> None:
        logger.debug("%s lost its connection", model)

    def on_disable(self, model: ProjectModel) -> None:
        logger.debug("%s disabled; no logs to destroy", model)

    async def release_debug_config(self, model: ProjectModel) -> None:
        return None

    async def remove_project_files(self, model: ProjectModel) -> None:
        await remove_project_dir(model.local_path)

    async def teardown(self, model: ProjectModel) -> None:
        return None


async def remove_project_dir(path: Path | None) -> bool:
    """Remove a project directory off the event loop; return True when removed."""
    if path is None or not path.exists():
        logger.warning("Project directory %s does not exist, nothing to delete", path)
        return False
    logger.info("Deleting project directory %s", path)
    await asyncio.to_thread(shutil.rmtree, path)
    return True
