"""Shared API dependency providers."""

from __future__ import annotations

from projsync.config import SyncSettings
from projsync.core.probes import DaemonClient, ProjectProbes
from projsync.core.registry import ProjectRegistry

_SETTINGS = SyncSettings()
_DAEMON_CLIENT: DaemonClient | None = None
_REGISTRY: ProjectRegistry | None = None


def get_settings() -> SyncSettings:
    return _SETTINGS


def get_daemon_client() -> DaemonClient:
    global _DAEMON_CLIENT
    if _DAEMON_CLIENT is None:
        _DAEMON_CLIENT = DaemonClient(get_settings())
    return _DAEMON_CLIENT


def get_registry() -> ProjectRegistry:
    global _REGISTRY
    if _REGISTRY is None:
        _REGISTRY = ProjectRegistry(
            probes=ProjectProbes.from_client(get_daemon_client()),
            settings=get_settings(),
        )
    return _REGISTRY


async def shutdown() -> None:
    """Dispose models and close the daemon client if they were ever created."""
    global _DAEMON_CLIENT, _REGISTRY
    if _REGISTRY is not None:
        await _REGISTRY.close()
        _REGISTRY = None
    if _DAEMON_CLIENT is not None:
        await _DAEMON_CLIENT.aclose()
        _DAEMON_CLIENT = None
