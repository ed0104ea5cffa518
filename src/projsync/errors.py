"""Error taxonomy for projsync."""

from __future__ import annotations


class ProjSyncError(Exception):
    """Base class for projsync failures."""


class ValidationError(ProjSyncError):
    """An inbound payload could not be parsed even after dropping malformed fields."""


class RemoteProbeError(ProjSyncError):
    """A daemon query failed at the transport, HTTP, or payload level."""

    def __init__(
        self,
        message: str,
        *,
        project_id: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.project_id = project_id
        self.status_code = status_code
