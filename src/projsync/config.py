"""Runtime configuration for project synchronization."""

from __future__ import annotations

from pydantic import BaseModel, Field

DEFAULT_RESTART_TIMEOUT_SECONDS = 180.0


def _default_dashboard_paths() -> dict[str, str]:
    return {
        "java": "javametrics-dash",
        "nodejs": "appmetrics-dash",
        "javascript": "appmetrics-dash",
        "swift": "swiftmetrics-dash",
    }


class SyncSettings(BaseModel):
    """Settings shared by every project model on one daemon connection."""

    daemon_url: str = "http://localhost:9090"
    host: str = "localhost"
    restart_timeout_seconds: float = Field(default=DEFAULT_RESTART_TIMEOUT_SECONDS, gt=0)
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    monitor_dashboard_paths: dict[str, str] = Field(default_factory=_default_dashboard_paths)
    performance_dashboard_path: str = "performance/monitor/dashboard"

    def dashboard_path_for(self, language: str) -> str | None:
        """Return the in-app monitor dashboard path for a language, if any."""
        return self.monitor_dashboard_paths.get(language.lower())
