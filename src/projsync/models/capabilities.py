"""Project capability models."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StartMode(StrEnum):
    """Start modes understood by the daemon."""

    RUN = "run"
    DEBUG = "debug"
    DEBUG_NO_INIT = "debugNoInit"

    @property
    def is_debug(self) -> bool:
        return self is not StartMode.RUN

    @classmethod
    def parse(cls, value: object) -> StartMode | None:
        """Return the matching mode, or None for anything unknown."""
        if isinstance(value, StartMode):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return None


class ControlCommand(StrEnum):
    """Control commands a project may accept."""

    RESTART = "restart"


_COMMAND_VALUES = frozenset(command.value for command in ControlCommand)


class ProjectCapabilities(BaseModel):
    """Operations currently valid for a project. Replaced wholesale, never merged."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    start_modes: frozenset[StartMode] = Field(default_factory=frozenset, alias="startModes")
    control_commands: frozenset[ControlCommand] = Field(
        default_factory=frozenset, alias="controlCommands"
    )

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ProjectCapabilities:
        """Build from a daemon payload, ignoring unknown modes and commands."""
        modes = {
            mode
            for raw in payload.get("startModes") or []
            if (mode := StartMode.parse(raw)) is not None
        }
        commands = {
            ControlCommand(raw)
            for raw in payload.get("controlCommands") or []
            if raw in _COMMAND_VALUES
        }
        return cls(start_modes=frozenset(modes), control_commands=frozenset(commands))

    @property
    def supports_restart(self) -> bool:
        return ControlCommand.RESTART in self.control_commands

    @property
    def supports_debug(self) -> bool:
        return self.supports_restart and any(mode.is_debug for mode in self.start_modes)

    @property
    def can_attach_debugger(self) -> bool:
        return StartMode.DEBUG in self.start_modes or StartMode.DEBUG_NO_INIT in self.start_modes

    def supports_start_mode(self, mode: StartMode) -> bool:
        return mode in self.start_modes


NO_CAPABILITIES = ProjectCapabilities()
ALL_CAPABILITIES = ProjectCapabilities(
    start_modes=frozenset(StartMode),
    control_commands=frozenset(ControlCommand),
)
