"""Inbound daemon event payloads."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import StrEnum
from typing import Any, Self

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from projsync.errors import ValidationError
from projsync.models.state import StateUpdate

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"


class DaemonEventType(StrEnum):
    """Named push events emitted by the daemon."""

    PROJECT_CREATION = "projectCreation"
    PROJECT_CHANGED = "projectChanged"
    PROJECT_STATUS_CHANGED = "projectStatusChanged"
    PROJECT_CLOSED = "projectClosed"
    PROJECT_SETTINGS_CHANGED = "projectSettingsChanged"
    PROJECT_RESTART_RESULT = "projectRestartResult"
    PROJECT_DELETION = "projectDeletion"


def _alias(*names: str) -> Any:
    return Field(default=None, validation_alias=AliasChoices(*names))


class InboundEvent(BaseModel):
    """Base for wire payloads; unknown keys are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | Self) -> tuple[Self, dict[str, str]]:
        """Validate leniently: a malformed field is dropped and reported, not fatal.

        Returns the parsed event and a mapping of dropped wire keys to error messages.
        Raises ``ValidationError`` only when a required field cannot be recovered.
        """
        if isinstance(payload, cls):
            return payload, {}
        data = dict(payload)
        dropped: dict[str, str] = {}
        while True:
            try:
                return cls.model_validate(data), dropped
            except PydanticValidationError as exc:
                progressed = False
                for error in exc.errors():
                    loc = error.get("loc") or ()
                    if not loc:
                        continue
                    for key in cls._input_keys(str(loc[0]), data):
                        reason = str(error.get("msg", "invalid"))
                        logger.warning(
                            "Dropping malformed %s field %r: %s", cls.__name__, key, reason
                        )
                        data.pop(key, None)
                        dropped[key] = reason
                        progressed = True
                if not progressed:
                    msg = f"Unrecoverable {cls.__name__} payload: {exc.errors()}"
                    raise ValidationError(msg) from exc

    @classmethod
    def _input_keys(cls, loc: str, data: Mapping[str, Any]) -> list[str]:
        if loc in data:
            return [loc]
        for name, field in cls.model_fields.items():
            choices = (
                field.validation_alias.choices
                if isinstance(field.validation_alias, AliasChoices)
                else []
            )
            if loc == name or loc in choices:
                return [key for key in (name, *choices) if isinstance(key, str) and key in data]
        return []

    @property
    def succeeded(self) -> bool:
        return getattr(self, "status", None) == STATUS_SUCCESS


class PortsPayload(InboundEvent):
    """Port values as strings; validation happens in ``PortSet``."""

    app_port: str | None = _alias("exposedPort", "appPort", "app_port")
    debug_port: str | None = _alias("exposedDebugPort", "debugPort", "debug_port")
    internal_port: str | None = _alias("internalPort", "internal_port")
    internal_debug_port: str | None = _alias("internalDebugPort", "internal_debug_port")

    @field_validator("*", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, int | float):
            return str(value)
        return value

    def present(self) -> dict[str, str | None]:
        """Port keys that were actually sent, keyed by ``PortSet`` attribute name."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class ProjectSnapshot(InboundEvent):
    """Full or partial description of a project's mutable fields."""

    project_id: str = Field(validation_alias=AliasChoices("projectID", "id", "project_id"))
    name: str | None = None
    project_type: str | None = _alias("projectType", "project_type")
    language: str | None = None
    loc_on_disk: str | None = _alias("locOnDisk", "loc_on_disk")
    container_app_root: str | None = _alias("containerAppRoot", "container_app_root")
    extension: dict[str, Any] | None = None
    container_id: str | None = _alias("containerId", "containerID", "container_id")
    last_build: int | None = _alias("lastbuild", "lastBuild", "last_build")
    last_image_build: int | None = _alias(
        "appImageLastBuild", "appImgLastBuild", "lastImageBuild", "last_image_build"
    )
    auto_build: bool | None = _alias("autoBuild", "auto_build")
    inject_metrics: bool | None = _alias("injectMetrics", "inject_metrics")
    is_https: bool | None = _alias("isHttps", "is_https")
    context_root: str | None = _alias("contextRoot", "contextroot", "context_root")
    app_base_url: str | None = _alias("appBaseURL", "appBaseUrl", "app_base_url")
    capabilities_ready: bool | None = _alias("capabilitiesReady", "capabilities_ready")
    app_status: str | None = _alias("appStatus", "runState", "app_status")
    build_status: str | None = _alias("buildStatus", "build_status")
    detailed_build_status: str | None = _alias("detailedBuildStatus", "detailed_build_status")
    start_mode: str | None = _alias("startMode", "start_mode")
    state: str | None = None
    ports: PortsPayload | None = None
    logs: Any = None

    @field_validator("last_image_build", mode="before")
    @classmethod
    def _image_build_from_string(cls, value: Any) -> Any:
        # the daemon sends this timestamp as a numeric string
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        return value

    def state_update(self) -> StateUpdate:
        return StateUpdate(
            app_status=self.app_status,
            build_status=self.build_status,
            build_detail=self.detailed_build_status,
            start_mode=self.start_mode,
            state=self.state,
        )

    @property
    def extension_name(self) -> str | None:
        if self.extension is None:
            return None
        name = self.extension.get("name")
        return name if isinstance(name, str) else None

    @property
    def extension_container_app_root(self) -> str | None:
        config = (self.extension or {}).get("config")
        if isinstance(config, dict):
            root = config.get("containerAppRoot")
            if isinstance(root, str):
                return root
        return None


class SettingsChangedEvent(InboundEvent):
    """Result of a project settings change."""

    project_id: str | None = _alias("projectID", "id", "project_id")
    status: str | None = None
    error: str | None = None
    context_root: str | None = _alias("contextRoot", "contextroot", "context_root")
    ports: PortsPayload | None = None


class RestartResultEvent(InboundEvent):
    """Outcome of a restart request."""

    project_id: str | None = _alias("projectID", "id", "project_id")
    status: str | None = None
    error_msg: str | None = _alias("errorMsg", "error_msg")
    ports: PortsPayload | None = None
    start_mode: str | None = _alias("startMode", "start_mode")
    container_id: str | None = _alias("containerId", "containerID", "container_id")


class DeletionResultEvent(InboundEvent):
    """Outcome of an unbind request."""

    project_id: str | None = _alias("projectID", "id", "project_id")
    status: str | None = None
