"""Validated port holder for a project."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal, TypeAlias

logger = logging.getLogger(__name__)

PortKey: TypeAlias = Literal["app_port", "internal_port", "debug_port", "internal_debug_port"]

PORT_KEYS: tuple[PortKey, ...] = ("app_port", "internal_port", "debug_port", "internal_debug_port")
MAX_PORT = 65535


def is_good_port(value: int) -> bool:
    """Ports must lie in the open interval (0, 65536)."""
    return 0 < value <= MAX_PORT


@dataclass(slots=True)
class PortChange:
    """Outcome of applying one ports payload."""

    changed: set[str] = field(default_factory=set)
    rejected: dict[str, str] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.changed)


@dataclass(slots=True)
class PortSet:
    """Four independent optional ports; invalid values are never stored."""

    app_port: int | None = None
    internal_port: int | None = None
    debug_port: int | None = None
    internal_debug_port: int | None = None
    owner: str = field(default="", repr=False, compare=False)

    def get(self, key: PortKey) -> int | None:
        return getattr(self, key)

    def set_port(self, key: PortKey, raw: object, change: PortChange | None = None) -> bool:
        """Apply one raw wire value to ``key``; return True if the stored value changed."""
        current = self.get(key)
        if raw is None or (isinstance(raw, str) and raw.strip() == ""):
            if current is None:
                return False
            logger.debug("Unset %s for %s", key, self.owner)
            setattr(self, key, None)
            if change is not None:
                change.changed.add(key)
            return True

        parsed = self._parse(raw)
        if parsed is None or not is_good_port(parsed):
            logger.warning("Invalid %s %r given to project %s, ignoring it", key, raw, self.owner)
            if change is not None:
                change.rejected[key] = str(raw)
            return False

        if parsed == current:
            return False
        logger.debug("New %s for %s is %d", key, self.owner, parsed)
        setattr(self, key, parsed)
        if change is not None:
            change.changed.add(key)
        return True

    def apply(self, values: Mapping[str, object]) -> PortChange:
        """Apply every port key present in ``values``; absent keys are untouched."""
        change = PortChange()
        for key in PORT_KEYS:
            if key in values:
                self.set_port(key, values[key], change)
        return change

    def as_dict(self) -> dict[str, int | None]:
        return {key: self.get(key) for key in PORT_KEYS}

    @staticmethod
    def _parse(raw: object) -> int | None:
        if isinstance(raw, bool):
            return None
        if isinstance(raw, int):
            return raw
        try:
            return int(str(raw).strip(), 10)
        except ValueError:
            return None
