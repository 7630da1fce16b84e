"""DFU status decoding.

The device answers every poll on CC#90 with one value byte. This module is
the only place that gives those bytes meaning.

Status table (from the bootloader firmware):
- 0: normal mode
- 1: DFU mode enabled but not active yet
- 6..126: normal mode, value is the running firmware version
- 127: DFU mode active, ready for the BLE transfer
- anything else: unrecognized
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .const import (
    DEVICE_LABEL,
    STATUS_ENABLED_NOT_ACTIVE,
    STATUS_NORMAL,
    STATUS_UPDATE_READY,
    STATUS_VERSION_MAX,
    STATUS_VERSION_MIN,
)


class StatusKind(Enum):
    """Semantic bucket of a status value."""

    NORMAL = "normal"
    ENABLED_NOT_ACTIVE = "enabled_not_active"
    NORMAL_WITH_VERSION = "normal_with_version"
    UPDATE_READY = "update_ready"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class DfuStatusCode:
    """A classified status value."""

    kind: StatusKind
    value: int

    @property
    def is_update_ready(self) -> bool:
        return self.kind is StatusKind.UPDATE_READY

    @property
    def version(self) -> int | None:
        """Running firmware version, if the device reported one."""
        if self.kind is StatusKind.NORMAL_WITH_VERSION:
            return self.value
        return None

    def description(self, device_label: str = DEVICE_LABEL) -> str:
        """Return the human-readable status text."""
        if self.kind is StatusKind.NORMAL:
            return f"{device_label} is in normal mode"
        if self.kind is StatusKind.ENABLED_NOT_ACTIVE:
            return "DFU mode enabled but not active"
        if self.kind is StatusKind.NORMAL_WITH_VERSION:
            return f"{device_label} is in normal mode, running V{self.value}"
        if self.kind is StatusKind.UPDATE_READY:
            return f"{device_label} is in DFU mode"
        return f"Unknown status code: {self.value}"


def classify(value: int) -> DfuStatusCode:
    """Classify a raw status byte.

    Args:
        value: Status value received on CC#90 (masked to 8 bits).

    Returns:
        DfuStatusCode: exactly one bucket for every input.
    """
    value &= 0xFF

    if value == STATUS_NORMAL:
        kind = StatusKind.NORMAL
    elif value == STATUS_ENABLED_NOT_ACTIVE:
        kind = StatusKind.ENABLED_NOT_ACTIVE
    elif STATUS_VERSION_MIN <= value <= STATUS_VERSION_MAX:
        kind = StatusKind.NORMAL_WITH_VERSION
    elif value == STATUS_UPDATE_READY:
        kind = StatusKind.UPDATE_READY
    else:
        kind = StatusKind.UNRECOGNIZED

    return DfuStatusCode(kind=kind, value=value)
