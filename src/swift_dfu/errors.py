"""Errors raised inside the updater.

Only adapters and helpers raise these. The session and controller catch them
at their boundary and turn them into state, so callers observe a ``failure``
or ``error_message`` instead of handling exceptions.
"""

from __future__ import annotations

from enum import Enum


class FailureReason(Enum):
    """Why a transfer request ended in failure."""

    IMAGE_NOT_FOUND = "image_not_found"
    LINK_CONNECT_FAILED = "link_connect_failed"
    LINK_WRITE_FAILED = "link_write_failed"
    LINK_DISCONNECTED = "link_disconnected"


class DfuError(Exception):
    """Base class for updater errors."""


class ConfigError(DfuError):
    """Configuration did not validate."""


class ImageNotFound(DfuError):
    """No firmware file exists for the requested version."""

    reason = FailureReason.IMAGE_NOT_FOUND


class LinkError(DfuError):
    """Bulk-transfer link failure."""

    reason = FailureReason.LINK_CONNECT_FAILED


class LinkConnectFailed(LinkError):
    reason = FailureReason.LINK_CONNECT_FAILED


class LinkWriteFailed(LinkError):
    reason = FailureReason.LINK_WRITE_FAILED


class LinkDisconnected(LinkError):
    reason = FailureReason.LINK_DISCONNECTED
