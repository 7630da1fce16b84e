"""SWIFT firmware updater: MIDI DFU handshake and BLE chunked transfer."""

from __future__ import annotations

from .config import UpdaterConfig, load_config, load_config_file
from .controller import HandshakeState, ModeTransitionController
from .errors import (
    ConfigError,
    DfuError,
    FailureReason,
    ImageNotFound,
    LinkConnectFailed,
    LinkDisconnected,
    LinkError,
    LinkWriteFailed,
)
from .firmware import FirmwareImage, FirmwareSource
from .midi import CommandLink, MidiEndpoint, MidiHost
from .reboot import RebootPhase, RebootSequencer
from .scanner import DevicePresence, DeviceScanner
from .status import DfuStatusCode, StatusKind, classify
from .transfer import (
    TransferConfig,
    TransferEndpoint,
    TransferLink,
    TransferSession,
    TransferState,
)
from .updater import FirmwareUpdater

__all__ = [
    "CommandLink",
    "ConfigError",
    "DevicePresence",
    "DeviceScanner",
    "DfuError",
    "DfuStatusCode",
    "FailureReason",
    "FirmwareImage",
    "FirmwareSource",
    "FirmwareUpdater",
    "HandshakeState",
    "ImageNotFound",
    "LinkConnectFailed",
    "LinkDisconnected",
    "LinkError",
    "LinkWriteFailed",
    "MidiEndpoint",
    "MidiHost",
    "ModeTransitionController",
    "RebootPhase",
    "RebootSequencer",
    "StatusKind",
    "TransferConfig",
    "TransferEndpoint",
    "TransferLink",
    "TransferSession",
    "TransferState",
    "UpdaterConfig",
    "classify",
    "load_config",
    "load_config_file",
]
