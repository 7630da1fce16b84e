"""Updater configuration."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import voluptuous as vol

from .const import (
    CHUNK_BATCH_MAX,
    CHUNK_BATCH_MIN,
    CONNECTION_TIMEOUT,
    DEFAULT_CHUNK_BATCH,
    DEFAULT_MAX_CHUNK_SIZE,
    DEVICE_LABEL,
    DEVICE_PORT_NAMES,
    FIRMWARE_DIR,
    FIRMWARE_SUFFIX,
    FIRMWARE_VERSIONS,
    HARDWARE_CHECK_INTERVAL,
    POLL_STOP_MARGIN,
    REBOOT_COUNTDOWN,
    REBOOT_TICK_INTERVAL,
    RESTART_CHECK_DELAY,
    SCAN_TIMEOUT,
    STATUS_POLL_INTERVAL,
)
from .errors import ConfigError

_LOGGER = logging.getLogger(__name__)

# Firmware shipped next to the package is the fallback location
BUNDLED_FIRMWARE_DIR = Path(__file__).parent / FIRMWARE_DIR

CONF_DEVICE_LABEL = "device_label"
CONF_DEVICE_NAMES = "device_names"
CONF_HARDWARE_CHECK_INTERVAL = "hardware_check_interval"
CONF_STATUS_POLL_INTERVAL = "status_poll_interval"
CONF_REBOOT_TICK_INTERVAL = "reboot_tick_interval"
CONF_REBOOT_COUNTDOWN = "reboot_countdown"
CONF_POLL_STOP_MARGIN = "poll_stop_margin"
CONF_RESTART_CHECK_DELAY = "restart_check_delay"
CONF_CHUNK_BATCH_SIZE = "chunk_batch_size"
CONF_MAX_CHUNK_SIZE = "max_chunk_size"
CONF_FIRMWARE_DIR = "firmware_dir"
CONF_BUNDLED_FIRMWARE_DIR = "bundled_firmware_dir"
CONF_FIRMWARE_SUFFIX = "firmware_suffix"
CONF_FIRMWARE_VERSIONS = "firmware_versions"
CONF_SCAN_TIMEOUT = "scan_timeout"
CONF_CONNECTION_TIMEOUT = "connection_timeout"

_POSITIVE_SECONDS = vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False))

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional(CONF_DEVICE_LABEL, default=DEVICE_LABEL): str,
        vol.Optional(CONF_DEVICE_NAMES, default=list(DEVICE_PORT_NAMES)): vol.All(
            [str], vol.Length(min=1)
        ),
        vol.Optional(
            CONF_HARDWARE_CHECK_INTERVAL, default=HARDWARE_CHECK_INTERVAL
        ): _POSITIVE_SECONDS,
        vol.Optional(
            CONF_STATUS_POLL_INTERVAL, default=STATUS_POLL_INTERVAL
        ): _POSITIVE_SECONDS,
        vol.Optional(
            CONF_REBOOT_TICK_INTERVAL, default=REBOOT_TICK_INTERVAL
        ): _POSITIVE_SECONDS,
        vol.Optional(CONF_REBOOT_COUNTDOWN, default=REBOOT_COUNTDOWN): vol.All(
            vol.Coerce(int), vol.Range(min=1)
        ),
        vol.Optional(CONF_POLL_STOP_MARGIN, default=POLL_STOP_MARGIN): vol.All(
            vol.Coerce(int), vol.Range(min=0)
        ),
        vol.Optional(
            CONF_RESTART_CHECK_DELAY, default=RESTART_CHECK_DELAY
        ): vol.All(vol.Coerce(float), vol.Range(min=0)),
        vol.Optional(CONF_CHUNK_BATCH_SIZE, default=DEFAULT_CHUNK_BATCH): vol.All(
            vol.Coerce(int), vol.Clamp(min=CHUNK_BATCH_MIN, max=CHUNK_BATCH_MAX)
        ),
        vol.Optional(CONF_MAX_CHUNK_SIZE, default=DEFAULT_MAX_CHUNK_SIZE): vol.All(
            vol.Coerce(int), vol.Range(min=1)
        ),
        vol.Optional(CONF_FIRMWARE_DIR, default=FIRMWARE_DIR): vol.Coerce(Path),
        vol.Optional(
            CONF_BUNDLED_FIRMWARE_DIR, default=str(BUNDLED_FIRMWARE_DIR)
        ): vol.Coerce(Path),
        vol.Optional(CONF_FIRMWARE_SUFFIX, default=FIRMWARE_SUFFIX): vol.Match(
            r"^\.\w+$"
        ),
        vol.Optional(
            CONF_FIRMWARE_VERSIONS, default=list(FIRMWARE_VERSIONS)
        ): vol.All([str], vol.Length(min=1)),
        vol.Optional(CONF_SCAN_TIMEOUT, default=SCAN_TIMEOUT): _POSITIVE_SECONDS,
        vol.Optional(
            CONF_CONNECTION_TIMEOUT, default=CONNECTION_TIMEOUT
        ): _POSITIVE_SECONDS,
    }
)


@dataclass(frozen=True)
class UpdaterConfig:
    """Validated updater settings."""

    device_label: str = DEVICE_LABEL
    device_names: tuple[str, ...] = DEVICE_PORT_NAMES
    hardware_check_interval: float = HARDWARE_CHECK_INTERVAL
    status_poll_interval: float = STATUS_POLL_INTERVAL
    reboot_tick_interval: float = REBOOT_TICK_INTERVAL
    reboot_countdown: int = REBOOT_COUNTDOWN
    poll_stop_margin: int = POLL_STOP_MARGIN
    restart_check_delay: float = RESTART_CHECK_DELAY
    chunk_batch_size: int = DEFAULT_CHUNK_BATCH
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE
    firmware_dir: Path = Path(FIRMWARE_DIR)
    bundled_firmware_dir: Path = BUNDLED_FIRMWARE_DIR
    firmware_suffix: str = FIRMWARE_SUFFIX
    firmware_versions: tuple[str, ...] = FIRMWARE_VERSIONS
    scan_timeout: float = SCAN_TIMEOUT
    connection_timeout: float = CONNECTION_TIMEOUT


def load_config(data: dict[str, Any] | None = None) -> UpdaterConfig:
    """Validate a config mapping and build an UpdaterConfig.

    Raises:
        ConfigError: If any value fails validation.
    """
    try:
        validated = CONFIG_SCHEMA(dict(data or {}))
    except vol.Invalid as err:
        raise ConfigError(f"Invalid updater configuration: {err}") from err

    validated[CONF_DEVICE_NAMES] = tuple(validated[CONF_DEVICE_NAMES])
    validated[CONF_FIRMWARE_VERSIONS] = tuple(validated[CONF_FIRMWARE_VERSIONS])
    return UpdaterConfig(**validated)


def load_config_file(path: str | Path) -> UpdaterConfig:
    """Load and validate a JSON config file."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as err:
        raise ConfigError(f"Cannot read config file {path}: {err}") from err

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    _LOGGER.debug("Loaded config from %s", path)
    return load_config(data)
