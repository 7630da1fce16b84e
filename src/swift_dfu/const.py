"""Constants for the SWIFT firmware updater."""

from __future__ import annotations

from typing import Final

# Human-readable device label used in status texts
DEVICE_LABEL: Final = "SWIFT"

# MIDI port names to search for (substring match)
DEVICE_PORT_NAMES: Final = ("XIAO_ESP32S3", "SWIFT")

# MIDI message kinds
# Control Change on channel 1 (0xB0-0xBF for channels 1-16)
MIDI_CONTROL_CHANGE: Final = 0xB0
MIDI_STATUS_TYPE_MASK: Final = 0xF0
MIDI_CHANNEL_MASK: Final = 0x0F
MIDI_MESSAGE_LENGTH: Final = 3

# Control numbers used by the bootloader handshake
CC_DFU_STATUS: Final = 0x5A  # CC#90, status feedback (also used as poll request)
CC_DFU_ENABLE: Final = 0x5B  # CC#91, enable update mode

DFU_ENABLE_VALUE: Final = 1
DFU_POLL_VALUE: Final = 0  # ignored by the device

# Status values reported on CC_DFU_STATUS
STATUS_NORMAL: Final = 0
STATUS_ENABLED_NOT_ACTIVE: Final = 1
STATUS_VERSION_MIN: Final = 6
STATUS_VERSION_MAX: Final = 126
STATUS_UPDATE_READY: Final = 127

# Timing (seconds)
HARDWARE_CHECK_INTERVAL: Final = 2.0
STATUS_POLL_INTERVAL: Final = 3.0
REBOOT_TICK_INTERVAL: Final = 1.0
RESTART_CHECK_DELAY: Final = 5.0

# Reboot countdown (ticks)
REBOOT_COUNTDOWN: Final = 10
POLL_STOP_MARGIN: Final = 3

# BLE OTA service (ESP32 NimBLE OTA firmware)
OTA_SERVICE_UUID: Final = "4fafc201-1fb5-459e-8fcc-c5c9c331914b"
CHAR_OTA_TX_UUID: Final = "62ec0272-3ec5-11eb-b378-0242ac130003"  # NOTIFY (credit)
CHAR_OTA_RX_UUID: Final = "62ec0272-3ec5-11eb-b378-0242ac130005"  # WRITE NO RESPONSE

# ATT header overhead subtracted from the MTU for one write
ATT_HEADER_SIZE: Final = 3

# Connection settings
CONNECTION_TIMEOUT: Final = 10.0  # seconds
SCAN_TIMEOUT: Final = 30.0  # seconds

# Chunk engine
CHUNK_BATCH_MIN: Final = 1
CHUNK_BATCH_MAX: Final = 4
DEFAULT_CHUNK_BATCH: Final = 4
DEFAULT_MAX_CHUNK_SIZE: Final = 512

# Firmware images
FIRMWARE_VERSIONS: Final = ("V8", "V9", "V10")
FIRMWARE_SUFFIX: Final = ".bin"
FIRMWARE_DIR: Final = "firmware"
