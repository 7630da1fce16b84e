"""Firmware image lookup."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .const import FIRMWARE_SUFFIX
from .errors import ImageNotFound

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class FirmwareImage:
    """An immutable firmware binary for one version tag."""

    version: str
    data: bytes = field(repr=False)
    suffix: str = FIRMWARE_SUFFIX
    path: Path | None = None

    @property
    def size(self) -> int:
        return len(self.data)

    def chunks(self, chunk_size: int) -> Iterator[bytes]:
        """Yield fixed-size slices of the image (the last may be shorter)."""
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        for offset in range(0, len(self.data), chunk_size):
            yield self.data[offset : offset + chunk_size]

    def chunk_count(self, chunk_size: int) -> int:
        return (len(self.data) + chunk_size - 1) // chunk_size


class FirmwareSource:
    """Resolve a version tag to a firmware file.

    Directories are searched in order: the preferred firmware directory
    first, then the bundled default location.
    """

    def __init__(self, search_dirs: Sequence[Path], suffix: str = FIRMWARE_SUFFIX) -> None:
        self.search_dirs = [Path(d) for d in search_dirs]
        self.suffix = suffix

    def candidates(self, version: str) -> list[Path]:
        """Return the paths tried for ``version``, in order."""
        file_name = f"{version}{self.suffix}"
        return [directory / file_name for directory in self.search_dirs]

    def load(self, version: str) -> FirmwareImage:
        """Load the image for ``version``.

        Raises:
            ImageNotFound: If no readable, non-empty file exists.
        """
        for path in self.candidates(version):
            if not path.is_file():
                continue
            try:
                data = path.read_bytes()
            except OSError as err:
                # Fall back to the next location
                _LOGGER.warning("Error loading firmware file %s: %s", path, err)
                continue
            if not data:
                _LOGGER.warning("Firmware file %s is empty", path)
                continue
            _LOGGER.info("Loaded firmware file %s (%d bytes)", path, len(data))
            return FirmwareImage(version=version, data=data, suffix=self.suffix, path=path)

        raise ImageNotFound(f"Firmware file {version}{self.suffix} not found")
