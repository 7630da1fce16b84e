"""Tests for DFU status classification."""

from __future__ import annotations

import pytest

from swift_dfu.status import DfuStatusCode, StatusKind, classify


class TestClassify:
    """Tests for classify()."""

    def test_every_byte_maps_to_one_bucket(self) -> None:
        """Classification is total over 0-255."""
        for value in range(256):
            status = classify(value)
            assert isinstance(status.kind, StatusKind)
            assert status.value == value

    def test_deterministic(self) -> None:
        """Same input, same output."""
        assert [classify(v) for v in range(256)] == [classify(v) for v in range(256)]

    @pytest.mark.parametrize(
        ("value", "kind"),
        [
            (0, StatusKind.NORMAL),
            (1, StatusKind.ENABLED_NOT_ACTIVE),
            (2, StatusKind.UNRECOGNIZED),
            (5, StatusKind.UNRECOGNIZED),
            (6, StatusKind.NORMAL_WITH_VERSION),
            (42, StatusKind.NORMAL_WITH_VERSION),
            (126, StatusKind.NORMAL_WITH_VERSION),
            (127, StatusKind.UPDATE_READY),
            (128, StatusKind.UNRECOGNIZED),
            (255, StatusKind.UNRECOGNIZED),
        ],
    )
    def test_table_boundaries(self, value: int, kind: StatusKind) -> None:
        """Bucket boundaries follow the status table."""
        assert classify(value).kind is kind

    def test_update_ready(self) -> None:
        """127 is always update-ready."""
        status = classify(127)
        assert status.is_update_ready is True
        assert status == DfuStatusCode(StatusKind.UPDATE_READY, 127)

    def test_masks_to_byte(self) -> None:
        """Values beyond one byte are masked."""
        assert classify(0x17F).kind is StatusKind.UPDATE_READY

    def test_version(self) -> None:
        """Only NORMAL_WITH_VERSION carries a version."""
        assert classify(9).version == 9
        assert classify(0).version is None
        assert classify(127).version is None


class TestDescription:
    """Tests for human-readable status text."""

    def test_normal(self) -> None:
        assert classify(0).description() == "SWIFT is in normal mode"

    def test_enabled_not_active(self) -> None:
        assert classify(1).description() == "DFU mode enabled but not active"

    def test_version(self) -> None:
        assert classify(10).description() == "SWIFT is in normal mode, running V10"

    def test_update_ready(self) -> None:
        assert classify(127).description() == "SWIFT is in DFU mode"

    def test_unrecognized(self) -> None:
        assert classify(200).description() == "Unknown status code: 200"

    def test_custom_label(self) -> None:
        assert classify(0).description("XIAO") == "XIAO is in normal mode"
