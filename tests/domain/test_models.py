"""Tests for catalog models and error descriptions."""

import pytest

from conftest import make_track
from stream_minion.domain.errors import (
    DeviceError,
    NotFound,
    OperationTimeout,
    OutOfBounds,
    TransientError,
    describe_error,
)
from stream_minion.domain.models import (
    QualityTier,
    best_available_tier,
    format_time,
    parse_iso_duration,
)

LOW, HIGH, LOSSLESS = QualityTier.LOW, QualityTier.HIGH, QualityTier.LOSSLESS


class TestQualityTier:
    """Tests for tier ordering, parsing and labels."""

    def test_cycle_wraps(self):
        assert LOW.next() == HIGH
        assert HIGH.next() == LOSSLESS
        assert LOSSLESS.next() == LOW

    @pytest.mark.parametrize(
        "text,expected",
        [("low", LOW), (" HIGH ", HIGH), ("LOSSLESS", LOSSLESS), ("HI_RES_LOSSLESS", LOSSLESS)],
    )
    def test_parse(self, text, expected):
        assert QualityTier.parse(text) == expected

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            QualityTier.parse("ultra")

    def test_labels(self):
        assert LOW.label == "Low (96 kbps)"
        assert HIGH.label == "Low (320 kbps)"
        assert LOSSLESS.label == "High"


class TestBestAvailableTier:
    """Tests for falling back to a tier the track offers."""

    def test_requested_available(self):
        assert best_available_tier(HIGH, (LOW, HIGH, LOSSLESS)) == HIGH

    def test_falls_back_below(self):
        assert best_available_tier(LOSSLESS, (LOW, HIGH)) == HIGH

    def test_nothing_below_uses_lowest_available(self):
        assert best_available_tier(LOW, (HIGH, LOSSLESS)) == HIGH

    def test_unknown_availability_keeps_request(self):
        assert best_available_tier(LOSSLESS, ()) == LOSSLESS


class TestHelpers:
    """Tests for duration parsing and formatting."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("PT3M25S", 205.0),
            ("PT1H2M3S", 3723.0),
            ("PT45.5S", 45.5),
            ("P1DT1S", 86401.0),
            ("", 0.0),
            (None, 0.0),
            ("3:25", 0.0),
        ],
    )
    def test_parse_iso_duration(self, value, expected):
        assert parse_iso_duration(value) == expected

    @pytest.mark.parametrize("seconds,expected", [(0, "00:00"), (65.9, "01:05"), (-1, "00:00")])
    def test_format_time(self, seconds, expected):
        assert format_time(seconds) == expected

    def test_display_name(self):
        assert make_track("A", artist="Boards", title="Roygbiv").display_name == "Boards - Roygbiv"


class TestDescribeError:
    """Tests for user-facing error reasons."""

    def test_labels_known_errors(self):
        assert describe_error(NotFound("no asset")) == "Track not available: no asset"
        assert describe_error(TransientError()) == "Network error"
        assert describe_error(DeviceError("mpv is not running")).startswith("Audio device")
        assert describe_error(OperationTimeout("resolve")) == "Timed out: resolve"

    def test_falls_back_to_message(self):
        assert describe_error(OutOfBounds(4, 3)) == "Index 4 out of bounds for queue of 3"

    def test_falls_back_to_class_name(self):
        assert describe_error(RuntimeError()) == "RuntimeError"

    def test_operation_timeout_is_timeout_error(self):
        assert isinstance(OperationTimeout(), TimeoutError)
