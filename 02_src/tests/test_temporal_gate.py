"""Tests for the temporal gate."""

from datetime import datetime, timedelta, timezone

import pytest

from ci_anomaly.decoding import decode
from ci_anomaly.temporal import GateDecision, TemporalGate, parse_timestamp
from conftest import NOW, iso, make_raw_event


def event_at(moment: datetime):
    return decode(make_raw_event(timestamp=iso(moment)))


class TestParseTimestamp:
    """Tests for parse_timestamp()."""

    def test_utc_designator(self):
        """Test parsing a Z timestamp."""
        assert parse_timestamp("2025-03-14T12:00:00Z") == NOW

    def test_colon_offset(self):
        """Test parsing a +HH:MM offset."""
        assert parse_timestamp("2025-03-14T15:00:00+03:00") == NOW

    def test_compact_offset(self):
        """Test that +HHMM is normalized to +HH:MM."""
        assert parse_timestamp("2025-03-14T07:00:00-0500") == NOW

    @pytest.mark.parametrize(
        "value, microsecond",
        [
            ("2025-03-14T12:00:00.5Z", 500000),
            ("2025-03-14T12:00:00.123Z", 123000),
            ("2025-03-14T12:00:00.123456Z", 123456),
            ("2025-03-14T12:00:00.123456789Z", 123456),
        ],
    )
    def test_fractional_seconds(self, value, microsecond):
        """Test 1-9 fractional digits, truncated to microseconds."""
        assert parse_timestamp(value).microsecond == microsecond

    @pytest.mark.parametrize(
        "value",
        [
            "",
            None,
            "yesterday",
            "2025-03-14 12:00:00Z",
            "2025-03-14T12:00:00",
            "2025-03-14T12:00:00.1234567890Z",
            "2025-13-14T12:00:00Z",
            "2025-03-14T12:00:00+25:00",
        ],
    )
    def test_unparseable(self, value):
        """Test that malformed timestamps return None."""
        assert parse_timestamp(value) is None


class TestTemporalGate:
    """Tests for TemporalGate.evaluate() and accept()."""

    def test_recent_event_is_accepted(self):
        """Test that a 5 second old event passes."""
        gate = TemporalGate()

        assert gate.accept(event_at(NOW - timedelta(seconds=5)), now=NOW)

    def test_stale_event_is_rejected(self):
        """Test that an event 480 seconds old is dropped."""
        gate = TemporalGate()

        assert gate.evaluate(event_at(NOW - timedelta(seconds=480)), now=NOW) is GateDecision.STALE

    def test_future_event_is_rejected(self):
        """Test that an event 35 seconds in the future is dropped."""
        gate = TemporalGate()

        assert gate.evaluate(event_at(NOW + timedelta(seconds=35)), now=NOW) is GateDecision.FUTURE

    def test_slightly_future_event_is_accepted(self):
        """Test that an event 20 seconds ahead is within the allowed gap."""
        gate = TemporalGate()

        assert gate.accept(event_at(NOW + timedelta(seconds=20)), now=NOW)

    def test_max_age_boundary_is_accepted(self):
        """Test that exactly 420 seconds old is still accepted."""
        gate = TemporalGate()

        assert gate.accept(event_at(NOW - timedelta(seconds=420)), now=NOW)

    def test_future_gap_boundary_is_accepted(self):
        """Test that exactly 30 seconds ahead is still accepted."""
        gate = TemporalGate()

        assert gate.accept(event_at(NOW + timedelta(seconds=30)), now=NOW)

    def test_zero_future_gap(self):
        """Test that with no future tolerance only past or current events pass."""
        gate = TemporalGate(future_gap_seconds=0)

        assert gate.accept(event_at(NOW), now=NOW)
        assert gate.evaluate(event_at(NOW + timedelta(seconds=1)), now=NOW) is GateDecision.FUTURE

    def test_unparseable_timestamp_is_rejected(self):
        """Test that an unreadable timestamp never passes."""
        gate = TemporalGate()
        event = decode(make_raw_event(timestamp="14/03/2025 12:00"))

        assert gate.evaluate(event, now=NOW) is GateDecision.UNPARSEABLE
        assert not gate.accept(event, now=NOW)

    def test_custom_window(self):
        """Test that the window is configurable."""
        gate = TemporalGate(max_age_seconds=60, future_gap_seconds=5)

        assert not gate.accept(event_at(NOW - timedelta(seconds=61)), now=NOW)
        assert not gate.accept(event_at(NOW + timedelta(seconds=6)), now=NOW)
        assert gate.accept(event_at(NOW - timedelta(seconds=59)), now=NOW)

    def test_defaults_to_current_time(self):
        """Test that now defaults to the wall clock."""
        gate = TemporalGate()
        event = event_at(datetime.now(timezone.utc) - timedelta(seconds=1))

        assert gate.accept(event)

    def test_offset_timestamps_compare_as_instants(self):
        """Test that a +03:00 timestamp is compared in absolute time."""
        gate = TemporalGate()
        local = (NOW - timedelta(seconds=10)).astimezone(timezone(timedelta(hours=3)))
        event = decode(make_raw_event(timestamp=local.isoformat()))

        assert gate.accept(event, now=NOW)
