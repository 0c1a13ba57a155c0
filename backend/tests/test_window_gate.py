"""Last-hour window, shift_end parsing and overtime cap."""

from datetime import datetime, time, timedelta, timezone
from types import SimpleNamespace

import pytest

from autotime.services.errors import InvalidShiftEnd
from autotime.services.window_gate import (
    as_utc,
    auto_clockout_armed,
    in_last_hour_window,
    overtime_cap_reached,
    overtime_cap_time,
    parse_shift_end,
)
from helpers import utc

SHIFT_END = time(16, 0)
END = utc(2026, 3, 10, 16, 0)


class TestParseShiftEnd:

    @pytest.mark.parametrize("raw,expected", [
        ("16:00", time(16, 0)),
        ("07:45", time(7, 45)),
        ("16:00:30", time(16, 0)),
        (" 16:00 ", time(16, 0)),
    ])
    def test_valid(self, raw, expected):
        assert parse_shift_end(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_missing(self, raw):
        assert parse_shift_end(raw) is None

    @pytest.mark.parametrize("raw", ["4pm", "16:0", "16-00", "25:00", "12:75"])
    def test_malformed(self, raw):
        with pytest.raises(InvalidShiftEnd):
            parse_shift_end(raw)


class TestLastHourWindow:

    def test_inside_window(self):
        assert in_last_hour_window(END - timedelta(minutes=49), SHIFT_END, "UTC") is True

    def test_before_window(self):
        assert in_last_hour_window(END - timedelta(hours=1, minutes=49), SHIFT_END, "UTC") is False

    def test_end_boundary_inclusive(self):
        assert in_last_hour_window(END, SHIFT_END, "UTC") is True

    def test_start_boundary_inclusive(self):
        assert in_last_hour_window(END - timedelta(minutes=60), SHIFT_END, "UTC") is True

    def test_after_shift_end(self):
        assert in_last_hour_window(END + timedelta(seconds=1), SHIFT_END, "UTC") is False

    def test_local_timezone(self):
        # BST: 16:00 in London is 15:00 UTC in July
        assert in_last_hour_window(utc(2026, 7, 1, 14, 30), SHIFT_END, "Europe/London") is True
        assert in_last_hour_window(utc(2026, 7, 1, 15, 30), SHIFT_END, "Europe/London") is False


class TestAutoClockoutArmed:

    def test_overnight_session_uses_todays_shift_end(self):
        session = SimpleNamespace(is_overtime=False, clock_in=utc(2026, 3, 9, 22, 0))
        worker = SimpleNamespace(shift_end="16:00")
        assert auto_clockout_armed(session, worker, utc(2026, 3, 10, 15, 30), "UTC") is True

    def test_outside_window(self):
        session = SimpleNamespace(is_overtime=False, clock_in=utc(2026, 3, 10, 8, 0))
        worker = SimpleNamespace(shift_end="16:00")
        assert auto_clockout_armed(session, worker, utc(2026, 3, 10, 12, 0), "UTC") is False

    def test_missing_shift_end_never_armed(self):
        session = SimpleNamespace(is_overtime=False, clock_in=utc(2026, 3, 10, 8, 0))
        worker = SimpleNamespace(shift_end=None)
        assert auto_clockout_armed(session, worker, utc(2026, 3, 10, 15, 30), "UTC") is False

    def test_malformed_shift_end_raises(self):
        session = SimpleNamespace(is_overtime=False, clock_in=utc(2026, 3, 10, 8, 0))
        worker = SimpleNamespace(shift_end="late")
        with pytest.raises(InvalidShiftEnd):
            auto_clockout_armed(session, worker, utc(2026, 3, 10, 15, 30), "UTC")

    def test_overtime_always_armed(self):
        session = SimpleNamespace(is_overtime=True, clock_in=utc(2026, 3, 10, 17, 0))
        worker = SimpleNamespace(shift_end="16:00")
        assert auto_clockout_armed(session, worker, utc(2026, 3, 10, 19, 0), "UTC") is True


class TestOvertimeCap:

    def test_cap_time(self):
        assert overtime_cap_time(utc(2026, 3, 10, 17, 0)) == utc(2026, 3, 10, 20, 0)

    def test_cap_reached_at_boundary(self):
        clock_in = utc(2026, 3, 10, 17, 0)
        assert overtime_cap_reached(clock_in, utc(2026, 3, 10, 20, 0)) is True
        assert overtime_cap_reached(clock_in, utc(2026, 3, 10, 19, 59)) is False

    def test_naive_values_treated_as_utc(self):
        naive = datetime(2026, 3, 10, 17, 0)
        assert as_utc(naive) == utc(2026, 3, 10, 17, 0)
        assert as_utc(naive).tzinfo is timezone.utc
