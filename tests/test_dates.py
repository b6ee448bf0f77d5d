"""Tests for date parsing and windows."""

from datetime import datetime, timedelta, timezone

import pytest

from pondus.dates import (
    ensure_utc,
    month_timeframe,
    parse_date,
    quarter_timeframe,
    to_iso,
    year_timeframe,
)
from pondus.models import Timeframe


class TestParseDate:
    def test_bare_date_is_midnight_utc(self):
        assert parse_date("2025-03-04") == datetime(2025, 3, 4, tzinfo=timezone.utc)

    def test_bare_date_end_of_day(self):
        assert parse_date("2025-03-04", end_of_day=True) == datetime(2025, 3, 5, tzinfo=timezone.utc)

    def test_end_of_day_keeps_last_second_inside_window(self):
        window = Timeframe(since=parse_date("2025-03-04"), until=parse_date("2025-03-04", end_of_day=True))
        assert window.contains(datetime(2025, 3, 4, 23, 59, 59, 500000, tzinfo=timezone.utc))
        assert not window.contains(datetime(2025, 3, 5, tzinfo=timezone.utc))

    def test_end_of_day_rolls_over_month(self):
        assert parse_date("2025-12-31", end_of_day=True) == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_iso_with_z(self):
        assert parse_date("2025-03-04T10:30:00Z") == datetime(2025, 3, 4, 10, 30, tzinfo=timezone.utc)

    def test_iso_with_offset_is_normalized(self):
        parsed = parse_date("2025-03-04T12:00:00+02:00")
        assert parsed == datetime(2025, 3, 4, 10, tzinfo=timezone.utc)
        assert parsed.utcoffset() == timedelta(0)

    def test_invalid(self):
        with pytest.raises(ValueError, match="Invalid date format: yesterday"):
            parse_date("yesterday")


class TestFormatting:
    def test_to_iso(self):
        assert to_iso(datetime(2025, 1, 2, 3, 4, 5, 678, tzinfo=timezone.utc)) == "2025-01-02T03:04:05Z"

    def test_naive_is_utc(self):
        assert ensure_utc(datetime(2025, 1, 1)).tzinfo == timezone.utc


class TestTimeframes:
    def test_year(self):
        window = year_timeframe(2024)
        assert window.since == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert window.until == datetime(2025, 1, 1, tzinfo=timezone.utc)

    def test_current_year_by_default(self):
        assert year_timeframe().since.year == datetime.now(timezone.utc).year

    def test_december_rolls_over(self):
        window = month_timeframe(2024, 12)
        assert window.until == datetime(2025, 1, 1, tzinfo=timezone.utc)

    def test_quarter(self):
        window = quarter_timeframe(2025, 2)
        assert window.since == datetime(2025, 4, 1, tzinfo=timezone.utc)
        assert window.until == datetime(2025, 7, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("month", [0, 13])
    def test_invalid_month(self, month):
        with pytest.raises(ValueError):
            month_timeframe(2025, month)

    def test_invalid_quarter(self):
        with pytest.raises(ValueError):
            quarter_timeframe(2025, 5)
