"""
Tests for date and timestamp helpers.
"""
from datetime import date, datetime, timezone

import pytest
from planner.datetime_utils import (
    add_months,
    date_to_timestamp,
    days_between,
    days_difference,
    end_of_month,
    monday_of_week,
    month_label,
    parse_dot_date,
    quarter_label,
    quarter_of,
    short_date_label,
    start_of_week,
    timestamp_to_date,
    to_date,
)

# 2024-03-04 00:00 in America/Chicago (CST, UTC-6)
MARCH_4_MS = 1709532000000


class TestConversion:
    """Tests for timestamp <-> date conversion."""

    def test_timestamp_to_local_date(self):
        """Test that epoch ms are read in the planner timezone."""
        assert timestamp_to_date(MARCH_4_MS) == date(2024, 3, 4)
        # 03:00 UTC is still the previous evening in Chicago
        assert timestamp_to_date(MARCH_4_MS - 3 * 3600 * 1000) == date(2024, 3, 3)

    def test_date_to_timestamp(self):
        """Test that a date maps to local midnight."""
        assert date_to_timestamp(date(2024, 3, 4)) == MARCH_4_MS

    def test_aware_datetime(self):
        """Test that aware datetimes keep their instant."""
        assert date_to_timestamp(datetime(2024, 3, 4, 6, tzinfo=timezone.utc)) == MARCH_4_MS

    @pytest.mark.parametrize("value", [
        MARCH_4_MS,
        "2024-03-04",
        "2024-03-04T12:00:00",
        date(2024, 3, 4),
        datetime(2024, 3, 4, 15, 30),
    ])
    def test_to_date(self, value):
        """Test the accepted input types."""
        assert to_date(value) == date(2024, 3, 4)

    def test_to_date_empty(self):
        """Test that empty values give None."""
        assert to_date(None) is None
        assert to_date("") is None


class TestCalendarHelpers:
    """Tests for week, month and quarter helpers."""

    def test_days_between_inclusive(self):
        """Test inclusive day lists and reversed ranges."""
        assert days_between(date(2024, 2, 28), date(2024, 3, 1)) == [
            date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]
        assert days_between(date(2024, 3, 2), date(2024, 3, 1)) == []
        assert days_difference(date(2024, 3, 1), date(2024, 3, 1)) == 1

    def test_week_starts(self):
        """Test Sunday and Monday week starts."""
        wednesday = date(2024, 3, 6)
        assert start_of_week(wednesday) == date(2024, 3, 3)
        assert start_of_week(date(2024, 3, 3)) == date(2024, 3, 3)
        assert monday_of_week(wednesday) == date(2024, 3, 4)
        assert monday_of_week(date(2024, 3, 10)) == date(2024, 3, 4)

    def test_months(self):
        """Test month ends and month arithmetic."""
        assert end_of_month(date(2024, 2, 10)) == date(2024, 2, 29)
        assert end_of_month(date(2024, 12, 5)) == date(2024, 12, 31)
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 1)
        assert add_months(date(2024, 1, 31), -1) == date(2023, 12, 1)

    def test_labels(self):
        """Test display labels."""
        assert quarter_of(date(2024, 11, 1)) == 4
        assert short_date_label(date(2024, 8, 5)) == "8/5"
        assert month_label(date(2024, 11, 1)) == "Nov '24"
        assert quarter_label(4, 2024) == "Q4 '24"

    def test_parse_dot_date(self):
        """Test DD.MM.YYYY parsing."""
        assert parse_dot_date("05.03.2024") == date(2024, 3, 5)
        assert parse_dot_date("2024-03-05") is None
        assert parse_dot_date("31.02.2024") is None
