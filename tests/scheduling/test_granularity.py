"""
Tests for weekly-split conversion and manual redistribution.
"""
from datetime import date

import pytest
from planner.scheduling.granularity import (
    Period,
    calculate_periods,
    convert_granularity_to_weekly,
    convert_weekly_to_granularity,
    redistribute_quantity,
    reset_to_even_distribution,
)


def make_periods(quantities, locked=None):
    locked = locked or [False] * len(quantities)
    return [
        Period(date(2024, 3, 1 + 7 * i), date(2024, 3, 7 + 7 * i), f"P{i}", q, lock)
        for i, (q, lock) in enumerate(zip(quantities, locked))
    ]


class TestCalculatePeriods:
    """Tests for calculate_periods."""

    def test_daily(self):
        """Test one period per day."""
        periods = calculate_periods("2024-03-04", "2024-03-06", "daily")
        assert [p.label for p in periods] == ["3/4", "3/5", "3/6"]

    def test_weekly_windows_from_start(self):
        """Test 7-day windows counted from the start, clipped to due."""
        periods = calculate_periods(date(2024, 3, 6), date(2024, 3, 20), "weekly")
        assert [(p.start_date, p.end_date) for p in periods] == [
            (date(2024, 3, 6), date(2024, 3, 12)),
            (date(2024, 3, 13), date(2024, 3, 19)),
            (date(2024, 3, 20), date(2024, 3, 20)),
        ]
        assert periods[0].label == "3/6"

    def test_monthly_clipped(self):
        """Test calendar months clipped to the job range."""
        periods = calculate_periods(date(2024, 1, 15), date(2024, 3, 10), "monthly")
        assert [p.label for p in periods] == ["Jan '24", "Feb '24", "Mar '24"]
        assert periods[0].start_date == date(2024, 1, 15)
        assert periods[1].end_date == date(2024, 2, 29)
        assert periods[2].end_date == date(2024, 3, 10)

    def test_quarterly_labels(self):
        """Test quarter labels across a year boundary."""
        periods = calculate_periods(date(2024, 11, 15), date(2025, 2, 1), "quarterly")
        assert [p.label for p in periods] == ["Q4 24", "Q1 25"]
        assert periods[1].start_date == date(2025, 1, 1)

    def test_unknown_granularity(self):
        """Test that an unknown granularity raises ValueError."""
        with pytest.raises(ValueError):
            calculate_periods(date(2024, 1, 1), date(2024, 1, 2), "hourly")

    def test_period_dict_round_trip(self):
        """Test that periods come back from their dict form."""
        period = Period(date(2024, 3, 1), date(2024, 3, 7), "3/1", 50, True)
        assert Period.from_dict(period.to_dict()) == period


class TestConversion:
    """Tests for weekly <-> other granularity conversion."""

    def test_weekly_to_weekly_keeps_locks(self):
        """Test that weekly targets keep quantities and locks."""
        periods = convert_weekly_to_granularity([700, 1400], [True, False], "2024-01-29", "2024-02-11", "weekly")
        assert [(p.quantity, p.is_locked) for p in periods] == [(700, True), (1400, False)]

    def test_weekly_to_monthly(self):
        """Test that weeks are spread to days and re-aggregated by month."""
        periods = convert_weekly_to_granularity([700, 1400], [True, True], "2024-01-29", "2024-02-11", "monthly")
        assert [(p.label, p.quantity, p.is_locked) for p in periods] == [
            ("Jan '24", 300, False),
            ("Feb '24", 1800, False),
        ]

    def test_missing_weeks_count_as_zero(self):
        """Test that a short weekly_split fills with zero."""
        periods = convert_weekly_to_granularity([700], [], "2024-01-29", "2024-02-11", "daily")
        assert sum(p.quantity for p in periods) == 700
        assert periods[-1].quantity == 0

    def test_monthly_back_to_weekly(self):
        """Test folding months back into weeks with the remainder on the last week."""
        months = calculate_periods("2024-01-29", "2024-02-11", "monthly")
        months = [Period(m.start_date, m.end_date, m.label, q) for m, q in zip(months, [300, 1800])]

        weekly_split, locks = convert_granularity_to_weekly(months, "2024-01-29", "2024-02-11", "monthly", 2100)
        assert weekly_split == [955, 1145]
        assert locks == [False, False]

        weekly_split, _ = convert_granularity_to_weekly(months, "2024-01-29", "2024-02-11", "monthly", 2101)
        assert weekly_split == [955, 1146]

    def test_weekly_back_to_weekly(self):
        """Test that weekly periods map straight back."""
        periods = make_periods([10, 20], [True, False])
        assert convert_granularity_to_weekly(periods, "2024-03-01", "2024-03-14", "weekly", 30) == (
            [10, 20], [True, False])


class TestRedistribute:
    """Tests for redistribute_quantity."""

    def test_spreads_decrease_forward(self):
        """Test that the difference goes to later unlocked periods."""
        result = redistribute_quantity(make_periods([100] * 4), 0, 160, 400)
        assert [p.quantity for p in result] == [160, 80, 80, 80]
        assert [p.is_locked for p in result] == [True, False, False, False]

    def test_positive_remainder_goes_first(self):
        """Test that leftover units go to the first targets."""
        result = redistribute_quantity(make_periods([100] * 4), 0, 50, 400)
        assert [p.quantity for p in result] == [50, 117, 117, 116]

    def test_negative_remainder_goes_first(self):
        """Test that a negative remainder is taken from the first targets."""
        result = redistribute_quantity(make_periods([100] * 4), 0, 150, 400)
        assert [p.quantity for p in result] == [150, 83, 83, 84]
        assert sum(p.quantity for p in result) == 400

    def test_locked_periods_untouched(self):
        """Test that locked periods are skipped."""
        periods = make_periods([100] * 4, [False, False, True, False])
        result = redistribute_quantity(periods, 0, 160, 400)
        assert [p.quantity for p in result] == [160, 70, 100, 70]

    def test_last_period_without_backward(self):
        """Test that editing the last period changes nothing else by default."""
        result = redistribute_quantity(make_periods([100] * 4), 3, 40, 400)
        assert [p.quantity for p in result] == [100, 100, 100, 40]

    def test_last_period_with_backward(self):
        """Test that allow_backward spreads over earlier periods."""
        result = redistribute_quantity(make_periods([100] * 4), 3, 40, 400, allow_backward=True)
        assert [p.quantity for p in result] == [120, 120, 120, 40]

    def test_never_negative(self):
        """Test that quantities are floored at zero."""
        result = redistribute_quantity(make_periods([10, 5, 5]), 0, 30, 20)
        assert [p.quantity for p in result] == [30, 0, 0]

    def test_index_out_of_range(self):
        """Test that a bad index raises ValueError."""
        with pytest.raises(ValueError):
            redistribute_quantity(make_periods([1, 2]), 5, 1, 3)


class TestResetToEven:
    """Tests for reset_to_even_distribution."""

    def test_extra_units_first(self):
        """Test that the first total % count periods get one extra."""
        assert reset_to_even_distribution(3, 10) == ([4, 3, 3], [False, False, False])

    def test_zero_periods(self):
        """Test that a non-positive count raises ValueError."""
        with pytest.raises(ValueError):
            reset_to_even_distribution(0, 10)
