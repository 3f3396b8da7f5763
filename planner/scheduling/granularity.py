"""
Conversion between the stored weekly_split and other period granularities,
plus redistribution when a planner edits one period by hand.
"""
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Any, Dict, List, Tuple

from planner.datetime_utils import add_months, days_between, end_of_month, month_label, quarter_of, short_date_label, to_date
from planner.utils import round_half_up

CELL_GRANULARITIES = ("daily", "weekly", "monthly", "quarterly")


@dataclass(frozen=True)
class Period:
    start_date: date
    end_date: date
    label: str
    quantity: int = 0
    is_locked: bool = False

    @property
    def days(self) -> List[date]:
        return days_between(self.start_date, self.end_date)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "label": self.label,
            "quantity": self.quantity,
            "is_locked": self.is_locked,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Period":
        return cls(
            start_date=to_date(data["start_date"]),
            end_date=to_date(data["end_date"]),
            label=data.get("label", ""),
            quantity=int(data.get("quantity") or 0),
            is_locked=bool(data.get("is_locked", False)),
        )


def calculate_periods(start, due, granularity: str) -> List[Period]:
    """
    Split the job's start..due range into periods.

    Weekly periods are 7-day windows counted from the start date, not
    calendar weeks. Monthly and quarterly periods are clipped to the range.
    """
    start_date, due_date = to_date(start), to_date(due)
    periods: List[Period] = []

    if granularity == "daily":
        for d in days_between(start_date, due_date):
            periods.append(Period(d, d, short_date_label(d)))

    elif granularity == "weekly":
        week_start = start_date
        while week_start <= due_date:
            week_end = min(week_start + timedelta(days=6), due_date)
            periods.append(Period(week_start, week_end, short_date_label(week_start)))
            week_start += timedelta(days=7)

    elif granularity == "monthly":
        month_start = date(start_date.year, start_date.month, 1)
        while month_start <= due_date:
            periods.append(Period(
                max(month_start, start_date),
                min(end_of_month(month_start), due_date),
                month_label(month_start),
            ))
            month_start = add_months(month_start, 1)

    elif granularity == "quarterly":
        quarter_start = date(start_date.year, (quarter_of(start_date) - 1) * 3 + 1, 1)
        while quarter_start <= due_date:
            quarter_end = end_of_month(add_months(quarter_start, 2))
            periods.append(Period(
                max(quarter_start, start_date),
                min(quarter_end, due_date),
                f"Q{quarter_of(quarter_start)} {str(quarter_start.year)[-2:]}",
            ))
            quarter_start = add_months(quarter_start, 3)

    else:
        raise ValueError(f"Unknown granularity: {granularity}")

    return periods


def _spread_to_days(periods: List[Period], quantities: List[float]) -> Dict[date, float]:
    daily: Dict[date, float] = {}
    for period, quantity in zip(periods, quantities):
        days = period.days
        if not days:
            continue
        per_day = quantity / len(days)
        for d in days:
            daily[d] = per_day
    return daily


def _sum_days(period: Period, daily: Dict[date, float]) -> float:
    return sum(daily.get(d, 0.0) for d in period.days)


def convert_weekly_to_granularity(weekly_split: List[int], locked_weeks: List[bool], start, due,
                                  target_granularity: str) -> List[Period]:
    """
    Expand a stored weekly_split into periods of another granularity.

    Weekly quantities are spread evenly to days and re-aggregated. Locks only
    survive when the target is weekly.
    """
    weeks = calculate_periods(start, due, "weekly")

    if target_granularity == "weekly":
        return [
            replace(week,
                    quantity=weekly_split[i] if i < len(weekly_split) and weekly_split[i] else 0,
                    is_locked=bool(locked_weeks[i]) if i < len(locked_weeks) else False)
            for i, week in enumerate(weeks)
        ]

    targets = calculate_periods(start, due, target_granularity)
    week_quantities = [(weekly_split[i] if i < len(weekly_split) else 0) or 0 for i in range(len(weeks))]
    daily = _spread_to_days(weeks, week_quantities)

    return [
        replace(period, quantity=max(0, round_half_up(_sum_days(period, daily))), is_locked=False)
        for period in targets
    ]


def convert_granularity_to_weekly(periods: List[Period], start, due, current_granularity: str,
                                  total_quantity: int) -> Tuple[List[int], List[bool]]:
    """
    Fold edited periods back into weekly_split / locked_weeks for storage.

    The rounding difference is put on the last week so the split always sums
    to total_quantity.
    """
    if current_granularity == "weekly":
        return [p.quantity for p in periods], [p.is_locked for p in periods]

    weeks = calculate_periods(start, due, "weekly")
    daily = _spread_to_days(periods, [p.quantity for p in periods])
    weekly_split = [round_half_up(_sum_days(week, daily)) for week in weeks]

    difference = total_quantity - sum(weekly_split)
    if difference and weekly_split:
        weekly_split[-1] += difference

    return weekly_split, [False] * len(weekly_split)


def redistribute_quantity(periods: List[Period], edited_index: int, new_value: int,
                          total_quantity: int, allow_backward: bool = False) -> List[Period]:
    """
    Apply a manual edit and rebalance the rest so the total is unchanged.

    The edited period becomes locked. The difference goes to unlocked periods
    after it, or to any unlocked period when allow_backward is set and none
    follow. The remainder is handed out one unit at a time from the front.
    """
    if not 0 <= edited_index < len(periods):
        raise ValueError(f"edited_index {edited_index} out of range")

    result = list(periods)
    result[edited_index] = replace(result[edited_index], quantity=new_value, is_locked=True)

    difference = total_quantity - sum(p.quantity for p in result)
    if difference == 0:
        return result

    targets = [i for i in range(edited_index + 1, len(result)) if not result[i].is_locked]
    if not targets and allow_backward:
        targets = [i for i in range(len(result)) if i != edited_index and not result[i].is_locked]
    if not targets:
        return result

    # Truncate toward zero so base and remainder share the difference's sign
    base = int(difference / len(targets))
    remainder = difference - base * len(targets)
    step = 1 if remainder > 0 else -1

    for position, idx in enumerate(targets):
        adjustment = base + (step if position < abs(remainder) else 0)
        result[idx] = replace(result[idx], quantity=max(0, result[idx].quantity + adjustment))

    return result


def reset_to_even_distribution(period_count: int, total_quantity: int) -> Tuple[List[int], List[bool]]:
    """Even split; the first total % count periods get one extra unit."""
    if period_count <= 0:
        raise ValueError("period_count must be positive")
    even, remainder = divmod(total_quantity, period_count)
    quantities = [even + 1 if i < remainder else even for i in range(period_count)]
    return quantities, [False] * period_count
