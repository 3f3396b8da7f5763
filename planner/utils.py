import math


def round_half_up(value) -> int:
    """Round .5 away from the floor, the way the dashboard rounds (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def format_number(value) -> str:
    """Whole floats print without the trailing '.0'."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_currency(value) -> str:
    """'$12,346' style: whole dollars with thousands separators."""
    amount = round_half_up(value)
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,}"


def to_float(value) -> float:
    """Xano money columns arrive as strings; anything unreadable counts as 0."""
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0
