"""
Capacity planning configuration.

Shift structure, utilization thresholds and scoring weights used by the
capacity, projection, matching and production calculations.
"""


class PlannerConfig:
    """
    Fixed planning parameters.

    These mirror how the floor runs today: two 8-hour shifts per machine per day.
    """

    HOURS_PER_SHIFT: int = 8
    SHIFTS_PER_DAY: int = 2
    TOTAL_HOURS_PER_DAY: int = HOURS_PER_SHIFT * SHIFTS_PER_DAY  # 16 hours

    # Utilization bands (percent)
    LOW_UTILIZATION_BELOW: int = 50
    HIGH_UTILIZATION_ABOVE: int = 80

    # Projection table shows 6 weeks by default
    DEFAULT_PROJECTION_WEEKS: int = 6

    # Machine matching
    ASSUMED_HOURS_PER_ASSIGNED_DAY: int = 8
    MATCH_SPEED_NORMALIZATION: float = 10000.0
    CAPABILITY_SCORE_WEIGHT: float = 40.0
    UTILIZATION_SCORE_WEIGHT: float = 30.0
    SPEED_SCORE_WEIGHT: float = 30.0
    NO_REQUIREMENTS_SCORE: int = 50

    # Rules engine
    DEFAULT_PEOPLE_REQUIRED: float = 1

    # Production variance bands (percent)
    AHEAD_VARIANCE_MIN: float = -5.0
    ON_TRACK_VARIANCE_MIN: float = -20.0

    @classmethod
    def daily_machine_capacity(cls, shift_capacity=None) -> float:
        """
        Hours a machine can run in a day.

        Args:
            shift_capacity: machine's shiftCapacity multiplier, if set

        Returns:
            float: shift_capacity x 16 when set, otherwise 16
        """
        if shift_capacity:
            return shift_capacity * cls.TOTAL_HOURS_PER_DAY
        return float(cls.TOTAL_HOURS_PER_DAY)
