"""
Production comparison calculations.

Compares projected quantities for a time window with what the floor actually
produced. All job and entry dates are Xano epoch milliseconds.
"""
from typing import Any, Dict, List, Optional, Tuple

from planner.datetime_utils import date_key, date_to_timestamp, monday_of_week, parse_dot_date, timestamp_to_date
from planner.scheduling.config import PlannerConfig
from planner.scheduling.jobs import get_job_revenue
from planner.utils import round_half_up


def calculate_variance(projected: float, actual: float) -> Tuple[float, float]:
    """
    Returns:
        (variance, variance_percentage); percentage is 0 when nothing was projected
    """
    variance = actual - projected
    variance_percentage = variance / projected * 100 if projected > 0 else 0.0
    return variance, variance_percentage


def get_jobs_in_time_range(jobs: List[Dict[str, Any]], start: int, end: int) -> List[Dict[str, Any]]:
    """Jobs whose start..due span overlaps the window."""
    return [job for job in jobs if job["start_date"] <= end and job["due_date"] >= start]


def _in_range(ts: int, start: Optional[int], end: Optional[int]) -> bool:
    if start is not None and ts < start:
        return False
    if end is not None and ts > end:
        return False
    return True


def aggregate_production_by_week(entries: List[Dict[str, Any]], start: Optional[int] = None,
                                 end: Optional[int] = None) -> Dict[str, float]:
    """Total actual quantity per week, keyed by the week's Monday (YYYY-MM-DD)."""
    weekly: Dict[str, float] = {}
    for entry in entries:
        if not _in_range(entry["date"], start, end):
            continue
        key = date_key(monday_of_week(timestamp_to_date(entry["date"])))
        weekly[key] = weekly.get(key, 0) + (entry.get("actual_quantity") or 0)
    return dict(sorted(weekly.items()))


def aggregate_production_by_job(entries: List[Dict[str, Any]], start: Optional[int] = None,
                                end: Optional[int] = None) -> Dict[int, Dict[str, Any]]:
    """
    Sum entries per job.

    Returns:
        {job_id: {'total', 'entry_ids', 'last_updated_at'}}
    """
    totals: Dict[int, Dict[str, Any]] = {}
    for entry in entries:
        if not _in_range(entry["date"], start, end):
            continue
        current = totals.setdefault(entry["job"], {"total": 0, "entry_ids": [], "last_updated_at": None})
        current["total"] += entry.get("actual_quantity") or 0
        current["entry_ids"].append(entry.get("id"))
        created_at = entry.get("created_at")
        if created_at is not None and (current["last_updated_at"] is None or created_at > current["last_updated_at"]):
            current["last_updated_at"] = created_at
    return totals


def _dot_date_to_timestamp(value) -> Optional[int]:
    if not isinstance(value, str):
        return None
    parsed = parse_dot_date(value)
    return date_to_timestamp(parsed) if parsed else None


def _actuals_from_job(job: Dict[str, Any], start: int, end: int) -> Tuple[float, Optional[int]]:
    actual = 0.0
    last_updated = None
    for item in job["actual_quantity"]:
        if not isinstance(item, dict):
            continue
        ts = _dot_date_to_timestamp(item.get("date"))
        if ts is None or ts < start or ts > end:
            continue
        try:
            actual += float(item.get("quantity") or 0)
        except (TypeError, ValueError):
            pass
        entered = _dot_date_to_timestamp(item.get("date_entered"))
        if entered is not None and (last_updated is None or entered > last_updated):
            last_updated = entered
    return actual, last_updated


def merge_projections_with_actuals(jobs: List[Dict[str, Any]], entries: List[Dict[str, Any]],
                                   start: int, end: int) -> List[Dict[str, Any]]:
    """
    Build one comparison row per job overlapping the window.

    Projected quantity is the job quantity scaled by how much of its duration
    falls in the window. Actuals come from the job's own actual_quantity list
    when present, otherwise from production entries.
    """
    by_job = aggregate_production_by_job(entries, start, end)
    comparisons = []

    for job in get_jobs_in_time_range(jobs, start, end):
        quantity = job.get("quantity") or 0
        total_duration = job["due_date"] - job["start_date"]
        period_duration = min(job["due_date"], end) - max(job["start_date"], start)
        projected = round_half_up(quantity * period_duration / total_duration) if total_duration > 0 else quantity

        if isinstance(job.get("actual_quantity"), list) and job["actual_quantity"]:
            actual, last_updated = _actuals_from_job(job, start, end)
            entry_ids: List[int] = []
        else:
            job_data = by_job.get(job.get("id"), {"total": 0, "entry_ids": [], "last_updated_at": None})
            actual, last_updated, entry_ids = job_data["total"], job_data["last_updated_at"], job_data["entry_ids"]

        variance, variance_percentage = calculate_variance(projected, actual)
        comparisons.append({
            "job": job,
            "projected_quantity": projected,
            "actual_quantity": actual,
            "variance": variance,
            "variance_percentage": variance_percentage,
            "status": get_variance_status(variance_percentage),
            "entry_ids": entry_ids,
            "last_updated_at": last_updated,
        })

    return comparisons


def get_variance_status(variance_percentage: float) -> str:
    if variance_percentage >= PlannerConfig.AHEAD_VARIANCE_MIN:
        return "ahead"
    if variance_percentage >= PlannerConfig.ON_TRACK_VARIANCE_MIN:
        return "on-track"
    return "behind"


def calculate_production_summary(comparisons: List[Dict[str, Any]]) -> Dict[str, Any]:
    total_projected = sum(c["projected_quantity"] for c in comparisons)
    total_actual = sum(c["actual_quantity"] for c in comparisons)
    total_variance = total_actual - total_projected

    statuses = [get_variance_status(c["variance_percentage"]) for c in comparisons]

    total_revenue = 0.0
    for c in comparisons:
        job_quantity = c["job"].get("quantity") or 0
        if job_quantity:
            # Revenue earned in proportion to what was actually produced
            total_revenue += c["actual_quantity"] / job_quantity * get_job_revenue(c["job"])

    return {
        "total_jobs": len(comparisons),
        "total_projected": total_projected,
        "total_actual": total_actual,
        "total_variance": total_variance,
        "average_variance_percentage": total_variance / total_projected * 100 if total_projected > 0 else 0.0,
        "jobs_ahead": statuses.count("ahead"),
        "jobs_on_track": statuses.count("on-track"),
        "jobs_behind": statuses.count("behind"),
        "completion_rate": total_actual / total_projected * 100 if total_projected > 0 else 0.0,
        "total_revenue": total_revenue,
    }
