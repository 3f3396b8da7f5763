"""
Machine capacity and utilization calculations.

Jobs are spread evenly over their inclusive start..due day span, and each
job's hours are split across its assigned machines in proportion to speed.
"""
import re
from datetime import date
from typing import Any, Dict, List, Optional

from planner.datetime_utils import date_key, days_between, days_difference, to_date
from planner.scheduling.config import PlannerConfig
from planner.utils import round_half_up

_NON_NUMERIC_RE = re.compile(r"[^0-9.]")


def parse_speed_per_hour(speed_hr) -> float:
    """Parse speed_hr ('12,000/hr', 5000, ...) to a number; 0 if unparseable."""
    if speed_hr is None:
        return 0.0
    cleaned = _NON_NUMERIC_RE.sub("", str(speed_hr))
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def calculate_time_estimate(quantity: float, speed_hr) -> float:
    """Hours needed: quantity / speed."""
    speed = parse_speed_per_hour(speed_hr)
    if speed == 0:
        return 0.0
    return quantity / speed


def _total_speed(machines: List[Dict[str, Any]]) -> float:
    return sum(parse_speed_per_hour(m.get("speed_hr")) for m in machines)


def calculate_multi_machine_time_estimate(quantity: float, machines: List[Dict[str, Any]]) -> float:
    """Hours needed when the workload is shared by all machines."""
    total_speed = _total_speed(machines)
    if not machines or total_speed == 0:
        return 0.0
    return quantity / total_speed


def distribute_hours_across_machines(total_hours: float, machines: List[Dict[str, Any]]) -> Dict[int, float]:
    """Split hours proportionally to machine speed; equally when no speed data."""
    if not machines:
        return {}

    total_speed = _total_speed(machines)
    if total_speed == 0:
        equal_hours = total_hours / len(machines)
        return {m["id"]: equal_hours for m in machines}

    return {
        m["id"]: total_hours * parse_speed_per_hour(m.get("speed_hr")) / total_speed
        for m in machines
    }


def distribute_hours_across_days(total_hours: float, start, due) -> Dict[str, float]:
    """Spread hours evenly over the inclusive day span, keyed by YYYY-MM-DD."""
    start_date, end_date = to_date(start), to_date(due)
    num_days = days_difference(start_date, end_date)
    if num_days <= 0:
        return {}
    per_day = total_hours / num_days
    return {date_key(d): per_day for d in days_between(start_date, end_date)}


def calculate_daily_machine_capacity(machine: Dict[str, Any]) -> float:
    return PlannerConfig.daily_machine_capacity(machine.get("shiftCapacity"))


def calculate_utilization_percent(allocated_hours: float, available_hours: float) -> int:
    if available_hours == 0:
        return 0
    return round_half_up(allocated_hours / available_hours * 100)


def get_utilization_color(utilization_percent: float) -> str:
    if utilization_percent < PlannerConfig.LOW_UTILIZATION_BELOW:
        return "green"
    if utilization_percent <= PlannerConfig.HIGH_UTILIZATION_ABOVE:
        return "yellow"
    return "red"


def get_capacity_status(utilization_percent: float) -> str:
    if utilization_percent < PlannerConfig.LOW_UTILIZATION_BELOW:
        return "Low Utilization"
    if utilization_percent <= PlannerConfig.HIGH_UTILIZATION_ABOVE:
        return "Moderate Utilization"
    if utilization_percent <= 100:
        return "High Utilization"
    return "Over Capacity"


def is_over_capacity(allocated_hours: float, machine_capacity: float) -> bool:
    return allocated_hours > machine_capacity


def calculate_total_capacity(machines: List[Dict[str, Any]]) -> float:
    return sum(calculate_daily_machine_capacity(m) for m in machines)


def _to_float(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def calculate_daily_revenue(total_billing, start, due) -> float:
    """Billing per day over the inclusive span (whole billing if span is empty)."""
    billing = _to_float(total_billing)
    num_days = days_difference(to_date(start), to_date(due))
    if num_days <= 0:
        return billing
    return billing / num_days


def calculate_daily_pieces(total_quantity: float, start, due) -> int:
    num_days = days_difference(to_date(start), to_date(due))
    if num_days <= 0:
        return total_quantity
    return round_half_up(total_quantity / num_days)


def _job_machines(job: Dict[str, Any], machines: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    assigned_ids = {jm.get("id") for jm in job.get("machines") or []}
    return [m for m in machines if m.get("id") in assigned_ids]


def calculate_machine_capacities(jobs: List[Dict[str, Any]], machines: List[Dict[str, Any]],
                                 start_date: date, end_date: date) -> Dict[int, Dict[str, Any]]:
    """
    Build the per-machine day grid of allocated vs available hours.

    Args:
        jobs: parsed jobs (machines decoded)
        machines: machine records
        start_date: first day of the grid
        end_date: last day of the grid (inclusive)

    Returns:
        {machine_id: {'machine', 'daily_capacity', 'total_utilization',
                      'average_utilization', 'peak_utilization', 'peak_date'}}
    """
    days = days_between(start_date, end_date)
    capacity_data = {}

    for machine in machines:
        available = calculate_daily_machine_capacity(machine)
        daily_capacity = {
            date_key(d): {
                "date": d.isoformat(),
                "date_key": date_key(d),
                "allocated_hours": 0.0,
                "available_hours": available,
                "utilization_percent": 0,
                "color": "green",
                "jobs": [],
            }
            for d in days
        }

        for job in jobs:
            job_machines = _job_machines(job, machines)
            if machine not in job_machines:
                continue

            time_estimate = job.get("time_estimate") or calculate_multi_machine_time_estimate(
                _to_float(job.get("quantity")), job_machines
            )
            machine_hours = distribute_hours_across_machines(time_estimate, job_machines).get(machine["id"], 0.0)

            for key, hours in distribute_hours_across_days(machine_hours, job["start_date"], job["due_date"]).items():
                day = daily_capacity.get(key)
                if day is None:
                    continue
                day["allocated_hours"] += hours
                day["jobs"].append({
                    "job_number": job.get("job_number"),
                    "job_name": job.get("job_name"),
                    "client_name": (job.get("client") or {}).get("name"),
                    "hours": hours,
                })

        total_utilization = 0
        peak_utilization = 0
        peak_date: Optional[str] = None
        for key, day in daily_capacity.items():
            day["utilization_percent"] = calculate_utilization_percent(day["allocated_hours"], day["available_hours"])
            day["color"] = get_utilization_color(day["utilization_percent"])
            total_utilization += day["utilization_percent"]
            if day["utilization_percent"] > peak_utilization:
                peak_utilization = day["utilization_percent"]
                peak_date = key

        average = round_half_up(total_utilization / len(daily_capacity)) if daily_capacity else 0
        capacity_data[machine["id"]] = {
            "machine": machine,
            "daily_capacity": daily_capacity,
            "total_utilization": total_utilization,
            "average_utilization": average,
            "peak_utilization": peak_utilization,
            "peak_date": peak_date,
        }

    return capacity_data


def calculate_daily_summaries(jobs: List[Dict[str, Any]], start_date: date, end_date: date) -> Dict[str, Dict[str, Any]]:
    """Pieces, revenue and job count per day of the range."""
    summaries = {
        date_key(d): {
            "date": d.isoformat(),
            "date_key": date_key(d),
            "total_pieces": 0,
            "total_revenue": 0.0,
            "job_count": 0,
        }
        for d in days_between(start_date, end_date)
    }

    for job in jobs:
        daily_pieces = calculate_daily_pieces(_to_float(job.get("quantity")), job["start_date"], job["due_date"])
        daily_revenue = calculate_daily_revenue(job.get("total_billing"), job["start_date"], job["due_date"])
        for d in days_between(to_date(job["start_date"]), to_date(job["due_date"])):
            summary = summaries.get(date_key(d))
            if summary is not None:
                summary["total_pieces"] += daily_pieces
                summary["total_revenue"] += daily_revenue
                summary["job_count"] += 1

    return summaries


def summarize_capacity(capacity_data: Dict[int, Dict[str, Any]]) -> Dict[str, Any]:
    """Overall utilization, the busiest machine, and low/high utilization machines."""
    total_allocated = 0.0
    total_available = 0.0
    peak_machine = None
    low, high = [], []

    for machine_id, data in capacity_data.items():
        for day in data["daily_capacity"].values():
            total_allocated += day["allocated_hours"]
            total_available += day["available_hours"]

        if peak_machine is None or data["peak_utilization"] > peak_machine["peak_utilization"]:
            peak_machine = {
                "machine_id": machine_id,
                "peak_utilization": data["peak_utilization"],
                "peak_date": data["peak_date"],
            }

        average = data["average_utilization"]
        if average < PlannerConfig.LOW_UTILIZATION_BELOW:
            low.append(machine_id)
        elif average > PlannerConfig.HIGH_UTILIZATION_ABOVE:
            high.append(machine_id)

    overall = calculate_utilization_percent(total_allocated, total_available)
    return {
        "overall_utilization": overall,
        "status": get_capacity_status(overall),
        "peak_machine": peak_machine,
        "low_utilization_machines": low,
        "high_utilization_machines": high,
    }
