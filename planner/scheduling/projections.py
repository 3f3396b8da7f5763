"""
Quantity and revenue projections.

Spreads each job's quantity over weekly, monthly or quarterly periods and
rolls the result up by service type, process type and facility.
"""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from planner.datetime_utils import (
    add_months, days_between, end_of_month, month_label,
    quarter_label, quarter_of, short_date_label, to_date,
)
from planner.facilities import FACILITY_NAMES
from planner.scheduling.config import PlannerConfig
from planner.scheduling.jobs import get_job_revenue, get_process_revenue
from planner.scheduling.process_types import normalize_process_type
from planner.utils import round_half_up

GRANULARITIES = ("weekly", "monthly", "quarterly")


@dataclass(frozen=True)
class TimeRange:
    """A projection period. granularity is 'weekly', 'monthly' or 'quarterly'."""
    granularity: str
    number: int
    start_date: date
    end_date: date
    label: str
    year: Optional[int] = None
    quarter: Optional[int] = None

    def contains(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "granularity": self.granularity,
            "number": self.number,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "label": self.label,
        }
        if self.quarter is not None:
            data.update({"year": self.year, "quarter": self.quarter})
        return data


@dataclass
class JobProjection:
    job: Dict[str, Any]
    quantities: Dict[str, int]
    revenues: Dict[str, float]
    total_quantity: int
    total_revenue: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job.get("id"),
            "job_number": self.job.get("job_number"),
            "job_name": self.job.get("job_name"),
            "service_type": self.job.get("service_type"),
            "facilities_id": self.job.get("facilities_id"),
            "quantities": self.quantities,
            "revenues": self.revenues,
            "total_quantity": self.total_quantity,
            "total_revenue": self.total_revenue,
        }


@dataclass
class ProcessTypeSummary:
    process_type: str
    totals: Dict[str, int]
    revenues: Dict[str, float]
    grand_total: int = 0
    grand_revenue: float = 0.0
    job_count: int = 0
    facility_id: Optional[int] = None
    facility_name: Optional[str] = None
    job_ids: set = field(default_factory=set, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "process_type": self.process_type,
            "totals": self.totals,
            "revenues": self.revenues,
            "grand_total": self.grand_total,
            "grand_revenue": self.grand_revenue,
            "job_count": self.job_count,
        }
        if self.facility_name is not None:
            data.update({"facility_id": self.facility_id, "facility_name": self.facility_name})
        return data


# -------------------------
# Time ranges
# -------------------------
def generate_week_ranges(start: date, count: int = PlannerConfig.DEFAULT_PROJECTION_WEEKS) -> List[TimeRange]:
    """Consecutive 7-day ranges beginning at start, labelled 'M/D'."""
    ranges = []
    for i in range(count):
        week_start = start + timedelta(days=7 * i)
        ranges.append(TimeRange("weekly", i + 1, week_start, week_start + timedelta(days=6),
                                short_date_label(week_start)))
    return ranges


def generate_month_ranges(start: date, count: int) -> List[TimeRange]:
    """Calendar months beginning with the month containing start."""
    ranges = []
    for i in range(count):
        month_start = add_months(start, i)
        ranges.append(TimeRange("monthly", month_start.month, month_start, end_of_month(month_start),
                                month_label(month_start), year=month_start.year))
    return ranges


def generate_quarter_ranges(start: date, count: int) -> List[TimeRange]:
    """Calendar quarters beginning with the quarter containing start."""
    ranges = []
    first = date(start.year, (quarter_of(start) - 1) * 3 + 1, 1)
    for i in range(count):
        quarter_start = add_months(first, 3 * i)
        quarter_end = end_of_month(add_months(quarter_start, 2))
        quarter = quarter_of(quarter_start)
        ranges.append(TimeRange("quarterly", quarter, quarter_start, quarter_end,
                                quarter_label(quarter, quarter_start.year),
                                year=quarter_start.year, quarter=quarter))
    return ranges


def generate_time_ranges(granularity: str, start: date, count: int) -> List[TimeRange]:
    if granularity == "weekly":
        return generate_week_ranges(start, count)
    if granularity == "monthly":
        return generate_month_ranges(start, count)
    if granularity == "quarterly":
        return generate_quarter_ranges(start, count)
    raise ValueError(f"Unknown granularity: {granularity}")


# -------------------------
# Job distribution
# -------------------------
def _zeroed(ranges: List[TimeRange], value=0) -> Dict[str, Any]:
    return {r.label: value for r in ranges}


def _from_time_split(time_split: Dict[str, Any], ranges: List[TimeRange]) -> Dict[str, int]:
    quantities = _zeroed(ranges)
    granularity = ranges[0].granularity
    buckets = time_split.get(granularity) or []

    for r in ranges:
        for bucket in buckets:
            if granularity == "weekly":
                matched = to_date(bucket.get("week_start")) == r.start_date
            elif granularity == "monthly":
                month_start = to_date(bucket.get("month_start"))
                matched = month_start is not None and (month_start.year, month_start.month) == (
                    r.start_date.year, r.start_date.month)
            else:
                matched = bucket.get("year") == r.year and bucket.get("quarter") == r.quarter
            if matched:
                quantities[r.label] = bucket.get("quantity") or 0
                break
    return quantities


def calculate_job_distribution(job: Dict[str, Any], ranges: List[TimeRange]) -> Dict[str, int]:
    """
    How much of a job's quantity falls in each range.

    Pre-computed time_split buckets win when any of them land in the ranges.
    Otherwise quantity is spread evenly over the job's inclusive day span and
    each range gets the rounded share of the days it covers.
    """
    quantities = _zeroed(ranges)
    if not ranges:
        return quantities

    time_split = job.get("time_split")
    if time_split:
        split_quantities = _from_time_split(time_split, ranges)
        if any(q > 0 for q in split_quantities.values()):
            return split_quantities

    quantity = job.get("quantity") or 0
    if not job.get("start_date") or not job.get("due_date") or not quantity:
        return quantities

    job_days = days_between(to_date(job["start_date"]), to_date(job["due_date"]))
    if not job_days:
        return quantities

    daily_quantity = quantity / len(job_days)
    for r in ranges:
        days_in_range = sum(1 for d in job_days if r.contains(d))
        quantities[r.label] = round_half_up(daily_quantity * days_in_range)
    return quantities


def calculate_job_projections(jobs: List[Dict[str, Any]], ranges: List[TimeRange]) -> List[JobProjection]:
    projections = []
    for job in jobs:
        quantities = calculate_job_distribution(job, ranges)
        job_quantity = job.get("quantity") or 0
        job_revenue = get_job_revenue(job)

        if job_quantity > 0:
            revenues = {label: q / job_quantity * job_revenue for label, q in quantities.items()}
        else:
            revenues = _zeroed(ranges, 0.0)

        projections.append(JobProjection(
            job=job,
            quantities=quantities,
            revenues=revenues,
            total_quantity=sum(quantities.values()),
            total_revenue=sum(revenues.values()),
        ))
    return projections


# -------------------------
# Summaries
# -------------------------
def calculate_service_type_summaries(projections: List[JobProjection], ranges: List[TimeRange]) -> List[Dict[str, Any]]:
    """One row per service type, sorted by name."""
    summaries: Dict[str, Dict[str, Any]] = {}
    for projection in projections:
        service_type = projection.job.get("service_type") or "Unknown"
        summary = summaries.setdefault(service_type, {
            "service_type": service_type,
            "totals": _zeroed(ranges),
            "grand_total": 0,
            "job_count": 0,
        })
        for label, quantity in projection.quantities.items():
            summary["totals"][label] = summary["totals"].get(label, 0) + quantity
        summary["grand_total"] += projection.total_quantity
        summary["job_count"] += 1

    return sorted(summaries.values(), key=lambda s: s["service_type"].lower())


def calculate_grand_totals(summaries: List[Dict[str, Any]], ranges: List[TimeRange],
                           totals_key: str = "totals") -> Dict[str, Any]:
    totals = _zeroed(ranges)
    grand_total = 0
    for summary in summaries:
        if not isinstance(summary, dict):
            summary = summary.to_dict()
        for label, quantity in summary[totals_key].items():
            totals[label] = totals.get(label, 0) + quantity
        grand_total += summary["grand_total"]
    return {"totals": totals, "grand_total": grand_total}


def _accumulate_process_summaries(projections: List[JobProjection], ranges: List[TimeRange],
                                  by_facility: bool) -> List[ProcessTypeSummary]:
    summaries: Dict[Any, ProcessTypeSummary] = {}
    # Display name is the casing seen first
    canonical_names: Dict[str, str] = {}

    for projection in projections:
        job = projection.job
        requirements = job.get("requirements") or []
        n = len(requirements)
        if n == 0:
            continue

        facility_id = job.get("facilities_id") or None
        facility_name = FACILITY_NAMES.get(facility_id, "Unknown") if facility_id else "No Facility"

        for requirement in requirements:
            process_type = requirement.get("process_type") or "Unknown"
            normalized = process_type.lower()
            canonical_names.setdefault(normalized, process_type)
            key = (normalized, facility_id) if by_facility else normalized

            summary = summaries.get(key)
            if summary is None:
                summary = ProcessTypeSummary(
                    process_type=canonical_names[normalized],
                    totals=_zeroed(ranges),
                    revenues=_zeroed(ranges, 0.0),
                    facility_id=facility_id if by_facility else None,
                    facility_name=facility_name if by_facility else None,
                )
                summaries[key] = summary

            for label, quantity in projection.quantities.items():
                summary.totals[label] = summary.totals.get(label, 0) + round_half_up(quantity / n)
            for label, revenue in projection.revenues.items():
                summary.revenues[label] = summary.revenues.get(label, 0.0) + revenue / n

            summary.grand_total += round_half_up(projection.total_quantity / n)
            summary.grand_revenue += get_process_revenue(job, requirement)
            summary.job_ids.add(job.get("id"))

    for summary in summaries.values():
        summary.job_count = len(summary.job_ids)
    return list(summaries.values())


def calculate_process_type_summaries(projections: List[JobProjection],
                                     ranges: List[TimeRange]) -> List[ProcessTypeSummary]:
    """
    Roll projections up by requirement process type.

    Each job's period quantity is split equally across its requirements.
    Grouping is case-insensitive; job counts are unique jobs per group.
    """
    summaries = _accumulate_process_summaries(projections, ranges, by_facility=False)
    return sorted(summaries, key=lambda s: s.process_type.lower())


def calculate_process_type_summaries_by_facility(projections: List[JobProjection],
                                                 ranges: List[TimeRange]) -> List[ProcessTypeSummary]:
    summaries = _accumulate_process_summaries(projections, ranges, by_facility=True)
    return sorted(summaries, key=lambda s: (s.process_type.lower(), s.facility_name.lower()))


def _breakdown_sort_key(value):
    if isinstance(value, bool):
        return (0, not value, 0, "")
    if isinstance(value, (int, float)):
        return (1, False, value, "")
    return (2, False, 0, str(value).lower())


def calculate_process_type_breakdown_by_field(projections: List[JobProjection], ranges: List[TimeRange],
                                              process_type: str, field_name: str) -> List[Dict[str, Any]]:
    """
    Break one process type down by the value of a requirement field
    (e.g. insert by paper_size). Requirements with an empty value are skipped.
    """
    target = process_type.lower()
    breakdowns: Dict[Any, Dict[str, Any]] = {}
    counted_jobs: Dict[Any, set] = {}

    for projection in projections:
        job = projection.job
        requirements = job.get("requirements") or []
        n = len(requirements)

        for requirement in requirements:
            req_type = normalize_process_type(requirement.get("process_type") or "Unknown").lower()
            if req_type != target:
                continue

            value = requirement.get(field_name)
            if value is None or value == "":
                continue

            # True and 1 must not share a bucket
            key = (type(value) is bool, value)
            breakdown = breakdowns.get(key)
            if breakdown is None:
                breakdown = {
                    "process_type": target,
                    "field_name": field_name,
                    "field_value": value,
                    "field_label": ("Yes" if value else "No") if isinstance(value, bool) else str(value),
                    "quantities": _zeroed(ranges),
                    "total_quantity": 0,
                    "job_count": 0,
                }
                breakdowns[key] = breakdown
                counted_jobs[key] = set()

            for label, quantity in projection.quantities.items():
                breakdown["quantities"][label] = breakdown["quantities"].get(label, 0) + round_half_up(quantity / n)
            breakdown["total_quantity"] += round_half_up(projection.total_quantity / n)

            if job.get("id") not in counted_jobs[key]:
                counted_jobs[key].add(job.get("id"))
                breakdown["job_count"] += 1

    return sorted(breakdowns.values(), key=lambda b: _breakdown_sort_key(b["field_value"]))


def expand_job_projections_to_processes(projections: List[JobProjection]) -> List[Dict[str, Any]]:
    """One row per job requirement, with the job's quantities split evenly."""
    rows = []
    for projection in projections:
        job = projection.job
        requirements = job.get("requirements") or []
        n = len(requirements)
        for requirement in requirements:
            quantities = {label: round_half_up(q / n) for label, q in projection.quantities.items()}
            revenues = {label: r / n for label, r in projection.revenues.items()}
            rows.append({
                "job_id": job.get("id"),
                "job_number": job.get("job_number"),
                "process_type": requirement.get("process_type") or "Unknown",
                "requirement": requirement,
                "quantities": quantities,
                "revenues": revenues,
                "total_quantity": sum(quantities.values()),
                "total_revenue": sum(revenues.values()),
            })
    return rows
