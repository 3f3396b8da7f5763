"""
Job cost tracking: billing rate per thousand vs the actual cost entered for
a period, and the resulting margin.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from planner.scheduling.jobs import parse_price
from planner.utils import to_float

# Profit percentage bands
WARNING_BELOW = 10
GOOD_BELOW = 25


def calculate_average_cost_from_requirements(requirements: Optional[List[Dict[str, Any]]]) -> float:
    """Simple average of the positive price_per_m values, used to seed a new cost entry."""
    prices = [parse_price(req.get("price_per_m")) for req in requirements or []]
    prices = [price for price in prices if price > 0]
    if not prices:
        return 0.0
    return sum(prices) / len(prices)


def calculate_billing_rate_per_m(job: Dict[str, Any]) -> float:
    """What the client pays per thousand: the sum of every requirement's price_per_m."""
    return sum(parse_price(req.get("price_per_m")) for req in job.get("requirements") or [])


def calculate_profit_percentage(billing_rate: float, actual_cost: float) -> float:
    if billing_rate == 0:
        return 0.0
    return (billing_rate - actual_cost) / billing_rate * 100


def get_profit_status(profit_percentage: float) -> str:
    if profit_percentage < 0:
        return "loss"
    if profit_percentage < WARNING_BELOW:
        return "warning"
    if profit_percentage < GOOD_BELOW:
        return "good"
    return "excellent"


@dataclass
class JobProfitMetrics:
    billing_rate_per_m: float
    actual_cost_per_m: float
    profit_per_m: float
    profit_percentage: float
    total_profit: float
    profit_status: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "billing_rate_per_m": self.billing_rate_per_m,
            "actual_cost_per_m": self.actual_cost_per_m,
            "profit_per_m": self.profit_per_m,
            "profit_percentage": self.profit_percentage,
            "total_profit": self.total_profit,
            "profit_status": self.profit_status,
        }


def calculate_job_profit_metrics(job: Dict[str, Any], actual_cost_per_m: float) -> JobProfitMetrics:
    billing_rate = calculate_billing_rate_per_m(job)
    profit_per_m = billing_rate - actual_cost_per_m
    profit_percentage = calculate_profit_percentage(billing_rate, actual_cost_per_m)
    return JobProfitMetrics(
        billing_rate_per_m=billing_rate,
        actual_cost_per_m=actual_cost_per_m,
        profit_per_m=profit_per_m,
        profit_percentage=profit_percentage,
        total_profit=to_float(job.get("quantity")) / 1000 * profit_per_m,
        profit_status=get_profit_status(profit_percentage),
    )


@dataclass
class JobCostComparison:
    job: Dict[str, Any]
    billing_rate_per_m: float
    actual_cost_per_m: Optional[float] = None
    profit_metrics: Optional[JobProfitMetrics] = None
    entry_ids: List[int] = field(default_factory=list)
    last_updated_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job.get("id"),
            "job_number": self.job.get("job_number"),
            "job_name": self.job.get("job_name"),
            "quantity": self.job.get("quantity"),
            "billing_rate_per_m": self.billing_rate_per_m,
            "actual_cost_per_m": self.actual_cost_per_m,
            "profit_metrics": self.profit_metrics.to_dict() if self.profit_metrics else None,
            "entry_ids": self.entry_ids,
            "last_updated_at": self.last_updated_at,
        }


def merge_jobs_with_cost_entries(jobs: List[Dict[str, Any]], cost_entries: List[Dict[str, Any]],
                                 start_ms: int, end_ms: int) -> List[JobCostComparison]:
    """
    Pair every job with the cost entries dated inside [start_ms, end_ms].

    Several entries for one job are averaged. Jobs with no entry in the
    window come back without an actual cost or profit metrics.
    """
    entries_by_job: Dict[Any, List[Dict[str, Any]]] = {}
    for entry in cost_entries:
        entry_date = entry.get("date")
        if entry_date is None or not start_ms <= entry_date <= end_ms:
            continue
        entries_by_job.setdefault(entry.get("job"), []).append(entry)

    comparisons = []
    for job in jobs:
        job_entries = entries_by_job.get(job.get("id"), [])
        comparison = JobCostComparison(
            job=job,
            billing_rate_per_m=calculate_billing_rate_per_m(job),
            entry_ids=[entry.get("id") for entry in job_entries],
        )
        if job_entries:
            comparison.actual_cost_per_m = (
                sum(to_float(entry.get("actual_cost_per_m")) for entry in job_entries) / len(job_entries)
            )
            comparison.last_updated_at = max(
                entry.get("updated_at") or entry.get("created_at") or 0 for entry in job_entries
            )
            comparison.profit_metrics = calculate_job_profit_metrics(job, comparison.actual_cost_per_m)
        comparisons.append(comparison)
    return comparisons


def calculate_aggregate_profit_metrics(comparisons: List[JobCostComparison]) -> Dict[str, Any]:
    """Averages and totals over the jobs that have cost data; under 10% margin counts as at risk."""
    with_costs = [c for c in comparisons if c.profit_metrics is not None]

    average = (sum(c.profit_metrics.profit_percentage for c in with_costs) / len(with_costs)) if with_costs else 0.0
    most_profitable = None
    for comparison in with_costs:
        if most_profitable is None or comparison.profit_metrics.total_profit > most_profitable.profit_metrics.total_profit:
            most_profitable = comparison
    at_risk = [c for c in with_costs if c.profit_metrics.profit_percentage < WARNING_BELOW]

    return {
        "average_profit_percentage": average,
        "total_profit": sum(c.profit_metrics.total_profit for c in with_costs),
        "most_profitable_job_id": most_profitable.job.get("id") if most_profitable else None,
        "jobs_at_risk": [c.job.get("id") for c in at_risk],
        "jobs_with_cost_data": len(with_costs),
        "jobs_without_cost_data": len(comparisons) - len(with_costs),
    }
