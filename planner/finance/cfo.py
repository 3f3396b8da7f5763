"""
Executive revenue analytics.

Revenue, profit and client mix over the job list, plus the alerts shown at
the top of the finance dashboard. Revenue here is the billed amount
(total_billing) and profit is total_billing minus ext_price.
"""
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from planner.datetime_utils import date_to_timestamp, to_date
from planner.scheduling.projections import TimeRange
from planner.utils import format_currency, round_half_up, to_float

UNKNOWN = "Unknown"

DAY_MS = 24 * 60 * 60 * 1000
AT_RISK_WINDOW_MS = 3 * DAY_MS

# Share of revenue held by the top client (percent)
CONCENTRATION_CRITICAL_ABOVE = 30
CONCENTRATION_WARNING_ABOVE = 20

# Capacity utilization bands for alerts (percent)
CAPACITY_BOTTLENECK_ABOVE = 95
CAPACITY_HIGH_ABOVE = 85
CAPACITY_LOW_BELOW = 40

# Revenue trend bands (percent change vs the previous period)
REVENUE_DECLINE_CRITICAL_BELOW = -15
REVENUE_DECLINE_WARNING_BELOW = -5
REVENUE_GROWTH_ABOVE = 20

JOBS_AT_RISK_CRITICAL_ABOVE = 5

SEVERITY_ORDER = {"critical": 0, "warning": 1, "info": 2}


def _revenue(job: Dict[str, Any]) -> float:
    return to_float(job.get("total_billing"))


def _profit(job: Dict[str, Any]) -> float:
    return _revenue(job) - to_float(job.get("ext_price"))


def _quantity(job: Dict[str, Any]) -> float:
    return to_float(job.get("quantity"))


def _timestamp(value) -> Optional[int]:
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    day = to_date(value)
    return date_to_timestamp(day) if day else None


def get_client_name(client) -> str:
    if not client:
        return UNKNOWN
    if isinstance(client, str):
        return client
    if isinstance(client, dict) and client.get("name"):
        return client["name"]
    return UNKNOWN


def _percent_change(current: float, previous: float) -> float:
    return (current - previous) / previous * 100 if previous > 0 else 0.0


@dataclass
class RevenueGroup:
    key: Any
    name: str
    revenue: float = 0.0
    profit: float = 0.0
    quantity: float = 0.0
    job_count: int = 0
    percentage_of_total: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "revenue": self.revenue,
            "profit": self.profit,
            "quantity": self.quantity,
            "job_count": self.job_count,
            "percentage_of_total": self.percentage_of_total,
        }


@dataclass
class ExecutiveAlert:
    id: str
    severity: str  # critical | warning | info
    title: str
    description: str
    impact: Optional[str] = None
    action: Optional[str] = None
    value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "impact": self.impact,
            "action": self.action,
            "value": self.value,
        }


# ==============================================================================
# Revenue
# ==============================================================================

def calculate_total_revenue(jobs: Iterable[Dict[str, Any]]) -> float:
    return sum(_revenue(job) for job in jobs)


def calculate_average_job_value(jobs: List[Dict[str, Any]]) -> float:
    if not jobs:
        return 0.0
    return calculate_total_revenue(jobs) / len(jobs)


def calculate_revenue_by_period(jobs: List[Dict[str, Any]], ranges: List[TimeRange]) -> List[Dict[str, Any]]:
    """
    Spread each job's revenue, profit and quantity over the periods it overlaps.

    A job contributes in proportion to how much of its start-to-due span
    falls inside the period. A job that starts and ends at the same instant
    contributes in full to every period containing it.

    Returns:
        one dict per range: period label, revenue, profit, quantity (rounded)
        and the number of distinct jobs overlapping the period
    """
    spans = []
    for job in jobs:
        start, due = _timestamp(job.get("start_date")), _timestamp(job.get("due_date"))
        if start is None or due is None:
            continue
        spans.append((job, start, due))

    results = []
    for time_range in ranges:
        period_start = date_to_timestamp(time_range.start_date)
        period_end = date_to_timestamp(time_range.end_date + timedelta(days=1)) - 1
        revenue = profit = quantity = 0.0
        job_ids = set()

        for job, start, due in spans:
            overlap_start, overlap_end = max(start, period_start), min(due, period_end)
            if overlap_start > overlap_end:
                continue
            job_ids.add(job.get("id"))
            duration = due - start
            ratio = (overlap_end - overlap_start) / duration if duration > 0 else 1.0
            revenue += _revenue(job) * ratio
            profit += _profit(job) * ratio
            quantity += _quantity(job) * ratio

        results.append({
            "period": time_range.label,
            "start_date": time_range.start_date.isoformat(),
            "end_date": time_range.end_date.isoformat(),
            "revenue": revenue,
            "profit": profit,
            "quantity": round_half_up(quantity),
            "job_count": len(job_ids),
        })
    return results


def _finish_groups(groups: Dict[Any, RevenueGroup], total_revenue: float) -> List[RevenueGroup]:
    for group in groups.values():
        group.percentage_of_total = group.revenue / total_revenue * 100 if total_revenue > 0 else 0.0
    return sorted(groups.values(), key=lambda g: g.revenue, reverse=True)


def calculate_revenue_by_client(jobs: List[Dict[str, Any]]) -> List[RevenueGroup]:
    """Revenue per clients_id, largest first. The first job seen names the client."""
    groups: Dict[Any, RevenueGroup] = {}
    for job in jobs:
        client_id = job.get("clients_id")
        group = groups.get(client_id)
        if group is None:
            group = groups[client_id] = RevenueGroup(client_id, get_client_name(job.get("client")))
        group.revenue += _revenue(job)
        group.profit += _profit(job)
        group.quantity += _quantity(job)
        group.job_count += 1
    return _finish_groups(groups, calculate_total_revenue(jobs))


def calculate_revenue_by_service_type(jobs: List[Dict[str, Any]]) -> List[RevenueGroup]:
    groups: Dict[str, RevenueGroup] = {}
    for job in jobs:
        service_type = job.get("service_type") or UNKNOWN
        group = groups.setdefault(service_type, RevenueGroup(service_type, service_type))
        group.revenue += _revenue(job)
        group.profit += _profit(job)
        group.quantity += _quantity(job)
        group.job_count += 1
    return _finish_groups(groups, calculate_total_revenue(jobs))


def calculate_revenue_by_process_type(jobs: List[Dict[str, Any]]) -> List[RevenueGroup]:
    """
    Revenue per requirement process type.

    A job's full revenue counts toward every process it requires, so the
    percentages can add up to more than 100. Jobs without requirements are
    grouped under Unknown.
    """
    groups: Dict[str, RevenueGroup] = {}
    job_ids: Dict[str, set] = {}
    for job in jobs:
        requirements = job.get("requirements")
        process_types = [req.get("process_type") or UNKNOWN for req in requirements] \
            if isinstance(requirements, list) and requirements else [UNKNOWN]
        for process_type in process_types:
            group = groups.setdefault(process_type, RevenueGroup(process_type, process_type))
            group.revenue += _revenue(job)
            group.profit += _profit(job)
            group.quantity += _quantity(job)
            job_ids.setdefault(process_type, set()).add(job.get("id"))

    for process_type, ids in job_ids.items():
        groups[process_type].job_count = len(ids)
    return _finish_groups(groups, calculate_total_revenue(jobs))


def calculate_revenue_trend(current_jobs: List[Dict[str, Any]], previous_jobs: List[Dict[str, Any]]) -> Dict[str, float]:
    current = calculate_total_revenue(current_jobs)
    previous = calculate_total_revenue(previous_jobs)
    return {
        "current": current,
        "previous": previous,
        "change": current - previous,
        "percent_change": _percent_change(current, previous),
    }


# ==============================================================================
# Clients
# ==============================================================================

def calculate_top_client_concentration(jobs: List[Dict[str, Any]], top_n: int = 3) -> float:
    """Combined share of revenue (percent) held by the top_n clients."""
    return sum(group.percentage_of_total for group in calculate_revenue_by_client(jobs)[:top_n])


def get_top_clients(jobs: List[Dict[str, Any]], n: int = 10) -> List[RevenueGroup]:
    return calculate_revenue_by_client(jobs)[:n]


def calculate_client_diversification_score(jobs: List[Dict[str, Any]]) -> float:
    """
    0-100 score from the Herfindahl-Hirschman index of client revenue shares.

    An even split across clients scores 100; fewer than two clients score 0.
    """
    groups = calculate_revenue_by_client(jobs)
    if len(groups) < 2:
        return 0.0

    hhi = sum((group.percentage_of_total / 100) ** 2 for group in groups)
    min_hhi = 1 / len(groups)
    score = (1 - hhi) / (1 - min_hhi) * 100
    return max(0.0, min(100.0, score))


# ==============================================================================
# Period comparison and risk
# ==============================================================================

def _comparison(metric: str, current: float, previous: float) -> Dict[str, Any]:
    percent_change = _percent_change(current, previous)
    return {
        "metric": metric,
        "current": current,
        "previous": previous,
        "change": current - previous,
        "percent_change": percent_change,
        "is_positive": current >= previous,
        "trend": get_trend_indicator(percent_change),
    }


def compare_periods(current_jobs: List[Dict[str, Any]], previous_jobs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        _comparison("Revenue", calculate_total_revenue(current_jobs), calculate_total_revenue(previous_jobs)),
        _comparison("Jobs", len(current_jobs), len(previous_jobs)),
        _comparison("Total Pieces", sum(_quantity(j) for j in current_jobs), sum(_quantity(j) for j in previous_jobs)),
        _comparison("Avg Job Value", calculate_average_job_value(current_jobs),
                    calculate_average_job_value(previous_jobs)),
    ]


def identify_jobs_at_risk(jobs: List[Dict[str, Any]], now: Optional[int] = None) -> Dict[str, Any]:
    """
    Jobs due within three days, or already running and not yet due.

    Args:
        jobs: parsed jobs
        now: current time as epoch ms (defaults to the clock)

    Returns:
        dict with the at-risk jobs and their combined revenue
    """
    now = int(time.time() * 1000) if now is None else now
    at_risk = []
    for job in jobs:
        due = _timestamp(job.get("due_date"))
        if due is None:
            continue
        start = _timestamp(job.get("start_date"))
        if now <= due <= now + AT_RISK_WINDOW_MS:
            at_risk.append(job)
        elif start is not None and start < now < due:
            at_risk.append(job)
    return {"jobs": at_risk, "total_revenue": calculate_total_revenue(at_risk)}


def check_client_concentration_risk(jobs: List[Dict[str, Any]]) -> Optional[ExecutiveAlert]:
    groups = calculate_revenue_by_client(jobs)
    if not groups:
        return None

    top = groups[0]
    share = top.percentage_of_total
    description = f"{top.name} represents {share:.1f}% of revenue"
    if share > CONCENTRATION_CRITICAL_ABOVE:
        return ExecutiveAlert(
            id="client-concentration-critical",
            severity="critical",
            title="High Client Concentration Risk",
            description=description,
            impact=f"{format_currency(top.revenue)} at risk if client is lost",
            action="Diversify client base and reduce dependency",
        )
    if share > CONCENTRATION_WARNING_ABOVE:
        return ExecutiveAlert(
            id="client-concentration-warning",
            severity="warning",
            title="Moderate Client Concentration",
            description=description,
            impact="Consider diversification strategies",
            action="Monitor and plan for client diversification",
        )
    return None


def _capacity_alert(utilization: float) -> Optional[ExecutiveAlert]:
    description = f"Capacity utilization at {utilization:.1f}%"
    if utilization > CAPACITY_BOTTLENECK_ABOVE:
        return ExecutiveAlert("capacity-bottleneck", "critical", "Capacity Bottleneck", description,
                              impact="May delay jobs and impact revenue",
                              action="Consider adding capacity or adjusting schedule")
    if utilization > CAPACITY_HIGH_ABOVE:
        return ExecutiveAlert("capacity-high", "warning", "High Capacity Utilization", description,
                              impact="Limited flexibility for rush jobs",
                              action="Monitor closely and plan for peak periods")
    if utilization < CAPACITY_LOW_BELOW:
        return ExecutiveAlert("capacity-low", "warning", "Low Capacity Utilization", description,
                              impact="Underutilized resources",
                              action="Increase sales efforts or adjust capacity")
    return None


def _trend_alert(trend: Dict[str, float]) -> Optional[ExecutiveAlert]:
    percent = trend["percent_change"]
    if percent < REVENUE_DECLINE_CRITICAL_BELOW:
        return ExecutiveAlert("revenue-decline", "critical", "Significant Revenue Decline",
                              f"Revenue down {abs(percent):.1f}% vs previous period",
                              impact=f"{format_currency(abs(trend['change']))} revenue decrease",
                              action="Investigate cause and implement recovery plan")
    if percent < REVENUE_DECLINE_WARNING_BELOW:
        return ExecutiveAlert("revenue-decline-warning", "warning", "Revenue Decline",
                              f"Revenue down {abs(percent):.1f}% vs previous period",
                              impact="Trending downward",
                              action="Monitor and identify growth opportunities")
    if percent > REVENUE_GROWTH_ABOVE:
        return ExecutiveAlert("revenue-growth", "info", "Strong Revenue Growth",
                              f"Revenue up {percent:.1f}% vs previous period",
                              impact=f"{format_currency(trend['change'])} revenue increase",
                              action="Ensure capacity can support growth")
    return None


def generate_executive_alerts(jobs: List[Dict[str, Any]], previous_jobs: Optional[List[Dict[str, Any]]] = None,
                              capacity_utilization: Optional[float] = None,
                              now: Optional[int] = None) -> List[ExecutiveAlert]:
    """Concentration, schedule, capacity and trend alerts, most severe first."""
    alerts = []

    concentration = check_client_concentration_risk(jobs)
    if concentration:
        alerts.append(concentration)

    at_risk = identify_jobs_at_risk(jobs, now=now)
    count = len(at_risk["jobs"])
    if count:
        alerts.append(ExecutiveAlert(
            id="jobs-at-risk",
            severity="critical" if count > JOBS_AT_RISK_CRITICAL_ABOVE else "warning",
            title=f"{count} Jobs At Risk",
            description=f"{count} jobs are behind schedule or due soon",
            impact=f"{format_currency(at_risk['total_revenue'])} revenue at risk",
            action="Review schedule and prioritize resources",
            value=at_risk["total_revenue"],
        ))

    if capacity_utilization is not None:
        capacity = _capacity_alert(capacity_utilization)
        if capacity:
            alerts.append(capacity)

    if previous_jobs:
        trend = _trend_alert(calculate_revenue_trend(jobs, previous_jobs))
        if trend:
            alerts.append(trend)

    alerts.sort(key=lambda alert: SEVERITY_ORDER[alert.severity])
    return alerts


def calculate_summary_metrics(jobs: List[Dict[str, Any]], capacity_utilization: Optional[float] = None,
                              now: Optional[int] = None) -> Dict[str, Any]:
    groups = calculate_revenue_by_client(jobs)
    top = groups[0] if groups else None
    at_risk = identify_jobs_at_risk(jobs, now=now)
    return {
        "total_revenue": calculate_total_revenue(jobs),
        "total_jobs": len(jobs),
        "total_quantity": sum(_quantity(job) for job in jobs),
        "average_job_value": calculate_average_job_value(jobs),
        "capacity_utilization": capacity_utilization or 0,
        "top_client_concentration": top.percentage_of_total if top else 0,
        "top_client_name": top.name if top else "N/A",
        "jobs_at_risk": len(at_risk["jobs"]),
        "revenue_at_risk": at_risk["total_revenue"],
    }


def get_trend_indicator(percent_change: float) -> str:
    if percent_change > 1:
        return "↑"
    if percent_change < -1:
        return "↓"
    return "→"
