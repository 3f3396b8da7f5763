"""
Financial data-health checks.

Flags jobs whose billing data is missing, inconsistent with their
requirements, priced at zero, or estimated over their hour limit.
"""
from typing import Any, Dict, List, Optional

from planner.scheduling.jobs import parse_price, parse_requirements
from planner.utils import to_float

ISSUE_TYPES = ("missing_billing", "discrepancy", "zero_pricing", "hours_exceeded")

# A billing mismatch counts only when it is over both thresholds
DISCREPANCY_MIN_PERCENT = 5
DISCREPANCY_MIN_AMOUNT = 10


def _requirements(job: Dict[str, Any]) -> List[Dict[str, Any]]:
    raw = job.get("requirements")
    return raw if isinstance(raw, list) else parse_requirements(raw)


def _positive(value) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if value > 0 else 0.0
    price = parse_price(value)
    return price if price > 0 else 0.0


def calculate_billing_from_requirements(job: Dict[str, Any]) -> float:
    """
    Billing implied by the requirements.

    quantity / 1000 x price_per_m for every requirement, plus any extra
    '*_cost' amounts on the requirements, plus the job's add_on_charges.
    Zero when the job has no requirements or no quantity.
    """
    requirements = _requirements(job)
    quantity = to_float(job.get("quantity"))
    if not requirements or quantity == 0:
        return 0.0

    total = 0.0
    for req in requirements:
        total += quantity / 1000 * _positive(req.get("price_per_m"))
        for key, value in req.items():
            if key.endswith("_cost") and isinstance(value, str):
                total += _positive(value)
    return total + to_float(job.get("add_on_charges"))


def get_actual_billing(job: Dict[str, Any]) -> float:
    return to_float(job.get("total_billing"))


def detect_billing_discrepancy(job: Dict[str, Any]) -> Dict[str, Any]:
    calculated = calculate_billing_from_requirements(job)
    actual = get_actual_billing(job)
    if calculated == 0 and actual == 0:
        return {"has_discrepancy": False, "calculated_billing": 0.0, "actual_billing": 0.0,
                "discrepancy_amount": 0.0, "discrepancy_percent": 0.0}

    amount = abs(calculated - actual)
    base = max(calculated, actual)
    percent = amount / base * 100 if base > 0 else 0.0
    return {
        "has_discrepancy": percent > DISCREPANCY_MIN_PERCENT and amount > DISCREPANCY_MIN_AMOUNT,
        "calculated_billing": calculated,
        "actual_billing": actual,
        "discrepancy_amount": amount,
        "discrepancy_percent": percent,
    }


def _has_missing_billing(job: Dict[str, Any]) -> bool:
    if get_actual_billing(job) != 0:
        return False
    requirements = _requirements(job)
    if requirements:
        return True
    if to_float(job.get("quantity")) > 0:
        return not any(parse_price(req.get("price_per_m")) > 0 for req in requirements)
    return False


def _has_zero_pricing(job: Dict[str, Any]) -> bool:
    return any(parse_price(req.get("price_per_m")) == 0 for req in _requirements(job))


def _hours_exceeded(job: Dict[str, Any]) -> bool:
    max_hours, estimate = job.get("max_hours"), job.get("time_estimate")
    if max_hours is None or estimate is None:
        return False
    return to_float(estimate) > to_float(max_hours)


_CHECKS = {
    "missing_billing": _has_missing_billing,
    "discrepancy": lambda job: detect_billing_discrepancy(job)["has_discrepancy"],
    "zero_pricing": _has_zero_pricing,
    "hours_exceeded": _hours_exceeded,
}


def filter_jobs_by_issue_type(jobs: List[Dict[str, Any]], issue_type: str = "all") -> List[Dict[str, Any]]:
    if issue_type == "all":
        return list(jobs)
    if issue_type not in _CHECKS:
        raise ValueError(f"Unknown issue type: {issue_type}. Expected one of: all, {', '.join(ISSUE_TYPES)}")
    check = _CHECKS[issue_type]
    return [job for job in jobs if check(job)]


def analyze_jobs_financial_health(jobs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """One entry per job listing its issues and the billing figures behind them."""
    results = []
    for job in jobs:
        discrepancy = detect_billing_discrepancy(job)
        requirements = _requirements(job)
        issues = []
        if requirements and get_actual_billing(job) == 0:
            issues.append("missing_billing")
        if discrepancy["has_discrepancy"]:
            issues.append("discrepancy")
        if _has_zero_pricing(job):
            issues.append("zero_pricing")
        if _hours_exceeded(job):
            issues.append("hours_exceeded")

        results.append({
            "job_id": job.get("id"),
            "job_number": job.get("job_number"),
            "issues": issues,
            "calculated_billing": discrepancy["calculated_billing"],
            "actual_billing": discrepancy["actual_billing"],
            "discrepancy_amount": discrepancy["discrepancy_amount"],
            "discrepancy_percent": discrepancy["discrepancy_percent"],
            "hours_estimate": job.get("time_estimate"),
            "max_hours": job.get("max_hours"),
        })
    return results


def calculate_financial_health_summary(jobs: List[Dict[str, Any]]) -> Dict[str, Any]:
    counts = {}
    flagged = set()
    for issue_type in ISSUE_TYPES:
        matching = filter_jobs_by_issue_type(jobs, issue_type)
        counts[issue_type] = len(matching)
        flagged.update(job.get("id") for job in matching)

    total = len(jobs)
    healthy = total - len(flagged)
    return {
        "total_jobs": total,
        "missing_billing": counts["missing_billing"],
        "discrepancies": counts["discrepancy"],
        "zero_pricing": counts["zero_pricing"],
        "hours_exceeded": counts["hours_exceeded"],
        "healthy_jobs": healthy,
        "health_percentage": healthy / total * 100 if total else 100.0,
    }


def calculate_job_margin(job: Dict[str, Any]) -> Dict[str, Any]:
    """
    Margin for one job, using actual_cost_per_m when recorded and ext_price
    as the estimated cost otherwise.
    """
    billing = calculate_billing_from_requirements(job) or get_actual_billing(job)
    cost_per_m: Optional[float] = job.get("actual_cost_per_m")
    has_actual_cost = cost_per_m is not None and to_float(cost_per_m) > 0
    if has_actual_cost:
        cost = to_float(job.get("quantity")) / 1000 * to_float(cost_per_m)
    else:
        cost = to_float(job.get("ext_price"))

    profit = billing - cost
    margin = profit / billing * 100 if billing > 0 else 0.0
    return {
        "billing_rate": billing,
        "actual_cost": cost,
        "profit": profit,
        "margin_percent": margin,
        "has_actual_cost": has_actual_cost,
        "status": get_margin_status_label(margin),
    }


def get_margin_status_label(margin_percent: float) -> str:
    if margin_percent >= 25:
        return "Excellent"
    if margin_percent >= 15:
        return "Good"
    if margin_percent >= 10:
        return "Fair"
    if margin_percent >= 0:
        return "Low"
    return "Loss"
