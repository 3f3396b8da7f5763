"""
Machine matching.

Compares a job's requirements with machine capabilities and ranks the
machines that could run it by capability fit, free capacity and speed.
"""
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from planner.datetime_utils import date_to_timestamp, to_date
from planner.scheduling.capacity import calculate_time_estimate, parse_speed_per_hour
from planner.scheduling.config import PlannerConfig
from planner.scheduling.rules import evaluate_rules
from planner.utils import format_number, round_half_up

# Requirement keys that describe the record, not the work
METADATA_FIELDS = ("process_type", "id", "job_id", "created_at")

_SNAKE_TO_CAMEL_RE = re.compile(r"_([a-z])")


@dataclass
class MatchingCriteria:
    process_type: str
    job_requirements: Dict[str, Any]
    quantity: float
    start_date: Any
    due_date: Any
    facility_id: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MatchingCriteria":
        missing = [k for k in ("process_type", "start_date", "due_date") if data.get(k) in (None, "")]
        if missing:
            raise ValueError(f"Missing matching criteria: {', '.join(missing)}")
        return cls(
            process_type=data["process_type"],
            job_requirements=data.get("job_requirements") or {},
            quantity=float(data.get("quantity") or 0),
            start_date=data["start_date"],
            due_date=data["due_date"],
            facility_id=data.get("facility_id"),
        )


@dataclass
class CapabilityMatch:
    parameter: str
    required: Any
    machine_capability: Any
    matches: bool
    reason: str


@dataclass
class RequirementsMatch:
    can_handle: bool
    score: int
    matches: List[CapabilityMatch] = field(default_factory=list)


@dataclass
class MachineMatch:
    machine: Dict[str, Any]
    match_score: int
    can_handle: bool
    match_reasons: List[str]
    estimated_hours: float
    current_utilization: int
    speed_with_modifiers: float
    staffing_required: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "machine": self.machine,
            "match_score": self.match_score,
            "can_handle": self.can_handle,
            "match_reasons": self.match_reasons,
            "estimated_hours": self.estimated_hours,
            "current_utilization": self.current_utilization,
            "speed_with_modifiers": self.speed_with_modifiers,
            "staffing_required": self.staffing_required,
        }


def find_capability_key(parameter: str, capabilities: Dict[str, Any]) -> Optional[str]:
    """Find the capability entry for a requirement, trying common naming variations."""
    variations = [
        parameter,
        f"supported_{parameter}",
        f"supported_{parameter}s",
        f"{parameter}_range",
        f"min_{parameter}",
        f"max_{parameter}",
        f"{parameter}_capable",
        parameter.replace("_", ""),
        _SNAKE_TO_CAMEL_RE.sub(lambda m: m.group(1).upper(), parameter),
    ]
    for variation in variations:
        if variation in capabilities and capabilities[variation] is not None:
            return variation
    return None


def _no_capability(parameter: str, required: Any) -> CapabilityMatch:
    return CapabilityMatch(parameter, required, None, False, f"Machine has no {parameter} capability defined")


def _format_bound(value, infinite: str) -> str:
    return infinite if value is None else f"{value:g}" if isinstance(value, float) else str(value)


def match_capability(parameter: str, required: Any, capabilities: Dict[str, Any]) -> CapabilityMatch:
    """
    Check one requirement against a machine's capabilities.

    List capabilities must contain the value, {min, max} dicts must bracket
    it, booleans must be True and requested, anything else compares as a
    case-insensitive string.
    """
    if not capabilities:
        return _no_capability(parameter, required)

    key = find_capability_key(parameter, capabilities)
    if key is None:
        return _no_capability(parameter, required)

    machine_value = capabilities[key]

    if isinstance(machine_value, list):
        matches = required in machine_value
        supported = ", ".join(str(v) for v in machine_value)
        reason = (f"✓ Machine supports {parameter}: {required}" if matches
                  else f"✗ Machine doesn't support {parameter}: {required} (supports: {supported})")
        return CapabilityMatch(parameter, required, machine_value, matches, reason)

    if isinstance(machine_value, dict) and ("min" in machine_value or "max" in machine_value):
        low, high = machine_value.get("min"), machine_value.get("max")
        try:
            numeric = float(required)
        except (TypeError, ValueError):
            return CapabilityMatch(parameter, required, machine_value, False,
                                   f"✗ Cannot compare non-numeric value {required} to range")
        matches = (low is None or numeric >= low) and (high is None or numeric <= high)
        bounds = f"[{_format_bound(low, '-∞')} to {_format_bound(high, '∞')}]"
        reason = (f"✓ {required} is within machine range {bounds}" if matches
                  else f"✗ {required} is outside machine range {bounds}")
        return CapabilityMatch(parameter, required, machine_value, matches, reason)

    if isinstance(machine_value, bool):
        matches = machine_value is True and required in (True, "true", 1)
        reason = (f"✓ Machine has {parameter} capability" if matches
                  else f"✗ Machine doesn't have {parameter} capability")
        return CapabilityMatch(parameter, required, machine_value, matches, reason)

    matches = str(machine_value).lower() == str(required).lower()
    reason = (f"✓ Machine {parameter} matches: {required}" if matches
              else f"✗ Machine {parameter} is {machine_value}, required {required}")
    return CapabilityMatch(parameter, required, machine_value, matches, reason)


def match_job_requirements_to_machine(job_requirements: Dict[str, Any], machine: Dict[str, Any],
                                      process_type: str) -> RequirementsMatch:
    if machine.get("process_type_key") != process_type:
        return RequirementsMatch(
            can_handle=False,
            score=0,
            matches=[CapabilityMatch(
                "process_type", process_type, machine.get("process_type_key"), False,
                f"✗ Machine process type ({machine.get('process_type_key')}) doesn't match "
                f"job requirement ({process_type})",
            )],
        )

    matches = []
    for parameter, required in job_requirements.items():
        if parameter in METADATA_FIELDS or required is None or required == "":
            continue
        matches.append(match_capability(parameter, required, machine.get("capabilities") or {}))

    if not matches:
        return RequirementsMatch(can_handle=True, score=PlannerConfig.NO_REQUIREMENTS_SCORE)

    met = sum(1 for m in matches if m.matches)
    return RequirementsMatch(
        can_handle=met == len(matches),
        score=round_half_up(met / len(matches) * 100),
        matches=matches,
    )


def _window_days(start, end) -> int:
    """Length of a window in whole days, rounding partial days up."""
    start_ms, end_ms = _to_millis(start), _to_millis(end)
    return math.ceil((end_ms - start_ms) / 86_400_000)


def _to_millis(value) -> int:
    if isinstance(value, (int, float)):
        return int(value)
    return date_to_timestamp(to_date(value))


def _assigned_machine_ids(job: Dict[str, Any]) -> List[int]:
    if "machines_id" in job:
        return list(job.get("machines_id") or [])
    return [m.get("id") for m in job.get("machines") or [] if isinstance(m, dict)]


def calculate_machine_availability(machine_id: int, start, due,
                                   assigned_jobs: Optional[List[Dict[str, Any]]] = None) -> float:
    """
    Free hours on a machine over a window.

    Each existing job on the machine is assumed to take 8 hours for every day
    it overlaps the window.
    """
    total_available = _window_days(start, due) * PlannerConfig.TOTAL_HOURS_PER_DAY
    if not assigned_jobs:
        return total_available

    start_ms, due_ms = _to_millis(start), _to_millis(due)
    allocated = 0
    for job in assigned_jobs:
        if machine_id not in _assigned_machine_ids(job):
            continue
        # Unscheduled jobs hold no hours yet
        if not job.get("start_date") or not job.get("due_date"):
            continue
        job_start, job_end = _to_millis(job["start_date"]), _to_millis(job["due_date"])
        if job_end < start_ms or job_start > due_ms:
            continue
        overlap_days = _window_days(max(job_start, start_ms), min(job_end, due_ms))
        allocated += overlap_days * PlannerConfig.ASSUMED_HOURS_PER_ASSIGNED_DAY

    return max(0, total_available - allocated)


def calculate_current_utilization(allocated_hours: float, available_hours: float) -> int:
    if available_hours == 0:
        return 100
    return min(100, round_half_up(allocated_hours / available_hours * 100))


def score_machine(machine: Dict[str, Any], requirements_match: RequirementsMatch,
                  utilization_percent: float) -> int:
    capability_score = requirements_match.score / 100 * PlannerConfig.CAPABILITY_SCORE_WEIGHT
    utilization_score = max(0.0, PlannerConfig.UTILIZATION_SCORE_WEIGHT
                            - utilization_percent / 100 * PlannerConfig.UTILIZATION_SCORE_WEIGHT)
    speed = parse_speed_per_hour(machine.get("speed_hr"))
    speed_score = min(PlannerConfig.SPEED_SCORE_WEIGHT,
                      speed / PlannerConfig.MATCH_SPEED_NORMALIZATION * PlannerConfig.SPEED_SCORE_WEIGHT)
    return round_half_up(capability_score + utilization_score + speed_score)


def _rules_for(rules: Any, process_type_key: Optional[str]) -> List[Dict[str, Any]]:
    if isinstance(rules, dict):
        return rules.get(process_type_key) or []
    return [r for r in rules or [] if r.get("process_type_key") in (None, process_type_key)]


def find_matching_machines(criteria: MatchingCriteria, machines: List[Dict[str, Any]],
                           rules: Any = None,
                           existing_jobs: Optional[List[Dict[str, Any]]] = None) -> List[MachineMatch]:
    """
    Rank machines for a job.

    Args:
        criteria: what the job needs and when
        machines: candidate machines
        rules: machine rules, either a list or {process_type_key: [rules]}
        existing_jobs: jobs already assigned, used for availability

    Returns:
        matches that can handle the job first, then by score (highest first)
    """
    results = []
    total_hours = _window_days(criteria.start_date, criteria.due_date) * PlannerConfig.TOTAL_HOURS_PER_DAY

    for machine in machines:
        if machine.get("process_type_key") != criteria.process_type:
            continue
        if criteria.facility_id and machine.get("facilities_id") != criteria.facility_id:
            continue

        requirements_match = match_job_requirements_to_machine(criteria.job_requirements, machine,
                                                               criteria.process_type)

        base_speed = parse_speed_per_hour(machine.get("speed_hr"))
        rule_result = evaluate_rules(_rules_for(rules, criteria.process_type), base_speed,
                                     criteria.job_requirements, machine.get("id"))
        effective_speed = rule_result.calculated_speed
        estimated_hours = calculate_time_estimate(criteria.quantity, effective_speed)

        available_hours = calculate_machine_availability(machine["id"], criteria.start_date,
                                                         criteria.due_date, existing_jobs)
        utilization = calculate_current_utilization(total_hours - available_hours, total_hours)
        score = score_machine(machine, requirements_match, utilization)

        if requirements_match.can_handle:
            reasons = ["Can handle job:"] + [f"  {m.reason}" for m in requirements_match.matches]
        else:
            reasons = ["Cannot handle job:"] + [
                f"  {m.reason}" for m in requirements_match.matches if not m.matches
            ]
        people = rule_result.people_required
        reasons += [
            f"Current utilization: {utilization}%",
            f"Estimated time: {estimated_hours:.1f} hours",
            f"Speed: {format_number(effective_speed)} units/hr "
            f"({'with rule modifiers' if rule_result.matched_rule else 'base speed'})",
            f"Staffing: {people} {'person' if people == 1 else 'people'}",
        ]

        results.append(MachineMatch(
            machine=machine,
            match_score=score,
            can_handle=requirements_match.can_handle,
            match_reasons=reasons,
            estimated_hours=estimated_hours,
            current_utilization=utilization,
            speed_with_modifiers=effective_speed,
            staffing_required=people,
        ))

    results.sort(key=lambda m: (not m.can_handle, -m.match_score))
    return results


def find_best_machine(criteria: MatchingCriteria, machines: List[Dict[str, Any]], rules: Any = None,
                      existing_jobs: Optional[List[Dict[str, Any]]] = None) -> Optional[MachineMatch]:
    for match in find_matching_machines(criteria, machines, rules, existing_jobs):
        if match.can_handle:
            return match
    return None


def can_machine_handle_job(machine: Dict[str, Any], process_type: str,
                           job_requirements: Dict[str, Any]) -> Dict[str, Any]:
    result = match_job_requirements_to_machine(job_requirements, machine, process_type)
    return {"can_handle": result.can_handle, "reasons": [m.reason for m in result.matches]}
