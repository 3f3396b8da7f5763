"""
Rules engine for machine performance.

Evaluates machine rules to determine how job parameters (paper size, pockets,
...) affect a machine's effective speed and staffing.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from planner.logging_config import get_logger
from planner.scheduling.capacity import parse_speed_per_hour
from planner.scheduling.config import PlannerConfig
from planner.utils import round_half_up
from planner.xano.exceptions import XanoAPIError, XanoUnauthorizedError

logger = get_logger(__name__)

OPERATOR_LABELS = {
    "equals": "=",
    "not_equals": "≠",
    "greater_than": ">",
    "less_than": "<",
    "greater_than_or_equal": "≥",
    "less_than_or_equal": "≤",
    "between": "between",
    "in": "is one of",
    "not_in": "is not one of",
}

NO_MATCH_EXPLANATION = "No matching rules found. Using base speed."


@dataclass
class RuleEvaluationResult:
    """Outcome of applying machine rules to a set of job parameters."""
    calculated_speed: float
    people_required: int
    base_speed: float
    matched_rule: Optional[Dict[str, Any]] = None
    explanation: str = NO_MATCH_EXPLANATION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calculated_speed": self.calculated_speed,
            "people_required": self.people_required,
            "base_speed": self.base_speed,
            "matched_rule": self.matched_rule,
            "explanation": self.explanation,
        }


def _number(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return float("nan")


def evaluate_condition(condition: Dict[str, Any], parameters: Dict[str, Any]) -> bool:
    """
    Evaluate a single condition against job parameters.

    Args:
        condition: {'parameter', 'operator', 'value'}
        parameters: job parameters, e.g. {'paper_size': '10x13', 'pockets': 8}

    Returns:
        True if the condition is met. A missing parameter never matches.
    """
    param_value = parameters.get(condition.get("parameter"))
    if param_value is None:
        return False

    operator = condition.get("operator")
    expected = condition.get("value")

    if operator == "equals":
        return param_value == expected
    if operator == "not_equals":
        return param_value != expected
    if operator == "greater_than":
        return _number(param_value) > _number(expected)
    if operator == "less_than":
        return _number(param_value) < _number(expected)
    if operator == "greater_than_or_equal":
        return _number(param_value) >= _number(expected)
    if operator == "less_than_or_equal":
        return _number(param_value) <= _number(expected)
    if operator == "between":
        if isinstance(expected, (list, tuple)) and len(expected) == 2:
            numeric = _number(param_value)
            return _number(expected[0]) <= numeric <= _number(expected[1])
        return False
    if operator == "in":
        return isinstance(expected, (list, tuple)) and param_value in expected
    if operator == "not_in":
        return isinstance(expected, (list, tuple)) and param_value not in expected

    logger.warning("Unknown rule operator", operator=operator)
    return False


def evaluate_conditions(conditions: List[Dict[str, Any]], parameters: Dict[str, Any]) -> bool:
    """
    Fold conditions left to right. Each condition's 'logic' (AND by default)
    joins it with the next one. An empty list never matches.
    """
    if not conditions:
        return False

    result = evaluate_condition(conditions[0], parameters)
    for condition, next_condition in zip(conditions, conditions[1:]):
        next_result = evaluate_condition(next_condition, parameters)
        if (condition.get("logic") or "AND") == "OR":
            result = result or next_result
        else:
            result = result and next_result
    return result


def find_matching_rules(rules: List[Dict[str, Any]], parameters: Dict[str, Any],
                        machine_id: Optional[int] = None) -> List[Dict[str, Any]]:
    matching = []
    for rule in rules:
        if rule.get("active") is False:
            continue
        # Machine-specific rules only apply to their own machine
        rule_machine_id = rule.get("machine_id")
        if rule_machine_id is not None and (machine_id is None or rule_machine_id != machine_id):
            continue
        if evaluate_conditions(rule.get("conditions") or [], parameters):
            matching.append(rule)
    return matching


def select_most_restrictive_rule(matching_rules: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Lowest speed_modifier wins; ties go to the higher priority."""
    if not matching_rules:
        return None
    return min(
        matching_rules,
        key=lambda r: (r["outputs"]["speed_modifier"], -(r.get("priority") or 0)),
    )


def evaluate_rules(rules: List[Dict[str, Any]], base_speed: float, parameters: Dict[str, Any],
                   machine_id: Optional[int] = None) -> RuleEvaluationResult:
    """
    Apply the most restrictive matching rule to a base speed.

    Returns:
        RuleEvaluationResult with speed = round_half_up(base_speed * modifier / 100)
    """
    selected = select_most_restrictive_rule(find_matching_rules(rules, parameters, machine_id))
    if selected is None:
        return RuleEvaluationResult(
            calculated_speed=base_speed,
            people_required=PlannerConfig.DEFAULT_PEOPLE_REQUIRED,
            base_speed=base_speed,
        )

    outputs = selected["outputs"]
    modifier = outputs["speed_modifier"]
    calculated_speed = round_half_up(base_speed * modifier / 100)
    people_required = outputs.get("people_required", PlannerConfig.DEFAULT_PEOPLE_REQUIRED)

    logger.debug("Rule selected", rule=selected.get("name"), base_speed=base_speed,
                 calculated_speed=calculated_speed)

    return RuleEvaluationResult(
        calculated_speed=calculated_speed,
        people_required=people_required,
        base_speed=base_speed,
        matched_rule=selected,
        explanation=(
            f'Rule "{selected.get("name")}" applied: {modifier:g}% of base speed '
            f"({base_speed:g}/hr) = {calculated_speed}/hr. Requires {people_required} people."
        ),
    )


def fetch_active_rules(xano, process_type_key: str) -> List[Dict[str, Any]]:
    """
    Load active rules for a process type.

    Fetch failures are logged and treated as "no rules". An expired token is
    still raised so the caller can send the user back to login.
    """
    try:
        rules = xano.get_machine_rules(process_type_key=process_type_key, active_only=True)
    except XanoUnauthorizedError:
        raise
    except XanoAPIError as e:
        logger.error("Error loading machine rules, continuing without rules",
                     process_type_key=process_type_key, error=str(e))
        return []
    logger.debug("Loaded active rules", process_type_key=process_type_key, count=len(rules))
    return rules


def evaluate_rules_for_machine(xano, process_type_key: str, base_speed: float,
                               parameters: Dict[str, Any], machine_id: Optional[int] = None) -> RuleEvaluationResult:
    rules = fetch_active_rules(xano, process_type_key)
    return evaluate_rules(rules, base_speed, parameters, machine_id)


def evaluate_rules_for_machine_object(xano, machine: Dict[str, Any],
                                      parameters: Dict[str, Any]) -> RuleEvaluationResult:
    base_speed = parse_speed_per_hour(machine.get("speed_hr"))
    if not machine.get("process_type_key"):
        logger.warning("Machine has no process_type_key, using base speed", machine_id=machine.get("id"))
        return RuleEvaluationResult(
            calculated_speed=base_speed,
            people_required=PlannerConfig.DEFAULT_PEOPLE_REQUIRED,
            base_speed=base_speed,
            explanation="Machine has no process type. Using base speed.",
        )
    return evaluate_rules_for_machine(xano, machine["process_type_key"], base_speed, parameters, machine.get("id"))


def format_condition(condition: Dict[str, Any]) -> str:
    """Human-readable condition, e.g. 'pockets > 6'."""
    operator = condition.get("operator")
    label = OPERATOR_LABELS.get(operator, operator)
    value = condition.get("value")

    if isinstance(value, (list, tuple)):
        if operator == "between":
            value_str = f"{value[0]} and {value[1]}"
        else:
            value_str = ", ".join(str(v) for v in value)
    else:
        value_str = str(value)

    return f"{condition.get('parameter')} {label} {value_str}"


def format_conditions(conditions: List[Dict[str, Any]]) -> str:
    if not conditions:
        return "No conditions"

    parts = []
    for i, condition in enumerate(conditions):
        parts.append(format_condition(condition))
        if i < len(conditions) - 1:
            parts.append(condition.get("logic") or "AND")
    return " ".join(parts)
