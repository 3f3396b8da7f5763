"""
Tests for the machine rules engine.
These tests have no Flask dependencies; the Xano client is a Mock.
"""
from unittest.mock import Mock

import pytest
from planner.scheduling.rules import (
    NO_MATCH_EXPLANATION,
    evaluate_condition,
    evaluate_conditions,
    evaluate_rules,
    evaluate_rules_for_machine,
    evaluate_rules_for_machine_object,
    fetch_active_rules,
    find_matching_rules,
    format_condition,
    format_conditions,
    select_most_restrictive_rule,
)
from planner.xano.exceptions import XanoAPIError, XanoUnauthorizedError


def make_rule(rule_id, modifier, conditions, priority=0, people=1, machine_id=None, active=True, name=None):
    return {
        "id": rule_id,
        "name": name or f"Rule {rule_id}",
        "process_type_key": "insert",
        "machine_id": machine_id,
        "priority": priority,
        "active": active,
        "conditions": conditions,
        "outputs": {"speed_modifier": modifier, "people_required": people},
    }


LARGE_ENVELOPE = [{"parameter": "paper_size", "operator": "equals", "value": "10x13"}]
MANY_POCKETS = [{"parameter": "pockets", "operator": "greater_than", "value": 6}]


# ==============================================================================
# CONDITION TESTS
# ==============================================================================

class TestEvaluateCondition:
    """Tests for evaluate_condition operators."""

    @pytest.mark.parametrize("operator, value, param, expected", [
        ("equals", "10x13", "10x13", True),
        ("equals", "10x13", "6x9", False),
        ("not_equals", "10x13", "6x9", True),
        ("greater_than", 6, 8, True),
        ("greater_than", 6, 6, False),
        ("less_than", 6, "4", True),
        ("greater_than_or_equal", 6, 6, True),
        ("less_than_or_equal", 6, 7, False),
        ("between", [4, 8], 8, True),
        ("between", [4, 8], 9, False),
        ("in", ["6x9", "9x12"], "9x12", True),
        ("not_in", ["6x9", "9x12"], "9x12", False),
    ])
    def test_operators(self, operator, value, param, expected):
        """Test each supported operator."""
        condition = {"parameter": "p", "operator": operator, "value": value}
        assert evaluate_condition(condition, {"p": param}) is expected

    def test_missing_parameter_never_matches(self):
        """Test that an absent parameter does not match, even for not_equals."""
        condition = {"parameter": "p", "operator": "not_equals", "value": "x"}
        assert evaluate_condition(condition, {}) is False

    def test_unknown_operator(self):
        """Test that an unknown operator does not match."""
        assert evaluate_condition({"parameter": "p", "operator": "like", "value": 1}, {"p": 1}) is False

    def test_between_requires_pair(self):
        """Test that between needs a two-element value."""
        assert evaluate_condition({"parameter": "p", "operator": "between", "value": 5}, {"p": 5}) is False


class TestEvaluateConditions:
    """Tests for combining conditions with AND/OR."""

    def test_empty_conditions_never_match(self):
        """Test that a rule without conditions does not match."""
        assert evaluate_conditions([], {"p": 1}) is False

    def test_and_logic(self):
        """Test that AND requires both conditions."""
        conditions = [
            {"parameter": "a", "operator": "equals", "value": 1, "logic": "AND"},
            {"parameter": "b", "operator": "equals", "value": 2},
        ]
        assert evaluate_conditions(conditions, {"a": 1, "b": 2}) is True
        assert evaluate_conditions(conditions, {"a": 1, "b": 3}) is False

    def test_or_logic(self):
        """Test that OR accepts either condition."""
        conditions = [
            {"parameter": "a", "operator": "equals", "value": 1, "logic": "OR"},
            {"parameter": "b", "operator": "equals", "value": 2},
        ]
        assert evaluate_conditions(conditions, {"a": 0, "b": 2}) is True

    def test_left_to_right_fold(self):
        """Test that (a OR b) AND c is evaluated left to right."""
        conditions = [
            {"parameter": "a", "operator": "equals", "value": 1, "logic": "OR"},
            {"parameter": "b", "operator": "equals", "value": 1, "logic": "AND"},
            {"parameter": "c", "operator": "equals", "value": 1},
        ]
        assert evaluate_conditions(conditions, {"a": 1, "b": 0, "c": 0}) is False
        assert evaluate_conditions(conditions, {"a": 1, "b": 0, "c": 1}) is True


# ==============================================================================
# RULE SELECTION TESTS
# ==============================================================================

class TestRuleSelection:
    """Tests for matching and selecting rules."""

    def test_inactive_rules_skipped(self):
        """Test that inactive rules never match."""
        rules = [make_rule(1, 80, LARGE_ENVELOPE, active=False)]
        assert find_matching_rules(rules, {"paper_size": "10x13"}) == []

    def test_machine_specific_rules(self):
        """Test that machine-specific rules only apply to their machine."""
        rules = [make_rule(1, 80, LARGE_ENVELOPE, machine_id=5)]
        assert find_matching_rules(rules, {"paper_size": "10x13"}, machine_id=5) == rules
        assert find_matching_rules(rules, {"paper_size": "10x13"}, machine_id=6) == []
        assert find_matching_rules(rules, {"paper_size": "10x13"}) == []

    def test_lowest_modifier_wins(self):
        """Test that the most restrictive rule is selected."""
        rules = [make_rule(1, 80, []), make_rule(2, 60, [])]
        assert select_most_restrictive_rule(rules)["id"] == 2

    def test_priority_breaks_ties(self):
        """Test that higher priority wins when modifiers tie."""
        rules = [make_rule(1, 70, [], priority=1), make_rule(2, 70, [], priority=5)]
        assert select_most_restrictive_rule(rules)["id"] == 2

    def test_no_rules(self):
        """Test that no matching rules selects nothing."""
        assert select_most_restrictive_rule([]) is None


class TestEvaluateRules:
    """Tests for evaluate_rules."""

    def test_no_match_uses_base_speed(self):
        """Test that base speed is used when nothing matches."""
        result = evaluate_rules([make_rule(1, 80, LARGE_ENVELOPE)], 5000, {"paper_size": "6x9"})
        assert result.calculated_speed == 5000
        assert result.people_required == 1
        assert result.matched_rule is None
        assert result.explanation == NO_MATCH_EXPLANATION

    def test_most_restrictive_applied(self):
        """Test that speed and staffing come from the most restrictive match."""
        rules = [
            make_rule(1, 80, LARGE_ENVELOPE, people=2, name="Large envelope"),
            make_rule(2, 65, MANY_POCKETS, people=3, name="Many pockets"),
        ]
        result = evaluate_rules(rules, 5000, {"paper_size": "10x13", "pockets": 8})
        assert result.calculated_speed == 3250
        assert result.people_required == 3
        assert result.matched_rule["id"] == 2
        assert result.explanation == (
            'Rule "Many pockets" applied: 65% of base speed (5000/hr) = 3250/hr. Requires 3 people.'
        )

    def test_to_dict(self):
        """Test that results serialize with all fields."""
        data = evaluate_rules([], 1200, {}).to_dict()
        assert data == {
            "calculated_speed": 1200,
            "people_required": 1,
            "base_speed": 1200,
            "matched_rule": None,
            "explanation": NO_MATCH_EXPLANATION,
        }


# ==============================================================================
# XANO-BACKED EVALUATION TESTS
# ==============================================================================

class TestXanoBackedEvaluation:
    """Tests for rule evaluation that fetches rules from Xano."""

    def test_fetch_active_rules(self):
        """Test that active rules are requested for the process type."""
        xano = Mock()
        xano.get_machine_rules.return_value = [make_rule(1, 80, LARGE_ENVELOPE)]
        rules = fetch_active_rules(xano, "insert")
        assert len(rules) == 1
        xano.get_machine_rules.assert_called_once_with(process_type_key="insert", active_only=True)

    def test_fetch_failure_means_no_rules(self):
        """Test that an API error is treated as no rules."""
        xano = Mock()
        xano.get_machine_rules.side_effect = XanoAPIError("boom", status_code=500)
        assert fetch_active_rules(xano, "insert") == []

    def test_fetch_unauthorized_propagates(self):
        """Test that an expired token is still raised."""
        xano = Mock()
        xano.get_machine_rules.side_effect = XanoUnauthorizedError("expired", status_code=401)
        with pytest.raises(XanoUnauthorizedError):
            fetch_active_rules(xano, "insert")

    def test_evaluate_for_machine(self):
        """Test that fetched rules are applied to the base speed."""
        xano = Mock()
        xano.get_machine_rules.return_value = [make_rule(1, 50, LARGE_ENVELOPE)]
        result = evaluate_rules_for_machine(xano, "insert", 4000, {"paper_size": "10x13"})
        assert result.calculated_speed == 2000

    def test_evaluate_for_machine_object(self):
        """Test that speed and process type come from the machine."""
        xano = Mock()
        xano.get_machine_rules.return_value = [make_rule(1, 50, LARGE_ENVELOPE, machine_id=9)]
        machine = {"id": 9, "process_type_key": "insert", "speed_hr": 3000}
        result = evaluate_rules_for_machine_object(xano, machine, {"paper_size": "10x13"})
        assert result.calculated_speed == 1500

    def test_machine_without_process_type(self):
        """Test that a machine with no process type uses its base speed."""
        xano = Mock()
        result = evaluate_rules_for_machine_object(xano, {"id": 9, "speed_hr": 3000}, {})
        assert result.calculated_speed == 3000
        assert result.explanation == "Machine has no process type. Using base speed."
        xano.get_machine_rules.assert_not_called()


# ==============================================================================
# FORMATTING TESTS
# ==============================================================================

class TestFormatting:
    """Tests for human-readable conditions."""

    def test_format_condition(self):
        """Test operator labels and value rendering."""
        assert format_condition(MANY_POCKETS[0]) == "pockets > 6"
        assert format_condition({"parameter": "pockets", "operator": "between", "value": [4, 8]}) == \
            "pockets between 4 and 8"
        assert format_condition({"parameter": "paper_size", "operator": "in", "value": ["6x9", "9x12"]}) == \
            "paper_size is one of 6x9, 9x12"

    def test_format_conditions(self):
        """Test that conditions are joined with their logic."""
        conditions = [
            {"parameter": "a", "operator": "equals", "value": 1, "logic": "OR"},
            {"parameter": "b", "operator": "less_than", "value": 2},
        ]
        assert format_conditions(conditions) == "a = 1 OR b < 2"
        assert format_conditions([]) == "No conditions"
