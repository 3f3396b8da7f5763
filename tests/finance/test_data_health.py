"""
Tests for the billing data-health checks.
"""
import pytest
from planner.finance.data_health import (
    analyze_jobs_financial_health,
    calculate_billing_from_requirements,
    calculate_financial_health_summary,
    calculate_job_margin,
    detect_billing_discrepancy,
    filter_jobs_by_issue_type,
    get_margin_status_label,
)


@pytest.fixture
def jobs():
    return [
        {"id": 1, "job_number": 101, "quantity": 10000, "total_billing": "100",
         "requirements": [{"price_per_m": "10"}]},
        {"id": 2, "job_number": 102, "quantity": 5000, "total_billing": "",
         "requirements": [{"price_per_m": "10"}]},
        {"id": 3, "job_number": 103, "quantity": 1000, "total_billing": "0",
         "requirements": [{"price_per_m": "undefined"}]},
        {"id": 4, "job_number": 104, "quantity": 10000, "total_billing": "100", "add_on_charges": "5",
         "requirements": [{"price_per_m": "10", "setup_cost": "25"}]},
        {"id": 5, "job_number": 105, "quantity": 0, "total_billing": "5", "requirements": [],
         "time_estimate": 12, "max_hours": 10},
        {"id": 6, "job_number": 106, "quantity": 10000, "total_billing": "104",
         "requirements": '[{"price_per_m": "10"}]'},
    ]


class TestBilling:
    """Tests for billing implied by requirements."""

    def test_billing_includes_costs_and_add_ons(self, jobs):
        """Test price per thousand plus '*_cost' amounts plus add-on charges."""
        assert calculate_billing_from_requirements(jobs[3]) == 130

    def test_json_requirements(self, jobs):
        """Test that requirements stored as a JSON string are decoded."""
        assert calculate_billing_from_requirements(jobs[5]) == 100

    def test_no_quantity(self, jobs):
        """Test that a job without quantity or requirements bills nothing."""
        assert calculate_billing_from_requirements(jobs[4]) == 0


class TestDiscrepancy:
    """Tests for the discrepancy thresholds."""

    def test_over_both_thresholds(self, jobs):
        """Test a 30 dollar, 23 percent mismatch."""
        result = detect_billing_discrepancy(jobs[3])
        assert result["has_discrepancy"] is True
        assert result["discrepancy_amount"] == 30
        assert result["discrepancy_percent"] == pytest.approx(23.0769, abs=0.001)

    def test_small_amount_ignored(self, jobs):
        """Test that a 4 dollar mismatch is not flagged."""
        assert detect_billing_discrepancy(jobs[5])["has_discrepancy"] is False

    def test_small_percent_ignored(self):
        """Test that a large amount under 5 percent is not flagged."""
        job = {"quantity": 100000, "total_billing": "1040", "requirements": [{"price_per_m": "10"}]}
        result = detect_billing_discrepancy(job)
        assert result["discrepancy_amount"] == 40
        assert result["has_discrepancy"] is False

    def test_both_zero(self, jobs):
        """Test that nothing billed either way is not a discrepancy."""
        assert detect_billing_discrepancy(jobs[2])["has_discrepancy"] is False


class TestHealthChecks:
    """Tests for issue detection and the summary."""

    def test_analysis_issues(self, jobs):
        """Test the issues listed per job."""
        issues = {result["job_id"]: result["issues"] for result in analyze_jobs_financial_health(jobs)}
        assert issues == {
            1: [],
            2: ["missing_billing", "discrepancy"],
            3: ["missing_billing", "zero_pricing"],
            4: ["discrepancy"],
            5: ["hours_exceeded"],
            6: [],
        }

    def test_filter_by_issue(self, jobs):
        """Test filtering to one issue type."""
        assert [job["id"] for job in filter_jobs_by_issue_type(jobs, "zero_pricing")] == [3]
        assert [job["id"] for job in filter_jobs_by_issue_type(jobs, "missing_billing")] == [2, 3]
        assert len(filter_jobs_by_issue_type(jobs)) == 6

    def test_unknown_issue_type(self, jobs):
        """Test that an unknown issue type raises ValueError."""
        with pytest.raises(ValueError, match="Unknown issue type"):
            filter_jobs_by_issue_type(jobs, "late")

    def test_missing_billing_without_requirements(self):
        """Test that quantity with no pricing and no billing is missing billing."""
        assert filter_jobs_by_issue_type([{"id": 9, "quantity": 500, "total_billing": ""}], "missing_billing")

    def test_summary(self, jobs):
        """Test issue counts and the healthy share."""
        summary = calculate_financial_health_summary(jobs)

        assert summary["total_jobs"] == 6
        assert summary["missing_billing"] == 2
        assert summary["discrepancies"] == 2
        assert summary["zero_pricing"] == 1
        assert summary["hours_exceeded"] == 1
        assert summary["healthy_jobs"] == 2
        assert summary["health_percentage"] == pytest.approx(33.333, abs=0.001)

    def test_summary_without_jobs(self):
        """Test that no jobs is fully healthy."""
        assert calculate_financial_health_summary([])["health_percentage"] == 100


class TestMargin:
    """Tests for job margin."""

    def test_estimated_cost(self):
        """Test ext_price as the cost when no actual cost is recorded."""
        job = {"quantity": 10000, "add_on_charges": "5", "ext_price": "65",
               "requirements": [{"price_per_m": "10", "setup_cost": "25"}]}
        margin = calculate_job_margin(job)

        assert margin["billing_rate"] == 130
        assert margin["profit"] == 65
        assert margin["margin_percent"] == 50
        assert margin["has_actual_cost"] is False
        assert margin["status"] == "Excellent"

    def test_actual_cost(self):
        """Test actual_cost_per_m over the job quantity."""
        job = {"quantity": 10000, "actual_cost_per_m": 12, "ext_price": "65",
               "requirements": [{"price_per_m": "13"}]}
        margin = calculate_job_margin(job)

        assert margin["actual_cost"] == 120
        assert margin["has_actual_cost"] is True
        assert margin["margin_percent"] == pytest.approx(7.692, abs=0.001)
        assert margin["status"] == "Low"

    def test_falls_back_to_actual_billing(self):
        """Test that total_billing is used when requirements give nothing."""
        margin = calculate_job_margin({"quantity": 0, "total_billing": "200", "ext_price": "150"})
        assert margin["billing_rate"] == 200
        assert margin["margin_percent"] == 25

    def test_status_labels(self):
        """Test the margin bands."""
        assert [get_margin_status_label(m) for m in (30, 20, 12, 5, -1)] == [
            "Excellent", "Good", "Fair", "Low", "Loss",
        ]
