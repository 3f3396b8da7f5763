"""
Finance engines: executive revenue analytics, job cost margins and billing
data-health checks. Pure functions over parsed jobs, like the scheduling
engines.
"""

from planner.finance.cfo import calculate_summary_metrics, generate_executive_alerts
from planner.finance.data_health import analyze_jobs_financial_health, calculate_financial_health_summary
from planner.finance.job_costs import calculate_aggregate_profit_metrics, merge_jobs_with_cost_entries

__all__ = [
    'calculate_summary_metrics',
    'generate_executive_alerts',
    'analyze_jobs_financial_health',
    'calculate_financial_health_summary',
    'calculate_aggregate_profit_metrics',
    'merge_jobs_with_cost_entries',
]
