"""
Scheduling engines for the production planner.

Pure calculations over job, machine and rule records already fetched from
Xano: capacity, projections, granularity conversion, rules, matching and
projection cell notes.
"""

from planner.scheduling.config import PlannerConfig
from planner.scheduling.jobs import parse_job, parse_jobs, get_job_revenue, get_process_revenue
from planner.scheduling.process_types import normalize_process_type, validate_requirement
from planner.scheduling.rules import RuleEvaluationResult, evaluate_rules
from planner.scheduling.projections import TimeRange, generate_time_ranges, calculate_job_projections
from planner.scheduling.granularity import Period, calculate_periods
from planner.scheduling.cell_notes import CellIdentifier, get_cell_key, group_cell_notes, parse_cell_key

__all__ = [
    'PlannerConfig',
    'parse_job',
    'parse_jobs',
    'get_job_revenue',
    'get_process_revenue',
    'normalize_process_type',
    'validate_requirement',
    'RuleEvaluationResult',
    'evaluate_rules',
    'TimeRange',
    'generate_time_ranges',
    'calculate_job_projections',
    'Period',
    'calculate_periods',
    'CellIdentifier',
    'get_cell_key',
    'group_cell_notes',
    'parse_cell_key',
]
