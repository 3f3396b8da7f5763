"""
Service layer for the planner API.

Fetches records from Xano for the current request and runs them through the
scheduling, production and finance engines. Routes stay thin; everything here works
on plain dicts so it can be tested without Flask.
"""
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from planner.datetime_utils import add_months, date_to_timestamp, get_planner_timezone, start_of_week, to_date
from planner.finance import cfo
from planner.finance.data_health import (
    ISSUE_TYPES, analyze_jobs_financial_health, calculate_financial_health_summary, calculate_job_margin,
)
from planner.finance.job_costs import (
    calculate_aggregate_profit_metrics, calculate_average_cost_from_requirements, merge_jobs_with_cost_entries,
)
from planner.logging_config import OperationContext, get_logger
from planner.production.calculator import (
    aggregate_production_by_week, calculate_production_summary, merge_projections_with_actuals,
)
from planner.production.excel_parser import parse_production_file
from planner.production.job_import import build_job_payload, parse_job_file
from planner.production.validator import ValidationOptions, get_validation_summary, validate_production_rows
from planner.scheduling.capacity import calculate_daily_summaries, calculate_machine_capacities, summarize_capacity
from planner.scheduling.cell_notes import build_cell_note_payload, cell_from_dict, get_cell_key, group_cell_notes
from planner.scheduling.granularity import (
    Period, convert_granularity_to_weekly, convert_weekly_to_granularity, redistribute_quantity,
    reset_to_even_distribution,
)
from planner.scheduling.jobs import get_job_revenue, parse_job, parse_jobs
from planner.scheduling.matching import MatchingCriteria, find_matching_machines
from planner.scheduling.projections import (
    calculate_grand_totals, calculate_job_projections, calculate_process_type_breakdown_by_field,
    calculate_process_type_summaries, calculate_process_type_summaries_by_facility,
    calculate_service_type_summaries, expand_job_projections_to_processes, generate_time_ranges,
)
from planner.scheduling.rules import (
    evaluate_rules_for_machine, evaluate_rules_for_machine_object, fetch_active_rules, format_conditions,
)
from planner.xano.exceptions import XanoAPIError, XanoUnauthorizedError

logger = get_logger(__name__)


def today() -> date:
    return datetime.now(get_planner_timezone()).date()


def _scheduled(jobs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [job for job in jobs if job.get("start_date") and job.get("due_date")]


def _require(data: Dict[str, Any], *keys: str):
    missing = [k for k in keys if data.get(k) in (None, "")]
    if missing:
        raise ValueError(f"Missing required field(s): {', '.join(missing)}")


class XanoDataService:
    """Loads and normalizes Xano records for one request."""

    @staticmethod
    def load_jobs(xano, facility_id: Optional[int] = None) -> List[Dict[str, Any]]:
        with OperationContext("xano_fetch_jobs", facilities_id=facility_id):
            jobs = parse_jobs(xano.get_jobs(facilities_id=facility_id))
        if facility_id:
            jobs = [job for job in jobs if job.get("facilities_id") == facility_id]
        return jobs

    @staticmethod
    def load_machines(xano, facility_id: Optional[int] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
        with OperationContext("xano_fetch_machines", facilities_id=facility_id, status=status):
            machines = xano.get_machines(status=status, facilities_id=facility_id)
        if facility_id:
            machines = [m for m in machines if m.get("facilities_id") == facility_id]
        return machines

    @staticmethod
    def load_rules(xano, process_type_key: Optional[str] = None, machine_id: Optional[int] = None,
                   active_only: bool = False) -> List[Dict[str, Any]]:
        with OperationContext("xano_fetch_machine_rules", process_type_key=process_type_key):
            rules = xano.get_machine_rules(process_type_key=process_type_key, machine_id=machine_id,
                                           active_only=active_only)
        for rule in rules:
            rule["conditions_display"] = format_conditions(rule.get("conditions") or [])
        return rules

    @staticmethod
    def jobs_with_revenue(jobs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [{**job, "revenue": get_job_revenue(job)} for job in jobs]


class ProjectionService:
    """Projection tables: per-job period quantities plus the selected rollup."""

    DEFAULT_PERIODS = {"weekly": 6, "monthly": 6, "quarterly": 4}
    VIEWS = ("service", "process", "facility")

    @staticmethod
    def default_start(granularity: str, reference: Optional[date] = None) -> date:
        reference = reference or today()
        if granularity == "weekly":
            return start_of_week(reference)
        return reference

    @staticmethod
    def build(jobs: List[Dict[str, Any]], granularity: str, start: date, periods: int, view: str = "service",
              breakdown_process: Optional[str] = None, breakdown_field: Optional[str] = None) -> Dict[str, Any]:
        """
        Project jobs onto periods and summarize them.

        Args:
            jobs: parsed jobs
            granularity: 'weekly', 'monthly' or 'quarterly'
            start: first day of the first period
            periods: number of periods
            view: 'service' (by service type), 'process' (by requirement
                process type) or 'facility' (process type per facility)
            breakdown_process: optional process type to break down by a field
            breakdown_field: requirement field used for the breakdown

        Returns:
            dict with ranges, jobs, summaries and grand_totals
        """
        if view not in ProjectionService.VIEWS:
            raise ValueError(f"Unknown view: {view}. Expected one of: {', '.join(ProjectionService.VIEWS)}")
        if periods <= 0:
            raise ValueError("periods must be positive")

        ranges = generate_time_ranges(granularity, start, periods)
        projections = [p for p in calculate_job_projections(jobs, ranges) if p.total_quantity > 0]

        result: Dict[str, Any] = {
            "granularity": granularity,
            "view": view,
            "ranges": [r.to_dict() for r in ranges],
            "jobs": [p.to_dict() for p in projections],
        }

        if view == "service":
            summaries = calculate_service_type_summaries(projections, ranges)
        elif view == "process":
            summaries = [s.to_dict() for s in calculate_process_type_summaries(projections, ranges)]
            result["processes"] = expand_job_projections_to_processes(projections)
        else:
            summaries = [s.to_dict() for s in calculate_process_type_summaries_by_facility(projections, ranges)]

        result["summaries"] = summaries
        result["grand_totals"] = calculate_grand_totals(summaries, ranges)
        result["grand_totals"]["total_revenue"] = sum(p.total_revenue for p in projections)

        if breakdown_process and breakdown_field:
            result["breakdown"] = calculate_process_type_breakdown_by_field(
                projections, ranges, breakdown_process, breakdown_field
            )
        return result


class SplitService:
    """Edits to a job's weekly_split from the projection grid."""

    @staticmethod
    def convert(data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Convert between stored weekly_split and another granularity.

        With 'periods' in the payload the periods are folded back to weeks,
        otherwise weekly_split is expanded to target_granularity.
        """
        _require(data, "start_date", "due_date")
        start, due = to_date(data["start_date"]), to_date(data["due_date"])

        if "periods" in data:
            _require(data, "granularity")
            periods = [Period.from_dict(p) for p in data.get("periods") or []]
            total = int(data.get("total_quantity") or sum(p.quantity for p in periods))
            weekly_split, locked_weeks = convert_granularity_to_weekly(
                periods, start, due, data["granularity"], total
            )
            return {"weekly_split": weekly_split, "locked_weeks": locked_weeks}

        _require(data, "target_granularity")
        periods = convert_weekly_to_granularity(
            data.get("weekly_split") or [], data.get("locked_weeks") or [], start, due, data["target_granularity"]
        )
        return {"periods": [p.to_dict() for p in periods]}

    @staticmethod
    def redistribute(data: Dict[str, Any]) -> Dict[str, Any]:
        if data.get("reset"):
            _require(data, "period_count", "total_quantity")
            quantities, locks = reset_to_even_distribution(int(data["period_count"]), int(data["total_quantity"]))
            return {"quantities": quantities, "locks": locks}

        _require(data, "periods", "edited_index", "new_value", "total_quantity")
        periods = [Period.from_dict(p) for p in data["periods"]]
        new_value = int(data["new_value"])
        if new_value < 0:
            raise ValueError("new_value must not be negative")
        result = redistribute_quantity(
            periods,
            int(data["edited_index"]),
            new_value,
            int(data["total_quantity"]),
            allow_backward=bool(data.get("allow_backward", False)),
        )
        return {"periods": [p.to_dict() for p in result]}


class CapacityService:

    @staticmethod
    def build(jobs: List[Dict[str, Any]], machines: List[Dict[str, Any]], start: date, end: date) -> Dict[str, Any]:
        if end < start:
            raise ValueError("end must not be before start")
        scheduled = _scheduled(jobs)
        with OperationContext("capacity_build", machines=len(machines), jobs=len(scheduled)):
            capacities = calculate_machine_capacities(scheduled, machines, start, end)
            daily = calculate_daily_summaries(scheduled, start, end)
        return {
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "machines": {str(machine_id): data for machine_id, data in capacities.items()},
            "daily_summaries": daily,
            "summary": summarize_capacity(capacities),
        }


class RuleService:

    @staticmethod
    def evaluate(xano, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Evaluate machine rules for a set of job parameters.

        Accepts either machine_id (speed and process type taken from the
        machine) or process_type_key with base_speed.
        """
        parameters = data.get("parameters") or {}
        if not isinstance(parameters, dict):
            raise ValueError("parameters must be an object")

        if data.get("machine_id"):
            machine = xano.get_machine(int(data["machine_id"]))
            result = evaluate_rules_for_machine_object(xano, machine, parameters)
        elif data.get("process_type_key"):
            _require(data, "base_speed")
            result = evaluate_rules_for_machine(
                xano, data["process_type_key"], float(data["base_speed"]), parameters, data.get("machine_id")
            )
        else:
            raise ValueError("machine_id or process_type_key is required")
        return result.to_dict()


class MatchingService:

    @staticmethod
    def match(xano, data: Dict[str, Any]) -> Dict[str, Any]:
        criteria = MatchingCriteria.from_dict(data)
        machines = XanoDataService.load_machines(xano, facility_id=criteria.facility_id)
        rules = fetch_active_rules(xano, criteria.process_type)
        existing_jobs = _scheduled(XanoDataService.load_jobs(xano, facility_id=criteria.facility_id))

        matches = find_matching_machines(criteria, machines, rules, existing_jobs)
        best = next((m for m in matches if m.can_handle), None)
        logger.info("Machine matching complete", process_type=criteria.process_type,
                    candidates=len(matches), best_machine_id=best.machine.get("id") if best else None)
        return {
            "matches": [m.to_dict() for m in matches],
            "best_match": best.to_dict() if best else None,
        }


class ProductionService:

    @staticmethod
    def window(start: date, end: date):
        """Local-midnight start and end-of-day end as epoch milliseconds."""
        if end < start:
            raise ValueError("end must not be before start")
        return date_to_timestamp(start), date_to_timestamp(end + timedelta(days=1)) - 1

    @staticmethod
    def compare(jobs: List[Dict[str, Any]], entries: List[Dict[str, Any]], start: date, end: date) -> Dict[str, Any]:
        start_ms, end_ms = ProductionService.window(start, end)
        scheduled = _scheduled(jobs)
        comparisons = merge_projections_with_actuals(scheduled, entries, start_ms, end_ms)
        return {
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "comparisons": comparisons,
            "summary": calculate_production_summary(comparisons),
            "weekly_actuals": aggregate_production_by_week(entries, start_ms, end_ms),
        }

    @staticmethod
    def upload(xano, filename: str, file_bytes: bytes, facility_id: Optional[int] = None,
               allow_future_dates: bool = False, commit: bool = False) -> Dict[str, Any]:
        """
        Parse, validate and optionally save an uploaded production sheet.

        Returns:
            dict with the parse result, validated rows, summary and the
            entries created in Xano (empty unless commit is set)
        """
        parsed = parse_production_file(filename, file_bytes)
        result: Dict[str, Any] = {"parse": parsed.to_dict(), "rows": [], "summary": None, "created": []}
        if not parsed.data:
            return result

        jobs = XanoDataService.load_jobs(xano)
        with OperationContext("xano_fetch_production_entries", facilities_id=facility_id):
            existing = xano.get_production_entries(facilities_id=facility_id)

        options = ValidationOptions(facilities_id=facility_id, allow_future_dates=allow_future_dates,
                                    existing_entries=existing)
        validated = validate_production_rows(parsed.data, jobs, options)
        result["rows"] = [v.to_dict() for v in validated]
        result["summary"] = get_validation_summary(validated)

        if commit:
            entries = [v.production_entry for v in validated if v.production_entry]
            if entries:
                with OperationContext("xano_batch_create_production_entries", count=len(entries)):
                    result["created"] = xano.batch_create_production_entries(entries)
            logger.info("Production upload committed", filename=filename, created=len(result["created"]))
        return result


def _overlapping(jobs: List[Dict[str, Any]], start: date, end: date) -> List[Dict[str, Any]]:
    """Jobs whose start-to-due span touches [start, end]."""
    selected = []
    for job in jobs:
        job_start, job_due = to_date(job.get("start_date")), to_date(job.get("due_date"))
        if job_start and job_due and job_start <= end and job_due >= start:
            selected.append(job)
    return selected


class CFOService:
    """Executive revenue view for a window of periods and the window before it."""

    @staticmethod
    def previous_start(granularity: str, start: date, periods: int) -> date:
        if granularity == "weekly":
            return start - timedelta(weeks=periods)
        if granularity == "monthly":
            return add_months(start, -periods)
        return add_months(start, -3 * periods)

    @staticmethod
    def build(jobs: List[Dict[str, Any]], granularity: str, start: date, periods: int,
              capacity_utilization: Optional[float] = None, now: Optional[int] = None) -> Dict[str, Any]:
        """
        Revenue analytics for the selected window.

        Jobs are split into the current window (the generated ranges) and the
        equally long window before it, which feeds the trend, the period
        comparison and the revenue alerts.
        """
        if periods <= 0:
            raise ValueError("periods must be positive")

        ranges = generate_time_ranges(granularity, start, periods)
        previous_ranges = generate_time_ranges(
            granularity, CFOService.previous_start(granularity, ranges[0].start_date, periods), periods
        )
        current = _overlapping(jobs, ranges[0].start_date, ranges[-1].end_date)
        previous = _overlapping(jobs, previous_ranges[0].start_date, previous_ranges[-1].end_date)

        with OperationContext("cfo_build", jobs=len(current), previous_jobs=len(previous)):
            alerts = cfo.generate_executive_alerts(current, previous, capacity_utilization, now=now)
            return {
                "granularity": granularity,
                "ranges": [r.to_dict() for r in ranges],
                "summary": cfo.calculate_summary_metrics(current, capacity_utilization, now=now),
                "revenue_by_period": cfo.calculate_revenue_by_period(current, ranges),
                "previous_revenue_by_period": cfo.calculate_revenue_by_period(previous, previous_ranges),
                "revenue_trend": cfo.calculate_revenue_trend(current, previous),
                "period_comparison": cfo.compare_periods(current, previous),
                "top_clients": [g.to_dict() for g in cfo.get_top_clients(current)],
                "top_client_concentration": cfo.calculate_top_client_concentration(current),
                "client_diversification_score": cfo.calculate_client_diversification_score(current),
                "revenue_by_service_type": [g.to_dict() for g in cfo.calculate_revenue_by_service_type(current)],
                "revenue_by_process_type": [g.to_dict() for g in cfo.calculate_revenue_by_process_type(current)],
                "alerts": [alert.to_dict() for alert in alerts],
            }


class JobCostService:

    @staticmethod
    def compare(jobs: List[Dict[str, Any]], entries: List[Dict[str, Any]], start: date, end: date) -> Dict[str, Any]:
        start_ms, end_ms = ProductionService.window(start, end)
        comparisons = merge_jobs_with_cost_entries(_overlapping(jobs, start, end), entries, start_ms, end_ms)
        return {
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "comparisons": [c.to_dict() for c in comparisons],
            "summary": calculate_aggregate_profit_metrics(comparisons),
        }

    @staticmethod
    def save(xano, data: Dict[str, Any], entry_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Create a cost entry, or update entry_id.

        A new entry without actual_cost_per_m starts from the average
        price_per_m of the job's requirements.
        """
        payload = {k: data[k] for k in ("job", "date", "actual_cost_per_m", "notes", "facilities_id") if k in data}
        if payload.get("date") not in (None, ""):
            day = to_date(payload["date"])
            if day is None:
                raise ValueError("date must be a date or epoch milliseconds")
            payload["date"] = date_to_timestamp(day)
        if "actual_cost_per_m" in payload:
            cost = float(payload["actual_cost_per_m"])
            if cost < 0:
                raise ValueError("actual_cost_per_m must not be negative")
            payload["actual_cost_per_m"] = cost

        if entry_id is not None:
            with OperationContext("xano_update_job_cost_entry", entry_id=entry_id):
                return xano.update_job_cost_entry(entry_id, payload)

        _require(payload, "job", "date")
        if "actual_cost_per_m" not in payload:
            job = parse_job(xano.get_job(int(payload["job"])))
            payload["actual_cost_per_m"] = calculate_average_cost_from_requirements(job.get("requirements"))
        with OperationContext("xano_create_job_cost_entry", job=payload["job"]):
            return xano.create_job_cost_entry(payload)


class DataHealthService:

    @staticmethod
    def build(jobs: List[Dict[str, Any]], issue_type: str = "all") -> Dict[str, Any]:
        """Health summary for all jobs plus the flagged jobs, optionally of one issue type."""
        if issue_type != "all" and issue_type not in ISSUE_TYPES:
            raise ValueError(f"Unknown issue type: {issue_type}. Expected one of: all, {', '.join(ISSUE_TYPES)}")

        by_id = {job.get("id"): job for job in jobs}
        flagged = []
        for analysis in analyze_jobs_financial_health(jobs):
            if not analysis["issues"]:
                continue
            if issue_type != "all" and issue_type not in analysis["issues"]:
                continue
            analysis["margin"] = calculate_job_margin(by_id[analysis["job_id"]])
            flagged.append(analysis)
        return {
            "issue_type": issue_type,
            "summary": calculate_financial_health_summary(jobs),
            "jobs": flagged,
        }


class JobImportService:

    @staticmethod
    def upload(xano, filename: str, file_bytes: bytes, commit: bool = False,
               default_year: Optional[int] = None) -> Dict[str, Any]:
        """
        Parse a bulk jobs sheet and, with commit, create the valid jobs.

        Each job is created on its own; a Xano failure is recorded against
        its row and the rest carry on. An expired session still stops the
        import.
        """
        parsed = parse_job_file(filename, file_bytes, default_year=default_year or today().year)
        result: Dict[str, Any] = {**parsed.to_dict(), "created": [], "failures": []}
        if not commit:
            return result

        for job in (j for j in parsed.jobs if j.is_valid):
            try:
                result["created"].append(xano.create_job(build_job_payload(job)))
            except XanoUnauthorizedError:
                raise
            except XanoAPIError as e:
                result["failures"].append({"row": job.row, "job_number": job.job_number, "error": e.message})
        logger.info("Job import committed", filename=filename, created=len(result["created"]),
                    failed=len(result["failures"]))
        return result


class CellNoteService:
    """Notes pinned to a projection cell (one job in one period)."""

    @staticmethod
    def load(xano, job_id: Optional[int] = None) -> Dict[str, Any]:
        with OperationContext("xano_fetch_job_notes"):
            grouped = group_cell_notes(xano.get_job_notes())
        if job_id is not None:
            prefix = f"{job_id}:"
            grouped = {key: notes for key, notes in grouped.items() if key.startswith(prefix)}
        return {"notes": grouped, "cell_count": len(grouped)}

    @staticmethod
    def create(xano, data: Dict[str, Any]) -> Dict[str, Any]:
        cell = cell_from_dict(data)
        note = xano.create_job_note(build_cell_note_payload(cell, data.get("notes"), data.get("period_label")))
        return {"cell_key": get_cell_key(cell), "note": note}

    @staticmethod
    def update(xano, note_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        cell = cell_from_dict(data)
        note = xano.update_job_note(note_id, build_cell_note_payload(cell, data.get("notes"), data.get("period_label")))
        return {"cell_key": get_cell_key(cell), "note": note}

    @staticmethod
    def delete(xano, note_id: int) -> Dict[str, Any]:
        xano.delete_job_note(note_id)
        logger.info("Cell note deleted", note_id=note_id)
        return {"deleted": note_id}
