from datetime import date, timedelta

from flask import jsonify, request

from planner.api import api_bp
from planner.api.errors import error_response
from planner.api.services import (
    CapacityService, CellNoteService, CFOService, DataHealthService, JobCostService, JobImportService,
    MatchingService, ProductionService, ProjectionService, RuleService, SplitService, XanoDataService, today,
)
from planner.auth.utils import login_required
from planner.facilities import get_all_facilities
from planner.logging_config import get_logger
from planner.scheduling.process_types import PROCESS_TYPE_CONFIGS, get_process_type_options
from planner.scheduling.projections import GRANULARITIES
from planner.xano.client import get_xano_client

logger = get_logger(__name__)

DEFAULT_CAPACITY_DAYS = 14
DEFAULT_COMPARISON_DAYS = 7
DEFAULT_COST_DAYS = 30


def _date_arg(name: str, default: date) -> date:
    value = request.args.get(name)
    if not value:
        return default
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"{name} must be a date in YYYY-MM-DD format")


def _int_arg(name: str, default=None):
    value = request.args.get(name)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer")


def _bool_value(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


def _float_arg(name: str):
    value = request.args.get(name)
    if value in (None, ""):
        return None
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number")


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("No JSON data provided")
    return data


@api_bp.route("/jobs", methods=["GET"])
@login_required
def list_jobs():
    """Parsed jobs with computed revenue, optionally for one facility."""
    try:
        facility_id = _int_arg("facility")
        jobs = XanoDataService.load_jobs(get_xano_client(), facility_id)
        return jsonify({"jobs": XanoDataService.jobs_with_revenue(jobs), "total_count": len(jobs)}), 200
    except Exception as exc:
        return error_response(exc, "Failed to load jobs")


@api_bp.route("/machines", methods=["GET"])
@login_required
def list_machines():
    try:
        machines = XanoDataService.load_machines(
            get_xano_client(), facility_id=_int_arg("facility"), status=request.args.get("status")
        )
        return jsonify({"machines": machines, "total_count": len(machines)}), 200
    except Exception as exc:
        return error_response(exc, "Failed to load machines")


@api_bp.route("/machine-rules", methods=["GET"])
@login_required
def list_machine_rules():
    try:
        rules = XanoDataService.load_rules(
            get_xano_client(),
            process_type_key=request.args.get("process_type_key"),
            machine_id=_int_arg("machine_id"),
            active_only=_bool_value(request.args.get("active_only")),
        )
        return jsonify({"rules": rules, "total_count": len(rules)}), 200
    except Exception as exc:
        return error_response(exc, "Failed to load machine rules")


@api_bp.route("/projections", methods=["GET"])
@login_required
def projections():
    """
    Projection table for the selected granularity and view.

    Query params: granularity, start, periods, facility, view,
    breakdown_process and breakdown_field.
    """
    try:
        granularity = request.args.get("granularity", "weekly")
        if granularity not in GRANULARITIES:
            raise ValueError(f"Unknown granularity: {granularity}")
        start = _date_arg("start", ProjectionService.default_start(granularity))
        periods = _int_arg("periods", ProjectionService.DEFAULT_PERIODS[granularity])
        facility_id = _int_arg("facility")

        jobs = XanoDataService.load_jobs(get_xano_client(), facility_id)
        result = ProjectionService.build(
            jobs, granularity, start, periods,
            view=request.args.get("view", "service"),
            breakdown_process=request.args.get("breakdown_process"),
            breakdown_field=request.args.get("breakdown_field"),
        )
        result["facility_id"] = facility_id
        return jsonify(result), 200
    except Exception as exc:
        return error_response(exc, "Failed to build projections")


@api_bp.route("/projections/convert", methods=["POST"])
@login_required
def convert_projection_split():
    try:
        return jsonify(SplitService.convert(_json_body())), 200
    except Exception as exc:
        return error_response(exc, "Failed to convert split")


@api_bp.route("/projections/redistribute", methods=["POST"])
@login_required
def redistribute_projection_split():
    try:
        return jsonify(SplitService.redistribute(_json_body())), 200
    except Exception as exc:
        return error_response(exc, "Failed to redistribute quantities")


@api_bp.route("/capacity", methods=["GET"])
@login_required
def capacity():
    try:
        start = _date_arg("start", today())
        end = _date_arg("end", start + timedelta(days=DEFAULT_CAPACITY_DAYS - 1))
        facility_id = _int_arg("facility")

        xano = get_xano_client()
        jobs = XanoDataService.load_jobs(xano, facility_id)
        machines = XanoDataService.load_machines(xano, facility_id=facility_id)
        result = CapacityService.build(jobs, machines, start, end)
        result["facility_id"] = facility_id
        return jsonify(result), 200
    except Exception as exc:
        return error_response(exc, "Failed to calculate capacity")


@api_bp.route("/rules/evaluate", methods=["POST"])
@login_required
def evaluate_rules():
    try:
        return jsonify(RuleService.evaluate(get_xano_client(), _json_body())), 200
    except Exception as exc:
        return error_response(exc, "Failed to evaluate rules")


@api_bp.route("/machines/match", methods=["POST"])
@login_required
def match_machines():
    try:
        return jsonify(MatchingService.match(get_xano_client(), _json_body())), 200
    except Exception as exc:
        return error_response(exc, "Failed to match machines")


@api_bp.route("/production/comparison", methods=["GET"])
@login_required
def production_comparison():
    """Projected vs actual production for a date window (defaults to the last week)."""
    try:
        end = _date_arg("end", today())
        start = _date_arg("start", end - timedelta(days=DEFAULT_COMPARISON_DAYS - 1))
        facility_id = _int_arg("facility")
        start_ms, end_ms = ProductionService.window(start, end)

        xano = get_xano_client()
        jobs = XanoDataService.load_jobs(xano, facility_id)
        entries = xano.get_production_entries(facilities_id=facility_id, start_date=start_ms, end_date=end_ms)
        result = ProductionService.compare(jobs, entries, start, end)
        result["facility_id"] = facility_id
        return jsonify(result), 200
    except Exception as exc:
        return error_response(exc, "Failed to compare production")


@api_bp.route("/production/upload", methods=["POST"])
@login_required
def production_upload():
    """
    Upload a production sheet (multipart field 'file').

    Form fields: facility, allow_future_dates, commit. Without commit the
    response is a preview; with commit the valid rows are saved to Xano.
    """
    try:
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            return jsonify({"error": "No file provided"}), 400

        facility = request.form.get("facility")
        facility_id = int(facility) if facility else None
        result = ProductionService.upload(
            get_xano_client(),
            upload.filename,
            upload.read(),
            facility_id=facility_id,
            allow_future_dates=_bool_value(request.form.get("allow_future_dates")),
            commit=_bool_value(request.form.get("commit")),
        )
        if not result["parse"]["data"] and result["parse"]["errors"]:
            return jsonify({"error": "Failed to parse file", **result}), 400
        return jsonify(result), 200
    except Exception as exc:
        return error_response(exc, "Failed to process production upload")


@api_bp.route("/jobs/import", methods=["POST"])
@login_required
def import_jobs():
    """
    Bulk job upload (multipart field 'file').

    Without commit=true the response is a preview of the parsed rows; with
    it every row without errors is created in Xano.
    """
    try:
        upload = request.files.get("file")
        if upload is None or not upload.filename:
            return jsonify({"error": "No file provided"}), 400

        result = JobImportService.upload(
            get_xano_client(), upload.filename, upload.read(), commit=_bool_value(request.form.get("commit"))
        )
        if not result["jobs"] and result["errors"]:
            return jsonify({"error": "Failed to parse file", **result}), 400
        return jsonify(result), 200
    except Exception as exc:
        return error_response(exc, "Failed to import jobs")


@api_bp.route("/cfo", methods=["GET"])
@login_required
def cfo_dashboard():
    """
    Revenue analytics for the finance dashboard.

    Query params: granularity, start, periods, facility and
    capacity_utilization. Without capacity_utilization the overall machine
    utilization for the window is calculated.
    """
    try:
        granularity = request.args.get("granularity", "monthly")
        if granularity not in GRANULARITIES:
            raise ValueError(f"Unknown granularity: {granularity}")
        start = _date_arg("start", ProjectionService.default_start(granularity))
        periods = _int_arg("periods", ProjectionService.DEFAULT_PERIODS[granularity])
        facility_id = _int_arg("facility")

        xano = get_xano_client()
        jobs = XanoDataService.load_jobs(xano, facility_id)
        utilization = _float_arg("capacity_utilization")
        if utilization is None:
            machines = XanoDataService.load_machines(xano, facility_id=facility_id)
            capacity_end = start + timedelta(days=DEFAULT_CAPACITY_DAYS - 1)
            utilization = CapacityService.build(jobs, machines, start, capacity_end)["summary"]["overall_utilization"]

        result = CFOService.build(jobs, granularity, start, periods, capacity_utilization=utilization)
        result["facility_id"] = facility_id
        return jsonify(result), 200
    except Exception as exc:
        return error_response(exc, "Failed to build financial summary")


@api_bp.route("/job-costs", methods=["GET"])
@login_required
def job_costs():
    """Billing rate vs actual cost per job for a date window (defaults to the last 30 days)."""
    try:
        end = _date_arg("end", today())
        start = _date_arg("start", end - timedelta(days=DEFAULT_COST_DAYS - 1))
        facility_id = _int_arg("facility")
        start_ms, end_ms = ProductionService.window(start, end)

        xano = get_xano_client()
        jobs = XanoDataService.load_jobs(xano, facility_id)
        entries = xano.get_job_cost_entries(facilities_id=facility_id, start_date=start_ms, end_date=end_ms)
        result = JobCostService.compare(jobs, entries, start, end)
        result["facility_id"] = facility_id
        return jsonify(result), 200
    except Exception as exc:
        return error_response(exc, "Failed to load job costs")


@api_bp.route("/job-costs", methods=["POST"])
@login_required
def create_job_cost():
    try:
        return jsonify(JobCostService.save(get_xano_client(), _json_body())), 201
    except Exception as exc:
        return error_response(exc, "Failed to save job cost")


@api_bp.route("/job-costs/<int:entry_id>", methods=["PATCH"])
@login_required
def update_job_cost(entry_id):
    try:
        return jsonify(JobCostService.save(get_xano_client(), _json_body(), entry_id=entry_id)), 200
    except Exception as exc:
        return error_response(exc, "Failed to save job cost")


@api_bp.route("/job-costs/<int:entry_id>", methods=["DELETE"])
@login_required
def delete_job_cost(entry_id):
    try:
        get_xano_client().delete_job_cost_entry(entry_id)
        return jsonify({"deleted": entry_id}), 200
    except Exception as exc:
        return error_response(exc, "Failed to delete job cost")


@api_bp.route("/financial-health", methods=["GET"])
@login_required
def financial_health():
    """Jobs with billing data problems. Query params: issue (or 'all') and facility."""
    try:
        facility_id = _int_arg("facility")
        jobs = XanoDataService.load_jobs(get_xano_client(), facility_id)
        result = DataHealthService.build(jobs, request.args.get("issue", "all"))
        result["facility_id"] = facility_id
        return jsonify(result), 200
    except Exception as exc:
        return error_response(exc, "Failed to analyze financial data")


@api_bp.route("/cell-notes", methods=["GET"])
@login_required
def list_cell_notes():
    try:
        return jsonify(CellNoteService.load(get_xano_client(), job_id=_int_arg("job_id"))), 200
    except Exception as exc:
        return error_response(exc, "Failed to load notes")


@api_bp.route("/cell-notes", methods=["POST"])
@login_required
def create_cell_note():
    try:
        return jsonify(CellNoteService.create(get_xano_client(), _json_body())), 201
    except Exception as exc:
        return error_response(exc, "Failed to save note")


@api_bp.route("/cell-notes/<int:note_id>", methods=["PATCH"])
@login_required
def update_cell_note(note_id):
    try:
        return jsonify(CellNoteService.update(get_xano_client(), note_id, _json_body())), 200
    except Exception as exc:
        return error_response(exc, "Failed to save note")


@api_bp.route("/cell-notes/<int:note_id>", methods=["DELETE"])
@login_required
def delete_cell_note(note_id):
    try:
        return jsonify(CellNoteService.delete(get_xano_client(), note_id)), 200
    except Exception as exc:
        return error_response(exc, "Failed to delete note")


@api_bp.route("/process-types", methods=["GET"])
def process_types():
    return jsonify({
        "process_types": [config.to_dict() for config in PROCESS_TYPE_CONFIGS],
        "options": get_process_type_options(),
    }), 200


@api_bp.route("/facilities", methods=["GET"])
def facilities():
    return jsonify({"facilities": get_all_facilities()}), 200
