"""
Validation of parsed production rows against the job list.

Each row is matched to a job by job number and checked for problems that
would make the production entry wrong (errors) or suspicious (warnings).
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from planner.datetime_utils import date_to_timestamp, get_planner_timezone, to_date
from planner.production.excel_parser import ParsedRow


@dataclass
class ValidationOptions:
    facilities_id: Optional[int] = None
    allow_future_dates: bool = False
    check_duplicates: bool = True
    existing_entries: List[Dict[str, Any]] = field(default_factory=list)
    default_date: Optional[date] = None
    today: Optional[date] = None


@dataclass
class ValidationResult:
    is_valid: bool = True
    matched_job: Optional[Dict[str, Any]] = None
    errors: List[Dict[str, str]] = field(default_factory=list)
    warnings: List[Dict[str, str]] = field(default_factory=list)

    def error(self, field_name: str, message: str):
        self.is_valid = False
        self.errors.append({"field": field_name, "message": message})

    def warn(self, field_name: str, message: str):
        self.warnings.append({"field": field_name, "message": message})


@dataclass
class ValidatedRow:
    row: ParsedRow
    validation: ValidationResult
    production_entry: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        job = self.validation.matched_job
        return {
            **self.row.to_dict(),
            "matched_job_id": job.get("id") if job else None,
            "is_valid": self.validation.is_valid,
            "errors": self.validation.errors,
            "warnings": self.validation.warnings,
            "production_entry": self.production_entry,
        }


def _today(options: ValidationOptions) -> date:
    return options.today or datetime.now(get_planner_timezone()).date()


def find_job_by_job_number(job_number, jobs: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Match on numeric value so '00123' finds job 123."""
    try:
        number = float(job_number)
    except (TypeError, ValueError):
        return None

    for job in jobs:
        try:
            job_value = float(job.get("job_number"))
        except (TypeError, ValueError):
            continue
        if job_value == number or job_value == int(number):
            return job
    return None


def _entry_date(row: ParsedRow, options: ValidationOptions) -> date:
    return row.production_date or options.default_date or _today(options)


def validate_production_row(row: ParsedRow, jobs: List[Dict[str, Any]],
                            options: Optional[ValidationOptions] = None) -> ValidationResult:
    options = options or ValidationOptions()
    result = ValidationResult()

    job = find_job_by_job_number(row.job_number, jobs)
    if job is None:
        result.error("job_number", f'Job number "{row.job_number}" not found in system')
        return result
    result.matched_job = job

    if options.facilities_id and job.get("facilities_id") != options.facilities_id:
        result.warn("facilities_id", f"Job belongs to a different facility "
                                     f"(expected: {options.facilities_id}, found: {job.get('facilities_id')})")

    if row.quantity <= 0:
        result.error("quantity", "Quantity must be greater than 0")
    job_quantity = job.get("quantity") or 0
    if job_quantity and row.quantity > job_quantity:
        result.warn("quantity", f"Quantity ({row.quantity:g}) exceeds job total ({job_quantity})")

    if row.production_date:
        if not options.allow_future_dates and row.production_date > _today(options):
            result.error("date", "Date is in the future")
        start = to_date(job.get("start_date"))
        due = to_date(job.get("due_date"))
        if start and row.production_date < start:
            result.warn("date", f"Date is before job start date ({start.isoformat()})")
        if due and row.production_date > due:
            result.warn("date", f"Date is after job due date ({due.isoformat()})")
    elif not options.default_date:
        result.warn("date", "No date provided, using current date")

    if options.check_duplicates and options.existing_entries:
        entry_day = _entry_date(row, options)
        for entry in options.existing_entries:
            if entry.get("job") == job.get("id") and to_date(entry.get("date")) == entry_day:
                result.warn("duplicate", f"Production entry already exists for this job on "
                                         f"{entry_day.isoformat()} ({entry.get('actual_quantity')} units)")
                break

    return result


def validate_production_rows(rows: List[ParsedRow], jobs: List[Dict[str, Any]],
                             options: Optional[ValidationOptions] = None) -> List[ValidatedRow]:
    """Validate every row; valid rows carry the production entry payload to create."""
    options = options or ValidationOptions()
    validated = []
    for row in rows:
        validation = validate_production_row(row, jobs, options)
        entry = None
        if validation.is_valid and validation.matched_job:
            job = validation.matched_job
            entry = {
                "job": job.get("id"),
                "date": date_to_timestamp(_entry_date(row, options)),
                "actual_quantity": row.quantity,
                "notes": row.notes,
                "facilities_id": job.get("facilities_id"),
            }
        validated.append(ValidatedRow(row=row, validation=validation, production_entry=entry))
    return validated


def get_validation_summary(validated_rows: List[ValidatedRow]) -> Dict[str, Any]:
    summary = {
        "total": len(validated_rows),
        "valid": 0,
        "invalid": 0,
        "warnings": 0,
        "total_quantity": 0.0,
        "facilities_count": {},
    }
    for validated in validated_rows:
        if validated.validation.is_valid:
            summary["valid"] += 1
            summary["total_quantity"] += validated.row.quantity
            facility_id = validated.validation.matched_job.get("facilities_id")
            if facility_id is not None:
                summary["facilities_count"][facility_id] = summary["facilities_count"].get(facility_id, 0) + 1
        else:
            summary["invalid"] += 1
        if validated.validation.warnings:
            summary["warnings"] += 1
    return summary
