"""
Bulk job import.

Reads a jobs sheet (.xlsx/.xls/.csv) with pandas, one job per row, and turns
each row into a draft job with one requirement per process type. Rows keep
their own errors and warnings so the dashboard can show a preview before
anything is created in Xano.
"""
import json
import math
import re
from dataclasses import dataclass, field
from datetime import date
from io import BytesIO
from typing import Any, Dict, List, Optional

import pandas as pd

from planner.datetime_utils import date_to_timestamp
from planner.logging_config import get_logger
from planner.production.excel_parser import RowParseError, is_empty_cell, parse_excel_date, validate_file
from planner.scheduling.process_types import normalize_process_type, validate_requirement

logger = get_logger(__name__)

# Header spellings per field; headers match exactly after lower-casing and collapsing spaces
COLUMN_ALIASES: Dict[str, List[str]] = {
    "schedule_type": ["schedule_type", "schedule type", "schedule", "type"],
    "facility": ["facility", "facilities", "location", "plant"],
    "job_number": ["job_number", "job number", "job#", "job_no", "jobnumber"],
    "client": ["client", "customer"],
    "sub_client": ["sub_client", "sub client", "subclient"],
    "name": ["name", "job name", "job_name", "title"],
    "description": ["description", "desc", "job description", "job_description"],
    "quantity": ["quantity", "qty", "pieces", "count"],
    "start_date": ["start_date", "start date", "start", "begin_date"],
    "end_date": ["end_date", "end date", "due_date", "due date", "end"],
    "process_type": ["process_type", "process type", "process", "service_type", "service type", "service"],
    "price_per_m": ["price_per_m", "price per m", "price", "rate", "price_per_thousand"],
    "paper_size": ["paper_size", "paper size", "size", "envelope", "basic_oe", "basic oe"],
    "pockets": ["pockets", "inserts", "pieces"],
    "sort_type": ["sort_type", "sort type", "sort"],
    "print_coverage": ["print_coverage", "print coverage", "coverage", "color_type"],
    "num_addresses": ["num_addresses", "number of addresses", "addresses"],
    "application_type": ["application_type", "application type", "application", "item_type", "item type",
                         "affix_type", "affix type"],
    "label_size": ["label_size", "label size", "label", "affix_label", "affix label", "affix lable"],
    "fold_type": ["fold_type", "fold type", "fold"],
    "paper_stock": ["paper_stock", "paper stock", "stock", "paper_type"],
    "print_type": ["print_type", "print type", "printing"],
    "color": ["color", "colour", "print_color"],
    "read_write": ["read_write", "read write", "read/write", "rw", "r/w"],
    "affix": ["affix"],
    "glue_closed": ["glue_closed", "glue closed", "glue"],
    "stamps": ["stamps", "stamp"],
}

TEXT_REQUIREMENT_FIELDS = (
    "paper_size", "print_coverage", "application_type", "label_size", "fold_type", "paper_stock",
    "print_type", "color", "read_write", "affix", "glue_closed", "stamps",
)
INTEGER_REQUIREMENT_FIELDS = ("pockets", "num_addresses")

PLACEHOLDER_JOB_NUMBERS = ("tbd", "n/a")
SORT_FALSY_VALUES = ("false", "no", "n", "0", "none", "na")

PREFERRED_SHEETS = ("jobs", "data")

# Free-text date cells from the planning sheets: "now 10/9", "rolls in 9/24 AM", "10/29-10/31"
_DATE_PREFIX_RE = re.compile(r"^(now|data|rolls in|mat in|arrives folded|in folded|p/?u|pickup|drop \d+ -?)\s+",
                             re.IGNORECASE)
_MONTH_DAY_RE = re.compile(r"(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?")
_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")
_LEADING_FLOAT_RE = re.compile(r"^\s*([+-]?(\d+\.?\d*|\.\d+))")
_SPACES_RE = re.compile(r"\s+")

FACILITY_LEMONT = 2
FACILITY_BOLINGBROOK = 1


def _normalize_header(header) -> str:
    return _SPACES_RE.sub(" ", str(header).lower().strip())


def _text(value) -> str:
    """Cell as trimmed text; whole floats lose their '.0'."""
    if is_empty_cell(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _parse_int(value) -> Optional[int]:
    match = _LEADING_INT_RE.match(_text(value).replace(",", ""))
    return int(match.group(1)) if match else None


def _parse_float(value) -> Optional[float]:
    match = _LEADING_FLOAT_RE.match(_text(value).replace(",", ""))
    return float(match.group(1)) if match else None


def _two_digit_year(year: int) -> int:
    if year >= 100:
        return year
    return 2000 + year if year < 50 else 1900 + year


def parse_loose_date(value, default_year: Optional[int] = None) -> Optional[date]:
    """
    Parse a date cell from a hand-kept jobs sheet.

    Native dates and Excel serials are read directly. Text may carry a
    prefix ("now", "rolls in", "PU", ...), a list ("10/2,10/9") or a range
    ("10/29-10/31"); the first month/day found is used, in default_year when
    it has no year. ISO text is accepted too. Anything else is None.
    """
    if is_empty_cell(value):
        return None
    if not isinstance(value, str):
        try:
            return parse_excel_date(value)
        except RowParseError:
            return None

    text = _DATE_PREFIX_RE.sub("", value.strip())
    text = text.split(",")[0].strip()
    match = _MONTH_DAY_RE.search(text)
    if not match:
        try:
            return parse_excel_date(text) if text else None
        except RowParseError:
            return None

    month, day = int(match.group(1)), int(match.group(2))
    year = _two_digit_year(int(match.group(3))) if match.group(3) else (default_year or date.today().year)
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_facility(value) -> int:
    """Lemont (also Shakopee, or '2') is facility 2; everything else is Bolingbrook."""
    text = _text(value).lower()
    if "lemont" in text or "shakopee" in text or text == "2":
        return FACILITY_LEMONT
    return FACILITY_BOLINGBROOK


def is_hard_schedule(value) -> bool:
    return "hard" in _text(value).lower()


def has_sort_requirement(value) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and not is_empty_cell(value):
        return value != 0
    text = _text(value)
    return bool(text) and text.lower() not in SORT_FALSY_VALUES


def find_column_value(row: Dict[str, Any], field_name: str):
    """First column whose header matches one of the field's aliases, in alias order."""
    normalized = {_normalize_header(key): key for key in reversed(list(row.keys()))}
    for alias in COLUMN_ALIASES.get(field_name, [field_name]):
        key = normalized.get(_normalize_header(alias))
        if key is not None:
            return row[key]
    return None


@dataclass
class ParsedBulkJob:
    row: int
    job_number: str
    quantity: Optional[int]
    sub_client: str = ""
    client: Optional[str] = None
    schedule_type: Optional[str] = None
    facility: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    process_types: List[str] = field(default_factory=list)
    requirements: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row": self.row,
            "job_number": self.job_number,
            "sub_client": self.sub_client,
            "client": self.client,
            "quantity": self.quantity,
            "schedule_type": self.schedule_type,
            "facility": self.facility,
            "name": self.name,
            "description": self.description,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "process_types": self.process_types,
            "requirements": self.requirements,
            "errors": self.errors,
            "warnings": self.warnings,
        }


@dataclass
class JobImportResult:
    jobs: List[ParsedBulkJob] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    skipped_rows: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def sub_clients(self) -> List[str]:
        return sorted({job.sub_client for job in self.jobs if job.sub_client})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jobs": [job.to_dict() for job in self.jobs],
            "errors": self.errors,
            "warnings": self.warnings,
            "sub_clients": self.sub_clients,
            "skipped_rows": self.skipped_rows,
        }


def _build_requirements(row: Dict[str, Any], process_types: List[str], price_per_m: float,
                        sort_type: Optional[str]) -> List[Dict[str, Any]]:
    shared: Dict[str, Any] = {}
    for name in TEXT_REQUIREMENT_FIELDS:
        text = _text(find_column_value(row, name))
        if text:
            shared[name] = text
    for name in INTEGER_REQUIREMENT_FIELDS:
        number = _parse_int(find_column_value(row, name))
        if number is not None:
            shared[name] = number
    if sort_type:
        shared["sort_type"] = sort_type

    # Sort carries no price of its own
    return [
        {"process_type": process_type, "price_per_m": 0 if process_type == "sort" else price_per_m, **shared}
        for process_type in process_types
    ]


def _requirement_warnings(requirement: Dict[str, Any]) -> List[str]:
    return [f"{requirement['process_type']}: {message}" for message in validate_requirement(requirement)]


def parse_job_row(row: Dict[str, Any], row_number: int, default_year: Optional[int] = None) -> ParsedBulkJob:
    """
    Turn one sheet row into a draft job.

    Only quantity is required. A missing job number, client, process type
    or price is a warning; so are requirement fields that do not fit their
    process type, since those are edited before the job goes live.
    """
    job_number_raw = find_column_value(row, "job_number")
    quantity_raw = find_column_value(row, "quantity")
    process_raw = find_column_value(row, "process_type")
    price_raw = find_column_value(row, "price_per_m")

    errors: List[str] = []
    warnings: List[str] = []

    job_number = _text(job_number_raw).replace(",", "")
    if not job_number:
        warnings.append("No job_number specified - will need to add later")

    quantity = _parse_int(quantity_raw)
    if not _text(quantity_raw):
        errors.append("Missing quantity - required field")
    elif quantity is None or quantity <= 0:
        errors.append(f"Invalid quantity: '{_text(quantity_raw)}'")

    if not _text(process_raw):
        warnings.append("No process_type specified - will need to add later")
    price_per_m = 0.0
    if _text(price_raw):
        price_per_m = _parse_float(price_raw) or 0.0
        if price_per_m < 0:
            errors.append(f"Invalid price_per_m: '{_text(price_raw)}'")
    else:
        warnings.append("No price_per_m specified - will default to 0")

    process_types: List[str] = []
    for part in _text(process_raw).split(","):
        key = part.strip().lower()
        if key and key != "sort":
            key = normalize_process_type(key)
        if key and key not in process_types:
            process_types.append(key)

    sort_raw = find_column_value(row, "sort_type")
    sort_type = None
    if has_sort_requirement(sort_raw):
        sort_type = _text(sort_raw) or "TRUE"
        if "sort" not in process_types:
            process_types.append("sort")

    sub_client_text = _text(find_column_value(row, "sub_client"))
    client_text = _text(find_column_value(row, "client"))
    sub_client = sub_client_text or client_text
    if not sub_client:
        warnings.append("No client specified - will need to assign a client")

    requirements = _build_requirements(row, process_types, price_per_m, sort_type)
    for requirement in requirements:
        warnings.extend(_requirement_warnings(requirement))

    start_date = parse_loose_date(find_column_value(row, "start_date"), default_year)
    end_date = parse_loose_date(find_column_value(row, "end_date"), default_year)
    if start_date and end_date and end_date < start_date:
        warnings.append("End date is before start date")

    return ParsedBulkJob(
        row=row_number,
        job_number=job_number,
        quantity=quantity,
        sub_client=sub_client,
        client=client_text or None,
        schedule_type=_text(find_column_value(row, "schedule_type")) or None,
        facility=_text(find_column_value(row, "facility")) or None,
        name=_text(find_column_value(row, "name")) or None,
        description=_text(find_column_value(row, "description")) or None,
        start_date=start_date,
        end_date=end_date,
        process_types=process_types,
        requirements=requirements,
        errors=errors,
        warnings=warnings,
    )


def _read_rows(filename: str, file_bytes: bytes) -> List[Dict[str, Any]]:
    """Rows as header -> value dicts, from the 'Jobs'/'Data' sheet or the first one."""
    if filename.lower().endswith(".csv"):
        frame = pd.read_csv(BytesIO(file_bytes), header=None, dtype=str, keep_default_na=False)
    else:
        sheets = pd.read_excel(BytesIO(file_bytes), header=None, sheet_name=None)
        name = next((n for n in sheets if str(n).lower() in PREFERRED_SHEETS), next(iter(sheets)))
        frame = sheets[name]

    rows = frame.values.tolist()
    # Some exports start with a blank row above the headers
    while rows and all(is_empty_cell(cell) for cell in rows[0]):
        rows = rows[1:]
    if not rows:
        return []

    headers = [_text(h) or f"__empty_{i}" for i, h in enumerate(rows[0])]
    return [dict(zip(headers, values)) for values in rows[1:]]


def parse_job_file(filename: str, file_bytes: bytes, default_year: Optional[int] = None) -> JobImportResult:
    """
    Parse an uploaded jobs sheet.

    Rows with no job number, quantity or client are skipped, as are rows
    whose job number is a placeholder (TBD, N/A). Repeated job numbers are
    reported as file-level warnings.
    """
    result = JobImportResult()

    file_error = validate_file(filename, len(file_bytes))
    if file_error:
        result.errors.append(file_error)
        return result

    try:
        rows = _read_rows(filename, file_bytes)
    except (ValueError, ImportError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        logger.warning("Failed to read jobs sheet", filename=filename, error=str(e))
        result.errors.append(f"Failed to parse file: {e}")
        return result

    for index, row in enumerate(rows):
        row_number = index + 2  # header is sheet row 1
        job_number = _text(find_column_value(row, "job_number")).lower()
        quantity = _text(find_column_value(row, "quantity"))
        client = _text(find_column_value(row, "sub_client")) or _text(find_column_value(row, "client"))

        if not job_number and not quantity and not client:
            result.skipped_rows.append({"row": row_number,
                                        "reason": "Empty row (no job number, quantity, or client)"})
            continue
        if job_number in PLACEHOLDER_JOB_NUMBERS and quantity:
            result.skipped_rows.append({"row": row_number, "reason": f'Placeholder job number: "{job_number}"'})
            continue

        result.jobs.append(parse_job_row(row, row_number, default_year))

    seen = set()
    for job in result.jobs:
        if job.job_number in seen:
            result.warnings.append(f"Duplicate job_number {job.job_number} found")
        seen.add(job.job_number)

    logger.info("Parsed jobs sheet", filename=filename, jobs=len(result.jobs),
                skipped=len(result.skipped_rows), invalid=sum(1 for j in result.jobs if not j.is_valid))
    return result


def even_weekly_split(quantity: int, start: date, end: date) -> Optional[List[int]]:
    """
    Whole weeks between start and end, each with an equal share and the
    remainder on the last week. None when end is before start.
    """
    weeks = math.ceil((end - start).days / 7)
    if weeks < 0:
        return None
    weeks = max(weeks, 1)
    per_week = quantity // weeks
    split = [per_week] * weeks
    split[-1] += quantity - per_week * weeks
    return split


def build_job_payload(job: ParsedBulkJob) -> Dict[str, Any]:
    """Xano create-job body for a parsed row. Quantities land on the Monday of each week."""
    daily_split = None
    if job.start_date and job.end_date:
        weekly = even_weekly_split(job.quantity or 0, job.start_date, job.end_date)
        if weekly:
            daily_split = [[0, total, 0, 0, 0, 0, 0] for total in weekly]

    total_billing = sum((job.quantity or 0) / 1000 * req["price_per_m"] for req in job.requirements)
    client_name = job.client or job.sub_client

    return {
        "job_number": job.job_number,
        "client": json.dumps({"id": None, "name": client_name}) if client_name else None,
        "sub_client": json.dumps({"id": None, "name": job.sub_client}) if job.sub_client else None,
        "facilities_id": parse_facility(job.facility),
        "job_name": job.name,
        "description": job.description,
        "quantity": job.quantity,
        "start_date": date_to_timestamp(job.start_date) if job.start_date else None,
        "due_date": date_to_timestamp(job.end_date) if job.end_date else None,
        "service_type": job.process_types[0] if job.process_types else "insert",
        "pockets": str(job.requirements[0].get("pockets", 2)) if job.requirements else "2",
        "requirements": json.dumps(job.requirements),
        "price_per_m": str(job.requirements[0]["price_per_m"]) if job.requirements else "0",
        "add_on_charges": "0",
        "ext_price": "0",
        "total_billing": f"{total_billing:.2f}" if job.requirements else "0",
        "daily_split": daily_split,
        "confirmed": is_hard_schedule(job.schedule_type),
    }
