"""
Production spreadsheet parsing.

Reads uploaded .xlsx/.xls/.csv production sheets with pandas and turns each
row into a job number, quantity, optional date and optional notes.
"""
import numbers
import os
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from io import BytesIO
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from planner.logging_config import get_logger

logger = get_logger(__name__)

MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB
ALLOWED_EXTENSIONS = (".xlsx", ".xls", ".csv")

# Header matching is case-insensitive substring matching, first column wins
EXPECTED_COLUMNS = {
    "job_number": ["job number", "job_number", "jobnumber", "job #", "job"],
    "quantity": ["production quantity", "quantity", "qty", "amount", "production"],
    "date": ["date", "production date", "entry date"],
    "notes": ["notes", "note", "comments", "comment", "description"],
}

# Excel serial day 0, accounting for the 1900 leap year bug
EXCEL_EPOCH = date(1899, 12, 30)

_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_US_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_SERIAL_RE = re.compile(r"^\d+(\.\d+)?$")
_NON_NUMERIC_RE = re.compile(r"[^0-9.]")


class RowParseError(ValueError):
    pass


@dataclass
class ParsedRow:
    job_number: Union[int, str]
    quantity: float
    row_index: int
    production_date: Optional[date] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_number": self.job_number,
            "quantity": self.quantity,
            "row_index": self.row_index,
            "date": self.production_date.isoformat() if self.production_date else None,
            "notes": self.notes,
        }


@dataclass
class ParseResult:
    data: List[ParsedRow] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[Dict[str, Any]] = field(default_factory=list)

    def add_error(self, row_index: int, field_name: str, message: str):
        self.errors.append({"row_index": row_index, "field": field_name, "message": message})

    def add_warning(self, row_index: int, field_name: str, message: str):
        self.warnings.append({"row_index": row_index, "field": field_name, "message": message})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": [row.to_dict() for row in self.data],
            "errors": self.errors,
            "warnings": self.warnings,
        }


def validate_file(filename: str, size: int) -> Optional[str]:
    """Returns an error message, or None when the upload is acceptable."""
    if size > MAX_FILE_SIZE:
        return (f"File size ({size / 1024 / 1024:.2f}MB) exceeds maximum allowed size "
                f"({MAX_FILE_SIZE // (1024 * 1024)}MB)")
    extension = os.path.splitext(filename or "")[1].lower()
    if extension not in ALLOWED_EXTENSIONS:
        return "Invalid file type. Please upload an Excel file (.xlsx, .xls) or CSV file (.csv)"
    return None


def is_empty_cell(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def map_columns(header_row: List[Any]) -> Dict[str, int]:
    """Map each expected field to a header index (-1 when absent)."""
    column_map = {key: -1 for key in EXPECTED_COLUMNS}
    for index, header in enumerate(header_row):
        if is_empty_cell(header):
            continue
        header_str = str(header).lower().strip()
        for key, candidates in EXPECTED_COLUMNS.items():
            if column_map[key] == -1 and any(c in header_str for c in candidates):
                column_map[key] = index
    return column_map


def _from_serial(serial) -> date:
    try:
        return EXCEL_EPOCH + timedelta(days=int(serial))
    except (OverflowError, ValueError):
        raise RowParseError(f'Invalid date: "{serial}" is out of range')


def parse_excel_date(value) -> date:
    """
    Parse a sheet date cell.

    Accepts datetime/Timestamp cells, Excel serial numbers (also as text, as
    they arrive from CSV), 'YYYY-MM-DD' and 'MM/DD/YYYY' strings, and
    anything else pandas can read as a date.
    """
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        return _from_serial(value)

    text = str(value).strip()
    if _SERIAL_RE.match(text):
        return _from_serial(float(text))
    try:
        iso = _ISO_DATE_RE.match(text)
        if iso:
            return date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
        us = _US_DATE_RE.match(text)
        if us:
            return date(int(us.group(3)), int(us.group(1)), int(us.group(2)))
    except ValueError:
        pass

    try:
        parsed = pd.to_datetime(text)
    except (TypeError, ValueError, OverflowError):
        parsed = None
    if parsed is not None and not pd.isna(parsed):
        return parsed.date()
    raise RowParseError(f'Invalid date format: "{value}". Expected: YYYY-MM-DD or MM/DD/YYYY')


def _cell(row: List[Any], index: int):
    if index < 0 or index >= len(row):
        return None
    return row[index]


def parse_row(row: List[Any], column_map: Dict[str, int], row_index: int) -> ParsedRow:
    job_value = _cell(row, column_map["job_number"])
    if is_empty_cell(job_value):
        raise RowParseError("Job number is required")

    job_str = _NON_NUMERIC_RE.sub("", str(job_value).strip())
    try:
        job_num = float(job_str)
    except ValueError:
        raise RowParseError(f'Invalid job number: "{job_value}"')
    job_number: Union[int, str] = int(job_num) if job_num.is_integer() else job_str

    quantity_value = _cell(row, column_map["quantity"])
    if is_empty_cell(quantity_value):
        raise RowParseError("Quantity is required")
    try:
        quantity = float(str(quantity_value).replace(",", ""))
    except ValueError:
        quantity = float("nan")
    if quantity != quantity or quantity < 0:
        raise RowParseError(f'Invalid quantity: "{quantity_value}". Must be a positive number')

    parsed = ParsedRow(job_number=job_number, quantity=quantity, row_index=row_index)

    date_value = _cell(row, column_map["date"])
    if not is_empty_cell(date_value):
        parsed.production_date = parse_excel_date(date_value)

    notes_value = _cell(row, column_map["notes"])
    if not is_empty_cell(notes_value):
        parsed.notes = str(notes_value).strip()

    return parsed


def _read_frame(filename: str, file_bytes: bytes) -> pd.DataFrame:
    if filename.lower().endswith(".csv"):
        return pd.read_csv(BytesIO(file_bytes), header=None, dtype=str, keep_default_na=False)
    return pd.read_excel(BytesIO(file_bytes), header=None, sheet_name=0)


def parse_production_file(filename: str, file_bytes: bytes) -> ParseResult:
    """
    Parse an uploaded production sheet.

    Args:
        filename: original upload name, used to pick the reader
        file_bytes: raw file content

    Returns:
        ParseResult with parsed rows plus row-level errors and warnings
    """
    result = ParseResult()

    file_error = validate_file(filename, len(file_bytes))
    if file_error:
        result.add_error(0, "file", file_error)
        return result

    try:
        df = _read_frame(filename, file_bytes)
    except (ValueError, ImportError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        logger.warning("Failed to read production sheet", filename=filename, error=str(e))
        result.add_error(0, "file", f"Failed to parse Excel file: {e}")
        return result

    if df.empty:
        result.add_error(0, "file", "Excel file is empty")
        return result

    rows = df.values.tolist()
    column_map = map_columns(rows[0])

    if column_map["job_number"] == -1:
        result.add_error(1, "headers", "Missing required column: Job Number. Expected one of: "
                         + ", ".join(EXPECTED_COLUMNS["job_number"]))
    if column_map["quantity"] == -1:
        result.add_error(1, "headers", "Missing required column: Quantity. Expected one of: "
                         + ", ".join(EXPECTED_COLUMNS["quantity"]))
    if result.errors:
        return result

    for i, row in enumerate(rows[1:], start=2):  # sheet rows are 1-indexed, header is row 1
        if all(is_empty_cell(cell) for cell in row):
            continue
        try:
            result.data.append(parse_row(row, column_map, i))
        except RowParseError as e:
            result.add_error(i, "row", str(e))

    if not result.data and not result.errors:
        result.add_warning(0, "file", "No data rows found in Excel file")

    logger.info("Parsed production sheet", filename=filename, rows=len(result.data), errors=len(result.errors))
    return result
