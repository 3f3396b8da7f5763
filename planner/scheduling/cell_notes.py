"""Projection cell notes: keys for a table cell (job x period) and grouping of stored notes."""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

NOTE_GRANULARITIES = ("weekly", "monthly", "quarterly")


@dataclass(frozen=True)
class CellIdentifier:
    job_id: int
    granularity: str
    period_start: int  # epoch ms
    period_end: int  # epoch ms


def get_cell_key(cell: CellIdentifier) -> str:
    """'{job_id}:{granularity}:{period_start}:{period_end}'"""
    return f"{cell.job_id}:{cell.granularity}:{cell.period_start}:{cell.period_end}"


def get_period_key(cell: CellIdentifier) -> str:
    """Period part of the cell key, as stored with the note."""
    return f"{cell.granularity}:{cell.period_start}:{cell.period_end}"


def parse_cell_key(cell_key: str) -> Optional[CellIdentifier]:
    parts = cell_key.split(":")
    if len(parts) != 4:
        return None

    job_id, granularity, period_start, period_end = parts
    if granularity not in NOTE_GRANULARITIES:
        return None
    try:
        return CellIdentifier(int(job_id), granularity, int(period_start), int(period_end))
    except ValueError:
        return None


def cell_from_dict(data: Dict[str, Any]) -> CellIdentifier:
    """Build a CellIdentifier from request data, raising ValueError on bad input."""
    missing = [k for k in ("job_id", "granularity", "period_start", "period_end") if data.get(k) in (None, "")]
    if missing:
        raise ValueError(f"Missing required field(s): {', '.join(missing)}")
    if data["granularity"] not in NOTE_GRANULARITIES:
        raise ValueError(f"Unknown granularity: {data['granularity']}")
    try:
        return CellIdentifier(int(data["job_id"]), data["granularity"],
                              int(data["period_start"]), int(data["period_end"]))
    except (TypeError, ValueError):
        raise ValueError("job_id, period_start and period_end must be integers")


def build_cell_note_payload(cell: CellIdentifier, text: str, period_label: Optional[str] = None) -> Dict[str, Any]:
    """Xano job_notes body for a note attached to one projection cell."""
    if not text or not text.strip():
        raise ValueError("Note text is required")
    return {
        "jobs_id": [cell.job_id],
        "notes": text.strip(),
        "is_cell_note": True,
        "cell_job_id": cell.job_id,
        "cell_period_key": get_period_key(cell),
        "cell_period_label": period_label,
        "cell_granularity": cell.granularity,
    }


def note_cell_key(note: Dict[str, Any]) -> Optional[str]:
    """Cell key of a stored note, or None for job-level and blank notes."""
    text = note.get("notes")
    if not isinstance(text, str) or not text.strip():
        return None
    if not note.get("is_cell_note") or not note.get("cell_job_id") or not note.get("cell_period_key"):
        return None
    return f"{note['cell_job_id']}:{note['cell_period_key']}"


def group_cell_notes(notes: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Cell notes keyed by cell key, in the order Xano returned them."""
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for note in notes:
        key = note_cell_key(note)
        if key:
            grouped.setdefault(key, []).append(note)
    return grouped
