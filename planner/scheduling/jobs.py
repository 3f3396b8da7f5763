"""
Job record decoding and revenue helpers.

Xano returns several job columns as JSON-encoded strings; parse_job decodes
them into plain Python structures so the engines can work on dicts.
"""
import json
import re
from typing import Any, Dict, List, Optional

from planner.logging_config import get_logger

logger = get_logger(__name__)

UNKNOWN_CLIENT = {"id": 0, "name": "Unknown"}

# Old nested requirement format: {"{\"process_type\":\"insert\"}","{...}"}
_LEGACY_REQUIREMENT_RE = re.compile(r'"\{[^}]+\}"')

_EMPTY_PRICE_VALUES = ("", "undefined", "null")


def _decode_json(value):
    if isinstance(value, str):
        return json.loads(value)
    return value


def parse_requirements(raw) -> List[Dict[str, Any]]:
    """
    Decode the requirements column.

    Accepts a list, a JSON array string, or the legacy brace-wrapped list of
    escaped JSON objects. Anything undecodable yields an empty list.
    """
    if not raw or raw == "{}":
        return []
    if isinstance(raw, list):
        return raw
    if not isinstance(raw, str):
        return []

    text = raw.strip()
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except ValueError:
            return []
        return parsed if isinstance(parsed, list) else []

    requirements = []
    for match in _LEGACY_REQUIREMENT_RE.findall(text[1:-1]):
        cleaned = match[1:-1].replace("\\", "")
        try:
            requirements.append(json.loads(cleaned))
        except ValueError:
            continue
    return requirements


def _parse_optional_json(value):
    if not value:
        return None
    try:
        return _decode_json(value)
    except ValueError:
        return None


def parse_job(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Decode a raw Xano job into a parsed job dict.

    Never raises: if client or machines cannot be decoded, the job comes back
    with the Unknown client, no machines and no requirements.
    """
    job = dict(raw)
    try:
        daily_split = _parse_optional_json(raw.get("daily_split"))
        job.update({
            "requirements": parse_requirements(raw.get("requirements")),
            "daily_split": daily_split if isinstance(daily_split, list) else None,
            "sub_client": _parse_optional_json(raw.get("sub_client")),
            "client": _decode_json(raw.get("client")),
            "machines": _decode_json(raw.get("machines")),
        })
        if not isinstance(job["client"], dict) or not isinstance(job["machines"], list):
            raise ValueError("client/machines have unexpected shape")
    except (TypeError, ValueError) as e:
        logger.debug("Job could not be decoded, using defaults", job_id=raw.get("id"), error=str(e))
        job.update({
            "client": dict(UNKNOWN_CLIENT),
            "sub_client": None,
            "machines": [],
            "requirements": [],
        })
    return job


def parse_jobs(raw_jobs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [parse_job(raw) for raw in raw_jobs]


def parse_price(value) -> float:
    """Parse a price_per_m value; empty, 'undefined' and 'null' count as 0."""
    if value is None:
        return 0.0
    if isinstance(value, str):
        value = value.strip()
        if value in _EMPTY_PRICE_VALUES:
            return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_float(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def get_process_revenue(job: Dict[str, Any], requirement: Dict[str, Any]) -> float:
    """Revenue of a single requirement: quantity / 1000 * price_per_m."""
    return (_to_float(job.get("quantity")) / 1000) * parse_price(requirement.get("price_per_m"))


def get_job_revenue(job: Dict[str, Any]) -> float:
    """
    Total revenue of a job.

    With requirements: sum of per-process revenue plus add_on_charges.
    Without requirements: total_billing.
    """
    requirements: Optional[List[Dict]] = job.get("requirements")
    if requirements:
        revenue = sum(get_process_revenue(job, req) for req in requirements)
        return revenue + _to_float(job.get("add_on_charges"))
    return _to_float(job.get("total_billing"))
