"""Facility lookups. Jobs and machines belong to one of two plants."""
from typing import Dict, List, Optional

FACILITY_NAMES: Dict[int, str] = {
    1: "Bolingbrook",
    2: "Lemont",
}


def get_facility_name(facility_id: Optional[int]) -> str:
    """
    Get the facility name from a facility ID.

    Returns "All Facilities" when no facility is selected.
    """
    if facility_id is None:
        return "All Facilities"
    return FACILITY_NAMES.get(facility_id, "Unknown Facility")


def get_all_facilities() -> List[Dict]:
    return [{"id": facility_id, "name": name} for facility_id, name in FACILITY_NAMES.items()]
