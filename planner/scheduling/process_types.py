"""
Process type configuration.

Defines the production steps a job can require (Insert, Fold, Laser, ...) and
the requirement fields each one carries.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class FieldConfig:
    name: str
    label: str
    type: str  # text | number | dropdown | currency
    required: bool
    options: Optional[List[str]] = None
    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = None
    placeholder: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "label": self.label,
            "type": self.type,
            "required": self.required,
        }
        if self.options is not None:
            data["options"] = list(self.options)
        validation = {k: v for k, v in (("min", self.min), ("max", self.max), ("step", self.step)) if v is not None}
        if validation:
            data["validation"] = validation
        if self.placeholder is not None:
            data["placeholder"] = self.placeholder
        return data


@dataclass(frozen=True)
class ProcessTypeConfig:
    key: str
    label: str
    color: str
    fields: List[FieldConfig] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "color": self.color,
            "fields": [f.to_dict() for f in self.fields],
        }


COMMON_PAPER_SIZES = ["6x9", "6x12", "9x12", "10x13", "12x15", "#10", "11x17"]

DEFAULT_PROCESS_COLOR = "#6B7280"


def _price_field() -> FieldConfig:
    return FieldConfig("price_per_m", "Price (per/m)", "currency", True, min=0, step=0.01, placeholder="0.00")


def _paper_size_field(options=None, label="Paper Size") -> FieldConfig:
    return FieldConfig("paper_size", label, "dropdown", True, options=options or COMMON_PAPER_SIZES)


PROCESS_TYPE_CONFIGS: List[ProcessTypeConfig] = [
    ProcessTypeConfig("insert", "Insert", "#3B82F6", [
        _paper_size_field(),
        FieldConfig("pockets", "Number of Pockets/Inserts", "number", False, min=0, max=12, step=1, placeholder="0"),
        _price_field(),
    ]),
    ProcessTypeConfig("sort", "Sort", "#8B5CF6", [
        FieldConfig("sort_type", "Sort Type", "dropdown", True,
                    options=["Standard Sort", "Presort", "EDDM", "Full Service"]),
        _paper_size_field(),
        _price_field(),
    ]),
    ProcessTypeConfig("inkjet", "Inkjet", "#10B981", [
        FieldConfig("print_coverage", "Print Coverage", "dropdown", True,
                    options=["Black & White", "Full Color", "Spot Color"]),
        _paper_size_field(),
        FieldConfig("num_addresses", "Number of Addresses", "number", False, min=0, step=1, placeholder="0"),
        _price_field(),
    ]),
    ProcessTypeConfig("labelApply", "Label/Apply", "#F59E0B", [
        FieldConfig("application_type", "Application Type", "dropdown", True,
                    options=["Label Application", "Affix", "Wafer Seal"]),
        FieldConfig("label_size", "Label Size", "dropdown", True,
                    options=["1x2.625", "2x3", "3x5", "4x6", "Custom"]),
        _paper_size_field(label="Paper Size (Base Mailpiece)"),
        _price_field(),
    ]),
    ProcessTypeConfig("fold", "Fold", "#EC4899", [
        FieldConfig("fold_type", "Fold Type", "dropdown", True,
                    options=["Half Fold", "Tri-fold", "Z-fold", "Double Parallel", "Roll Fold"]),
        FieldConfig("paper_stock", "Paper Stock", "dropdown", True,
                    options=["20# Bond", "24# Bond", "60# Text", "80# Text", "100# Text", "Cardstock"]),
        _paper_size_field(options=["8.5x11", "8.5x14", "11x17", "12x18", "Custom"]),
        _price_field(),
    ]),
    ProcessTypeConfig("laser", "Laser", "#EF4444", [
        FieldConfig("print_type", "Print Type", "dropdown", True,
                    options=["Simplex (1-sided)", "Duplex (2-sided)"]),
        FieldConfig("paper_stock", "Paper Stock", "dropdown", True,
                    options=["20# Bond", "24# Bond", "60# Cover", "80# Cover"]),
        _paper_size_field(options=["Letter", "Legal", "Tabloid", "11x17"]),
        FieldConfig("color", "Color", "dropdown", True, options=["Black & White", "Full Color"]),
        _price_field(),
    ]),
    ProcessTypeConfig("hpPress", "HP Press", "#6366F1", [
        FieldConfig("print_type", "Print Type", "dropdown", True, options=["Simplex", "Duplex"]),
        FieldConfig("paper_stock", "Paper Stock", "dropdown", True,
                    options=["80# Text", "100# Text", "80# Cover", "100# Cover", "12pt Cardstock"]),
        _paper_size_field(options=["12x18", "13x19", "Custom"]),
        FieldConfig("color", "Color", "dropdown", False, options=["Full Color"]),
        _price_field(),
    ]),
    ProcessTypeConfig("data", "Data", "#14B8A6"),
    # Alias keys used by imported job sheets
    ProcessTypeConfig("affixGlue", "Affix glue+", "#F59E0B"),
    ProcessTypeConfig("affixLabel", "Affix label+", "#F59E0B"),
    ProcessTypeConfig("insertPlus", "Insert+", "#3B82F6"),
    ProcessTypeConfig("insert9to12", "9-12 in+", "#3B82F6"),
    ProcessTypeConfig("insert13Plus", "13+ in+", "#3B82F6"),
    ProcessTypeConfig("inkjetPlus", "Ink jet+", "#10B981"),
    ProcessTypeConfig("sortAlt", "Sort", "#3B82F6"),
]

# Lower-cased alias spellings -> canonical key
_ALIASES: Dict[str, str] = {
    "affixglue": "labelApply",
    "affix glue+": "labelApply",
    "affixlabel": "labelApply",
    "affix label+": "labelApply",
    "insertplus": "insert",
    "insert+": "insert",
    "insert9to12": "insert",
    "9-12 in+": "insert",
    "insert13plus": "insert",
    "13+ in+": "insert",
    "inkjetplus": "inkjet",
    "ink jet+": "inkjet",
    "sortalt": "insert",
}


def get_process_type_config(process_type_key: str) -> Optional[ProcessTypeConfig]:
    for config in PROCESS_TYPE_CONFIGS:
        if config.key == process_type_key:
            return config
    return None


def get_all_process_type_keys() -> List[str]:
    return [config.key for config in PROCESS_TYPE_CONFIGS]


def get_process_type_options() -> List[Dict[str, str]]:
    """Process types as value/label pairs for dropdowns."""
    return [{"value": config.key, "label": config.label} for config in PROCESS_TYPE_CONFIGS]


def get_process_type_color(process_type_key: str) -> str:
    config = get_process_type_config(process_type_key)
    return config.color if config else DEFAULT_PROCESS_COLOR


def normalize_process_type(process_type: str) -> str:
    """
    Normalize process type variations to standard keys.

    Examples:
        "Insert+" -> "insert", "Ink Jet" -> "inkjet", "L/A" -> "labelApply",
        "HP Press" -> "hpPress". Unrecognized values come back lower-cased.
    """
    normalized = (process_type or "").lower().strip()

    if normalized in _ALIASES:
        return _ALIASES[normalized]
    # Lower-case "sort" comes from the legacy sheets, where it meant inserting
    if normalized == "sort" and process_type != "Sort":
        return "insert"

    if "inkjet" in normalized or normalized in ("ij", "ink jet"):
        return "inkjet"
    if "label" in normalized or normalized == "l/a" or "affix" in normalized:
        return "labelApply"
    if "hp" in normalized and "press" in normalized:
        return "hpPress"

    for config in PROCESS_TYPE_CONFIGS:
        if config.key == normalized or config.label.lower() == normalized:
            return config.key

    return normalized


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def validate_requirement(requirement: Dict[str, Any]) -> List[str]:
    """
    Validate a job requirement against its process type's field definitions.

    Args:
        requirement: dict with 'process_type' plus dynamic fields

    Returns:
        list of error messages (empty when valid)
    """
    errors: List[str] = []
    raw_type = requirement.get("process_type")
    if _is_blank(raw_type):
        return ["process_type is required"]

    config = get_process_type_config(normalize_process_type(str(raw_type)))
    if config is None:
        return [f"Unknown process type: {raw_type}"]

    for field_config in config.fields:
        value = requirement.get(field_config.name)
        if _is_blank(value):
            if field_config.required:
                errors.append(f"{field_config.label} is required")
            continue

        if field_config.type == "dropdown" and field_config.options and value not in field_config.options:
            errors.append(f"{field_config.label} must be one of: {', '.join(field_config.options)}")
        elif field_config.type in ("number", "currency"):
            try:
                numeric = float(value)
            except (TypeError, ValueError):
                errors.append(f"{field_config.label} must be a number")
                continue
            if field_config.min is not None and numeric < field_config.min:
                errors.append(f"{field_config.label} must be at least {field_config.min:g}")
            if field_config.max is not None and numeric > field_config.max:
                errors.append(f"{field_config.label} must be at most {field_config.max:g}")

    return errors
