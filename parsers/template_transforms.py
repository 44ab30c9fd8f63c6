"""
Standard asset template (bgc-template) transforms.

The template is filled in by hand, so every lookup table is lenient and
falls back to a sensible default instead of failing the row.
"""

from typing import Optional

from models.import_mapping import ColumnMapping, TransformationResult
from parsers.field_transforms import (
    apply_column_mappings,
    column as _m,
    field_transform,
    generated_tag,
)

DEVICE_TYPE_MAP: dict[str, str] = {
    "laptop": "LAPTOP",
    "desktop": "DESKTOP",
    "tablet": "TABLET",
    "phone": "PHONE",
    "server": "SERVER",
    "workstation": "DESKTOP",
    "all-in-one": "DESKTOP",
}

STATUS_MAP: dict[str, str] = {
    "active": "AVAILABLE",
    "available": "AVAILABLE",
    "assigned": "ASSIGNED",
    "in use": "ASSIGNED",
    "spare": "SPARE",
    "maintenance": "MAINTENANCE",
    "repair": "MAINTENANCE",
    "retired": "RETIRED",
    "disposed": "DISPOSED",
}

CONDITION_MAP: dict[str, str] = {
    "new": "NEW",
    "brand new": "NEW",
    "excellent": "GOOD",
    "very good": "GOOD",
    "good": "GOOD",
    "fair": "FAIR",
    "poor": "POOR",
    "damaged": "POOR",
    "broken": "POOR",
}

TAG_PREFIXES: dict[str, str] = {"LAPTOP": "LT", "DESKTOP": "DT", "PHONE": "PH"}

MAX_PURCHASE_PRICE = 100000.0


@field_transform("template_asset_tag")
def normalize_template_asset_tag(value: str) -> Optional[str]:
    """
    Numeric tags are padded, bare alphanumeric tags gain the BGC prefix.

    "4315" -> "BGC004315", "a100" -> "BGCA100", "BGC-77" -> "BGC-77".
    """
    trimmed = (value or "").strip()
    if not trimmed:
        return None
    if trimmed.isdigit():
        return f"BGC{trimmed.zfill(6)}"
    upper = trimmed.upper()
    if not upper.startswith("BGC") and upper.isalnum():
        return f"BGC{upper}"
    return upper


@field_transform("device_type")
def map_device_type(value: str) -> str:
    return DEVICE_TYPE_MAP.get((value or "").strip().lower(), "OTHER")


@field_transform("template_status")
def map_status(value: str) -> str:
    return STATUS_MAP.get((value or "").strip().lower(), "AVAILABLE")


@field_transform("template_condition")
def map_condition(value: str) -> str:
    return CONDITION_MAP.get((value or "").strip().lower(), "GOOD")


@field_transform("price")
def parse_purchase_price(value: str) -> Optional[float]:
    """Strip currency symbols; negative prices are dropped, huge ones capped."""
    cleaned = (value or "").strip()
    for symbol in "$,€£¥":
        cleaned = cleaned.replace(symbol, "")
    if not cleaned:
        return None
    price = float(cleaned)  # ValueError becomes a row note
    if price < 0:
        return None
    return min(price, MAX_PURCHASE_PRICE)


TEMPLATE_MAPPINGS: list[ColumnMapping] = [
    _m("Service Tag", "serial_number", transform="strip", required=True, description="Serial number"),
    _m("Brand", "make", transform="strip", description="Manufacturer"),
    _m("Model", "model", transform="strip", description="Device model"),
    _m("Purchase date", "purchase_date", transform="to_iso", description="Purchase date"),
    _m("Location of computer", "location", transform="strip", description="Office (resolved to id)"),
    _m("Asset Tag", "asset_tag", transform="template_asset_tag", description="Asset tag"),
    _m("Assigned User", "assigned_to", transform="strip", description="Assigned user (directory lookup)"),
    _m("Device Type", "asset_type", transform="device_type", description="Asset type"),
    _m("Status", "status", transform="template_status", description="Asset status"),
    _m("Condition", "condition", transform="template_condition", description="Device condition"),
    _m("Purchase Price", "purchase_price", transform="price", description="Purchase price"),
    _m("Warranty Start", "warranty_start_date", transform="to_iso", description="Warranty start"),
    _m("Warranty End", "warranty_end_date", transform="to_iso", description="Warranty end"),
    _m("Notes", "notes", transform="strip", description="Free-text notes"),
]


def transform_template_row(row: dict[str, str]) -> TransformationResult:
    draft = apply_column_mappings(row, TEMPLATE_MAPPINGS)
    direct = draft.direct

    direct.setdefault("condition", "GOOD")
    direct.setdefault("asset_type", "LAPTOP")
    direct.setdefault("make", "Dell")
    direct.setdefault("model", "Unknown")
    direct["source"] = "EXCEL"

    if not direct.get("asset_tag"):
        direct["asset_tag"] = generated_tag(TAG_PREFIXES.get(direct["asset_type"], "AS"))

    if "status" not in direct:
        direct["status"] = "ASSIGNED" if direct.get("assigned_to") else "AVAILABLE"

    assignee = direct.get("assigned_to")
    if assignee:
        draft.notes.append(f'Username "{assignee}" requires directory lookup')

    return draft.freeze()
