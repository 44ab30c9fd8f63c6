"""
Static column table used when no source module recognises a row.

No business rules: matching headers are copied onto their field as-is.
"""

from typing import Optional

from models.import_mapping import ColumnMapping, TargetBucket, TransformationResult
from parsers.field_transforms import column as _m, find_cell

LEGACY_MAPPINGS: list[ColumnMapping] = [
    _m("Asset Tag", "asset_tag"),
    _m("Serial Number", "serial_number"),
    _m("Serial", "serial_number"),
    _m("Service Tag", "serial_number"),
    _m("Make", "make"),
    _m("Manufacturer", "make"),
    _m("Brand", "make"),
    _m("Model", "model"),
    _m("Asset Type", "asset_type"),
    _m("Type", "asset_type"),
    _m("Status", "status"),
    _m("Condition", "condition"),
    _m("Assigned To", "assigned_to"),
    _m("Assigned User", "assigned_to"),
    _m("Location", "location"),
    _m("Purchase Date", "purchase_date"),
    _m("Purchase Price", "purchase_price"),
    _m("Warranty End Date", "warranty_end_date"),
    _m("Notes", "notes"),
    _m("Operating System", "operating_system", TargetBucket.EXTENDED),
    _m("Processor", "processor", TargetBucket.EXTENDED),
    _m("RAM", "ram", TargetBucket.EXTENDED),
    _m("Storage", "storage", TargetBucket.EXTENDED),
]


def transform_legacy_row(row: dict[str, str], reason: Optional[str] = None) -> TransformationResult:
    """
    Copy known columns onto fields. Never raises.

    The first non-blank column wins when several map to one field.
    """
    direct: dict[str, str] = {}
    extended: dict[str, str] = {}

    for mapping in LEGACY_MAPPINGS:
        target = direct if mapping.target_bucket == TargetBucket.DIRECT else extended
        if mapping.target_field in target:
            continue
        value = find_cell(row, mapping.source_column)
        if value is not None and value.strip():
            target[mapping.target_field] = value.strip()

    notes = [reason] if reason else []
    return TransformationResult(
        direct_fields=direct,
        extended_attributes=extended,
        notes=notes,
    )
