"""
Source transformation modules and spreadsheet loading.
"""

from parsers.field_transforms import (
    FIELD_TRANSFORMS,
    apply_column_mappings,
    validate_required,
    simplify_ram,
    to_iso,
    aggregate_volumes,
    parse_device_name,
)
from parsers.transformation_registry import (
    IMPORT_SOURCES,
    transform,
    transform_rows,
    get_mappings,
    get_supported_sources,
    get_source_info,
)
from parsers.spreadsheet_parser import (
    parse_spreadsheet,
    SpreadsheetTable,
)

__all__ = [
    "FIELD_TRANSFORMS",
    "apply_column_mappings",
    "validate_required",
    "simplify_ram",
    "to_iso",
    "aggregate_volumes",
    "parse_device_name",
    "IMPORT_SOURCES",
    "transform",
    "transform_rows",
    "get_mappings",
    "get_supported_sources",
    "get_source_info",
    "parse_spreadsheet",
    "SpreadsheetTable",
]
