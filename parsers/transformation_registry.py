"""
Registry of per-source transformation modules.

The set of sources is closed; `transform` dispatches on the source id and
falls back to the legacy column table when the source is unknown, the row
carries none of the module's columns, or the module itself breaks.
"""

from dataclasses import dataclass
from typing import Callable

import structlog

from exceptions import UnknownImportSourceError
from models.import_mapping import (
    ColumnMapping,
    ImportSourceInfo,
    TransformationResult,
    ensure_unique_mappings,
)
from parsers.field_transforms import has_any_column, validate_required
from parsers.legacy_mapping import transform_legacy_row
from parsers.ninjaone_transforms import (
    NINJAONE_MAPPINGS,
    NINJAONE_SERVER_MAPPINGS,
    transform_ninjaone_row,
    transform_ninjaone_server_row,
)
from parsers.carrier_transforms import (
    TELUS_MAPPINGS,
    ROGERS_MAPPINGS,
    transform_telus_row,
    transform_rogers_row,
)
from parsers.template_transforms import TEMPLATE_MAPPINGS, transform_template_row

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ImportSourceModule:
    """One source format: its mapping table and row transform."""
    source_id: str
    name: str
    description: str
    mappings: tuple[ColumnMapping, ...]
    transform_row: Callable[[dict[str, str]], TransformationResult]

    def __post_init__(self):
        ensure_unique_mappings(list(self.mappings))


IMPORT_SOURCES: dict[str, ImportSourceModule] = {
    module.source_id: module
    for module in (
        ImportSourceModule(
            source_id="ninjaone",
            name="NinjaOne Endpoints",
            description="NinjaOne RMM device export (desktops, laptops, tablets)",
            mappings=tuple(NINJAONE_MAPPINGS),
            transform_row=transform_ninjaone_row,
        ),
        ImportSourceModule(
            source_id="ninjaone-servers",
            name="NinjaOne Servers",
            description="NinjaOne RMM server export",
            mappings=tuple(NINJAONE_SERVER_MAPPINGS),
            transform_row=transform_ninjaone_server_row,
        ),
        ImportSourceModule(
            source_id="telus",
            name="Telus Mobility",
            description="Telus phone line invoice",
            mappings=tuple(TELUS_MAPPINGS),
            transform_row=transform_telus_row,
        ),
        ImportSourceModule(
            source_id="rogers",
            name="Rogers Wireless",
            description="Rogers phone line invoice",
            mappings=tuple(ROGERS_MAPPINGS),
            transform_row=transform_rogers_row,
        ),
        ImportSourceModule(
            source_id="bgc-template",
            name="Asset Template",
            description="Standard hand-filled asset spreadsheet",
            mappings=tuple(TEMPLATE_MAPPINGS),
            transform_row=transform_template_row,
        ),
    )
}


def get_supported_sources() -> list[str]:
    return list(IMPORT_SOURCES)


def is_source_supported(source_id: str) -> bool:
    return source_id in IMPORT_SOURCES


def get_source(source_id: str) -> ImportSourceModule:
    """
    Look up a source module.

    Raises:
        UnknownImportSourceError: If the id is not registered
    """
    module = IMPORT_SOURCES.get(source_id)
    if module is None:
        raise UnknownImportSourceError(source_id, get_supported_sources())
    return module


def get_mappings(source_id: str) -> list[ColumnMapping]:
    return list(get_source(source_id).mappings)


def get_source_info() -> list[ImportSourceInfo]:
    return [
        ImportSourceInfo(
            source_id=module.source_id,
            name=module.name,
            description=module.description,
            mappings=list(module.mappings),
        )
        for module in IMPORT_SOURCES.values()
    ]


def transform(source_id: str, raw_row: dict[str, str]) -> TransformationResult:
    """
    Transform one raw row with the module for `source_id`.

    Never raises: anything the module cannot handle goes through the
    legacy column table with a note saying why.
    """
    module = IMPORT_SOURCES.get(source_id)
    if module is None:
        return transform_legacy_row(
            raw_row, f'Unknown import source "{source_id}"; used legacy column mapping'
        )

    if not has_any_column(raw_row, list(module.mappings)):
        return transform_legacy_row(
            raw_row, f"Row has no {module.name} columns; used legacy column mapping"
        )

    try:
        return module.transform_row(raw_row)
    except Exception as e:
        logger.error(
            "source_transform_failed",
            source_id=source_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return transform_legacy_row(
            raw_row, f"{module.name} transform failed ({e}); used legacy column mapping"
        )


def transform_rows(source_id: str, rows: list[dict[str, str]]) -> list[TransformationResult]:
    results = [transform(source_id, row) for row in rows]
    logger.info(
        "rows_transformed",
        source_id=source_id,
        count=len(results),
        invalid=sum(1 for r in results if not r.is_valid),
    )
    return results


def validate_row(source_id: str, raw_row: dict[str, str]) -> list[str]:
    """Missing required target fields for this source's mappings."""
    return validate_required(raw_row, get_mappings(source_id))
