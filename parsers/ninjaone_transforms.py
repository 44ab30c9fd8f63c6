"""
NinjaOne RMM export transforms (endpoints and servers).
"""

import structlog

from models.import_mapping import ColumnMapping, TargetBucket, TransformationResult
from parsers.field_transforms import apply_column_mappings, column as _m, RowDraft

logger = structlog.get_logger(__name__)

DIRECT = TargetBucket.DIRECT
EXTENDED = TargetBucket.EXTENDED


# Shared by both tables; the assignee is kept as exported so an
# unresolved "DOMAIN\\user" survives verbatim.
_COMMON_MAPPINGS: list[ColumnMapping] = [
    _m("Warranty End Date", "warranty_end_date", transform="to_iso", description="Warranty end date"),
    _m("Last LoggedIn User", "assigned_to", description="Assigned user (directory lookup)"),
    _m("RAM", "ram", EXTENDED, transform="simplify_ram", description="RAM rounded to common size"),
    _m("OS Name", "operating_system", EXTENDED, description="Operating system"),
    _m("OS Architecture", "os_architecture", EXTENDED, description="64-bit / 32-bit"),
    _m("OS Build Number", "os_build_number", EXTENDED, description="OS build number"),
    _m("OS Version", "os_version", EXTENDED, description="OS version"),
    _m("Processor", "processor", EXTENDED, description="Processor"),
    _m("Graphics", "graphics", EXTENDED, description="Graphics card"),
    _m("Network Adapters", "network_adapters", EXTENDED, description="Network adapters"),
    _m("Serial Number", "serial_number", required=True, description="Serial number"),
    _m("Manufacturer", "make", description="Manufacturer"),
    _m("Model", "model", description="Product model"),
    _m("System Model", "model", description="System model"),
    _m("Last Online", "last_online", EXTENDED, transform="to_iso", description="Last online date"),
    _m("System Name", "system_name", EXTENDED, description="System name"),
]

NINJAONE_MAPPINGS: list[ColumnMapping] = [
    _m("Display Name", "asset_tag", transform="asset_tag", required=True, description="Asset tag"),
    _m("Role", "asset_type", transform="ninja_role", required=True, description="Asset type from role"),
    *_COMMON_MAPPINGS,
    _m("Volumes", "storage", EXTENDED, transform="aggregate_volumes", description="Total local storage"),
]

NINJAONE_SERVER_MAPPINGS: list[ColumnMapping] = [
    _m("Display Name", "asset_tag", transform="strip", required=True, description="Server asset tag"),
    _m("Role", "asset_type", transform="ninja_server_role", required=True, description="SERVER or OTHER"),
    _m("Display Name", "location", transform="server_location", description="Location from server name"),
    _m("System Model", "virtualization_type", EXTENDED, transform="virtualization",
       description="Virtual or physical"),
    *_COMMON_MAPPINGS,
    _m("Volumes", "storage", EXTENDED, transform="aggregate_server_volumes",
       description="Total local storage, server ladder"),
]


def _apply_defaults(draft: RowDraft) -> None:
    draft.direct.setdefault("condition", "GOOD")
    draft.direct.setdefault("make", "Unknown")
    draft.direct.setdefault("model", "Unknown")


def _note_assignee(draft: RowDraft) -> None:
    assignee = draft.direct.get("assigned_to")
    if assignee:
        draft.notes.append(f'Username "{assignee}" requires directory lookup')


def transform_ninjaone_row(row: dict[str, str]) -> TransformationResult:
    """Endpoint row: assigned devices are ASSIGNED, everything else AVAILABLE."""
    draft = apply_column_mappings(row, NINJAONE_MAPPINGS)
    _apply_defaults(draft)
    draft.direct["status"] = "ASSIGNED" if draft.direct.get("assigned_to") else "AVAILABLE"
    draft.direct["source"] = "NINJAONE"
    _note_assignee(draft)
    return draft.freeze()


def transform_ninjaone_server_row(row: dict[str, str]) -> TransformationResult:
    """Server row: always ASSIGNED (in service)."""
    draft = apply_column_mappings(row, NINJAONE_SERVER_MAPPINGS)
    _apply_defaults(draft)
    draft.direct["status"] = "ASSIGNED"
    draft.direct["source"] = "NINJAONE"

    location = draft.direct.get("location")
    if location:
        draft.notes.append(f'Location "{location}" will be matched to existing locations')
    _note_assignee(draft)
    return draft.freeze()
