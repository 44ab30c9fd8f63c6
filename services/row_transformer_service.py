"""
Row finalization after entity resolution.

Merges a row's TransformationResult with the batch ResolutionResult into
a FinalizedRow, and decides the write action under a conflict policy.
"""

from typing import Optional

import structlog

from models.import_mapping import TransformationResult
from models.import_resolution import ResolutionResult
from models.import_session import ConflictPolicy, FinalizedRow, WriteAction
from parsers.field_transforms import phone_tag_for
from services.entity_resolver_service import is_directory_id, normalize_username

logger = structlog.get_logger(__name__)

MISSING_SERIAL = "Missing serial number"


def _recompute_status(direct: dict) -> None:
    if direct.get("assigned_to"):
        direct["status"] = "ASSIGNED"
    else:
        direct["status"] = direct.get("status") or "AVAILABLE"


def finalize_row(
    index: int,
    original: dict[str, str],
    result: TransformationResult,
    resolution: ResolutionResult,
) -> FinalizedRow:
    """
    Build the submission-ready row.

    Resolved users replace the raw assignee with their directory id; an
    assignee that already is a directory id is kept as is.
    Unresolved users and locations keep the raw value and are flagged
    for manual review.
    """
    direct = dict(result.direct_fields)
    extended = dict(result.extended_attributes)
    notes = list(result.notes)
    errors = list(result.validation_errors)

    unresolved_username: Optional[str] = None
    unresolved_location: Optional[str] = None
    display_name: Optional[str] = None
    office_location: Optional[str] = None

    # Assignee
    raw_assignee = direct.get("assigned_to")
    if raw_assignee:
        key = normalize_username(raw_assignee)
        user = resolution.user_map.get(key) if key else None
        if user is None and is_directory_id(key):
            # Already a directory id; nothing to look up
            direct["assigned_to"] = key
        elif user is not None:
            direct["assigned_to"] = user.id
            display_name = user.display_name
            office_location = user.office_location
        else:
            unresolved_username = str(raw_assignee)
            notes.append(f'User "{raw_assignee}" could not be resolved; original value kept')

    # Location
    location = str(direct.pop("location", "") or "").strip()
    if location:
        location_id = resolution.location_map.get(location)
        if location_id:
            direct["location_id"] = location_id
        else:
            unresolved_location = location
            extended["location"] = location
            notes.append(f'Location "{location}" could not be matched; kept for manual review')

    if not direct.get("location_id") and office_location:
        office_id = resolution.location_map.get(office_location.strip())
        if office_id:
            direct["location_id"] = office_id

    # Phone tags follow the resolved owner's display name
    if direct.get("asset_type") == "PHONE" and display_name:
        direct["asset_tag"] = phone_tag_for(display_name) or direct.get("asset_tag")

    _recompute_status(direct)

    serial = str(direct.get("serial_number") or "").strip()
    if not serial and not any("serial_number" in error for error in errors):
        errors.append(MISSING_SERIAL)

    conflict = resolution.conflicts.get(serial) if serial else None

    return FinalizedRow(
        index=index,
        original=original,
        direct=direct,
        extended=extended,
        notes=notes,
        validation_errors=errors,
        conflict_serial=conflict.serial_number if conflict else None,
        conflict_existing_id=conflict.existing_id if conflict else None,
        unresolved_username=unresolved_username,
        unresolved_location=unresolved_location,
        assignee_display_name=display_name,
        assignee_office_location=office_location,
    )


def finalize_rows(
    originals: list[dict[str, str]],
    results: list[TransformationResult],
    resolution: ResolutionResult,
) -> list[FinalizedRow]:
    """Finalize a batch; rows are indexed by position."""
    if len(originals) != len(results):
        raise ValueError("originals and results must be the same length")

    rows = [
        finalize_row(index, original, result, resolution)
        for index, (original, result) in enumerate(zip(originals, results))
    ]

    logger.info(
        "rows_finalized",
        total=len(rows),
        invalid=sum(1 for r in rows if not r.is_valid),
        conflicts=sum(1 for r in rows if r.has_conflict),
        unresolved_users=sum(1 for r in rows if r.unresolved_username),
        unresolved_locations=sum(1 for r in rows if r.unresolved_location)
    )
    return rows


def plan_write(row: FinalizedRow, policy: ConflictPolicy) -> WriteAction:
    """Insert new serials; skip or update existing ones per policy."""
    if not row.has_conflict:
        return WriteAction.INSERT
    if policy == ConflictPolicy.OVERWRITE:
        return WriteAction.UPDATE
    return WriteAction.SKIP
