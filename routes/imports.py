"""
Bulk import API routes.

The progress stream is served as server-sent events; every event is a
full ImportSession snapshot.
"""

import json
from typing import Optional

from fastapi import APIRouter, UploadFile, File, Form
from fastapi.responses import JSONResponse, StreamingResponse
import structlog

from models.import_resolution import ResolutionRequest, ResolutionResult
from models.import_session import ImportRequest, ImportSession
from parsers.spreadsheet_parser import parse_spreadsheet
from parsers.transformation_registry import get_source, get_source_info
from services.entity_resolver_service import get_entity_resolver_service
from services.import_executor_service import prepare_import
from services.import_filter_service import last_online_rule, get_filter_description
from services.import_service import get_import_service
from services.progress_channel_service import get_progress_channel
from exceptions import (
    AppError,
    ImportRequestError,
    ImportSessionNotFoundError,
)

logger = structlog.get_logger(__name__)

router = APIRouter()

# How long a progress stream waits for a session that has not opened yet
SESSION_OPEN_WAIT_SECONDS = 10.0


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# ROUTES
# ===================

@router.get("/sources")
async def list_sources():
    """Supported import sources and their column mappings."""
    try:
        return {
            "sources": [info.model_dump() for info in get_source_info()]
        }
    except Exception as e:
        return handle_error(e)


@router.post("/resolve", response_model=ResolutionResult)
def resolve_entities(request: ResolutionRequest):
    """
    Resolve usernames, office names and serial numbers in one batch.

    Unresolved names map to null; conflicts list existing assets by
    serial number.
    """
    logger.info(
        "resolve_requested",
        usernames=len(request.usernames),
        locations=len(request.location_names),
        serial_numbers=len(request.serial_numbers)
    )

    try:
        resolver = get_entity_resolver_service()
        return resolver.resolve_with_cascade(
            request.usernames,
            request.location_names,
            request.serial_numbers,
        )
    except Exception as e:
        return handle_error(e)


@router.post("/assets", response_model=ImportSession)
def import_assets(request: ImportRequest):
    """
    Write finalized rows to inventory.

    Blocks until the job is finished and returns the final session.
    Progress can be followed meanwhile on /progress/{session_id}.
    """
    logger.info(
        "import_requested",
        session_id=request.session_id,
        rows=len(request.rows),
        source=request.source_tag,
        conflict_policy=request.conflict_policy.value
    )

    try:
        if get_progress_channel().latest(request.session_id) is not None:
            raise ImportRequestError(
                "Session id is already in use",
                details={"session_id": request.session_id}
            )
        return get_import_service().run_import(request)
    except Exception as e:
        return handle_error(e)


@router.get("/progress/{session_id}")
def stream_progress(session_id: str):
    """
    Server-sent event stream of ImportSession snapshots.

    The first event is the current snapshot. The stream ends after the
    snapshot where processed reaches total. A session that does not open
    within SESSION_OPEN_WAIT_SECONDS is a 404 before any event is sent.
    """
    snapshots = get_progress_channel().subscribe(session_id, wait_for_open=SESSION_OPEN_WAIT_SECONDS)
    try:
        first = next(snapshots)
    except ImportSessionNotFoundError as e:
        logger.info("progress_stream_no_session", session_id=session_id)
        return handle_error(e)

    def events():
        yield f"data: {json.dumps(first.model_dump(mode='json'))}\n\n"
        for snapshot in snapshots:
            yield f"data: {json.dumps(snapshot.model_dump(mode='json'))}\n\n"

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


@router.get("/sessions/{session_id}", response_model=ImportSession)
async def get_session(session_id: str):
    """Latest snapshot of a session (polling alternative to the stream)."""
    try:
        snapshot = get_progress_channel().latest(session_id)
        if snapshot is None:
            raise ImportSessionNotFoundError(session_id)
        return snapshot
    except Exception as e:
        return handle_error(e)


@router.post("/preview")
def preview_import(
    file: UploadFile = File(..., description="CSV or Excel export"),
    source_id: str = Form(..., description="Import source id"),
    category: Optional[str] = Form(None, description="Upload category (endpoints, servers)"),
    last_online_days: Optional[int] = Form(None, ge=1, description="Keep devices online within N days"),
):
    """
    Parse an upload and run filter, transform, resolve and finalize.

    Nothing is written. The returned rows can be submitted as-is to
    /assets.
    """
    logger.info(
        "import_preview_started",
        filename=file.filename,
        source_id=source_id,
        category=category
    )

    try:
        get_source(source_id)

        content = file.file.read()
        table = parse_spreadsheet(content, file.filename or "")

        extra_rules = [last_online_rule(last_online_days)] if last_online_days else None
        preview = prepare_import(source_id, category, table.rows, extra_rules)

        return {
            **preview.model_dump(mode="json"),
            "filter_description": get_filter_description(source_id, category, last_online_days),
            "ready_count": preview.ready_count,
            "invalid_count": preview.invalid_count,
        }
    except Exception as e:
        return handle_error(e)
