"""
Bulk import job.

Writes finalized rows to inventory in batches. One bad row never stops
the run: validation failures and write failures are recorded as errors,
conflict skips as skipped items. Each written asset gets its detected
workload category and an activity log entry. A full ImportSession
snapshot is published after every row.
"""

from typing import Optional

import structlog

from config import settings
from exceptions import AppError, RowValidationError, RowWriteError
from models.import_session import (
    CategorizedAsset,
    ConflictPolicy,
    CreatedAsset,
    FinalizedRow,
    ImportRequest,
    ImportRowError,
    ImportSession,
    SkippedItem,
    WriteAction,
)
from services.classification_service import (
    ClassificationService,
    classify,
    get_classification_service,
)
from services.inventory_service import InventoryService, get_inventory_service
from services.progress_channel_service import ProgressChannel, get_progress_channel
from services.row_transformer_service import plan_write

logger = structlog.get_logger(__name__)

DEFAULT_SOURCE = "BULK_UPLOAD"

SOURCE_LABELS = {
    "ninjaone": "NINJAONE",
    "ninjaone-servers": "NINJAONE",
    "intune": "INTUNE",
    "bgc-template": "EXCEL",
    "custom-excel": "EXCEL",
    "invoice": "EXCEL",
    "telus": "TELUS",
    "rogers": "ROGERS",
}

COMPLETE_MESSAGE = "Import Complete"

ACTIVITY_MESSAGES = {
    WriteAction.INSERT: ("CREATE", "Asset created via bulk import"),
    WriteAction.UPDATE: ("UPDATE", "Asset updated via bulk import (overwrite conflict)"),
}


def normalize_import_source(source: Optional[str]) -> str:
    """
    Canonical source label stored on each record.

    Unknown ids are upper-cased; a missing id means a generic upload.
    """
    if not source or not source.strip():
        return DEFAULT_SOURCE
    return SOURCE_LABELS.get(source.strip().lower(), source.strip().upper())


class _Skip(Exception):
    """Row deliberately not written."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


def build_record(row: FinalizedRow, source: str) -> dict:
    """Inventory record for one row; extended attributes go to `specifications`."""
    record = {k: v for k, v in row.direct.items() if v is not None}
    record["source"] = source
    if row.extended:
        record["specifications"] = dict(row.extended)
    return record


class ImportService:
    """
    Runs one import request to completion.

    Collaborators are injectable; defaults are the module singletons.
    """

    def __init__(
        self,
        inventory: Optional[InventoryService] = None,
        classification: Optional[ClassificationService] = None,
        channel: Optional[ProgressChannel] = None,
        batch_size: Optional[int] = None,
    ):
        self.inventory = inventory or get_inventory_service()
        self._classification = classification
        self.channel = channel or get_progress_channel()
        self.batch_size = batch_size or settings.import_batch_size

    def _load_rules(self) -> list[dict]:
        try:
            service = self._classification or get_classification_service()
            return service.get_active_rules()
        except AppError as e:
            # Categorisation is optional; the import proceeds without it
            logger.warning("classification_rules_unavailable", error=e.message)
            return []

    # ===================
    # ROW PROCESSING
    # ===================

    def _write_row(
        self,
        row: FinalizedRow,
        policy: ConflictPolicy,
        source: str,
        rules: list[dict],
    ) -> tuple[CreatedAsset, dict, Optional[dict]]:
        if not row.is_valid:
            raise RowValidationError(row.index, list(row.validation_errors))

        action = plan_write(row, policy)
        if action == WriteAction.SKIP:
            raise _Skip(f"Duplicate serial number: {row.conflict_serial}")

        record = build_record(row, source)
        match = classify(record, rules) if rules else None
        try:
            if action == WriteAction.UPDATE:
                stored = self.inventory.update(row.conflict_existing_id, record)
            else:
                stored = self.inventory.create(record)
        except AppError as e:
            raise RowWriteError(row.index, e.message)

        created = CreatedAsset(
            id=str(stored.get("id")),
            asset_tag=stored.get("asset_tag", record.get("asset_tag")),
            action=action,
        )
        self._after_write(created, match)
        return created, record, match

    def _after_write(self, created: CreatedAsset, match: Optional[dict]) -> None:
        # The asset is already stored; follow-up failures are logged, not fatal
        if match and match.get("category_id"):
            try:
                self.inventory.assign_category(created.id, match["category_id"])
            except AppError as e:
                logger.warning(
                    "asset_category_not_saved",
                    asset_id=created.id,
                    category_id=match["category_id"],
                    error=e.message
                )

        action, changes = ACTIVITY_MESSAGES[created.action]
        try:
            self.inventory.log_activity(created.id, action, changes)
        except AppError as e:
            logger.warning("import_activity_not_logged", asset_id=created.id, error=e.message)

    def _record_success(
        self,
        session: ImportSession,
        row: FinalizedRow,
        created: CreatedAsset,
        record: dict,
        match: Optional[dict],
    ) -> None:
        session.successful += 1
        session.created.append(created)
        stats = session.statistics

        asset_type = record.get("asset_type")
        if asset_type:
            stats.type_breakdown[asset_type] = stats.type_breakdown.get(asset_type, 0) + 1

        status = record.get("status")
        if status:
            stats.status_breakdown[status] = stats.status_breakdown.get(status, 0) + 1

        user_id = record.get("assigned_to")
        if user_id and not row.unresolved_username and user_id not in stats.unique_users:
            stats.unique_users.append(user_id)

        location_id = record.get("location_id")
        if location_id and location_id not in stats.unique_locations:
            stats.unique_locations.append(location_id)

        if match:
            stats.categorized.append(
                CategorizedAsset(
                    asset_tag=created.asset_tag,
                    category_name=match["category_name"],
                    rule_name=match["rule_name"],
                )
            )

    # ===================
    # JOB
    # ===================

    def run_import(self, request: ImportRequest) -> ImportSession:
        """
        Process every row of the request.

        Returns:
            Final ImportSession (also published to the progress channel)
        """
        rows = request.rows
        total = len(rows)
        source = normalize_import_source(request.source_tag)
        session = self.channel.open(request.session_id, total)
        rules = self._load_rules()

        batch_count = (total + self.batch_size - 1) // self.batch_size

        logger.info(
            "import_started",
            session_id=request.session_id,
            total=total,
            batches=batch_count,
            source=source,
            conflict_policy=request.conflict_policy.value
        )

        for batch_index in range(batch_count):
            start = batch_index * self.batch_size
            batch = rows[start:start + self.batch_size]

            session.current_item = f"Processing batch {batch_index + 1}/{batch_count}"
            self.channel.publish(session)
            logger.info(
                "import_batch_started",
                session_id=request.session_id,
                batch=batch_index + 1,
                size=len(batch)
            )

            for row in batch:
                try:
                    created, record, match = self._write_row(
                        row, request.conflict_policy, source, rules
                    )
                    self._record_success(session, row, created, record, match)
                except _Skip as skip:
                    session.skipped += 1
                    session.skipped_items.append(
                        SkippedItem(index=row.index, reason=skip.reason, raw_data=row.original)
                    )
                except (RowValidationError, RowWriteError) as e:
                    session.failed += 1
                    session.errors.append(
                        ImportRowError(index=row.index, message=e.message, raw_data=row.original)
                    )
                    logger.warning(
                        "import_row_failed",
                        session_id=request.session_id,
                        index=row.index,
                        code=e.code,
                        error=e.message
                    )
                except Exception as e:
                    session.failed += 1
                    session.errors.append(
                        ImportRowError(index=row.index, message=str(e), raw_data=row.original)
                    )
                    logger.error(
                        "import_row_crashed",
                        session_id=request.session_id,
                        index=row.index,
                        error=str(e),
                        error_type=type(e).__name__
                    )

                session.processed += 1
                if session.processed == total:
                    session.current_item = COMPLETE_MESSAGE
                self.channel.publish(session)

            logger.info(
                "import_batch_completed",
                session_id=request.session_id,
                batch=batch_index + 1,
                processed=session.processed,
                total=total
            )

        self.channel.finish(request.session_id)

        logger.info(
            "import_completed",
            session_id=request.session_id,
            successful=session.successful,
            failed=session.failed,
            skipped=session.skipped
        )
        return session


# Singleton instance for convenience
_import_service: Optional[ImportService] = None


def get_import_service() -> ImportService:
    """Get or create ImportService instance."""
    global _import_service
    if _import_service is None:
        _import_service = ImportService()
    return _import_service
