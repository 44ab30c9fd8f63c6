"""
Inventory store access for the import pipeline.

Assets live in the Supabase `assets` table. Serial number is the
natural key used for conflict detection. Workload categories and the
activity log live in their own tables.
"""

from typing import Iterable, Optional

import structlog

from config import get_supabase_client
from exceptions import DatabaseError, NotFoundError

logger = structlog.get_logger(__name__)

CONFLICT_COLUMNS = "id, asset_tag, serial_number"
CATEGORY_TABLE = "asset_workload_categories"
ACTIVITY_TABLE = "activity_logs"

# Supabase caps the length of an IN (...) filter in the URL
SERIAL_LOOKUP_CHUNK = 200


class InventoryService:
    """
    Inventory record reads and writes.

    Write methods raise DatabaseError; the import job turns that into a
    per-row error.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "assets"

    # ===================
    # READ OPERATIONS
    # ===================

    def find_by_serial(self, serial_number: str) -> Optional[dict]:
        """
        Exact-match lookup of one serial number.

        Returns:
            Matching record (id, asset_tag, serial_number) or None
        """
        try:
            result = (
                self.db.table(self.table)
                .select(CONFLICT_COLUMNS)
                .eq("serial_number", serial_number)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("find_by_serial_failed", serial_number=serial_number, error=str(e))
            raise DatabaseError("select", str(e))

        return result.data[0] if result.data else None

    def find_by_serials(self, serial_numbers: Iterable[str]) -> list[dict]:
        """
        Exact-match lookup of many serial numbers.

        Blank serials are ignored; duplicates are looked up once.
        """
        serials = sorted({s.strip() for s in serial_numbers if s and s.strip()})
        if not serials:
            return []

        logger.debug("finding_assets_by_serial", count=len(serials))

        found: list[dict] = []
        try:
            for start in range(0, len(serials), SERIAL_LOOKUP_CHUNK):
                chunk = serials[start:start + SERIAL_LOOKUP_CHUNK]
                result = (
                    self.db.table(self.table)
                    .select(CONFLICT_COLUMNS)
                    .in_("serial_number", chunk)
                    .execute()
                )
                found.extend(result.data or [])
        except Exception as e:
            logger.error("find_by_serials_failed", count=len(serials), error=str(e))
            raise DatabaseError("select", str(e))

        logger.info("assets_found_by_serial", requested=len(serials), found=len(found))
        return found

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(self, record: dict) -> dict:
        """
        Insert one asset record.

        Returns:
            Created record as stored
        """
        logger.debug("creating_asset", asset_tag=record.get("asset_tag"))

        try:
            result = self.db.table(self.table).insert(record).execute()
        except Exception as e:
            logger.error(
                "create_asset_failed",
                asset_tag=record.get("asset_tag"),
                serial_number=record.get("serial_number"),
                error=str(e)
            )
            raise DatabaseError("insert", str(e))

        if not result.data:
            raise DatabaseError("insert", "no row returned")
        return result.data[0]

    def update(self, asset_id: str, record: dict) -> dict:
        """
        Update an existing asset in place.

        Raises:
            NotFoundError: If no asset has this id
            DatabaseError: If the update fails
        """
        logger.debug("updating_asset", asset_id=asset_id)

        try:
            result = (
                self.db.table(self.table)
                .update(record)
                .eq("id", asset_id)
                .execute()
            )
        except Exception as e:
            logger.error("update_asset_failed", asset_id=asset_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise NotFoundError("Asset", asset_id)
        return result.data[0]

    def assign_category(self, asset_id: str, category_id: str) -> None:
        """
        Replace the workload category of an asset.

        Raises:
            DatabaseError: If the delete or insert fails
        """
        try:
            (
                self.db.table(CATEGORY_TABLE)
                .delete()
                .eq("asset_id", asset_id)
                .execute()
            )
            (
                self.db.table(CATEGORY_TABLE)
                .insert({"asset_id": asset_id, "category_id": category_id})
                .execute()
            )
        except Exception as e:
            logger.error(
                "assign_category_failed",
                asset_id=asset_id,
                category_id=category_id,
                error=str(e)
            )
            raise DatabaseError("insert", str(e))

    # ===================
    # AUDIT
    # ===================

    def log_activity(
        self,
        entity_id: str,
        action: str,
        changes: str,
        entity_type: str = "asset",
        user_id: Optional[str] = None,
    ) -> None:
        """
        Append one entry to the activity log.

        Raises:
            DatabaseError: If the insert fails
        """
        entry = {
            "entity_type": entity_type,
            "entity_id": entity_id,
            "action": action,
            "changes": changes,
        }
        if user_id:
            entry["user_id"] = user_id

        try:
            self.db.table(ACTIVITY_TABLE).insert(entry).execute()
        except Exception as e:
            logger.error("log_activity_failed", entity_id=entity_id, action=action, error=str(e))
            raise DatabaseError("insert", str(e))


# Singleton instance for convenience
_inventory_service: Optional[InventoryService] = None


def get_inventory_service() -> InventoryService:
    """Get or create InventoryService instance."""
    global _inventory_service
    if _inventory_service is None:
        _inventory_service = InventoryService()
    return _inventory_service
