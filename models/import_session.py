"""
Import execution schemas: finalized rows, sessions and summaries.

An ImportSession is published as a full snapshot on every change, so a
subscriber that joins late synchronises from any single event.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.base import BaseSchema, FrozenSchema
from models.import_mapping import ColumnMapping, ensure_unique_mappings
from models.import_filter import FilterStats


class ConflictPolicy(str, Enum):
    """Global rule for rows whose serial number already exists."""
    SKIP = "skip"
    OVERWRITE = "overwrite"


class WriteAction(str, Enum):
    """What the import job does with one row."""
    INSERT = "insert"
    UPDATE = "update"
    SKIP = "skip"


class ExecutorState(str, Enum):
    """Client-side import lifecycle."""
    IDLE = "idle"
    SUBMITTING = "submitting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


# ===================
# ROW SCHEMAS
# ===================

class FinalizedRow(FrozenSchema):
    """
    One row ready for submission.

    Built once after entity resolution and consumed once by the import
    job. `original` is the raw source row, kept verbatim.
    """

    index: int = Field(..., ge=0)
    original: dict[str, str] = Field(default_factory=dict)
    direct: dict[str, Any] = Field(default_factory=dict)
    extended: dict[str, Any] = Field(default_factory=dict)
    notes: list[str] = Field(default_factory=list)
    validation_errors: list[str] = Field(default_factory=list)
    conflict_serial: Optional[str] = None
    conflict_existing_id: Optional[str] = None
    unresolved_username: Optional[str] = None
    unresolved_location: Optional[str] = None
    assignee_display_name: Optional[str] = None
    assignee_office_location: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return not self.validation_errors

    @property
    def has_conflict(self) -> bool:
        return self.conflict_serial is not None


class ImportRowError(FrozenSchema):
    index: int
    message: str
    raw_data: Optional[dict[str, Any]] = None


class SkippedItem(FrozenSchema):
    index: int
    reason: str
    raw_data: Optional[dict[str, Any]] = None


class CreatedAsset(FrozenSchema):
    """Inventory record written by the job."""
    id: str
    asset_tag: Optional[str] = None
    action: WriteAction = WriteAction.INSERT


class CategorizedAsset(FrozenSchema):
    asset_tag: Optional[str] = None
    category_name: str
    rule_name: str


# ===================
# SESSION SCHEMAS
# ===================

class ImportStatistics(BaseModel):
    """Aggregates over successfully written rows."""

    categorized: list[CategorizedAsset] = Field(default_factory=list)
    unique_users: list[str] = Field(default_factory=list)
    unique_locations: list[str] = Field(default_factory=list)
    type_breakdown: dict[str, int] = Field(default_factory=dict)
    status_breakdown: dict[str, int] = Field(default_factory=dict)


class ImportSession(BaseModel):
    """
    Progress and outcome of one import run.

    Mutated only by the import job that owns it; everyone else reads
    deep copies. `processed` never decreases.
    """

    model_config = ConfigDict(from_attributes=True)

    session_id: str
    total: int = Field(default=0, ge=0)
    processed: int = Field(default=0, ge=0)
    successful: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0)
    current_item: Optional[str] = None
    created: list[CreatedAsset] = Field(default_factory=list)
    errors: list[ImportRowError] = Field(default_factory=list)
    skipped_items: list[SkippedItem] = Field(default_factory=list)
    statistics: ImportStatistics = Field(default_factory=ImportStatistics)

    @property
    def is_complete(self) -> bool:
        """Terminal once every row has been processed."""
        return self.total > 0 and self.processed >= self.total


class ImportRequest(BaseSchema):
    """Body of a bulk import submission."""

    session_id: str = Field(..., min_length=1, max_length=128)
    rows: list[FinalizedRow] = Field(..., min_length=1)
    mappings: list[ColumnMapping] = Field(default_factory=list)
    conflict_policy: ConflictPolicy = ConflictPolicy.SKIP
    source_tag: Optional[str] = Field(None, description="Source id or canonical label")

    @field_validator("mappings")
    @classmethod
    def unique_mappings(cls, v: list[ColumnMapping]) -> list[ColumnMapping]:
        return ensure_unique_mappings(v)


class ImportSummary(BaseModel):
    """Final view of a run as seen by the client."""

    session: ImportSession
    completed_at: Optional[datetime] = None


class ImportPreview(BaseModel):
    """Result of running stages up to finalization without writing."""

    source_id: str
    category: Optional[str] = None
    filter_stats: FilterStats
    rows: list[FinalizedRow] = Field(default_factory=list)
    unresolved_usernames: list[str] = Field(default_factory=list)
    unresolved_locations: list[str] = Field(default_factory=list)
    conflict_count: int = 0

    @property
    def ready_count(self) -> int:
        return sum(1 for row in self.rows if row.is_valid)

    @property
    def invalid_count(self) -> int:
        return sum(1 for row in self.rows if not row.is_valid)
