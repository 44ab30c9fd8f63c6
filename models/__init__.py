"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    FrozenSchema,
)
from models.import_mapping import (
    TargetBucket,
    ColumnMapping,
    TransformationResult,
    ImportSourceInfo,
)
from models.import_filter import (
    FilterOperator,
    FilterRule,
    ImportFilter,
    FilterStats,
    FilterResult,
)
from models.import_resolution import (
    ResolutionRequest,
    ResolvedUser,
    SerialConflict,
    ResolutionResult,
)
from models.import_session import (
    ConflictPolicy,
    WriteAction,
    ExecutorState,
    FinalizedRow,
    ImportRowError,
    SkippedItem,
    CreatedAsset,
    CategorizedAsset,
    ImportStatistics,
    ImportSession,
    ImportRequest,
    ImportSummary,
    ImportPreview,
)

__all__ = [
    # Base
    "BaseSchema",
    "FrozenSchema",
    # Mapping
    "TargetBucket",
    "ColumnMapping",
    "TransformationResult",
    "ImportSourceInfo",
    # Filter
    "FilterOperator",
    "FilterRule",
    "ImportFilter",
    "FilterStats",
    "FilterResult",
    # Resolution
    "ResolutionRequest",
    "ResolvedUser",
    "SerialConflict",
    "ResolutionResult",
    # Session
    "ConflictPolicy",
    "WriteAction",
    "ExecutorState",
    "FinalizedRow",
    "ImportRowError",
    "SkippedItem",
    "CreatedAsset",
    "CategorizedAsset",
    "ImportStatistics",
    "ImportSession",
    "ImportRequest",
    "ImportSummary",
    "ImportPreview",
]
