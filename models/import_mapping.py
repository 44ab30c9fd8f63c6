"""
Column mapping schemas for the import pipeline.

A column mapping says where one source spreadsheet column lands on an
inventory record and which named field transform (if any) runs first.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import Field, field_validator, model_validator

from models.base import BaseSchema, FrozenSchema


class TargetBucket(str, Enum):
    """Where a mapped value is written."""
    DIRECT = "direct"        # Core inventory column
    EXTENDED = "extended"    # Free-form attribute bag
    IGNORE = "ignore"        # Read but never written


class ColumnMapping(BaseSchema):
    """One source column to one target field."""

    source_column: str = Field(..., min_length=1, description="Column header in the source file")
    target_field: str = Field(default="", description="Inventory field or extended key")
    target_bucket: TargetBucket = Field(default=TargetBucket.DIRECT)
    transform: Optional[str] = Field(None, description="Registered field transform name")
    required: bool = Field(default=False)
    description: str = Field(default="")

    @model_validator(mode="after")
    def required_needs_target(self) -> "ColumnMapping":
        """A required mapping must write somewhere."""
        if self.required and not self.target_field:
            raise ValueError(
                f"Required mapping for '{self.source_column}' must name a target field"
            )
        return self


def ensure_unique_mappings(mappings: list[ColumnMapping]) -> list[ColumnMapping]:
    """
    Reject a mapping table that maps one source column to the same
    target field twice.

    Raises:
        ValueError: On the first duplicated (source column, target field) pair
    """
    seen: set[tuple[str, str]] = set()
    for mapping in mappings:
        pair = (mapping.source_column, mapping.target_field)
        if pair in seen:
            raise ValueError(
                f"Duplicate mapping for column '{mapping.source_column}' "
                f"to field '{mapping.target_field}'"
            )
        seen.add(pair)
    return mappings


class TransformationResult(FrozenSchema):
    """
    Output of running one raw row through a transformation module.

    Frozen once produced. `notes` are informational; `validation_errors`
    block the row from being written.
    """

    direct_fields: dict[str, Any] = Field(default_factory=dict)
    extended_attributes: dict[str, Any] = Field(default_factory=dict)
    notes: list[str] = Field(default_factory=list)
    validation_errors: list[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.validation_errors


class ImportSourceInfo(BaseSchema):
    """Supported source with its mapping table."""

    source_id: str
    name: str
    description: str = ""
    mappings: list[ColumnMapping] = Field(default_factory=list)

    @field_validator("mappings")
    @classmethod
    def unique_mappings(cls, v: list[ColumnMapping]) -> list[ColumnMapping]:
        return ensure_unique_mappings(v)
