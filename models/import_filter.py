"""
Filter chain schemas.

Filter rules name raw source columns and are ANDed in order.
"""

from enum import Enum
from typing import Optional

from pydantic import Field, model_validator

from models.base import BaseSchema, FrozenSchema


class FilterOperator(str, Enum):
    """Supported rule operators."""
    EQUALS = "equals"
    INCLUDES = "includes"
    EXCLUDES = "excludes"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    DAYS_SINCE = "daysSince"


class FilterRule(BaseSchema):
    """One predicate over a raw row cell."""

    field: str = Field(..., min_length=1, description="Raw source column")
    operator: FilterOperator
    values: list[str] = Field(default_factory=list)
    max_days: Optional[int] = Field(None, ge=0, description="Only for daysSince")
    description: str = Field(default="")

    @model_validator(mode="after")
    def days_since_needs_max_days(self) -> "FilterRule":
        if self.operator == FilterOperator.DAYS_SINCE and self.max_days is None:
            raise ValueError("daysSince rules must set max_days")
        return self


class ImportFilter(BaseSchema):
    """Named rule set registered for a (source, category) key."""

    name: str
    description: str = ""
    rules: list[FilterRule] = Field(default_factory=list)


class FilterStats(BaseSchema):
    total: int = Field(..., ge=0)
    included: int = Field(..., ge=0)
    excluded: int = Field(..., ge=0)
    filter_name: str


class FilterResult(FrozenSchema):
    """Exact partition of the input rows. Cells are kept verbatim."""

    included: list[dict[str, str]] = Field(default_factory=list)
    excluded: list[dict[str, str]] = Field(default_factory=list)
    stats: FilterStats
