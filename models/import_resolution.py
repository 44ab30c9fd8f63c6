"""
Entity resolution schemas.

Every looked-up key appears in the result maps. A key that was looked up
but not found maps to None.
"""

from typing import Optional

from pydantic import Field

from models.base import BaseSchema


class ResolutionRequest(BaseSchema):
    """Identifiers to resolve in one batch."""

    usernames: set[str] = Field(default_factory=set)
    location_names: set[str] = Field(default_factory=set)
    serial_numbers: set[str] = Field(default_factory=set)

    @property
    def is_empty(self) -> bool:
        return not (self.usernames or self.location_names or self.serial_numbers)


class ResolvedUser(BaseSchema):
    """Directory user matched by account or display name."""

    id: str
    display_name: str
    office_location: Optional[str] = None


class SerialConflict(BaseSchema):
    """Existing inventory record sharing an incoming serial number."""

    existing_id: str
    existing_tag: Optional[str] = None
    serial_number: str


class ResolutionResult(BaseSchema):
    """Resolver output for one batch (or a merged cascade)."""

    user_map: dict[str, Optional[ResolvedUser]] = Field(default_factory=dict)
    location_map: dict[str, Optional[str]] = Field(default_factory=dict)
    conflicts: dict[str, SerialConflict] = Field(default_factory=dict)

    @property
    def resolved_user_count(self) -> int:
        return sum(1 for user in self.user_map.values() if user is not None)

    @property
    def resolved_location_count(self) -> int:
        return sum(1 for loc in self.location_map.values() if loc is not None)
