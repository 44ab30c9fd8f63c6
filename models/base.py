"""
Base schemas for all models.
"""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Base for all schemas.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Allow ORM objects (from_attributes)
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True
    )


class FrozenSchema(BaseModel):
    """
    Base for values that must not change once produced.

    Strings are kept exactly as given: raw spreadsheet cells and
    unresolved usernames are preserved verbatim.
    """
    model_config = ConfigDict(
        from_attributes=True,
        frozen=True
    )
