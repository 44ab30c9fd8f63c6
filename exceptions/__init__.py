"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ExternalServiceError,
    DatabaseError,

    # Transformation
    FieldTransformError,
    UnknownImportSourceError,
    SpreadsheetParseError,

    # Rows
    RowValidationError,
    RowWriteError,
    ImportRequestError,

    # Resolution
    ResolutionError,

    # Execution
    ImportTimeoutError,
    ImportStateError,
    ProgressTransportError,
    ImportSessionNotFoundError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ExternalServiceError",
    "DatabaseError",

    # Transformation
    "FieldTransformError",
    "UnknownImportSourceError",
    "SpreadsheetParseError",

    # Rows
    "RowValidationError",
    "RowWriteError",
    "ImportRequestError",

    # Resolution
    "ResolutionError",

    # Execution
    "ImportTimeoutError",
    "ImportStateError",
    "ProgressTransportError",
    "ImportSessionNotFoundError",
]
