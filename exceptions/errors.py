"""
Custom exception classes for the application.

The import pipeline errors follow the blast radius of each failure:
one field, one row, one resolver batch, one row write, the client wait,
and the progress transport.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "IMPORT_TIMEOUT")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# TRANSFORMATION ERRORS
# ===================

class FieldTransformError(ValidationError):
    """
    A single field could not be transformed.

    Never escapes a transformation module; it is recorded as a note and
    the field is omitted.
    """

    def __init__(self, column: str, value: Optional[str], reason: str):
        super().__init__(
            code="FIELD_TRANSFORM_FAILED",
            message=f"Failed to process {column}: {reason}",
            details={"column": column, "value": value}
        )


class UnknownImportSourceError(ValidationError):
    """Import source id is not one of the registered modules."""

    def __init__(self, source_id: str, valid: list[str]):
        super().__init__(
            code="IMPORT_UNKNOWN_SOURCE",
            message=f"Unsupported import source: {source_id}",
            details={"provided": source_id, "valid": valid}
        )


class SpreadsheetParseError(ValidationError):
    """Uploaded spreadsheet could not be turned into a table."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="SPREADSHEET_PARSE_ERROR",
            message=message,
            details=details
        )


# ===================
# ROW ERRORS
# ===================

class RowValidationError(ValidationError):
    """One row failed validation and cannot be written."""

    def __init__(self, index: int, errors: list[str]):
        super().__init__(
            code="IMPORT_ROW_INVALID",
            message="; ".join(errors) if errors else "Row failed validation",
            details={"index": index, "errors": errors}
        )


class RowWriteError(DatabaseError):
    """Writing one row to inventory failed."""

    def __init__(self, index: int, message: str):
        super().__init__(
            operation="import_row",
            message=message,
            details={"index": index}
        )
        self.code = "IMPORT_ROW_WRITE_FAILED"
        self.reason = message


class ImportRequestError(ValidationError):
    """Submitted import payload is unusable as a whole."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="IMPORT_REQUEST_INVALID",
            message=message,
            details=details
        )


# ===================
# RESOLUTION ERRORS
# ===================

class ResolutionError(ExternalServiceError):
    """A resolver batch call failed (retried with backoff)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            service="directory",
            message=message,
            details=details
        )
        self.code = "RESOLUTION_FAILED"


# ===================
# EXECUTION ERRORS
# ===================

class ImportTimeoutError(AppError):
    """Client stopped waiting for an import; the server job keeps running."""

    def __init__(self, session_id: str, timeout_seconds: float):
        super().__init__(
            code="IMPORT_TIMEOUT",
            message=(
                "Import timeout - the operation took too long to complete. "
                "Please try importing fewer assets at once."
            ),
            status_code=504,
            details={"session_id": session_id, "timeout_seconds": timeout_seconds}
        )


class ImportStateError(AppError):
    """Executor asked to do something its current state does not allow."""

    def __init__(self, current_state: str, action: str):
        super().__init__(
            code="IMPORT_INVALID_STATE",
            message=f"Cannot {action} while executor is {current_state}",
            status_code=409,
            details={"state": current_state, "action": action}
        )


class ProgressTransportError(AppError):
    """Progress stream disconnected."""

    def __init__(self, session_id: str, message: str = "Progress stream disconnected"):
        super().__init__(
            code="PROGRESS_TRANSPORT_ERROR",
            message=message,
            status_code=502,
            details={"session_id": session_id}
        )


class ImportSessionNotFoundError(NotFoundError):
    """No progress session with this id."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Import session",
            identifier=session_id,
            code="IMPORT_SESSION_NOT_FOUND"
        )
