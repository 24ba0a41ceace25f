"""
Exceptions raised by the import service.

Every error that reaches a route is an AppError subclass carrying its own
code and HTTP status. Row-level problems found while importing are data
(RowError / UnimportedProduct models), not exceptions.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base for every error a route turns into a JSON response.

    Attributes:
        code: Stable machine-readable code (e.g. "IMPORT_PARSE_ERROR")
        message: Shown to the user as-is
        status_code: HTTP status of the response
        details: Extra context for the client (never cell contents)
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
        self.timestamp = datetime.now(timezone.utc).isoformat()
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
# IMPORT PIPELINE ERRORS
# ===================

class ImportParseError(AppError):
    """Uploaded file could not be read (400)."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="IMPORT_PARSE_ERROR",
            message=message,
            status_code=400,
            details=details
        )


class MappingError(AppError):
    """
    Mapping cannot produce any importable row (422).

    Terminal: no partial result is produced.
    """

    def __init__(self, field_errors: list[str]):
        self.field_errors = list(field_errors)
        super().__init__(
            code="IMPORT_MAPPING_INVALID",
            message=self.field_errors[0] if self.field_errors else "Invalid column mapping",
            status_code=422,
            details={"field_errors": self.field_errors}
        )


class ConfirmationError(AppError):
    """Overwrite requested without the exact confirmation string (400)."""

    def __init__(self, expected: str):
        super().__init__(
            code="IMPORT_CONFIRMATION_REQUIRED",
            message=f"Overwrite mode deletes all catalog data. Type {expected} to confirm.",
            status_code=400,
            details={"expected": expected}
        )


class ImportApplyError(AppError):
    """Write phase failed and was rolled back (500)."""

    def __init__(
        self,
        message: str,
        rolled_back: bool = True,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="IMPORT_APPLY_FAILED",
            message=message,
            status_code=500,
            details={"rolled_back": rolled_back, **(details or {})}
        )


class MappingPresetNotFoundError(NotFoundError):
    """Saved mapping preset not found."""

    def __init__(self, preset_id: str):
        super().__init__(
            resource="Import mapping",
            identifier=preset_id,
            code="IMPORT_MAPPING_NOT_FOUND"
        )
