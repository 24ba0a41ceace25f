"""
Error taxonomy of the import service.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    DatabaseError,

    # Import pipeline
    ImportParseError,
    MappingError,
    ConfirmationError,
    ImportApplyError,
    MappingPresetNotFoundError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "DatabaseError",

    # Import pipeline
    "ImportParseError",
    "MappingError",
    "ConfirmationError",
    "ImportApplyError",
    "MappingPresetNotFoundError",
]
