"""
Pydantic models for validation and serialization.
"""

from models.base import CamelSchema
from models.imports import (
    OVERWRITE_CONFIRMATION,
    SourceType,
    ImportMode,
    SourceColumn,
    SheetInfo,
    SourceTable,
    ManualColumn,
    ImportSourceOptions,
    ImportPreviewRequest,
    ImportRequest,
    ImportApplyRequest,
    RowError,
    RowWarning,
    UnimportedProduct,
    StatsEstimate,
    ImportStats,
    ImportDiagnostics,
    ImportPreviewResponse,
    ImportValidateResponse,
    ImportApplyResponse,
    MappingPresetCreate,
    MappingPresetResponse,
)

__all__ = [
    # Base
    "CamelSchema",

    # Import pipeline
    "OVERWRITE_CONFIRMATION",
    "SourceType",
    "ImportMode",
    "SourceColumn",
    "SheetInfo",
    "SourceTable",
    "ManualColumn",
    "ImportSourceOptions",
    "ImportPreviewRequest",
    "ImportRequest",
    "ImportApplyRequest",
    "RowError",
    "RowWarning",
    "UnimportedProduct",
    "StatsEstimate",
    "ImportStats",
    "ImportDiagnostics",
    "ImportPreviewResponse",
    "ImportValidateResponse",
    "ImportApplyResponse",
    "MappingPresetCreate",
    "MappingPresetResponse",
]
