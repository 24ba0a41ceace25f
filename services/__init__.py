"""
Business logic services.

Each service handles one step of the import pipeline.
"""

from services.preview_service import PreviewService, get_preview_service
from services.validation_service import ValidationService, get_validation_service
from services.import_apply_service import ImportApplyService, get_import_apply_service
from services.mapping_preset_service import MappingPresetService, get_mapping_preset_service

__all__ = [
    "PreviewService",
    "get_preview_service",
    "ValidationService",
    "get_validation_service",
    "ImportApplyService",
    "get_import_apply_service",
    "MappingPresetService",
    "get_mapping_preset_service",
]
