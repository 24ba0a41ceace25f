"""
Import pipeline schemas.

Request and response shapes for the preview → validate → apply wizard.
Field names are camelCase on the wire (see CamelSchema).
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator

from models.base import CamelSchema


# Typed by the user to allow a destructive import
OVERWRITE_CONFIRMATION = "DELETE"


class SourceType(str, Enum):
    """Kind of uploaded price list."""
    EXCEL = "excel"
    PDF = "pdf"


class ImportMode(str, Enum):
    """How the apply step treats existing catalog data."""
    MERGE = "merge"
    OVERWRITE = "overwrite"


# ===================
# SOURCE DESCRIPTION
# ===================

class SourceColumn(CamelSchema):
    """One detected column of the selected sheet/table."""
    index: int = Field(..., ge=0)
    letter: str = Field(..., description="Stable spreadsheet-style id (A, B, ...)")
    header_value: Optional[str] = Field(None, description="Raw header text, if any")
    canonical_label: str = Field("", description="Display label from the header normalizer")


class SheetInfo(CamelSchema):
    """A worksheet of an Excel/CSV upload."""
    index: int
    name: str
    non_empty_rows: int


class SourceTable(CamelSchema):
    """A table extracted from a PDF (index -1 is the merged view)."""
    table_index: int
    page_start: int
    page_end: int
    row_count: int = 0
    columns: list[SourceColumn] = Field(default_factory=list)
    sample_rows: list[list[str]] = Field(default_factory=list)


class ManualColumn(CamelSchema):
    """
    A synthetic column not backed by any source cell.

    Holds either per-row values or one bulk value for all visible rows.
    """
    id: Optional[str] = None
    field_key: str = ""
    values_by_row: dict[int, str] = Field(default_factory=dict)
    bulk_value: Optional[str] = None


# ===================
# REQUESTS
# ===================

class ImportSourceOptions(CamelSchema):
    """Which part of the upload to read."""
    source_type: Optional[SourceType] = None
    sheet_index: int = Field(-1, ge=-1, description="-1 selects the fullest sheet")
    table_index: int = Field(0, ge=-1, description="-1 selects the merged PDF view")
    has_header: bool = True
    page_from: Optional[int] = Field(None, ge=1)
    page_to: Optional[int] = Field(None, ge=1)


class ImportPreviewRequest(ImportSourceOptions):
    """Preview request: source options plus the page to sample."""
    preview_page: int = Field(1, ge=1)


class ImportRequest(ImportSourceOptions):
    """Everything needed to derive the row set. Validate and apply share it."""
    mapping: dict[str, Optional[int]] = Field(default_factory=dict)
    ignored_rows: list[int] = Field(default_factory=list)
    manual_supplier_name: Optional[str] = None
    manual_values_by_row: dict[int, dict[str, str]] = Field(default_factory=dict)
    manual_global_values: dict[str, str] = Field(default_factory=dict)
    manual_columns: list[ManualColumn] = Field(default_factory=list)
    hidden_columns: list[int] = Field(default_factory=list)

    @field_validator("manual_supplier_name")
    @classmethod
    def blank_supplier_is_none(cls, v: Optional[str]) -> Optional[str]:
        """An all-whitespace supplier name means no fallback."""
        if v is None or not v.strip():
            return None
        return v.strip()


class ImportApplyRequest(ImportRequest):
    """Apply request: the derivation inputs plus mode and confirmation."""
    mode: ImportMode = ImportMode.MERGE
    confirmation: Optional[str] = None


# ===================
# REPORTS
# ===================

class RowError(CamelSchema):
    """A specific row/pair failed a numeric or required-field check."""
    row: int = Field(..., description="0-based index into the data rows")
    source_row: int = Field(..., description="1-based line in the sheet/table")
    message: str


class RowWarning(RowError):
    """Something changed on a row that is still imported (merged or skipped data)."""


class UnimportedProduct(CamelSchema):
    """A row excluded from the catalog, with the reason shown to the user."""
    row: int
    source_row: int
    product_name: str = ""
    reason: str


class StatsEstimate(CamelSchema):
    """Row counts reported by validation (and repeated by apply)."""
    total_input_rows: int = 0
    mapped_rows: int = 0
    skipped_rows: int = 0


class ImportStats(CamelSchema):
    """What the apply step wrote."""
    suppliers_created: int = 0
    categories_created: int = 0
    products_created: int = 0
    prices_inserted: int = 0
    prices_skipped: int = 0


class ImportDiagnostics(CamelSchema):
    """How the row set shrank on its way to the catalog."""
    rows_before_ignored: int = 0
    ignored_rows_count: int = 0
    source_rows: int = 0
    mapped_rows_before_dedupe: int = 0
    rows_after_dedupe: int = 0
    dropped_in_validation: int = 0
    dropped_as_duplicates: int = 0


# ===================
# RESPONSES
# ===================

class ImportPreviewResponse(CamelSchema):
    """Columns/tables, one page of sample rows and a suggested mapping."""
    source_type: SourceType
    file_name: Optional[str] = None
    sheets: list[SheetInfo] = Field(default_factory=list)
    selected_sheet_index: Optional[int] = None
    tables: list[SourceTable] = Field(default_factory=list)
    selected_table_index: Optional[int] = None
    has_header: bool = True
    columns: list[SourceColumn] = Field(default_factory=list)
    sample_rows: list[list[str]] = Field(default_factory=list)
    sample_row_offset: int = 0
    preview_page: int = 1
    preview_page_size: int = 50
    preview_total_rows: int = 0
    preview_total_pages: int = 0
    suggested_mapping: dict[str, int] = Field(default_factory=dict)
    pair_count: int = 3
    auto_hidden_columns: list[int] = Field(default_factory=list)
    template_key: Optional[str] = None
    pages_detected: Optional[int] = None
    warnings: list[str] = Field(default_factory=list)


class ImportValidateResponse(CamelSchema):
    """Dry-run result. Nothing is written."""
    field_errors: list[str] = Field(default_factory=list)
    row_errors: list[RowError] = Field(default_factory=list)
    row_warnings: list[RowWarning] = Field(default_factory=list)
    unimported_products: list[UnimportedProduct] = Field(default_factory=list)
    stats_estimate: StatsEstimate = Field(default_factory=StatsEstimate)
    pair_count: int = 3
    warnings: list[str] = Field(default_factory=list)


class ImportApplyResponse(CamelSchema):
    """Result of a committed import."""
    success: bool = True
    mode: ImportMode
    stats: ImportStats = Field(default_factory=ImportStats)
    unimported_products: list[UnimportedProduct] = Field(default_factory=list)
    row_errors: list[RowError] = Field(default_factory=list)
    row_warnings: list[RowWarning] = Field(default_factory=list)
    import_diagnostics: ImportDiagnostics = Field(default_factory=ImportDiagnostics)
    stats_estimate: StatsEstimate = Field(default_factory=StatsEstimate)


# ===================
# SAVED MAPPING PRESETS
# ===================

class MappingPresetCreate(CamelSchema):
    """Save (or replace by name) a column mapping for re-use."""
    name: str = Field(..., min_length=1, max_length=120)
    source_type: SourceType = SourceType.EXCEL
    template_key: Optional[str] = Field(None, max_length=64)
    mapping: dict[str, Optional[int]] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def name_trimmed(cls, v: str) -> str:
        """Preset names are compared trimmed."""
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class MappingPresetResponse(CamelSchema):
    """A saved column mapping."""
    id: str
    name: str
    source_type: SourceType
    template_key: Optional[str] = None
    mapping: dict[str, int] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
