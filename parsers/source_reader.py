"""
Source reader: turns an upload into one selected 2-D table.

Detects the file kind, delegates to the workbook or PDF reader, and
resolves sheet/table selection and the header row. Knows nothing about
mapping; every column is exposed, including fully empty ones.
"""

from dataclasses import dataclass, field
from typing import Optional
import math
import structlog

from exceptions import ImportParseError
from models.imports import SheetInfo, SourceColumn, SourceTable, SourceType
from parsers.excel_parser import RawSheet, read_workbook
from parsers.pdf_parser import PdfTable, read_pdf
from utils.text_utils import column_letter

logger = structlog.get_logger(__name__)

PDF_MAGIC = b"%PDF"
MERGED_TABLE_INDEX = -1
AUTO_SHEET_INDEX = -1


@dataclass
class ParsedSource:
    """Everything read from one upload, before any selection."""
    source_type: SourceType
    sheets: list[RawSheet] = field(default_factory=list)
    tables: list[PdfTable] = field(default_factory=list)
    pages_detected: Optional[int] = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class SelectedTable:
    """
    The sheet or table the user is working on.

    rows holds data rows only. Row i is line i + first_data_line of the
    sheet/table (1-based), which is what users see in Excel.
    """
    source_type: SourceType
    header: list[str]
    rows: list[list[str]]
    has_header: bool
    sheet_index: Optional[int] = None
    table_index: Optional[int] = None

    @property
    def width(self) -> int:
        return max(len(self.header), max((len(r) for r in self.rows), default=0))

    @property
    def first_data_line(self) -> int:
        return 2 if self.has_header else 1

    def source_row(self, row_index: int) -> int:
        """1-based line of a data row in the sheet/table."""
        return row_index + self.first_data_line

    def cell(self, row_index: int, column: Optional[int]) -> str:
        """Cell text, "" for unmapped columns or short rows."""
        if column is None:
            return ""
        row = self.rows[row_index]
        return row[column] if 0 <= column < len(row) else ""

    def columns(self) -> list[SourceColumn]:
        """Describe every column, blank ones included."""
        return [
            SourceColumn(
                index=i,
                letter=column_letter(i),
                header_value=(self.header[i] or None) if i < len(self.header) else None,
            )
            for i in range(self.width)
        ]


def detect_source_type(
    content: bytes,
    filename: Optional[str] = None,
    declared: Optional[SourceType] = None,
) -> SourceType:
    """Declared type wins; otherwise PDF magic or a .pdf extension means PDF."""
    if declared is not None:
        return declared
    if content.startswith(PDF_MAGIC):
        return SourceType.PDF
    if filename and filename.lower().endswith(".pdf"):
        return SourceType.PDF
    return SourceType.EXCEL


def parse_source(
    content: bytes,
    source_type: SourceType,
    filename: Optional[str] = None,
    page_from: Optional[int] = None,
    page_to: Optional[int] = None,
    max_pages: int = 50,
) -> ParsedSource:
    """
    Read every sheet (Excel/CSV) or every table in the page window (PDF).

    Raises:
        ImportParseError: If the file is empty or unreadable
    """
    if not content:
        raise ImportParseError(message="The uploaded file is empty")

    if source_type == SourceType.PDF:
        pdf = read_pdf(content, page_from=page_from, page_to=page_to, max_pages=max_pages)
        return ParsedSource(
            source_type=SourceType.PDF,
            tables=pdf.tables,
            pages_detected=pdf.pages_detected,
            warnings=list(pdf.warnings),
        )

    workbook = read_workbook(content, filename=filename)
    return ParsedSource(
        source_type=SourceType.EXCEL,
        sheets=workbook.sheets,
        warnings=list(workbook.warnings),
    )


def select_table(
    parsed: ParsedSource,
    sheet_index: int = AUTO_SHEET_INDEX,
    table_index: int = 0,
    has_header: bool = True,
) -> SelectedTable:
    """
    Pick the sheet/table to work on and split off its header row.

    Raises:
        ImportParseError: If the PDF table index is out of range (a bad sheet index falls back to the first sheet)
    """
    if parsed.source_type == SourceType.PDF:
        grid, resolved_table = _select_pdf_rows(parsed.tables, table_index)
        resolved_sheet = None
    else:
        grid, resolved_sheet = _select_sheet_rows(parsed.sheets, sheet_index)
        resolved_table = None

    width = max((len(r) for r in grid), default=0)
    grid = [r + [""] * (width - len(r)) for r in grid]

    if has_header and grid:
        header, rows = grid[0], grid[1:]
    else:
        header, rows = [""] * width, grid

    logger.debug(
        "table_selected",
        source_type=parsed.source_type.value,
        sheet_index=resolved_sheet,
        table_index=resolved_table,
        data_rows=len(grid) - (1 if has_header and grid else 0),
    )

    return SelectedTable(
        source_type=parsed.source_type,
        header=header,
        rows=rows,
        has_header=has_header,
        sheet_index=resolved_sheet,
        table_index=resolved_table,
    )


def _select_sheet_rows(sheets: list[RawSheet], sheet_index: int) -> tuple[list[list[str]], int]:
    if not sheets:
        return [], 0
    if sheet_index == AUTO_SHEET_INDEX:
        sheet_index = max(range(len(sheets)), key=lambda i: (sheets[i].non_empty_rows, -i))
    if not 0 <= sheet_index < len(sheets):
        logger.warning("sheet_index_out_of_range", sheet_index=sheet_index, sheet_count=len(sheets))
        sheet_index = 0
    return [list(r) for r in sheets[sheet_index].rows], sheet_index


def _select_pdf_rows(tables: list[PdfTable], table_index: int) -> tuple[list[list[str]], Optional[int]]:
    if not tables:
        return [], None
    if table_index == MERGED_TABLE_INDEX:
        return merge_tables(tables), MERGED_TABLE_INDEX
    if not 0 <= table_index < len(tables):
        raise ImportParseError(
            message=f"Table {table_index} does not exist",
            details={"table_index": table_index, "table_count": len(tables)}
        )
    return [list(r) for r in tables[table_index].rows], table_index


def merge_tables(tables: list[PdfTable]) -> list[list[str]]:
    """
    Concatenate all tables in document order.

    Rows that repeat the first table's header row (page-break headers) are
    dropped after their first occurrence.
    """
    if not tables:
        return []
    width = max(t.width for t in tables)
    header = _pad(tables[0].rows[0], width) if tables[0].rows else None

    merged: list[list[str]] = []
    for t_index, table in enumerate(tables):
        for r_index, row in enumerate(table.rows):
            padded = _pad(row, width)
            is_first_header = t_index == 0 and r_index == 0
            if not is_first_header and header is not None and padded == header:
                continue
            merged.append(padded)
    return merged


def _pad(row: list[str], width: int) -> list[str]:
    return list(row) + [""] * (width - len(row))


# ===================
# DESCRIPTION AND PAGING
# ===================

def describe_sheets(parsed: ParsedSource) -> list[SheetInfo]:
    return [
        SheetInfo(index=i, name=sheet.name, non_empty_rows=sheet.non_empty_rows)
        for i, sheet in enumerate(parsed.sheets)
    ]


def describe_tables(parsed: ParsedSource, has_header: bool, sample_size: int) -> list[SourceTable]:
    """Summaries of every PDF table plus the merged view when there are several."""
    summaries = []
    indexes = list(range(len(parsed.tables)))
    if len(parsed.tables) > 1:
        indexes.append(MERGED_TABLE_INDEX)

    for index in indexes:
        selected = select_table(parsed, table_index=index, has_header=has_header)
        if index == MERGED_TABLE_INDEX:
            page_start = parsed.tables[0].page_start
            page_end = parsed.tables[-1].page_end
        else:
            page_start = parsed.tables[index].page_start
            page_end = parsed.tables[index].page_end
        summaries.append(SourceTable(
            table_index=index,
            page_start=page_start,
            page_end=page_end,
            row_count=len(selected.rows),
            columns=selected.columns(),
            sample_rows=selected.rows[:sample_size],
        ))
    return summaries


def page_window(total_rows: int, page: int, page_size: int) -> tuple[int, int, int]:
    """
    Resolve a 1-based preview page.

    Returns:
        (page, offset, total_pages); page is clamped to the last page
    """
    total_pages = math.ceil(total_rows / page_size) if total_rows else 0
    page = min(max(page, 1), max(total_pages, 1))
    offset = (page - 1) * page_size
    return page, offset, total_pages
