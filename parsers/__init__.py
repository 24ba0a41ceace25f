"""
File readers for price-list uploads.

Workbook/CSV and PDF readers plus the source reader that selects the
working table.
"""

from parsers.excel_parser import read_workbook, RawSheet, WorkbookParseResult
from parsers.pdf_parser import read_pdf, PdfTable, PdfParseResult
from parsers.source_reader import (
    ParsedSource,
    SelectedTable,
    detect_source_type,
    parse_source,
    select_table,
)

__all__ = [
    "read_workbook",
    "RawSheet",
    "WorkbookParseResult",
    "read_pdf",
    "PdfTable",
    "PdfParseResult",
    "ParsedSource",
    "SelectedTable",
    "detect_source_type",
    "parse_source",
    "select_table",
]
