"""
Workbook and CSV reader for uploaded price lists.

Every sheet is read without any assumption about its layout: no header
detection, no dtype inference. Cells come back as display strings so the
mapping step sees exactly what the user sees in Excel.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from io import BytesIO, StringIO
from typing import Optional
import csv
import math
import structlog

import pandas as pd

from exceptions import ImportParseError
from utils.text_utils import clean_text

logger = structlog.get_logger(__name__)

# File signatures
ZIP_MAGIC = b"PK"
OLE_MAGIC = b"\xd0\xcf\x11\xe0"

CSV_ENCODINGS = ("utf-8-sig", "cp1255", "latin-1")
CSV_DELIMITERS = ",;\t|"


@dataclass
class RawSheet:
    """One worksheet as a rectangular grid of strings."""
    name: str
    rows: list[list[str]] = field(default_factory=list)

    @property
    def width(self) -> int:
        return max((len(r) for r in self.rows), default=0)

    @property
    def non_empty_rows(self) -> int:
        """Rows with at least one non-blank cell."""
        return sum(1 for r in self.rows if any(cell for cell in r))


@dataclass
class WorkbookParseResult:
    """Result of reading an Excel/CSV upload."""
    sheets: list[RawSheet] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def read_workbook(content: bytes, filename: Optional[str] = None) -> WorkbookParseResult:
    """
    Read an Excel workbook or CSV file.

    Args:
        content: Raw upload bytes
        filename: Original file name (used for log context only)

    Returns:
        WorkbookParseResult with one RawSheet per worksheet (CSV yields one)

    Raises:
        ImportParseError: If the file is a legacy .xls or cannot be read
    """
    if content.startswith(OLE_MAGIC):
        raise ImportParseError(
            message="Legacy .xls files are not supported. Save the file as .xlsx and upload again.",
            details={"filename": filename}
        )

    if content.startswith(ZIP_MAGIC):
        result = _read_xlsx(content, filename)
    else:
        result = _read_csv(content, filename)

    logger.info(
        "workbook_read",
        filename=filename,
        sheet_count=len(result.sheets),
        rows=[s.non_empty_rows for s in result.sheets],
    )
    return result


def _read_xlsx(content: bytes, filename: Optional[str]) -> WorkbookParseResult:
    try:
        excel = pd.ExcelFile(BytesIO(content), engine="openpyxl")
        frames = {
            name: excel.parse(name, header=None, dtype=object)
            for name in excel.sheet_names
        }
    except Exception as e:
        logger.error("excel_read_failed", filename=filename, error=str(e))
        raise ImportParseError(
            message="Failed to read Excel file",
            details={"original_error": str(e)}
        )

    result = WorkbookParseResult()
    for name, df in frames.items():
        result.sheets.append(RawSheet(name=str(name), rows=_frame_to_rows(df)))
    return result


def _read_csv(content: bytes, filename: Optional[str]) -> WorkbookParseResult:
    text = _decode_csv(content)
    if not text.strip():
        return WorkbookParseResult(sheets=[RawSheet(name="Sheet1")])

    delimiter = _sniff_delimiter(text)
    # Ragged rows are legal in hand-made CSVs; size the frame to the widest one
    width = max((len(r) for r in csv.reader(StringIO(text), delimiter=delimiter)), default=1)

    try:
        df = pd.read_csv(
            StringIO(text),
            sep=delimiter,
            header=None,
            names=list(range(max(width, 1))),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=False,
        )
    except Exception as e:
        logger.error("csv_read_failed", filename=filename, error=str(e))
        raise ImportParseError(
            message="Failed to read CSV file",
            details={"original_error": str(e)}
        )

    return WorkbookParseResult(sheets=[RawSheet(name="Sheet1", rows=_frame_to_rows(df))])


def _decode_csv(content: bytes) -> str:
    """Decode CSV bytes, trying UTF-8 first and Hebrew Windows code page next."""
    *strict, fallback = CSV_ENCODINGS
    for encoding in strict:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    # latin-1 never fails
    return content.decode(fallback)


def _sniff_delimiter(text: str) -> str:
    sample = text[:4096]
    try:
        return csv.Sniffer().sniff(sample, delimiters=CSV_DELIMITERS).delimiter
    except csv.Error:
        return ","


# ===================
# CELL CONVERSION
# ===================

def _frame_to_rows(df: pd.DataFrame) -> list[list[str]]:
    """Convert a header-less frame to padded string rows, trailing blank rows dropped."""
    rows = [[cell_to_text(v) for v in record] for record in df.itertuples(index=False, name=None)]

    while rows and not any(rows[-1]):
        rows.pop()

    width = max((len(r) for r in rows), default=0)
    return [r + [""] * (width - len(r)) for r in rows]


def cell_to_text(value) -> str:
    """
    Render one cell as the text a user would read.

    - None / NaN → ""
    - 10.0 → "10"
    - datetime(2024, 5, 1) → "2024-05-01"
    """
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (pd.Timestamp, datetime)):
        if pd.isna(value):
            return ""
        return value.date().isoformat()
    if isinstance(value, (date, time)):
        return value.isoformat()
    return clean_text(str(value))
