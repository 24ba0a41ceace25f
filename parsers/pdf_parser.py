"""
PDF table extraction for uploaded price lists.

Uses pdfplumber's table finder per page. When a document has no ruled
tables, falls back to splitting text lines into cells.
"""

from dataclasses import dataclass, field
from io import BytesIO
from typing import Optional
import re
import structlog

import pdfplumber

from exceptions import ImportParseError
from utils.text_utils import has_hebrew

logger = structlog.get_logger(__name__)

# Share of Hebrew cells that makes a table right-to-left
RTL_HEBREW_RATIO = 0.25
MIN_TABLE_ROWS = 2
MIN_TABLE_COLUMNS = 2
TEXT_FALLBACK_MAX_ROWS = 500

NO_TABLES_WARNING = "no tables found in the selected page range"
TEXT_FALLBACK_WARNING = "no ruled tables found, rows were rebuilt from the page text"

_ODD_SPACES = re.compile(r"[\u00a0\u2000-\u200b\u202f\u205f\u3000]")
_HEBREW_FINAL_GLUED = re.compile(r"([ךםןףץ])([א-ת])")


@dataclass
class PdfTable:
    """One table found in the document. Pages are 1-based."""
    table_index: int
    page_start: int
    page_end: int
    rows: list[list[str]] = field(default_factory=list)

    @property
    def width(self) -> int:
        return max((len(r) for r in self.rows), default=0)


@dataclass
class PdfParseResult:
    """Tables extracted from the selected page window."""
    tables: list[PdfTable] = field(default_factory=list)
    pages_detected: int = 0
    warnings: list[str] = field(default_factory=list)


def read_pdf(
    content: bytes,
    page_from: Optional[int] = None,
    page_to: Optional[int] = None,
    max_pages: int = 50,
) -> PdfParseResult:
    """
    Extract candidate tables from a PDF.

    Args:
        content: Raw PDF bytes
        page_from: First page to scan (1-based, inclusive)
        page_to: Last page to scan (1-based, inclusive)
        max_pages: Largest page window allowed in one request

    Returns:
        PdfParseResult (possibly with no tables and a warning)

    Raises:
        ImportParseError: If the PDF cannot be opened or the window is too large
    """
    result = PdfParseResult()

    try:
        with pdfplumber.open(BytesIO(content)) as pdf:
            total_pages = len(pdf.pages)
            result.pages_detected = total_pages
            first, last = _page_window(total_pages, page_from, page_to)

            if last - first + 1 > max_pages:
                raise ImportParseError(
                    message=f"Select at most {max_pages} pages at a time",
                    details={"page_from": first, "page_to": last, "max_pages": max_pages}
                )

            pages = pdf.pages[first - 1:last] if total_pages else []
            for page in pages:
                for raw_table in page.extract_tables() or []:
                    rows = normalize_and_orient_rows(normalize_rows_width(raw_table))
                    if len(rows) < MIN_TABLE_ROWS or len(rows[0]) < MIN_TABLE_COLUMNS:
                        continue
                    result.tables.append(PdfTable(
                        table_index=len(result.tables),
                        page_start=page.page_number,
                        page_end=page.page_number,
                        rows=rows,
                    ))

            if not result.tables and pages:
                fallback = _text_fallback_table(pages)
                if fallback is not None:
                    result.tables.append(fallback)
                    result.warnings.append(TEXT_FALLBACK_WARNING)
    except ImportParseError:
        raise
    except Exception as e:
        logger.error("pdf_read_failed", error=str(e))
        raise ImportParseError(
            message="Failed to read PDF file",
            details={"original_error": str(e)}
        )

    if not result.tables:
        result.warnings.append(NO_TABLES_WARNING)

    logger.info(
        "pdf_read",
        pages=result.pages_detected,
        tables=len(result.tables),
        used_text_fallback=TEXT_FALLBACK_WARNING in result.warnings,
    )
    return result


def _page_window(total_pages: int, page_from: Optional[int], page_to: Optional[int]) -> tuple[int, int]:
    """Clamp a 1-based inclusive page window to the document."""
    if total_pages == 0:
        return 1, 0
    first = min(max(page_from or 1, 1), total_pages)
    last = min(max(page_to or total_pages, first), total_pages)
    return first, last


def _text_fallback_table(pages) -> Optional[PdfTable]:
    lines: list[str] = []
    for page in pages:
        text = page.extract_text() or ""
        lines.extend(line.rstrip() for line in text.replace("\r\n", "\n").split("\n") if line.strip())

    rows = normalize_and_orient_rows(pick_likely_table_rows(lines))
    if len(rows) < MIN_TABLE_ROWS:
        return None
    return PdfTable(
        table_index=0,
        page_start=pages[0].page_number,
        page_end=pages[-1].page_number,
        rows=rows,
    )


# ===================
# CELL AND ROW CLEANUP
# ===================

def finalize_cell_text(value: Optional[str]) -> str:
    """
    Clean one extracted cell.

    Joins wrapped lines, repairs parentheses mirrored by RTL extraction and
    splits runs glued together by the extractor:

    - "שמןפרפין" → "שמן פרפין" (final letter followed by a letter)
    - "קולה1.5L" → "קולה 1.5 L"
    - ")1 ליטר(" → "(1 ליטר)"
    """
    text = _ODD_SPACES.sub(" ", str(value or ""))
    text = re.sub(r"\n+", " ", text.replace("\r", "")).strip()

    first_open = text.find("(")
    first_close = text.find(")")
    if first_open != -1 and first_close != -1 and first_close < first_open:
        text = text.translate(str.maketrans("()", ")("))

    text = re.sub(r"([^\s(])\(", r"\1 (", text)
    text = re.sub(r"\)([^\s)])", r") \1", text)
    text = re.sub(r"([א-ת])\.(\d)", r"\1. \2", text)
    text = _HEBREW_FINAL_GLUED.sub(r"\1 \2", text)
    text = re.sub(r"([א-ת])([A-Za-z])", r"\1 \2", text)
    text = re.sub(r"([A-Za-z])([א-ת])", r"\1 \2", text)
    text = re.sub(r"(\d)([A-Za-z\u0590-\u05ff])", r"\1 \2", text)
    text = re.sub(r"([A-Za-z\u0590-\u05ff])(\d)", r"\1 \2", text)
    return re.sub(r"\s+", " ", text).strip()


def should_use_rtl_order(rows: list[list[str]]) -> bool:
    """True if at least a quarter of the leading cells contain Hebrew."""
    total = 0
    hebrew = 0
    for row in rows[:20]:
        for cell in row[:20]:
            total += 1
            if has_hebrew(cell):
                hebrew += 1
    return total > 0 and hebrew / total >= RTL_HEBREW_RATIO


def normalize_and_orient_rows(rows: list[list[str]]) -> list[list[str]]:
    """Finalize every cell; reverse column order for right-to-left tables."""
    normalized = [[finalize_cell_text(cell) for cell in row] for row in rows]
    if not should_use_rtl_order(normalized):
        return normalized
    # First logical column of an RTL table is its right-most one
    return [list(reversed(row)) for row in normalized]


def normalize_rows_width(rows: list[list[Optional[str]]]) -> list[list[str]]:
    """Pad every row to the widest row (at least 2 columns)."""
    if not rows:
        return []
    width = max(MIN_TABLE_COLUMNS, *(len(r) for r in rows))
    return [
        [("" if cell is None else str(cell)) for cell in row] + [""] * (width - len(row))
        for row in rows
    ]


def split_text_line(line: str) -> list[str]:
    """
    Split one text line into cells on tabs, pipes or runs of 2+ spaces.

    A line with no clear separator stays a single cell so Hebrew words are
    never split apart.
    """
    normalized = _ODD_SPACES.sub(" ", line or "").replace("\r", "").strip()
    if not normalized:
        return []

    if "\t" in normalized:
        return [c for c in (finalize_cell_text(p) for p in re.split(r"\t+", normalized)) if c]

    if "|" in normalized:
        cells = [c for c in (finalize_cell_text(p) for p in normalized.split("|")) if c]
        if len(cells) >= 2:
            return cells

    cells = [c for c in (finalize_cell_text(p) for p in re.split(r"\s{2,}", normalized)) if c]
    if len(cells) >= 2:
        return cells

    return [finalize_cell_text(normalized)]


def pick_likely_table_rows(lines: list[str]) -> list[list[str]]:
    """Keep the text lines that look like rows of one table."""
    candidates = [cells for cells in map(split_text_line, lines) if len(cells) >= 2]
    if len(candidates) < MIN_TABLE_ROWS:
        return []

    width_counts: dict[int, int] = {}
    for cells in candidates:
        width_counts[len(cells)] = width_counts.get(len(cells), 0) + 1
    # Most common width, ties go to the first seen
    preferred = max(width_counts, key=width_counts.get)

    limit = max(12, preferred + 2)
    kept = [cells for cells in candidates if len(cells) <= limit]
    if len(kept) < MIN_TABLE_ROWS:
        return []
    return normalize_rows_width(kept[:TEXT_FALLBACK_MAX_ROWS])
