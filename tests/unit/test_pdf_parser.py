"""
Unit tests for the PDF reader.

pdfplumber is patched; pages are MagicMocks with extract_tables/extract_text.
"""

from unittest.mock import MagicMock, patch
import pytest

from exceptions import ImportParseError
from parsers.pdf_parser import (
    NO_TABLES_WARNING,
    TEXT_FALLBACK_WARNING,
    finalize_cell_text,
    pick_likely_table_rows,
    read_pdf,
    should_use_rtl_order,
    split_text_line,
)


def make_page(number: int, tables=None, text: str = ""):
    page = MagicMock()
    page.page_number = number
    page.extract_tables.return_value = tables or []
    page.extract_text.return_value = text
    return page


@pytest.fixture
def mock_pdf():
    """Patch pdfplumber.open; set .pages on the returned document."""
    with patch("parsers.pdf_parser.pdfplumber.open") as mock_open:
        document = MagicMock()
        document.pages = []
        mock_open.return_value.__enter__.return_value = document
        yield document


class TestReadPdf:
    """Tests for read_pdf."""

    def test_tables_from_every_page(self, mock_pdf):
        mock_pdf.pages = [
            make_page(1, tables=[[["Name", "Price"], ["Tile", "10"]]]),
            make_page(2, tables=[[["Name", "Price"], ["Glue", "5"]]]),
        ]

        result = read_pdf(b"%PDF-1.7")

        assert result.pages_detected == 2
        assert [t.page_start for t in result.tables] == [1, 2]
        assert [t.table_index for t in result.tables] == [0, 1]
        assert result.warnings == []

    def test_hebrew_tables_are_reversed(self, mock_pdf):
        # Extracted in visual order: the right-most column comes last
        mock_pdf.pages = [make_page(1, tables=[[["מחיר", "שם מוצר"], ["10", "אריח"]]])]

        result = read_pdf(b"%PDF-1.7")

        assert result.tables[0].rows == [["שם מוצר", "מחיר"], ["אריח", "10"]]

    def test_tiny_tables_dropped(self, mock_pdf):
        mock_pdf.pages = [make_page(1, tables=[[["only one row", "x"]]], text="")]

        result = read_pdf(b"%PDF-1.7")

        assert result.tables == []
        assert NO_TABLES_WARNING in result.warnings

    def test_page_window_respected(self, mock_pdf):
        mock_pdf.pages = [
            make_page(n, tables=[[["Name", "Price"], [f"Item {n}", "1"]]]) for n in range(1, 6)
        ]

        result = read_pdf(b"%PDF-1.7", page_from=2, page_to=3)

        assert [t.page_start for t in result.tables] == [2, 3]
        assert result.pages_detected == 5

    def test_window_too_large(self, mock_pdf):
        mock_pdf.pages = [make_page(n) for n in range(1, 61)]

        with pytest.raises(ImportParseError) as exc_info:
            read_pdf(b"%PDF-1.7", max_pages=50)

        assert exc_info.value.details["max_pages"] == 50

    def test_text_fallback(self, mock_pdf):
        mock_pdf.pages = [make_page(1, text="Name    Price\nTile    10\nGlue    5\nPage 1")]

        result = read_pdf(b"%PDF-1.7")

        assert TEXT_FALLBACK_WARNING in result.warnings
        assert result.tables[0].rows == [["Name", "Price"], ["Tile", "10"], ["Glue", "5"]]

    def test_unreadable_pdf(self):
        with patch("parsers.pdf_parser.pdfplumber.open", side_effect=ValueError("bad xref")):
            with pytest.raises(ImportParseError) as exc_info:
                read_pdf(b"%PDF-broken")

        assert "bad xref" in exc_info.value.details["original_error"]


class TestCellCleanup:
    """Tests for extracted text cleanup."""

    @pytest.mark.parametrize("raw,expected", [
        ("שמןפרפין", "שמן פרפין"),
        ("קולה1.5L", "קולה 1.5 L"),
        (")1 ליטר(", "(1 ליטר)"),
        ("line one\nline two", "line one line two"),
        (None, ""),
    ])
    def test_finalize_cell_text(self, raw, expected):
        assert finalize_cell_text(raw) == expected

    def test_rtl_detection(self):
        assert should_use_rtl_order([["שם", "10"], ["אריח", "5"]]) is True
        assert should_use_rtl_order([["Name", "10"], ["Tile", "5"]]) is False
        assert should_use_rtl_order([]) is False

    @pytest.mark.parametrize("line,cells", [
        ("a\tb\tc", ["a", "b", "c"]),
        ("a | b", ["a", "b"]),
        ("Tile 60x60    12.50", ["Tile 60 x 60", "12.50"]),
        ("אריח גדול", ["אריח גדול"]),
    ])
    def test_split_text_line(self, line, cells):
        assert split_text_line(line) == cells

    def test_pick_likely_rows_needs_two_rows(self):
        assert pick_likely_table_rows(["Name    Price"]) == []
