"""
Unit tests for PreviewService.
"""

from unittest.mock import MagicMock, patch
import pytest

from exceptions import ImportParseError
from models.imports import ImportPreviewRequest, SourceType
from parsers.source_reader import MERGED_TABLE_INDEX
from services.preview_service import PreviewService, get_preview_service
from tests.factories import build_csv, build_xlsx, hebrew_price_list


@pytest.fixture
def service():
    return PreviewService()


def options(**kwargs) -> ImportPreviewRequest:
    return ImportPreviewRequest(**kwargs)


class TestExcelPreview:
    """Tests for Excel/CSV previews."""

    def test_hebrew_price_list(self, service):
        # Act
        response = service.preview(hebrew_price_list(), "prices.xlsx", options())

        # Assert
        assert response.source_type == SourceType.EXCEL
        assert response.selected_sheet_index == 0
        assert [s.name for s in response.sheets] == ["מחירון"]
        assert response.suggested_mapping == {
            "product_name": 0,
            "sku": 1,
            "category": 5,
            "price_1": 3,
            "supplier_1": 2,
            "discount_percent_1": 4,
        }
        assert response.pair_count == 3
        assert response.columns[0].canonical_label == "שם המוצר"
        assert response.sample_rows[0][0] == "אריח 60x60"
        assert response.template_key is not None

    def test_paging(self, service, monkeypatch):
        monkeypatch.setattr("services.preview_service.settings.import_preview_page_size", 5)
        rows = [["Name", "Price"]] + [[f"Item {i}", str(i + 1)] for i in range(12)]

        response = service.preview(build_csv(rows), "items.csv", options(preview_page=3))

        assert response.preview_total_rows == 12
        assert response.preview_total_pages == 3
        assert response.sample_row_offset == 10
        assert [r[0] for r in response.sample_rows] == ["Item 10", "Item 11"]

    def test_page_past_the_end_is_clamped(self, service):
        response = service.preview(hebrew_price_list(), "prices.xlsx", options(preview_page=40))

        assert response.preview_page == 1
        assert response.sample_row_offset == 0

    def test_without_header(self, service):
        content = build_csv([["Tile", "10"], ["Glue", "5"]])

        response = service.preview(content, "items.csv", options(has_header=False))

        assert response.suggested_mapping == {}
        assert response.template_key is None
        assert response.preview_total_rows == 2
        assert all(c.header_value is None for c in response.columns)

    def test_empty_and_derived_columns_auto_hidden(self, service):
        content = build_xlsx({"S": [
            ["Name", None, "Price", "margin_derived"],
            ["Tile", None, 10, 3],
        ]})

        response = service.preview(content, "a.xlsx", options())

        assert response.auto_hidden_columns == [1, 3]
        assert len(response.columns) == 4

    def test_empty_sheet_is_not_an_error(self, service):
        content = build_xlsx({"Empty": [[None]], "Also": [[None]]})

        response = service.preview(content, "a.xlsx", options())

        assert response.sample_rows == []
        assert response.suggested_mapping == {}
        assert response.preview_total_pages == 0

    def test_unknown_sheet_falls_back_to_first(self, service):
        response = service.preview(hebrew_price_list(), "prices.xlsx", options(sheet_index=4))

        assert response.selected_sheet_index == 0
        assert response.suggested_mapping["product_name"] == 0

    def test_oversize_upload_rejected(self, service, monkeypatch):
        monkeypatch.setattr("services.source_service.settings.import_max_file_mb", 0)

        with pytest.raises(ImportParseError):
            service.preview(hebrew_price_list(), "prices.xlsx", options())

    def test_singleton(self):
        assert get_preview_service() is get_preview_service()


class TestPdfPreview:
    """Tests for PDF previews (pdfplumber patched)."""

    @pytest.fixture
    def two_page_pdf(self):
        pages = []
        for number, item in ((1, "Tile"), (2, "Glue")):
            page = MagicMock()
            page.page_number = number
            page.extract_tables.return_value = [[["Name", "Price", "Supplier"], [item, "10", "Acme"]]]
            page.extract_text.return_value = ""
            pages.append(page)
        with patch("parsers.pdf_parser.pdfplumber.open") as mock_open:
            mock_open.return_value.__enter__.return_value.pages = pages
            yield mock_open

    def test_tables_listed_with_merged_view(self, service, two_page_pdf):
        response = service.preview(b"%PDF-1.7", "list.pdf", options())

        assert response.source_type == SourceType.PDF
        assert response.pages_detected == 2
        assert [t.table_index for t in response.tables] == [0, 1, MERGED_TABLE_INDEX]
        assert response.selected_table_index == 0
        assert response.suggested_mapping["supplier_1"] == 2

    def test_merged_view_selected(self, service, two_page_pdf):
        response = service.preview(b"%PDF-1.7", "list.pdf", options(table_index=MERGED_TABLE_INDEX))

        assert response.selected_table_index == MERGED_TABLE_INDEX
        assert [r[0] for r in response.sample_rows] == ["Tile", "Glue"]

    def test_declared_type_wins(self, service, two_page_pdf):
        response = service.preview(b"%PDF-1.7", "list.bin", options(source_type=SourceType.PDF))

        assert response.source_type == SourceType.PDF
