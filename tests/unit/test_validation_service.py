"""
Unit tests for ValidationService and the shared prepare_import path.
"""

import pytest

from exceptions import ImportParseError, MappingError
from models.imports import ManualColumn
from services.validation_service import ValidationService, get_validation_service, prepare_import
from tests.factories import HEBREW_MAPPING, build_csv, build_xlsx, hebrew_price_list, make_request


@pytest.fixture
def service():
    return ValidationService()


class TestValidate:
    """Tests for ValidationService.validate."""

    def test_clean_file(self, service):
        response = service.validate(hebrew_price_list(), "prices.xlsx", make_request())

        assert response.field_errors == []
        assert response.row_errors == []
        assert response.unimported_products == []
        assert response.stats_estimate.total_input_rows == 2
        assert response.stats_estimate.mapped_rows == 2
        assert response.stats_estimate.skipped_rows == 0
        assert response.pair_count == 3

    def test_row_errors_are_reported_not_raised(self, service):
        content = build_csv([
            ["Name", "Price", "Supplier"],
            ["Tile", "abc", "Acme"],
            ["Glue", "5", "Acme"],
        ])

        response = service.validate(content, "prices.csv", make_request({"product_name": 0, "price_1": 1, "supplier_1": 2}))

        assert len(response.row_errors) == 1
        assert response.row_errors[0].row == 0
        assert response.row_errors[0].source_row == 2
        assert response.unimported_products[0].product_name == "Tile"
        assert response.stats_estimate.mapped_rows == 1

    def test_camel_case_on_the_wire(self, service):
        response = service.validate(hebrew_price_list(), "prices.xlsx", make_request())

        body = response.model_dump(by_alias=True)

        assert "statsEstimate" in body
        assert "totalInputRows" in body["statsEstimate"]

    def test_merged_supplier_row_is_a_row_warning(self, service):
        content = build_csv([["Name", "Price", "Supplier"], ["Tile", "10", "Acme"], ["", "", "Acme Wrapped"]])
        request = make_request({"product_name": 0, "price_1": 1, "supplier_1": 2})

        response = service.validate(content, "prices.csv", request)

        assert response.row_errors == []
        assert [w.source_row for w in response.row_warnings] == [3]
        assert response.model_dump(by_alias=True)["rowWarnings"][0]["sourceRow"] == 3

    def test_singleton(self):
        assert get_validation_service() is get_validation_service()


class TestMappingRejection:
    """Terminal mapping problems."""

    def test_no_product_name_source(self, service):
        mapping = {k: v for k, v in HEBREW_MAPPING.items() if k != "product_name"}

        with pytest.raises(MappingError) as exc_info:
            service.validate(hebrew_price_list(), "prices.xlsx", make_request(mapping))

        assert "product name" in exc_info.value.field_errors[0]

    def test_global_product_name_is_enough(self, service):
        mapping = {k: v for k, v in HEBREW_MAPPING.items() if k != "product_name"}
        request = make_request(mapping, manual_global_values={"product_name": "Same for all"})

        response = service.validate(hebrew_price_list(), "prices.xlsx", request)

        # Both rows now share a name but differ in price, so both survive
        assert response.stats_estimate.mapped_rows == 2

    def test_no_price_source(self, service):
        with pytest.raises(MappingError) as exc_info:
            service.validate(hebrew_price_list(), "prices.xlsx", make_request({"product_name": 0, "supplier_1": 2}))

        assert "price" in exc_info.value.field_errors[0]

    def test_manual_price_on_one_row_is_enough(self, service):
        request = make_request(
            {"product_name": 0, "supplier_1": 2},
            manual_values_by_row={0: {"price_1": "12"}},
        )

        response = service.validate(hebrew_price_list(), "prices.xlsx", request)

        assert response.stats_estimate.mapped_rows == 1
        assert response.unimported_products[0].row == 1

    def test_unconfigured_manual_column(self, service):
        request = make_request(manual_columns=[ManualColumn(id="extra", field_key="")])

        with pytest.raises(MappingError) as exc_info:
            service.validate(hebrew_price_list(), "prices.xlsx", request)

        assert "extra" in exc_info.value.field_errors[0]

    def test_hidden_column_loses_its_mapping(self, service):
        request = make_request(hidden_columns=[0])

        with pytest.raises(MappingError):
            service.validate(hebrew_price_list(), "prices.xlsx", request)

    def test_column_out_of_range(self, service):
        with pytest.raises(MappingError):
            service.validate(hebrew_price_list(), "prices.xlsx", make_request({**HEBREW_MAPPING, "sku": 40}))


class TestPrepareImport:
    """Tests for prepare_import."""

    def test_parse_error_propagates(self):
        with pytest.raises(ImportParseError):
            prepare_import(b"", "empty.csv", make_request())

    def test_selected_sheet_used(self):
        content = build_xlsx({
            "Big": [["Name", "Price", "Supplier"], ["A", 1, "S"], ["B", 2, "S"], ["C", 3, "S"]],
            "Small": [["Name", "Price", "Supplier"], ["Z", 9, "S"]],
        })
        request = make_request({"product_name": 0, "price_1": 1, "supplier_1": 2}, sheet_index=1)

        prepared = prepare_import(content, "book.xlsx", request)

        assert [r.product_name for r in prepared.evaluation.rows] == ["Z"]
