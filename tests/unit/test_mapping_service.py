"""
Unit tests for header matching and the mapping engine.
"""

import random
import pytest

from exceptions import MappingError
from services.field_keys import MAX_PAIR_COUNT
from services.header_normalizer import canonical_label, match_header
from services.mapping_service import (
    ImportMapping,
    auto_hidden_columns,
    infer_mapping,
    template_key,
)


# ===================
# HEADER NORMALIZER
# ===================

class TestMatchHeader:
    """Tests for synonym lookup."""

    @pytest.mark.parametrize("header,concept", [
        ("Product Name", "product_name"),
        ("product_name", "product_name"),
        ("שם מוצר", "product_name"),
        ("מק\"ט", "sku"),
        ("Supplier", "supplier"),
        ("מחיר", "cost_price"),
        ("Price includes VAT", "source_price_includes_vat"),
        ("הנחה %", "discount_percent"),
    ])
    def test_known_headers(self, header, concept):
        match = match_header(header)
        assert match is not None
        assert match[0].key == concept

    def test_ordinal_suffix(self):
        concept, ordinal = match_header("מחיר 2")
        assert concept.key == "cost_price"
        assert ordinal == 2

    def test_whole_word_containment(self):
        concept, _ = match_header("מחיר ספק ראשי")
        assert concept.key == "cost_price"

    @pytest.mark.parametrize("header", ["", None, "Remarks"])
    def test_unknown_headers(self, header):
        assert match_header(header) is None


class TestCanonicalLabel:
    """Tests for display labels."""

    def test_known_header(self):
        assert canonical_label("product_name") == "שם המוצר"

    def test_ordinal_kept(self):
        assert canonical_label("Price 2") == "מחיר עלות 2"

    def test_unknown_header_trimmed(self):
        assert canonical_label("  Remarks ") == "Remarks"


# ===================
# INFERENCE
# ===================

class TestInferMapping:
    """Tests for infer_mapping."""

    def test_repeated_price_columns_get_next_pair(self):
        mapping = infer_mapping(["שם מוצר", "מחיר", "ספק", "מחיר", "ספק"])

        assert mapping.to_wire() == {
            "product_name": 0,
            "price_1": 1,
            "supplier_1": 2,
            "price_2": 3,
            "supplier_2": 4,
        }

    def test_explicit_ordinal_claims_its_slot(self):
        mapping = infer_mapping(["Name", "Supplier 2", "Price 2"])

        assert mapping.column_of("supplier_2") == 1
        assert mapping.column_of("price_2") == 2
        assert mapping.column_of("price_1") is None

    def test_out_of_range_ordinal_takes_next_slot(self):
        mapping = infer_mapping(["Name", "Price 99"])

        assert mapping.column_of("price_1") == 1

    def test_price_columns_beyond_last_slot_stay_unmapped(self):
        headers = ["Name"] + ["Price"] * (MAX_PAIR_COUNT + 2)

        mapping = infer_mapping(headers)

        assert mapping.column_of(f"price_{MAX_PAIR_COUNT}") == MAX_PAIR_COUNT
        assert mapping.field_for_column(MAX_PAIR_COUNT + 1) is None
        assert mapping.field_for_column(MAX_PAIR_COUNT + 2) is None

    def test_second_singular_column_stays_unmapped(self):
        mapping = infer_mapping(["Name", "Product", "Price"])

        assert mapping.column_of("product_name") == 0
        assert mapping.field_for_column(1) is None

    def test_pair_count_is_at_least_three(self):
        assert infer_mapping(["Name", "Price"]).pair_count == 3

    def test_pair_count_follows_highest_slot(self):
        headers = ["Name"] + [f"Price {i}" for i in range(1, 6)]
        assert infer_mapping(headers).pair_count == 5

    def test_empty_headers(self):
        mapping = infer_mapping(["", "", ""])
        assert mapping.to_wire() == {}


# ===================
# EDITING CONTRACT
# ===================

class TestAssign:
    """Tests for ImportMapping.assign."""

    def test_column_serves_one_field(self):
        # Arrange
        mapping = ImportMapping()
        mapping.assign("product_name", 0)

        # Act
        mapping.assign("sku", 0)

        # Assert
        assert mapping.column_of("sku") == 0
        assert mapping.column_of("product_name") is None

    def test_field_has_one_column(self):
        mapping = ImportMapping()
        mapping.assign("price_1", 1)

        mapping.assign("price_1", 2)

        assert mapping.column_of("price_1") == 2
        assert mapping.field_for_column(1) is None

    def test_unknown_key_rejected(self):
        with pytest.raises(MappingError):
            ImportMapping().assign("colour", 0)

    def test_random_edits_keep_invariants(self):
        keys = ["product_name", "sku", "category", "price_1", "supplier_1", "price_2", "supplier_2"]
        rng = random.Random(7)
        mapping = ImportMapping()

        for _ in range(300):
            key, column = rng.choice(keys), rng.randrange(6)
            previous = mapping.column_of(key)
            mapping.assign(key, column)

            columns = [col for _, col in mapping.items()]
            assert len(columns) == len(set(columns))
            assert mapping.column_of(key) == column
            if previous is not None and previous != column:
                assert mapping.field_for_column(previous) != key

    def test_clear_removes_key(self):
        mapping = ImportMapping()
        mapping.assign("supplier_2", 3)

        mapping.clear("supplier_2")

        assert "supplier_2" not in mapping.to_wire()
        assert mapping.slots == []

    def test_hide_column_clears_mapping(self):
        mapping = ImportMapping()
        mapping.assign("category", 4)

        mapping.hide_column(4)

        assert mapping.column_of("category") is None
        assert 4 in mapping.hidden_columns

        mapping.restore_column(4)
        assert 4 not in mapping.hidden_columns

    def test_ensure_pair_count(self):
        mapping = ImportMapping()
        mapping.ensure_pair_count(5)
        assert mapping.pair_count == 5


class TestFromWire:
    """Tests for ImportMapping.from_wire."""

    def test_legacy_keys_are_pair_one(self):
        mapping = ImportMapping.from_wire({"product_name": 0, "price": 1, "supplier": 2}, column_count=3)

        assert mapping.column_of("price_1") == 1
        assert mapping.column_of("supplier_1") == 2

    def test_null_means_unmapped(self):
        mapping = ImportMapping.from_wire({"product_name": 0, "sku": None}, column_count=2)
        assert mapping.to_wire() == {"product_name": 0}

    def test_collects_every_error(self):
        with pytest.raises(MappingError) as exc_info:
            ImportMapping.from_wire(
                {"product_name": 0, "sku": 0, "colour": 1, "price_1": 9, "category": True},
                column_count=3,
            )

        errors = exc_info.value.field_errors
        assert len(errors) == 4
        assert any("colour" in e for e in errors)
        assert any("column 9" in e for e in errors)

    def test_copy_is_independent(self):
        mapping = ImportMapping.from_wire({"product_name": 0, "price_1": 1}, column_count=2)
        clone = mapping.copy()

        clone.assign("price_1", 0)

        assert mapping.to_wire() == {"product_name": 0, "price_1": 1}


# ===================
# AUTO-HIDE AND TEMPLATE KEY
# ===================

class TestAutoHidden:
    """Tests for auto_hidden_columns."""

    def test_empty_and_derived_columns_hidden(self):
        headers = ["Name", "", "total_derived", "Price"]
        rows = [["Tile", "", "12", "5"], ["Glue", "", "8", "3"]]
        mapping = ImportMapping.from_wire({"product_name": 0, "price_1": 3}, column_count=4)

        assert auto_hidden_columns(headers, rows, mapping) == [1, 2]

    def test_mapped_column_never_hidden(self):
        headers = ["Name", ""]
        rows = [["Tile", ""]]
        mapping = ImportMapping.from_wire({"product_name": 0, "sku": 1}, column_count=2)

        assert auto_hidden_columns(headers, rows, mapping) == []

    def test_blank_header_with_data_is_kept(self):
        headers = ["Name", ""]
        rows = [["Tile", ""], ["Glue", "x"]]

        assert auto_hidden_columns(headers, rows, ImportMapping()) == []


class TestTemplateKey:
    """Tests for header fingerprints."""

    def test_same_headers_same_key(self):
        assert template_key(["Name", "Price"]) == template_key([" name ", "PRICE"])

    def test_different_headers_different_key(self):
        assert template_key(["Name", "Price"]) != template_key(["Name", "Cost"])

    def test_blank_headers_have_no_key(self):
        assert template_key(["", None]) is None
