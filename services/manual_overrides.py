"""
Manual values layered over sheet cells.

Nothing here mutates the source table. resolve() walks a fixed
precedence chain, so reverting an override is just removing it.
"""

from typing import Iterable, Optional

from models.imports import ImportRequest, ManualColumn
from services.field_keys import canonical_field_key, is_known_field_key, parse_pair_key
from utils.text_utils import clean_text


class ManualOverrideStore:
    """
    Row-level, manual-column and column-global values for one import.

    Precedence for resolve(field, row, raw_cell):
        1. row override (non-empty)
        2. raw cell of the mapped column (non-empty)
        3. manual column for the field: its row value, then its bulk value
        4. global value for the field
        5. absent ("")
    """

    def __init__(
        self,
        values_by_row: Optional[dict[int, dict[str, str]]] = None,
        global_values: Optional[dict[str, str]] = None,
        manual_columns: Optional[list[ManualColumn]] = None,
        manual_supplier_name: Optional[str] = None,
    ):
        self.values_by_row: dict[int, dict[str, str]] = {}
        for row, values in (values_by_row or {}).items():
            for key, value in values.items():
                self.set_row_value(int(row), key, value)

        self.global_values: dict[str, str] = {}
        for key, value in (global_values or {}).items():
            if clean_text(value):
                self.global_values[canonical_field_key(key)] = value

        self.manual_columns: list[ManualColumn] = list(manual_columns or [])
        self.manual_supplier_name = clean_text(manual_supplier_name) or None

    @classmethod
    def from_request(cls, request: ImportRequest) -> "ManualOverrideStore":
        return cls(
            values_by_row=request.manual_values_by_row,
            global_values=request.manual_global_values,
            manual_columns=request.manual_columns,
            manual_supplier_name=request.manual_supplier_name,
        )

    # ===================
    # RESOLUTION
    # ===================

    def resolve(self, field_key: str, row_index: int, raw_cell: Optional[str] = None) -> str:
        """Value of field_key on row_index after applying every layer."""
        key = canonical_field_key(field_key)

        override = clean_text(self.values_by_row.get(row_index, {}).get(key))
        if override:
            return override

        raw = clean_text(raw_cell)
        if raw:
            return raw

        for column in self._columns_for(key):
            value = clean_text(column.values_by_row.get(row_index))
            if value:
                return value
            bulk = clean_text(column.bulk_value)
            if bulk:
                return bulk

        return clean_text(self.global_values.get(key))

    def supplier_fallback(self, resolved_supplier: str, has_price: bool) -> str:
        """
        Apply the tenant-wide manual supplier.

        Only fills a pair that has a price and no supplier of its own; a
        supplier from the sheet or a row override always wins.
        """
        if resolved_supplier or not has_price or not self.manual_supplier_name:
            return resolved_supplier
        return self.manual_supplier_name

    def row_override(self, row_index: int, field_key: str) -> Optional[str]:
        return self.values_by_row.get(row_index, {}).get(canonical_field_key(field_key))

    def has_row_values(self, row_index: int) -> bool:
        """True when a row override or a manual column's own row value targets row_index."""
        if self.values_by_row.get(row_index):
            return True
        return any(clean_text(column.values_by_row.get(row_index)) for column in self.manual_columns)

    # ===================
    # EDITING
    # ===================

    def set_row_value(self, row_index: int, field_key: str, value: Optional[str]) -> None:
        """Set one row override. An empty value clears it."""
        key = canonical_field_key(field_key)
        if not clean_text(value):
            self.clear_row(row_index, key)
            return
        self.values_by_row.setdefault(row_index, {})[key] = value

    def clear_row(self, row_index: int, field_key: str) -> None:
        """Drop one row override so the sheet value shows through again."""
        key = canonical_field_key(field_key)
        row = self.values_by_row.get(row_index)
        if row is None:
            return
        row.pop(key, None)
        if not row:
            del self.values_by_row[row_index]

    def apply_to_all(self, field_key: str, value: str, visible_rows: Iterable[int]) -> None:
        """Set a global value and write it onto every visible row."""
        key = canonical_field_key(field_key)
        if clean_text(value):
            self.global_values[key] = value
        else:
            self.global_values.pop(key, None)
        for row_index in visible_rows:
            self.set_row_value(row_index, key, value)

    # ===================
    # INTROSPECTION
    # ===================

    def field_keys(self) -> set[str]:
        """Every field key some manual layer provides a value for."""
        keys = set(self.global_values)
        for values in self.values_by_row.values():
            keys.update(values)
        for column in self.manual_columns:
            key = canonical_field_key(column.field_key)
            if key and (column.bulk_value or any(clean_text(v) for v in column.values_by_row.values())):
                keys.add(key)
        return keys

    def has_any_value(self, field_key: str) -> bool:
        return canonical_field_key(field_key) in self.field_keys()

    def has_any_price(self) -> bool:
        return any(_is_price_key(k) for k in self.field_keys())

    def highest_pair_index(self) -> int:
        indexes = [pair[1] for pair in map(parse_pair_key, self.field_keys()) if pair]
        return max(indexes, default=0)

    def manual_column_errors(self) -> list[str]:
        """An unconfigured manual column is an error, not something to skip."""
        errors = []
        for position, column in enumerate(self.manual_columns, start=1):
            key = canonical_field_key(column.field_key)
            label = column.id or str(position)
            if not key:
                errors.append(f"Manual column {label} has no field selected")
            elif not is_known_field_key(key):
                errors.append(f"Manual column {label} uses unknown field {key}")
        return errors

    def _columns_for(self, key: str) -> list[ManualColumn]:
        return [c for c in self.manual_columns if canonical_field_key(c.field_key) == key]


def _is_price_key(key: str) -> bool:
    pair = parse_pair_key(key)
    return pair is not None and pair[0] == "price"
