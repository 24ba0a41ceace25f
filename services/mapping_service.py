"""
Mapping engine: field key ↔ column assignments.

Proposes a mapping from headers and enforces the editing contract: a
column serves at most one field and a field has at most one column.
"""

from dataclasses import dataclass, field
from typing import Any, Iterator, Optional
import hashlib
import re
import structlog

from exceptions import MappingError
from services.field_keys import (
    DISCOUNT,
    MAX_PAIR_COUNT,
    MIN_PAIR_COUNT,
    PAIR_PARTS,
    PRICE,
    SINGULAR_FIELDS,
    SUPPLIER,
    canonical_field_key,
    is_known_field_key,
    pair_key,
    parse_pair_key,
)
from services.header_normalizer import match_header
from utils.text_utils import normalize_header_token

logger = structlog.get_logger(__name__)

_DERIVED_MARKER = re.compile(r"[_\s\-.]derived$", re.IGNORECASE)


@dataclass
class SupplierPriceSlot:
    """One supplier/price/discount group, by position (1-based)."""
    index: int
    price_column: Optional[int] = None
    supplier_column: Optional[int] = None
    discount_column: Optional[int] = None

    def get(self, part: str) -> Optional[int]:
        return getattr(self, _SLOT_ATTRS[part])

    def set(self, part: str, column: Optional[int]) -> None:
        setattr(self, _SLOT_ATTRS[part], column)

    @property
    def is_empty(self) -> bool:
        return all(self.get(part) is None for part in PAIR_PARTS)


_SLOT_ATTRS = {
    PRICE: "price_column",
    SUPPLIER: "supplier_column",
    DISCOUNT: "discount_column",
}


@dataclass
class ImportMapping:
    """
    Column assignment for one import.

    Singular fields live in a dict; supplier/price groups in a positional
    list of slots. Use assign/clear rather than touching either directly.
    """
    singular: dict[str, int] = field(default_factory=dict)
    slots: list[SupplierPriceSlot] = field(default_factory=list)
    hidden_columns: set[int] = field(default_factory=set)
    min_pairs: int = MIN_PAIR_COUNT

    # ===================
    # LOOKUPS
    # ===================

    def column_of(self, field_key: str) -> Optional[int]:
        """Column mapped to field_key, or None."""
        key = canonical_field_key(field_key)
        pair = parse_pair_key(key)
        if pair is None:
            return self.singular.get(key)
        part, index = pair
        slot = self._slot(index, create=False)
        return slot.get(part) if slot else None

    def field_for_column(self, column: int) -> Optional[str]:
        """Field key currently pointing at column, or None."""
        for key, col in self.items():
            if col == column:
                return key
        return None

    def items(self) -> Iterator[tuple[str, int]]:
        """(field_key, column) for every mapped field, singular first."""
        for key in SINGULAR_FIELDS:
            if key in self.singular:
                yield key, self.singular[key]
        for slot in self.slots:
            for part in PAIR_PARTS:
                column = slot.get(part)
                if column is not None:
                    yield pair_key(part, slot.index), column

    def slot(self, index: int) -> SupplierPriceSlot:
        """Slot by 1-based index (an empty slot if never assigned)."""
        return self._slot(index, create=False) or SupplierPriceSlot(index=index)

    @property
    def highest_pair_in_use(self) -> int:
        return max((s.index for s in self.slots if not s.is_empty), default=0)

    @property
    def pair_count(self) -> int:
        """Number of pair slots to offer: at least min_pairs, at least the highest in use."""
        return max(self.min_pairs, self.highest_pair_in_use, 1)

    @property
    def has_price_column(self) -> bool:
        return any(s.price_column is not None for s in self.slots)

    # ===================
    # EDITING
    # ===================

    def assign(self, field_key: str, column: int) -> None:
        """
        Point field_key at column.

        Clears whatever field held column before, and field_key's previous column.

        Raises:
            MappingError: If field_key is not a known field key
        """
        key = canonical_field_key(field_key)
        _require_known(key)
        if self.column_of(key) == column:
            return

        previous_owner = self.field_for_column(column)
        if previous_owner is not None:
            self.clear(previous_owner)
        self.clear(key)

        pair = parse_pair_key(key)
        if pair is None:
            self.singular[key] = column
        else:
            part, index = pair
            self._slot(index, create=True).set(part, column)
        self.hidden_columns.discard(column)

    def clear(self, field_key: str) -> None:
        """Remove field_key from the mapping ("not relevant")."""
        key = canonical_field_key(field_key)
        pair = parse_pair_key(key)
        if pair is None:
            self.singular.pop(key, None)
            return
        part, index = pair
        slot = self._slot(index, create=False)
        if slot is not None:
            slot.set(part, None)
            self._drop_trailing_empty_slots()

    def hide_column(self, column: int) -> None:
        """Hide a column from the working view; any mapping to it is cleared."""
        owner = self.field_for_column(column)
        if owner is not None:
            self.clear(owner)
        self.hidden_columns.add(column)

    def restore_column(self, column: int) -> None:
        self.hidden_columns.discard(column)

    def ensure_pair_count(self, count: int) -> None:
        """Offer at least count pair slots (the "add supplier" action)."""
        self.min_pairs = max(self.min_pairs, count)

    def copy(self) -> "ImportMapping":
        return ImportMapping(
            singular=dict(self.singular),
            slots=[SupplierPriceSlot(s.index, s.price_column, s.supplier_column, s.discount_column)
                   for s in self.slots],
            hidden_columns=set(self.hidden_columns),
            min_pairs=self.min_pairs,
        )

    def _slot(self, index: int, create: bool) -> Optional[SupplierPriceSlot]:
        for slot in self.slots:
            if slot.index == index:
                return slot
        if not create:
            return None
        slot = SupplierPriceSlot(index=index)
        self.slots.append(slot)
        self.slots.sort(key=lambda s: s.index)
        return slot

    def _drop_trailing_empty_slots(self) -> None:
        while self.slots and self.slots[-1].is_empty:
            self.slots.pop()

    # ===================
    # WIRE FORMAT
    # ===================

    def to_wire(self) -> dict[str, int]:
        """Flat {field_key: column} dict, unmapped keys omitted."""
        return dict(self.items())

    @classmethod
    def from_wire(cls, payload: Optional[dict[str, Any]], column_count: int) -> "ImportMapping":
        """
        Build a mapping from the flat wire dict.

        null values mean unmapped. Legacy price/supplier/discount_percent
        keys are read as pair 1.

        Raises:
            MappingError: On unknown keys, bad column indexes or a column
                listed under two field keys
        """
        mapping = cls()
        errors: list[str] = []
        seen_columns: dict[int, str] = {}
        seen_keys: set[str] = set()

        for raw_key, value in (payload or {}).items():
            key = canonical_field_key(str(raw_key))
            if not is_known_field_key(key):
                errors.append(f"Unknown field: {raw_key}")
                continue
            if value is None:
                continue
            if key in seen_keys:
                errors.append(f"Field {key} is mapped more than once")
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                errors.append(f"Field {key} must map to a column number")
                continue
            if not 0 <= value < column_count:
                errors.append(f"Field {key} points at column {value}, which does not exist")
                continue
            if value in seen_columns:
                errors.append(f"Column {value} is mapped to both {seen_columns[value]} and {key}")
                continue

            seen_keys.add(key)
            seen_columns[value] = key
            mapping.assign(key, value)

        if errors:
            raise MappingError(errors)
        return mapping


def _require_known(key: str) -> None:
    if not is_known_field_key(key):
        raise MappingError([f"Unknown field: {key}"])


# ===================
# INFERENCE
# ===================

def infer_mapping(headers: list[Optional[str]]) -> ImportMapping:
    """
    Propose a mapping from column headers.

    Singular concepts take the first matching column; repeats stay unmapped.
    Pair concepts fill slots in increasing order, so a second price column
    becomes price_2. A header with its own ordinal ("ספק 2") claims that
    slot when it is free.

    Args:
        headers: Raw header text per column (None/"" for blank headers)

    Returns:
        ImportMapping (possibly empty)
    """
    mapping = ImportMapping()

    for column, header in enumerate(headers):
        match = match_header(header)
        if match is None:
            continue
        concept, ordinal = match

        if concept.field_key is not None:
            if mapping.column_of(concept.field_key) is None:
                mapping.assign(concept.field_key, column)
            continue

        if concept.pair_part is None:
            continue

        part = concept.pair_part
        if ordinal is not None and 1 <= ordinal <= MAX_PAIR_COUNT and mapping.slot(ordinal).get(part) is None:
            mapping.assign(pair_key(part, ordinal), column)
            continue

        index = 1
        while index <= MAX_PAIR_COUNT and mapping.slot(index).get(part) is not None:
            index += 1
        if index > MAX_PAIR_COUNT:
            continue
        mapping.assign(pair_key(part, index), column)

    logger.debug(
        "mapping_inferred",
        columns=len(headers),
        mapped=len(mapping.to_wire()),
        pair_count=mapping.pair_count,
    )
    return mapping


def auto_hidden_columns(
    headers: list[Optional[str]],
    rows: list[list[str]],
    mapping: ImportMapping,
) -> list[int]:
    """
    Columns to hide from the working view.

    A column is hidden when its header and every cell are empty, or its
    header ends in a "_derived" marker, unless it is mapped. Looks at every
    row, not just the preview page.
    """
    width = max(len(headers), max((len(r) for r in rows), default=0))
    mapped = {column for _, column in mapping.items()}
    hidden = []

    for column in range(width):
        if column in mapped:
            continue
        header = (headers[column] if column < len(headers) else None) or ""
        if header.strip() and _DERIVED_MARKER.search(header.strip()):
            hidden.append(column)
            continue
        if header.strip():
            continue
        if not any(column < len(row) and row[column].strip() for row in rows):
            hidden.append(column)
    return hidden


def template_key(headers: list[Optional[str]]) -> Optional[str]:
    """
    Fingerprint of a header row, used to offer saved mapping presets.

    Returns None when there is no header text at all.
    """
    tokens = [normalize_header_token(h) for h in headers]
    if not any(tokens):
        return None
    return hashlib.sha1("|".join(tokens).encode("utf-8")).hexdigest()
