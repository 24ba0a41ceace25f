"""
Field keys a column (or manual value) can be mapped to.

Pair fields keep their flat wire form (price_2, supplier_2,
discount_percent_2); in Python they are (part, index) tuples.
"""

import re
from typing import Optional

SINGULAR_FIELDS: tuple[str, ...] = (
    "product_name",
    "sku",
    "barcode",
    "category",
    "pricing_unit",
    "package_quantity",
    "package_type",
    "line_total",
    "source_price_includes_vat",
    "vat_rate",
    "currency",
)

PRICE = "price"
SUPPLIER = "supplier"
DISCOUNT = "discount_percent"
PAIR_PARTS: tuple[str, ...] = (PRICE, SUPPLIER, DISCOUNT)

MIN_PAIR_COUNT = 3
MAX_PAIR_COUNT = 50

# Single-pair keys from older clients
LEGACY_PAIR_ALIASES = {
    "price": "price_1",
    "supplier": "supplier_1",
    "discount_percent": "discount_percent_1",
}

_PAIR_KEY = re.compile(r"^(price|supplier|discount_percent)_(\d+)$")


def pair_key(part: str, index: int) -> str:
    """("price", 2) → "price_2"."""
    return f"{part}_{index}"


def canonical_field_key(key: str) -> str:
    """Resolve legacy aliases; other keys are returned as-is."""
    key = (key or "").strip()
    return LEGACY_PAIR_ALIASES.get(key, key)


def parse_pair_key(key: str) -> Optional[tuple[str, int]]:
    """
    Split a pair field key.

    "supplier_3" → ("supplier", 3); "sku" → None
    """
    match = _PAIR_KEY.match(canonical_field_key(key))
    if not match:
        return None
    index = int(match.group(2))
    if not 1 <= index <= MAX_PAIR_COUNT:
        return None
    return match.group(1), index


def is_known_field_key(key: str) -> bool:
    key = canonical_field_key(key)
    return key in SINGULAR_FIELDS or parse_pair_key(key) is not None
