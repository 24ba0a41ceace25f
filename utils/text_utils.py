"""
Text utilities for price-list cells written in Hebrew and English.

Used for product name normalization, header matching and number parsing.
"""

import re
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import Optional


# Punctuation ignored when comparing product names
_NAME_PUNCTUATION = re.compile(r"[.,\-_/\\()\[\]{}'\":;!?]")
_WHITESPACE = re.compile(r"\s+")

# Invisible / exotic spaces produced by PDF and spreadsheet exports
_ODD_SPACES = re.compile(r"[\u00a0\u2000-\u200b\u202f\u205f\u3000\ufeff]")

# Currency marks and words stripped before number parsing
_CURRENCY_MARKS = re.compile(r'(₪|\$|€|£|ש"ח|ש״ח|שח|\bnis\b|\bils\b|\busd\b|\beur\b)', re.IGNORECASE)


def clean_text(value: Optional[str]) -> str:
    """
    Trim a cell value and flatten odd whitespace.

    Returns "" for None.
    """
    if value is None:
        return ""
    text = _ODD_SPACES.sub(" ", str(value))
    text = text.replace("\r", "").replace("\n", " ")
    return _WHITESPACE.sub(" ", text).strip()


def normalize_name(name: Optional[str]) -> str:
    """
    Normalize a product name for duplicate detection.

    - "  Coca  Cola (1.5L) " → "coca cola 15l"
    - "קולה, זירו" → "קולה זירו"

    Latin letters are lowercased; Hebrew has no case and is kept as-is.
    """
    text = clean_text(name)
    text = _NAME_PUNCTUATION.sub("", text)
    return _WHITESPACE.sub(" ", text).strip().lower()


def casefold_name(name: Optional[str]) -> str:
    """Case-insensitive comparison key for supplier and category names."""
    return clean_text(name).casefold()


def normalize_header_token(header: Optional[str]) -> str:
    """
    Normalize a raw column header for synonym lookup.

    - "Product_Name" → "product name"
    - " מחיר  ספק: " → "מחיר ספק"
    """
    if header is None:
        return ""
    text = unicodedata.normalize("NFKC", clean_text(header)).casefold()
    text = re.sub(r"[_\-./\\]+", " ", text)
    text = text.strip(" \t'\"`:;,*#()[]{}")
    return _WHITESPACE.sub(" ", text).strip()


def split_ordinal(token: str) -> tuple[str, Optional[int]]:
    """
    Split a trailing pair ordinal off a normalized header token.

    "price 2" → ("price", 2), "ספק3" → ("ספק", 3), "price" → ("price", None)
    """
    match = re.match(r"^(.*?)[\s#]*(\d{1,2})$", token)
    if match and match.group(1).strip():
        return match.group(1).strip(), int(match.group(2))
    return token, None


def parse_decimal(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse a human-entered number.

    Accepts thousands separators, currency marks, a trailing percent sign
    and a decimal comma when no dot is present.

    - "1,234.50" → Decimal("1234.50")
    - "₪ 10.5" → Decimal("10.5")
    - "12,5" → Decimal("12.5")
    - "abc" → None
    """
    text = clean_text(value)
    if not text:
        return None

    text = _CURRENCY_MARKS.sub("", text)
    text = text.replace("%", "").replace(" ", "")

    # Accounting negatives: (12.00)
    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    if "," in text and "." not in text:
        parts = text.split(",")
        # "1,234" is thousands, "12,5" is a decimal comma
        if len(parts) == 2 and len(parts[1]) != 3:
            text = ".".join(parts)
        else:
            text = "".join(parts)
    else:
        text = text.replace(",", "")

    if not re.fullmatch(r"[-+]?\d+(\.\d+)?|[-+]?\.\d+", text):
        return None

    try:
        number = Decimal(text)
    except InvalidOperation:
        return None

    return -number if negative else number


def column_letter(index: int) -> str:
    """
    Spreadsheet-style column letter for a 0-based index.

    0 → "A", 25 → "Z", 26 → "AA"
    """
    if index < 0:
        raise ValueError("column index must be non-negative")
    letters = ""
    n = index + 1
    while n > 0:
        n, remainder = divmod(n - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


def has_hebrew(value: Optional[str]) -> bool:
    """True if the text contains any Hebrew letter."""
    return bool(value) and re.search(r"[\u0590-\u05ff]", value) is not None
