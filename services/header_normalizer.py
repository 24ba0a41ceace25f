"""
Header normalizer: raw column header → canonical concept and display label.

The synonym table is shared with mapping inference. The label is advisory
only; validation and apply never look at headers.
"""

from dataclasses import dataclass
from typing import Optional

from utils.text_utils import clean_text, normalize_header_token, split_ordinal


@dataclass(frozen=True)
class HeaderConcept:
    """
    One thing a column can mean.

    field_key is set for singular catalog fields, pair_part for the parts of
    a supplier/price pair. Concepts with neither are recognized for display
    but never mapped (sell price, effective date).
    """
    key: str
    label: str
    synonyms_en: tuple[str, ...]
    synonyms_he: tuple[str, ...]
    field_key: Optional[str] = None
    pair_part: Optional[str] = None

    @property
    def synonyms(self) -> tuple[str, ...]:
        return self.synonyms_en + self.synonyms_he


HEADER_CONCEPTS: tuple[HeaderConcept, ...] = (
    HeaderConcept(
        key="product_name",
        label="שם המוצר",
        synonyms_en=("product name", "product", "name", "item", "item name", "description",
                     "product description", "item description"),
        synonyms_he=("שם מוצר", "שם המוצר", "מוצר", "תיאור", "תאור", "תיאור מוצר", "פריט",
                     "שם פריט", "שם"),
        field_key="product_name",
    ),
    HeaderConcept(
        key="supplier",
        label="ספק",
        synonyms_en=("supplier", "vendor", "supplier name", "vendor name", "distributor"),
        synonyms_he=("ספק", "שם ספק", "שם הספק", "משווק", "יבואן"),
        pair_part="supplier",
    ),
    HeaderConcept(
        key="cost_price",
        label="מחיר עלות",
        synonyms_en=("price", "cost", "cost price", "unit price", "purchase price", "price per unit",
                     "net price", "unit cost"),
        synonyms_he=("מחיר", "עלות", "מחיר עלות", "מחיר ספק", "מחיר יחידה", "מחיר ליחידה",
                     "מחיר קניה", "מחיר קנייה", "מחיר נטו"),
        pair_part="price",
    ),
    HeaderConcept(
        key="sell_price",
        label="מחיר מכירה",
        synonyms_en=("sell price", "selling price", "sale price", "retail price", "consumer price"),
        synonyms_he=("מחיר מכירה", "מחיר לצרכן", "מחיר צרכן"),
    ),
    HeaderConcept(
        key="sku",
        label='מק"ט',
        synonyms_en=("sku", "item code", "product code", "code", "catalog number", "catalog no",
                     "cat no", "part number", "part no"),
        synonyms_he=('מק"ט', "מק״ט", "מקט", "קוד", "קוד מוצר", "קוד פריט", "מספר קטלוגי",
                     "מס קטלוגי"),
        field_key="sku",
    ),
    HeaderConcept(
        key="barcode",
        label="ברקוד",
        synonyms_en=("barcode", "bar code", "ean", "upc", "gtin"),
        synonyms_he=("ברקוד", "ברקוד מוצר"),
        field_key="barcode",
    ),
    HeaderConcept(
        key="category",
        label="קטגוריה",
        synonyms_en=("category", "group", "department", "family", "product group"),
        synonyms_he=("קטגוריה", "קבוצה", "מחלקה", "משפחה", "קבוצת מוצרים"),
        field_key="category",
    ),
    HeaderConcept(
        key="pricing_unit",
        label="יחידת מידה",
        synonyms_en=("unit", "uom", "unit of measure", "pricing unit", "measure"),
        synonyms_he=("יחידה", "יחידת מידה", "יח' מידה", "יח מידה", "יחידת תמחור"),
        field_key="pricing_unit",
    ),
    HeaderConcept(
        key="package_quantity",
        label="כמות באריזה",
        synonyms_en=("package quantity", "pack quantity", "qty per pack", "pack size",
                     "units per carton", "units per pack", "quantity", "qty"),
        synonyms_he=("כמות", "כמות באריזה", "כמות בקרטון", "יחידות בקרטון", "יח' בקרטון",
                     "יחידות באריזה"),
        field_key="package_quantity",
    ),
    HeaderConcept(
        key="package_type",
        label="סוג אריזה",
        synonyms_en=("package type", "packaging", "pack type", "package"),
        synonyms_he=("אריזה", "סוג אריזה"),
        field_key="package_type",
    ),
    HeaderConcept(
        key="line_total",
        label='סה"כ',
        synonyms_en=("total", "line total", "amount", "total price", "sum"),
        synonyms_he=('סה"כ', "סה״כ", "סהכ", "סכום", "סך הכל", "סה\"כ לשורה"),
        field_key="line_total",
    ),
    HeaderConcept(
        key="source_price_includes_vat",
        label='כולל מע"מ',
        synonyms_en=("includes vat", "incl vat", "price includes vat", "vat included", "with vat"),
        synonyms_he=('כולל מע"מ', "כולל מע״מ", "כולל מעמ", 'מחיר כולל מע"מ'),
        field_key="source_price_includes_vat",
    ),
    HeaderConcept(
        key="vat_rate",
        label='שיעור מע"מ',
        synonyms_en=("vat", "vat rate", "vat %", "tax", "tax rate"),
        synonyms_he=('מע"מ', "מע״מ", "מעמ", 'שיעור מע"מ', 'אחוז מע"מ'),
        field_key="vat_rate",
    ),
    HeaderConcept(
        key="discount_percent",
        label="אחוז הנחה",
        synonyms_en=("discount", "discount percent", "discount %", "disc", "discount pct"),
        synonyms_he=("הנחה", "אחוז הנחה", "% הנחה", "הנחה %"),
        pair_part="discount_percent",
    ),
    HeaderConcept(
        key="currency",
        label="מטבע",
        synonyms_en=("currency", "curr"),
        synonyms_he=("מטבע",),
        field_key="currency",
    ),
    HeaderConcept(
        key="effective_date",
        label="תאריך עדכון",
        synonyms_en=("date", "effective date", "valid from", "updated", "update date"),
        synonyms_he=("תאריך", "תאריך עדכון", "בתוקף מ", "עדכון"),
    ),
)


def _build_index() -> tuple[dict[str, HeaderConcept], list[tuple[str, HeaderConcept]]]:
    exact: dict[str, HeaderConcept] = {}
    by_length: list[tuple[str, HeaderConcept]] = []
    for concept in HEADER_CONCEPTS:
        for synonym in concept.synonyms:
            token = normalize_header_token(synonym)
            exact.setdefault(token, concept)
            by_length.append((token, concept))
    # Longest synonym first so "price includes vat" beats "price"
    by_length.sort(key=lambda item: len(item[0]), reverse=True)
    return exact, by_length


_EXACT, _BY_LENGTH = _build_index()


def match_header(header: Optional[str]) -> Optional[tuple[HeaderConcept, Optional[int]]]:
    """
    Find the concept a header names.

    Args:
        header: Raw header text

    Returns:
        (concept, ordinal) where ordinal is a trailing pair number
        ("מחיר 2" → 2), or None when nothing matches
    """
    token = normalize_header_token(header)
    if not token:
        return None

    concept = _EXACT.get(token)
    if concept is not None:
        return concept, None

    base, ordinal = split_ordinal(token)
    if ordinal is not None:
        concept = _EXACT.get(base)
        if concept is not None:
            return concept, ordinal

    # Whole-word containment: "מחיר ספק ראשי" contains "מחיר ספק"
    padded = f" {base} "
    for synonym, concept in _BY_LENGTH:
        if f" {synonym} " in padded:
            return concept, ordinal
    return None


def canonical_label(header: Optional[str]) -> str:
    """
    Display label for a column header.

    - "product_name" → "שם המוצר"
    - "Price 2" → "מחיר עלות 2"
    - "Remarks" → "Remarks" (unknown headers come back trimmed)
    """
    match = match_header(header)
    if match is None:
        return clean_text(header)
    concept, ordinal = match
    return f"{concept.label} {ordinal}" if ordinal is not None else concept.label
