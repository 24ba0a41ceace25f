"""
Downloadable CSV template for price-list uploads.

Guidance only: the import pipeline reads any column layout.
"""

TEMPLATE_FILENAME = "import_template.csv"
TEMPLATE_MEDIA_TYPE = "text/csv; charset=utf-8"

TEMPLATE_COLUMNS = (
    "product_name",
    "sku",
    "package_quantity",
    "supplier",
    "price",
    "discount_percent",
    "category",
)

# Numbers stay unquoted so Excel reads them as numbers
TEMPLATE_EXAMPLE_ROW = ('"דוגמה מוצר"', '"12345"', "6", '"דוגמה ספק"', "10.50", "5", '"כללי"')

UTF8_BOM = "\ufeff"


def build_template_csv() -> bytes:
    """UTF-8 CSV with a BOM (so Excel detects Hebrew), header plus one example row."""
    lines = [",".join(TEMPLATE_COLUMNS), ",".join(TEMPLATE_EXAMPLE_ROW)]
    return (UTF8_BOM + "\r\n".join(lines) + "\r\n").encode("utf-8")
