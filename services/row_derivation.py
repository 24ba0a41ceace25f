"""
Row derivation and evaluation.

derive_rows() turns the selected table plus mapping and manual values into
DerivedRows. evaluate() checks them, drops duplicates and reports every
excluded row. Validation and apply both call exactly these two functions,
so they always agree on the row set.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional
import structlog

from models.imports import ImportDiagnostics, RowError, RowWarning, StatsEstimate, UnimportedProduct
from parsers.source_reader import SelectedTable
from services.field_keys import DISCOUNT, PRICE, SINGULAR_FIELDS, SUPPLIER, pair_key, parse_pair_key
from services.manual_overrides import ManualOverrideStore
from services.mapping_service import ImportMapping
from utils.pricing import HUNDRED, round_money
from utils.text_utils import casefold_name, normalize_header_token, normalize_name, parse_decimal

logger = structlog.get_logger(__name__)

DEFAULT_UNIT = "unit"
UNKNOWN_PACKAGE_TYPE = "unknown"

REASON_MISSING_NAME = "missing product name"
REASON_NO_PRICE = "no valid price found"
REASON_MISSING_SUPPLIER = "missing supplier"
REASON_BAD_DISCOUNT = "invalid discount"

UNIT_SYNONYMS = {
    "unit": ("unit", "units", "pcs", "pc", "piece", "each", "ea", "יחידה", "יחידות", "יח", "יח'"),
    "kg": ("kg", "kilo", "kilogram", "ק\"ג", "ק״ג", "קג", "קילו", "קילוגרם"),
    "liter": ("liter", "litre", "l", "lt", "ltr", "ליטר", "ל'"),
}

PACKAGE_TYPE_SYNONYMS = {
    "carton": ("carton", "box", "case", "קרטון", "ארגז"),
    "gallon": ("gallon", "גלון", "ג'ריקן", "גריקן"),
    "bag": ("bag", "sack", "שק", "שקית"),
    "bottle": ("bottle", "בקבוק"),
    "pack": ("pack", "package", "מארז", "חבילה"),
    "shrink": ("shrink", "שרינק"),
    "sachet": ("sachet", "סשה"),
    "can": ("can", "tin", "פחית", "פח", "קופסה"),
    "roll": ("roll", "גליל"),
}

YES_VALUES = {"yes", "y", "true", "1", "v", "כן", "כולל", 'כולל מע"מ', "כולל מעמ"}
NO_VALUES = {"no", "n", "false", "0", "x", "לא", "לא כולל", "ללא", 'ללא מע"מ', "ללא מעמ"}


def _lookup(synonyms: dict[str, tuple[str, ...]]) -> dict[str, str]:
    return {normalize_header_token(s): key for key, values in synonyms.items() for s in values}


_UNIT_LOOKUP = _lookup(UNIT_SYNONYMS)
_PACKAGE_LOOKUP = _lookup(PACKAGE_TYPE_SYNONYMS)


# ===================
# DERIVATION
# ===================

@dataclass
class SlotValues:
    """Resolved text of one supplier/price pair on one row."""
    index: int
    price: str = ""
    supplier: str = ""
    discount: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.price and not self.supplier


@dataclass
class DerivedRow:
    """One source row after mapping and manual values are applied."""
    row_index: int
    source_row: int
    values: dict[str, str] = field(default_factory=dict)
    slots: list[SlotValues] = field(default_factory=list)

    def get(self, field_key: str) -> str:
        return self.values.get(field_key, "")

    @property
    def product_name(self) -> str:
        return self.get("product_name")

    @property
    def has_any_price(self) -> bool:
        return any(s.price for s in self.slots)


@dataclass
class DerivationResult:
    rows: list[DerivedRow] = field(default_factory=list)
    total_rows: int = 0
    ignored_count: int = 0
    blank_count: int = 0
    continuation_count: int = 0
    pair_count: int = 0
    warnings: list[RowWarning] = field(default_factory=list)


def derive_rows(
    table: SelectedTable,
    mapping: ImportMapping,
    overrides: ManualOverrideStore,
    ignored_rows: Iterable[int] = (),
) -> DerivationResult:
    """
    Resolve every active field on every data row.

    Ignored rows contribute nothing. Rows with no cell text and no manual
    row value are blank and skipped. A row whose only sheet data is
    supplier cells, directly under a product row, is folded into it
    (wrapped supplier cells) and reported as a row warning.

    Args:
        table: The selected sheet/table (data rows only)
        mapping: Column mapping with hidden columns already applied
        overrides: Manual values for this import
        ignored_rows: 0-based data row indexes to exclude

    Returns:
        DerivationResult
    """
    ignored = {i for i in ignored_rows if 0 <= i < len(table.rows)}
    manual_keys = overrides.field_keys()
    singular_keys = [
        key for key in SINGULAR_FIELDS
        if mapping.column_of(key) is not None or key in manual_keys
    ]
    pair_count = max(mapping.pair_count, overrides.highest_pair_index())

    result = DerivationResult(total_rows=len(table.rows), ignored_count=len(ignored), pair_count=pair_count)

    for row_index in range(len(table.rows)):
        if row_index in ignored:
            continue
        if not any(cell.strip() for cell in table.rows[row_index]) and not overrides.has_row_values(row_index):
            result.blank_count += 1
            continue

        def resolve(key: str) -> str:
            return overrides.resolve(key, row_index, table.cell(row_index, mapping.column_of(key)))

        values = {key: resolve(key) for key in singular_keys}
        if not values.get("sku") and values.get("barcode"):
            values["sku"] = values["barcode"]

        slots = []
        for index in range(1, pair_count + 1):
            slots.append(SlotValues(
                index=index,
                price=resolve(pair_key(PRICE, index)),
                supplier=resolve(pair_key(SUPPLIER, index)),
                discount=resolve(pair_key(DISCOUNT, index)),
            ))

        if slots and not any(slot.price for slot in slots):
            # First pair with a supplier takes the line-total price, else pair 1
            target = next((slot for slot in slots if slot.supplier), slots[0])
            target.price = _price_from_line_total(values)

        for slot in slots:
            slot.supplier = overrides.supplier_fallback(slot.supplier, has_price=bool(slot.price))

        row = DerivedRow(
            row_index=row_index,
            source_row=table.source_row(row_index),
            values=values,
            slots=slots,
        )

        previous = result.rows[-1] if result.rows else None
        if (
            previous is not None
            and previous.row_index == row_index - 1
            and _is_supplier_continuation(table, mapping, overrides, row)
        ):
            changes = []
            for slot, prev_slot in zip(row.slots, previous.slots):
                if slot.supplier:
                    change = f"supplier {slot.index} set to '{slot.supplier}'"
                    if prev_slot.supplier:
                        change += f" (was '{prev_slot.supplier}')"
                    changes.append(change)
                    prev_slot.supplier = slot.supplier
            result.warnings.append(RowWarning(
                row=row_index,
                source_row=row.source_row,
                message=f"Supplier-only row merged into row {previous.source_row}: " + ", ".join(changes),
            ))
            result.continuation_count += 1
            continue

        result.rows.append(row)

    return result


def _is_supplier_continuation(
    table: SelectedTable,
    mapping: ImportMapping,
    overrides: ManualOverrideStore,
    row: DerivedRow,
) -> bool:
    """Only supplier cells are filled on the sheet row and nothing manual targets it."""
    if row.product_name or row.has_any_price or overrides.has_row_values(row.row_index):
        return False
    filled = [key for key, column in mapping.items() if table.cell(row.row_index, column).strip()]
    if not filled:
        return False
    for key in filled:
        pair = parse_pair_key(key)
        if pair is None or pair[0] != SUPPLIER:
            return False
    return True


def _price_from_line_total(values: dict[str, str]) -> str:
    """Unit price from a line total, divided by package quantity when given."""
    total = parse_decimal(values.get("line_total"))
    if total is None:
        return ""
    quantity = parse_decimal(values.get("package_quantity"))
    if quantity is not None and quantity > 0:
        total = total / quantity
    return str(round_money(total))


# ===================
# EVALUATION
# ===================

@dataclass
class ValidPair:
    index: int
    price: Decimal
    supplier: str
    discount: Optional[Decimal] = None


@dataclass
class EvaluatedRow:
    """A row that will be imported, with typed values."""
    row_index: int
    source_row: int
    product_name: str
    name_norm: str
    sku: Optional[str]
    category: Optional[str]
    unit: str
    package_quantity: Optional[Decimal]
    package_type: str
    includes_vat: Optional[bool]
    vat_rate: Optional[Decimal]
    pairs: list[ValidPair] = field(default_factory=list)


@dataclass
class EvaluationResult:
    rows: list[EvaluatedRow] = field(default_factory=list)
    row_errors: list[RowError] = field(default_factory=list)
    row_warnings: list[RowWarning] = field(default_factory=list)
    unimported: list[UnimportedProduct] = field(default_factory=list)
    total_rows: int = 0
    ignored_count: int = 0
    source_rows: int = 0
    mapped_before_dedupe: int = 0

    @property
    def rows_after_dedupe(self) -> int:
        return len(self.rows)

    @property
    def dropped_in_validation(self) -> int:
        return self.source_rows - self.mapped_before_dedupe

    @property
    def dropped_as_duplicates(self) -> int:
        return self.mapped_before_dedupe - self.rows_after_dedupe

    @property
    def price_count(self) -> int:
        return sum(len(r.pairs) for r in self.rows)

    def stats_estimate(self) -> StatsEstimate:
        return StatsEstimate(
            total_input_rows=self.total_rows,
            mapped_rows=self.rows_after_dedupe,
            skipped_rows=self.total_rows - self.rows_after_dedupe,
        )

    def diagnostics(self) -> ImportDiagnostics:
        return ImportDiagnostics(
            rows_before_ignored=self.total_rows,
            ignored_rows_count=self.ignored_count,
            source_rows=self.source_rows,
            mapped_rows_before_dedupe=self.mapped_before_dedupe,
            rows_after_dedupe=self.rows_after_dedupe,
            dropped_in_validation=self.dropped_in_validation,
            dropped_as_duplicates=self.dropped_as_duplicates,
        )


def evaluate(derivation: DerivationResult) -> EvaluationResult:
    """
    Check every derived row and collapse duplicates.

    Per pair: skipped when both price and supplier are empty; otherwise the
    price must be a positive number, the supplier non-empty and the
    discount (if any) within 0..100. A failing pair is a row error and is
    excluded. Rows left with no valid pair are reported as unimported.

    Duplicate key: (normalized name, SKU, supplier, price, pair index).
    A row whose every valid pair was already seen is unimported as
    "duplicate of row N"; a row that keeps some pairs gets a row warning
    for each pair it lost.
    """
    result = EvaluationResult(
        total_rows=derivation.total_rows,
        ignored_count=derivation.ignored_count,
        source_rows=len(derivation.rows),
    )
    result.row_warnings.extend(derivation.warnings)
    seen: dict[tuple, int] = {}

    for row in derivation.rows:
        errors: list[str] = []
        evaluated = _evaluate_row(row, errors)
        result.row_errors.extend(
            RowError(row=row.row_index, source_row=row.source_row, message=message)
            for message in errors
        )

        if isinstance(evaluated, str):
            result.unimported.append(_unimported(row, evaluated))
            continue

        result.mapped_before_dedupe += 1

        fresh: list[ValidPair] = []
        repeats: list[tuple[ValidPair, int]] = []
        for pair in evaluated.pairs:
            key = (
                evaluated.name_norm,
                casefold_name(evaluated.sku),
                casefold_name(pair.supplier),
                pair.price,
                pair.index,
            )
            if key in seen:
                repeats.append((pair, seen[key]))
                continue
            seen[key] = row.source_row
            fresh.append(pair)

        if not fresh:
            result.unimported.append(_unimported(row, f"duplicate of row {repeats[0][1]}"))
            continue

        result.row_warnings.extend(
            RowWarning(
                row=row.row_index,
                source_row=row.source_row,
                message=f"Price {pair.index} skipped: same product, supplier and price as row {first_row}",
            )
            for pair, first_row in repeats
        )

        evaluated.pairs = fresh
        result.rows.append(evaluated)

    logger.debug(
        "rows_evaluated",
        source_rows=result.source_rows,
        importable=result.rows_after_dedupe,
        row_errors=len(result.row_errors),
        duplicates=result.dropped_as_duplicates,
    )
    return result


def _evaluate_row(row: DerivedRow, errors: list[str]):
    """Return an EvaluatedRow, or the reason the row cannot be imported."""
    attempted = [slot for slot in row.slots if not slot.is_empty]

    if not row.product_name:
        if attempted:
            errors.append("Product name is missing")
        return REASON_MISSING_NAME

    package_quantity = parse_decimal(row.get("package_quantity")) if row.get("package_quantity") else None
    if row.get("package_quantity") and (package_quantity is None or package_quantity <= 0):
        errors.append(f"Package quantity '{row.get('package_quantity')}' is not a positive number")
        package_quantity = None

    vat_rate = parse_decimal(row.get("vat_rate")) if row.get("vat_rate") else None
    if row.get("vat_rate") and (vat_rate is None or not 0 <= vat_rate <= HUNDRED):
        errors.append(f"VAT rate '{row.get('vat_rate')}' must be between 0 and 100")
        vat_rate = None

    includes_vat = parse_yes_no(row.get("source_price_includes_vat"))
    if row.get("source_price_includes_vat") and includes_vat is None:
        errors.append(f"Price-includes-VAT value '{row.get('source_price_includes_vat')}' must be yes or no")

    if not attempted:
        return REASON_NO_PRICE

    pairs: list[ValidPair] = []
    reasons: list[str] = []
    for slot in attempted:
        price = parse_decimal(slot.price)
        if price is None or price <= 0:
            label = f"'{slot.price}'" if slot.price else "empty"
            errors.append(f"Price {slot.index}: {label} is not a positive number")
            reasons.append(REASON_NO_PRICE)
            continue
        if not slot.supplier:
            errors.append(f"Price {slot.index} has no supplier")
            reasons.append(REASON_MISSING_SUPPLIER)
            continue
        discount = None
        if slot.discount:
            discount = parse_decimal(slot.discount)
            if discount is None or not 0 <= discount <= HUNDRED:
                errors.append(f"Discount {slot.index}: '{slot.discount}' must be between 0 and 100")
                reasons.append(REASON_BAD_DISCOUNT)
                continue
        pairs.append(ValidPair(index=slot.index, price=price, supplier=slot.supplier, discount=discount))

    if not pairs:
        return reasons[0]

    return EvaluatedRow(
        row_index=row.row_index,
        source_row=row.source_row,
        product_name=row.product_name,
        name_norm=normalize_name(row.product_name),
        sku=row.get("sku") or None,
        category=row.get("category") or None,
        unit=normalize_unit(row.get("pricing_unit")),
        package_quantity=package_quantity,
        package_type=normalize_package_type(row.get("package_type")),
        includes_vat=includes_vat,
        vat_rate=vat_rate,
        pairs=pairs,
    )


def _unimported(row: DerivedRow, reason: str) -> UnimportedProduct:
    return UnimportedProduct(
        row=row.row_index,
        source_row=row.source_row,
        product_name=row.product_name,
        reason=reason,
    )


# ===================
# VALUE NORMALIZATION
# ===================

def normalize_unit(value: Optional[str]) -> str:
    """Pricing unit: unit | kg | liter (anything else is a plain unit)."""
    return _UNIT_LOOKUP.get(normalize_header_token(value), DEFAULT_UNIT)


def normalize_package_type(value: Optional[str]) -> str:
    """Package type from the fixed list, "unknown" when unrecognized or empty."""
    return _PACKAGE_LOOKUP.get(normalize_header_token(value), UNKNOWN_PACKAGE_TYPE)


def parse_yes_no(value: Optional[str]) -> Optional[bool]:
    """yes/no in English or Hebrew; None when empty or unrecognized."""
    token = normalize_header_token(value)
    if not token:
        return None
    if token in YES_VALUES:
        return True
    if token in NO_VALUES:
        return False
    return None
