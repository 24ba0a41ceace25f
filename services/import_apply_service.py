"""
Import apply service: the only step of the import that writes.

Re-derives the row set exactly like validation, then resolves or creates
categories, suppliers and products and appends price entries. All
writes of one call go through a CatalogUnitOfWork under the tenant's
write lock.

See services/validation_service.py for the shared derivation path.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional
import time
import structlog

from config import get_supabase_client, settings
from exceptions import ConfirmationError, ImportApplyError
from models.imports import (
    OVERWRITE_CONFIRMATION,
    ImportApplyRequest,
    ImportApplyResponse,
    ImportMode,
    ImportStats,
)
from services.catalog_repository import (
    CATEGORIES,
    DEFAULT_CATEGORY_NAME,
    PRICE_ENTRIES,
    PRODUCTS,
    SUPPLIERS,
    CatalogRepository,
    CatalogUnitOfWork,
)
from services.row_derivation import EvaluatedRow, EvaluationResult, ValidPair
from services.tenant_lock_service import tenant_write_lock
from services.validation_service import prepare_import
from utils.pricing import calc_sell_price, price_after_discount
from utils.text_utils import casefold_name

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


@dataclass
class PricingRules:
    """Tenant VAT and margin used to compute sell prices."""
    vat_percent: Decimal
    global_margin_percent: Decimal
    use_margin: bool = True
    use_vat: bool = True

    @classmethod
    def from_settings_row(cls, row: Optional[dict]) -> "PricingRules":
        row = row or {}
        vat = row.get("vat_percent")
        margin = row.get("global_margin_percent")
        return cls(
            vat_percent=_decimal(vat) if vat is not None else _decimal(settings.import_default_vat_percent),
            global_margin_percent=(
                _decimal(margin) if margin is not None else _decimal(settings.import_default_margin_percent)
            ),
            use_margin=row.get("use_margin", True) is not False,
            use_vat=row.get("use_vat", True) is not False,
        )

    def margin_for(self, category: Optional[dict]) -> Decimal:
        if not self.use_margin:
            return ZERO
        if category and category.get("default_margin_percent") is not None:
            return _decimal(category["default_margin_percent"])
        return self.global_margin_percent

    @property
    def effective_vat(self) -> Decimal:
        return self.vat_percent if self.use_vat else ZERO


@dataclass
class CatalogIndex:
    """In-memory lookup of the tenant's catalog, kept current as rows are created."""
    categories: dict[str, dict] = field(default_factory=dict)
    suppliers: dict[str, dict] = field(default_factory=dict)
    products: dict[tuple[str, str], dict] = field(default_factory=dict)
    price_terms: dict[tuple[str, str], set[tuple[Decimal, Decimal]]] = field(default_factory=dict)

    @classmethod
    def load(cls, repo: CatalogRepository) -> "CatalogIndex":
        index = cls()
        for row in repo.fetch_all(CATEGORIES):
            if row.get("is_active", True) is not False:
                index.categories.setdefault(casefold_name(row["name"]), row)
        for row in repo.fetch_all(SUPPLIERS):
            if row.get("is_active", True) is not False:
                index.suppliers.setdefault(casefold_name(row["name"]), row)
        for row in repo.fetch_all(PRODUCTS):
            if row.get("is_active", True) is not False:
                index.products.setdefault(product_key(row.get("name_norm", ""), row.get("sku")), row)
        for row in repo.fetch_all(PRICE_ENTRIES, columns="id,product_id,supplier_id,cost_price,discount_percent"):
            index.add_price(row)
        return index

    def add_price(self, entry: dict) -> None:
        """Record the (cost, discount) terms of a stored or pending price entry."""
        terms = _price_terms(entry)
        if terms is not None:
            self.price_terms.setdefault((entry["product_id"], entry["supplier_id"]), set()).add(terms)

    def has_price(self, product_id: str, supplier_id: str, pair: ValidPair) -> bool:
        """True when any entry for the pair already has the same cost and discount."""
        return (pair.price, pair.discount or ZERO) in self.price_terms.get((product_id, supplier_id), ())


def product_key(name_norm: str, sku: Optional[str]) -> tuple[str, str]:
    """Product identity within a tenant: normalized name plus SKU."""
    return name_norm, casefold_name(sku)


class ImportApplyService:
    """
    Commits an import to the tenant's catalog.

    merge appends to existing data; overwrite wipes the tenant's catalog
    first and is only allowed with the exact confirmation string.
    """

    def __init__(self, client=None):
        self.db = client or get_supabase_client()

    def apply(
        self,
        tenant_id: str,
        content: bytes,
        filename: Optional[str],
        request: ImportApplyRequest,
        user_id: Optional[str] = None,
    ) -> ImportApplyResponse:
        """
        Apply an import.

        Args:
            tenant_id: Tenant whose catalog is written
            content: Upload bytes (re-parsed, never taken from preview state)
            filename: Original file name
            request: Mapping, manual values, mode and confirmation
            user_id: Stored as created_by on new rows when given

        Returns:
            ImportApplyResponse with stats, unimported rows and diagnostics

        Raises:
            ConfirmationError: Overwrite without the exact confirmation (nothing is read or written)
            ImportParseError: If the file cannot be read
            MappingError: If the mapping cannot produce any importable row
            ImportApplyError: If a write failed (all writes of this call were rolled back)
        """
        if request.mode == ImportMode.OVERWRITE and request.confirmation != OVERWRITE_CONFIRMATION:
            logger.warning("import_overwrite_not_confirmed", tenant_id=tenant_id)
            raise ConfirmationError(OVERWRITE_CONFIRMATION)

        logger.info(
            "import_apply_started",
            tenant_id=tenant_id,
            mode=request.mode.value,
            filename=filename,
            size_bytes=len(content),
        )
        started = time.monotonic()

        prepared = prepare_import(content, filename, request)
        evaluation = prepared.evaluation

        with tenant_write_lock(tenant_id):
            repo = CatalogRepository(tenant_id, self.db)
            uow = CatalogUnitOfWork(repo)
            try:
                stats = self._write(uow, repo, evaluation, request.mode, user_id)
            except Exception as e:
                logger.error(
                    "import_apply_failed",
                    tenant_id=tenant_id,
                    mode=request.mode.value,
                    error=str(e),
                )
                rolled_back = uow.rollback()
                raise ImportApplyError(
                    message="Import failed; no changes were kept" if rolled_back
                    else "Import failed and could not be fully rolled back",
                    rolled_back=rolled_back,
                    details={"original_error": str(e)},
                )

        logger.info(
            "import_apply_completed",
            tenant_id=tenant_id,
            mode=request.mode.value,
            suppliers_created=stats.suppliers_created,
            categories_created=stats.categories_created,
            products_created=stats.products_created,
            prices_inserted=stats.prices_inserted,
            prices_skipped=stats.prices_skipped,
            duration_ms=round((time.monotonic() - started) * 1000),
        )

        return ImportApplyResponse(
            mode=request.mode,
            stats=stats,
            unimported_products=evaluation.unimported,
            row_errors=evaluation.row_errors,
            row_warnings=evaluation.row_warnings,
            import_diagnostics=evaluation.diagnostics(),
            stats_estimate=evaluation.stats_estimate(),
        )

    # ===================
    # WRITE PHASE
    # ===================

    def _write(
        self,
        uow: CatalogUnitOfWork,
        repo: CatalogRepository,
        evaluation: EvaluationResult,
        mode: ImportMode,
        user_id: Optional[str],
    ) -> ImportStats:
        if mode == ImportMode.OVERWRITE:
            uow.wipe_catalog()

        index = CatalogIndex.load(repo)
        pricing = PricingRules.from_settings_row(repo.get_settings())
        stats = ImportStats()

        stats.categories_created = self._create_categories(uow, repo, index, evaluation.rows, pricing, user_id)
        stats.suppliers_created = self._create_suppliers(uow, repo, index, evaluation.rows, user_id)
        stats.products_created = self._create_products(uow, repo, index, evaluation.rows, user_id)

        entries = []
        for row in evaluation.rows:
            product = index.products[product_key(row.name_norm, row.sku)]
            category = index.categories.get(casefold_name(row.category or DEFAULT_CATEGORY_NAME))
            for pair in row.pairs:
                supplier = index.suppliers[casefold_name(pair.supplier)]
                if index.has_price(product["id"], supplier["id"], pair):
                    stats.prices_skipped += 1
                    continue
                entry = _price_entry(repo.tenant_id, product, supplier, category, row, pair, pricing, user_id)
                index.add_price(entry)
                entries.append(entry)

        uow.insert(PRICE_ENTRIES, entries)
        stats.prices_inserted = len(entries)
        return stats

    def _create_categories(self, uow, repo, index, rows, pricing, user_id) -> int:
        names = _distinct_names([row.category or DEFAULT_CATEGORY_NAME for row in rows])
        missing = [name for name in names if casefold_name(name) not in index.categories]
        created = uow.insert(CATEGORIES, [
            _with_author({
                "tenant_id": repo.tenant_id,
                "name": name,
                "default_margin_percent": float(pricing.global_margin_percent),
                "is_active": True,
            }, user_id)
            for name in missing
        ])
        for row in created:
            index.categories[casefold_name(row["name"])] = row
        return len(created)

    def _create_suppliers(self, uow, repo, index, rows, user_id) -> int:
        names = _distinct_names([pair.supplier for row in rows for pair in row.pairs])
        missing = [name for name in names if casefold_name(name) not in index.suppliers]
        created = uow.insert(SUPPLIERS, [
            _with_author({"tenant_id": repo.tenant_id, "name": name, "is_active": True}, user_id)
            for name in missing
        ])
        for row in created:
            index.suppliers[casefold_name(row["name"])] = row
        return len(created)

    def _create_products(self, uow, repo, index, rows: list[EvaluatedRow], user_id) -> int:
        pending: dict[tuple[str, str], dict] = {}
        for row in rows:
            key = product_key(row.name_norm, row.sku)
            if key in index.products or key in pending:
                continue
            category = index.categories.get(casefold_name(row.category or DEFAULT_CATEGORY_NAME))
            pending[key] = _with_author({
                "tenant_id": repo.tenant_id,
                "name": row.product_name,
                "name_norm": row.name_norm,
                "sku": row.sku,
                "category_id": category["id"] if category else None,
                "unit": row.unit,
                "is_active": True,
            }, user_id)

        created = uow.insert(PRODUCTS, list(pending.values()))
        for row in created:
            index.products[product_key(row["name_norm"], row.get("sku"))] = row
        return len(created)


# ===================
# HELPERS
# ===================

def _decimal(value) -> Decimal:
    return Decimal(str(value))


def _distinct_names(names: list[str]) -> list[str]:
    """Case-insensitively distinct names; the first spelling wins."""
    seen: dict[str, str] = {}
    for name in names:
        seen.setdefault(casefold_name(name), name)
    return list(seen.values())


def _with_author(row: dict, user_id: Optional[str]) -> dict:
    if user_id:
        row["created_by"] = user_id
    return row


def _price_terms(entry: dict) -> Optional[tuple[Decimal, Decimal]]:
    """(cost, discount) of an entry; entries with the same terms are economically identical."""
    if entry.get("cost_price") is None:
        return None
    discount = entry.get("discount_percent")
    return _decimal(entry["cost_price"]), _decimal(discount) if discount is not None else ZERO


def _price_entry(
    tenant_id: str,
    product: dict,
    supplier: dict,
    category: Optional[dict],
    row: EvaluatedRow,
    pair: ValidPair,
    pricing: PricingRules,
    user_id: Optional[str],
) -> dict:
    cost_after_discount = price_after_discount(pair.price, pair.discount)
    margin = pricing.margin_for(category)
    sell_price = calc_sell_price(cost_after_discount, margin, pricing.effective_vat)
    return _with_author({
        "tenant_id": tenant_id,
        "product_id": product["id"],
        "supplier_id": supplier["id"],
        "cost_price": float(pair.price),
        "discount_percent": float(pair.discount) if pair.discount is not None else 0.0,
        "cost_price_after_discount": float(cost_after_discount),
        "margin_percent": float(margin),
        "sell_price": float(sell_price),
        "package_quantity": float(row.package_quantity) if row.package_quantity is not None else None,
        "package_type": row.package_type,
        "source_price_includes_vat": bool(row.includes_vat),
        "vat_rate": float(row.vat_rate) if row.vat_rate is not None else None,
    }, user_id)


# Singleton instance
_import_apply_service: Optional[ImportApplyService] = None


def get_import_apply_service() -> ImportApplyService:
    """Get or create ImportApplyService instance."""
    global _import_apply_service
    if _import_apply_service is None:
        _import_apply_service = ImportApplyService()
    return _import_apply_service
