"""
Tenant catalog access for the import apply step.

CatalogRepository wraps the Supabase calls (paged reads, chunked inserts,
tenant-scoped deletes). CatalogUnitOfWork journals every write of one
apply call so it can be compensated if a later write fails; PostgREST
has no multi-statement transactions.
"""

from typing import Any, Optional
import uuid
import structlog

from config import get_supabase_client
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)

PAGE_SIZE = 1000
INSERT_CHUNK_SIZE = 500
DEFAULT_CATEGORY_NAME = "כללי"

CATEGORIES = "categories"
SUPPLIERS = "suppliers"
PRODUCTS = "products"
PRICE_ENTRIES = "price_entries"
SETTINGS = "settings"

# Parents before children
INSERT_ORDER = (CATEGORIES, SUPPLIERS, PRODUCTS, PRICE_ENTRIES)


class CatalogRepository:
    """Tenant-scoped reads and writes on the catalog tables."""

    def __init__(self, tenant_id: str, client=None):
        self.db = client or get_supabase_client()
        self.tenant_id = tenant_id

    # ===================
    # READ OPERATIONS
    # ===================

    def fetch_all(self, table: str, columns: str = "*", order: Optional[str] = None) -> list[dict]:
        """
        Read every tenant row of a table, PAGE_SIZE rows at a time.

        Raises:
            DatabaseError: If a page cannot be read
        """
        rows: list[dict] = []
        offset = 0
        try:
            while True:
                query = self.db.table(table).select(columns).eq("tenant_id", self.tenant_id)
                if order:
                    query = query.order(order)
                page = query.range(offset, offset + PAGE_SIZE - 1).execute().data or []
                rows.extend(page)
                if len(page) < PAGE_SIZE:
                    break
                offset += PAGE_SIZE
        except Exception as e:
            logger.error("catalog_read_failed", table=table, tenant_id=self.tenant_id, error=str(e))
            raise DatabaseError("select", str(e), details={"table": table})
        return rows

    def get_settings(self) -> Optional[dict]:
        """The tenant's settings row, or None."""
        try:
            result = (
                self.db.table(SETTINGS)
                .select("*")
                .eq("tenant_id", self.tenant_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("settings_read_failed", tenant_id=self.tenant_id, error=str(e))
            raise DatabaseError("select", str(e), details={"table": SETTINGS})
        return result.data[0] if result.data else None

    # ===================
    # WRITE OPERATIONS
    # ===================

    def insert(self, table: str, rows: list[dict]) -> list[dict]:
        """
        Insert rows in chunks. Returns the stored rows (with ids).

        Raises:
            DatabaseError: If any chunk fails
        """
        stored: list[dict] = []
        for start in range(0, len(rows), INSERT_CHUNK_SIZE):
            chunk = rows[start:start + INSERT_CHUNK_SIZE]
            try:
                result = self.db.table(table).insert(chunk).execute()
            except Exception as e:
                logger.error("catalog_insert_failed", table=table, rows=len(chunk), error=str(e))
                raise DatabaseError("insert", str(e), details={"table": table})
            stored.extend(result.data or [])
        return stored

    def delete_ids(self, table: str, ids: list[str]) -> None:
        """Delete specific tenant rows by id."""
        for start in range(0, len(ids), INSERT_CHUNK_SIZE):
            chunk = ids[start:start + INSERT_CHUNK_SIZE]
            try:
                (
                    self.db.table(table)
                    .delete()
                    .eq("tenant_id", self.tenant_id)
                    .in_("id", chunk)
                    .execute()
                )
            except Exception as e:
                logger.error("catalog_delete_failed", table=table, rows=len(chunk), error=str(e))
                raise DatabaseError("delete", str(e), details={"table": table})

    def delete_all(self, table: str, keep_name: Optional[str] = None) -> None:
        """Delete every tenant row of a table (optionally sparing one name)."""
        try:
            query = self.db.table(table).delete().eq("tenant_id", self.tenant_id)
            if keep_name is not None:
                query = query.neq("name", keep_name)
            query.execute()
        except Exception as e:
            logger.error("catalog_wipe_failed", table=table, tenant_id=self.tenant_id, error=str(e))
            raise DatabaseError("delete", str(e), details={"table": table})


class CatalogUnitOfWork:
    """
    Journal of one apply call's writes.

    insert() records the ids it creates; wipe_catalog() snapshots what it
    deletes. rollback() removes the inserted rows (children first) and
    re-inserts the snapshot (parents first).
    """

    def __init__(self, repository: CatalogRepository):
        self.repo = repository
        self.inserted: dict[str, list[str]] = {table: [] for table in INSERT_ORDER}
        self.snapshot: dict[str, list[dict]] = {}

    def insert(self, table: str, rows: list[dict]) -> list[dict]:
        """Insert rows with client-side ids, journaled before the write is sent."""
        if not rows:
            return []
        for row in rows:
            row.setdefault("id", str(uuid.uuid4()))
        self.inserted[table].extend(row["id"] for row in rows)
        return self.repo.insert(table, rows)

    def wipe_catalog(self) -> None:
        """
        Delete the tenant's price entries, products, suppliers and every
        category except the default one, keeping a snapshot for rollback.
        """
        logger.info("catalog_wipe_started", tenant_id=self.repo.tenant_id)
        categories = [
            c for c in self.repo.fetch_all(CATEGORIES)
            if c.get("name") != DEFAULT_CATEGORY_NAME
        ]
        snapshot = {
            PRICE_ENTRIES: self.repo.fetch_all(PRICE_ENTRIES),
            PRODUCTS: self.repo.fetch_all(PRODUCTS),
            SUPPLIERS: self.repo.fetch_all(SUPPLIERS),
            CATEGORIES: categories,
        }

        for table in reversed(INSERT_ORDER):
            keep = DEFAULT_CATEGORY_NAME if table == CATEGORIES else None
            self.repo.delete_all(table, keep_name=keep)
            self.snapshot[table] = snapshot[table]

        logger.info(
            "catalog_wiped",
            tenant_id=self.repo.tenant_id,
            **{table: len(rows) for table, rows in self.snapshot.items()},
        )

    def rollback(self) -> bool:
        """
        Undo every journaled write.

        Returns:
            True if the catalog was restored, False if compensation itself failed
        """
        logger.warning(
            "import_rollback_started",
            tenant_id=self.repo.tenant_id,
            inserted={table: len(ids) for table, ids in self.inserted.items()},
            restoring={table: len(rows) for table, rows in self.snapshot.items()},
        )
        try:
            for table in reversed(INSERT_ORDER):
                if self.inserted[table]:
                    self.repo.delete_ids(table, self.inserted[table])
            for table in INSERT_ORDER:
                if self.snapshot.get(table):
                    self.repo.insert(table, _restorable(self.snapshot[table]))
        except DatabaseError as e:
            logger.error("import_rollback_failed", tenant_id=self.repo.tenant_id, error=e.message)
            return False

        logger.info("import_rollback_completed", tenant_id=self.repo.tenant_id)
        return True


def _restorable(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drop embedded relations that PostgREST returns but cannot insert."""
    return [{k: v for k, v in row.items() if not isinstance(v, (dict, list))} for row in rows]
