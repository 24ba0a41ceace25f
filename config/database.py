"""
Supabase client for the catalog store.

One client per process. The import pipeline writes across categories,
suppliers, products and price_entries, so the service role key is used
when it is configured.
"""

from functools import lru_cache
from supabase import create_client, Client
import structlog

from config.settings import settings
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)

# Counted by the health check
HEALTH_TABLES = ("products", "price_entries")


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get the shared Supabase client.

    Raises:
        DatabaseError: If the client cannot be created
    """
    service_role = bool(settings.supabase_service_key)
    try:
        client = create_client(
            settings.supabase_url,
            settings.supabase_service_key or settings.supabase_key
        )
    except Exception as e:
        logger.error("supabase_client_failed", error=str(e), error_type=type(e).__name__)
        raise DatabaseError("connect", str(e))

    logger.info(
        "supabase_client_ready",
        url=settings.supabase_url[:30] + "...",  # Partial URL only
        service_role=service_role
    )
    return client


def check_connection() -> dict:
    """
    Probe the catalog tables.

    Returns:
        {"status": "healthy", "products_count": n, "price_entries_count": n}
        or {"status": "unhealthy", "error": message}
    """
    try:
        client = get_supabase_client()
        status = {"status": "healthy"}
        for table in HEALTH_TABLES:
            result = client.table(table).select("id", count="exact").limit(1).execute()
            status[f"{table}_count"] = result.count
        return status
    except Exception as e:
        logger.warning("database_health_check_failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}
