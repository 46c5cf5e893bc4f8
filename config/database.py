"""
Supabase clients for the catalog tables and storage buckets.

get_supabase_client() is cached for the life of the process; services
take it once in __init__ and keep it as self.db.
"""

from supabase import create_client, Client
from functools import lru_cache
from typing import Optional
import structlog

from config.settings import settings
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)

# Tables reported by check_connection(), in display order
HEALTH_TABLES = ("products", "staging_products", "product_images")


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get the cached Supabase client.

    The client is checked against the products table before it is handed
    out, so a wrong URL or key fails here rather than mid-import.

    Raises:
        DatabaseError: If the client cannot be created or the check fails
    """
    logger.info("connecting_to_supabase", url=settings.supabase_url[:30] + "...")

    try:
        client = create_client(settings.supabase_url, settings.supabase_key)
        client.table("products").select("id").limit(1).execute()
    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise DatabaseError("connect", str(e)) from e

    logger.info("supabase_connected")
    return client


def get_admin_client() -> Optional[Client]:
    """
    Client with the service role key, or None when it is not configured.

    Schema migrations run DDL through exec_sql, which is normally granted
    to the service role only.
    """
    if not settings.supabase_service_key:
        logger.warning("admin_client_not_configured")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_service_key)
    except Exception as e:
        logger.error("admin_client_failed", error=str(e))
        return None


def check_connection() -> dict:
    """
    Row counts for the catalog tables, used by /health and startup.

    Returns:
        dict: {"status": "healthy", "<table>_count": n, ...} or
        {"status": "unhealthy", "error": "..."}
    """
    try:
        client = get_supabase_client()
        counts = {}
        for table in HEALTH_TABLES:
            result = client.table(table).select("id", count="exact").limit(1).execute()
            counts[f"{table}_count"] = result.count
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}

    return {"status": "healthy", **counts}
