"""
Supabase client for the service.

Webhook processing writes server-side, so the service role key is used when
it is configured; the anon key is the fallback for local development.
"""

from supabase import create_client, Client
from functools import lru_cache
import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)

# Tables counted by the health check
HEALTH_TABLES = ("shipments", "webhook_logs", "cargoes_flow_posts")


class DatabaseError(Exception):
    """Base exception for database connection errors."""
    pass


class ConnectionError(DatabaseError):
    """Failed to connect to database."""
    pass


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get the cached Supabase client.

    Call get_supabase_client.cache_clear() to reconnect.

    Raises:
        ConnectionError: If the client can't be created or the health query fails
    """
    key = settings.supabase_service_key or settings.supabase_key

    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "...",
            service_role=bool(settings.supabase_service_key)
        )

        client = create_client(settings.supabase_url, key)
        client.table("webhook_logs").select("id").limit(1).execute()

        logger.info("supabase_connected")
        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise ConnectionError(f"Failed to connect to Supabase: {e}") from e


def check_connection() -> dict:
    """
    Database health with row counts of the core tables.

    Returns:
        {"status": "healthy", "shipments_count": ..., ...} or
        {"status": "unhealthy", "error": ...}
    """
    try:
        client = get_supabase_client()
        counts = {
            f"{table}_count": client.table(table).select("id", count="exact").execute().count
            for table in HEALTH_TABLES
        }
        return {"status": "healthy", **counts}

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e)
        }
