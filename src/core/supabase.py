"""Supabase client for database operations."""

from functools import lru_cache
from typing import Any

from supabase import Client, create_client

from src.core.config import get_settings

# Tables the payment flow cannot work without
REQUIRED_TABLES = ("bookings", "school_enrollments", "coupons")


@lru_cache
def get_supabase_client() -> Client:
    """Return the process-wide Supabase client.

    Built with the secret key, which bypasses row level security, so only
    server-side code that has already checked the caller (or a verified
    webhook signature) may reach it. Services receive it through their
    constructor rather than calling this directly.

    Returns:
        Client: Supabase client instance.
    """
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_secret_key)


async def check_database_connection(client: Client | None = None) -> dict[str, Any]:
    """Check that each table the payment flow uses answers a query.

    Args:
        client: Optional client (defaults to the process-wide one).

    Returns:
        dict: 'healthy' boolean and, when unhealthy, the first 'error'.
    """
    try:
        client = client or get_supabase_client()
        for table in REQUIRED_TABLES:
            client.table(table).select("id").limit(1).execute()
        return {"healthy": True}
    except Exception as e:
        return {"healthy": False, "error": str(e)}
