"""Supabase clients for database, storage and realtime operations."""

from functools import lru_cache
from typing import Any

from supabase import AsyncClient, Client, acreate_client, create_client

from src.core.config import get_settings


@lru_cache
def get_supabase_client() -> Client:
    """Get cached Supabase client singleton for database operations.

    Uses secret key (sb_secret_) for backend operations, which bypasses RLS
    at the PostgREST level. This should only be used for server-side
    database operations where proper authorization has already been verified.

    Returns:
        Client: Supabase client instance.
    """
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_secret_key,
    )


async def create_realtime_client() -> AsyncClient:
    """Create a fresh async Supabase client for one chat session.

    Realtime channels live on the async client's websocket. Each chat
    session gets its own client so that closing the session tears down
    its channel and socket without touching any other session.

    Returns:
        AsyncClient: Fresh async Supabase client.
    """
    settings = get_settings()
    return await acreate_client(
        settings.supabase_url,
        settings.supabase_secret_key,
    )


async def check_database_connection() -> dict[str, Any]:
    """Check if database connection is healthy.

    Returns:
        dict: Connection status with 'healthy' boolean and optional 'error' message.
    """
    try:
        client = get_supabase_client()
        client.table("messages").select("id").limit(1).execute()
        return {"healthy": True}
    except Exception as e:
        return {"healthy": False, "error": str(e)}
