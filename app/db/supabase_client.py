"""Supabase client initialization."""

from functools import lru_cache

from supabase import Client, create_client

from app.context.errors import StorageConnectionError
from app.core.config import get_settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Get Supabase client instance (cached singleton).

    Returns:
        Supabase client configured with service role key

    Raises:
        StorageConnectionError: If the client cannot be created (bad URL or key,
            missing settings). Not cached, so the next call retries.
    """
    try:
        settings = get_settings()
        return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    except Exception as e:
        raise StorageConnectionError(f"Failed to initialize Supabase client: {e}") from e
