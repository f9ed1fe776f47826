"""
Database client configuration.
Uses Supabase Postgres as the shared store for CSRF tokens and rate limits.
"""

from functools import lru_cache
from typing import Optional

from supabase import Client, ClientOptions, create_client

from portfolio_api.config import ContactSettings


@lru_cache(maxsize=4)
def _create_admin_client(url: str, service_key: str, timeout_seconds: float) -> Client:
    # Service-role client (bypasses RLS); kv_* functions are security definer
    return create_client(
        url,
        service_key,
        options=ClientOptions(postgrest_client_timeout=timeout_seconds),
    )


def get_supabase_admin(settings: ContactSettings) -> Optional[Client]:
    """Return the cached admin client, or None when Supabase is not configured."""
    if not settings.supabase_url or not settings.supabase_service_key:
        return None
    return _create_admin_client(
        settings.supabase_url,
        settings.supabase_service_key,
        settings.store_timeout_seconds,
    )
