"""
vaultdoc - Supabase Client.

Low-level database access. All storage round trips go through the client
returned here.
"""

import logging

from supabase import AsyncClient, acreate_client

from vaultdoc.config import settings
from vaultdoc.errors import StorageNotConfiguredError

logger = logging.getLogger(__name__)

# Singleton client instance
_client: AsyncClient | None = None


async def get_client() -> AsyncClient:
    """
    Get the Supabase client.

    Uses singleton pattern to reuse connection. Fails fast, without retry,
    when the service credentials are not configured.
    """
    global _client

    if _client is None:
        if not settings.storage_configured:
            raise StorageNotConfiguredError(
                "Supabase not configured: set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY"
            )
        _client = await acreate_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
        )
        logger.info(f"Supabase client initialised for {settings.supabase_url}")

    return _client


def reset_client() -> None:
    """Drop the cached client (used after settings change)."""
    global _client
    _client = None
