"""
vaultdoc - Database Client.

Provides the async Supabase client and the storage protocol it satisfies.
"""

from vaultdoc.db.adapter import StorageClient
from vaultdoc.db.client import get_client, reset_client

__all__ = [
    "StorageClient",
    "get_client",
    "reset_client",
]
