"""
Storage Client Protocol.

Defines the interface the document store needs from its storage client.
The real implementation is supabase-py's AsyncClient; tests supply an
in-memory fake with the same surface.

table() returns a PostgREST query builder. The core builds queries
fluently on it (.select(), .insert(), .eq(), .order(), ...) and awaits
.execute(), which yields an object with .data (rows) and .count.
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class StorageClient(Protocol):
    """
    Abstract storage access for the document store.

    The returned builder must support the PostgREST-style fluent API:
    .select(), .insert(), .upsert(), .update(), .delete(), the filter
    methods (.eq(), .neq(), .gt(), .gte(), .lt(), .lte(), .in_(),
    .ilike(), .is_(), .contains(), .or_()), .order(), .limit(),
    .range(), and an awaitable .execute().
    """

    def table(self, name: str) -> Any:
        """Return a query builder for the given table."""
        ...
