"""Windowed reads that are not capped by the server's row limit."""

from collections.abc import Callable, Mapping
from typing import Any


async def fetch_all(build: Callable[[], Any], window: int) -> list[Mapping[str, Any]]:
    """
    Run a query page by page until a short page comes back.

    `build` returns a fresh, fully filtered and ordered query builder;
    pages are taken with range(). The order must be total for pages not
    to overlap.
    """
    rows: list[Mapping[str, Any]] = []
    start = 0
    while True:
        response = await build().range(start, start + window - 1).execute()
        batch = response.data or []
        rows.extend(batch)
        if len(batch) < window:
            return rows
        start += window
