"""
Sort Translator.

Plain sort keys become ORDER BY on the query. Dotted keys address a path
inside a JSON column, which PostgREST cannot order by reliably, so they
are returned as a deferred spec and applied in memory after the fetch.
"""

import math
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from vaultdoc.docstore.columns import ColumnMapper

ASCENDING = {1, "1", "asc", "ascending"}
DESCENDING = {-1, "-1", "desc", "descending"}


def is_descending(direction: Any) -> bool:
    if isinstance(direction, str):
        direction = direction.lower()
    return direction in DESCENDING


def translate_sort(
    query: Any,
    sort_spec: Mapping[str, Any] | None,
    mapper: ColumnMapper,
) -> tuple[Any, dict[str, Any]]:
    """
    Apply a sort spec to a query builder, in key order.

    Returns the refined query and the deferred (dotted-path) part of the
    spec, preserving its order.
    """
    deferred: dict[str, Any] = {}
    for key, direction in (sort_spec or {}).items():
        if "." in key:
            deferred[key] = direction
            continue
        query = query.order(mapper.to_column(key), desc=is_descending(direction))
    return query, deferred


def apply_deferred_sort(
    rows: Sequence[Mapping[str, Any]],
    deferred: Mapping[str, Any],
    mapper: ColumnMapper,
) -> list[Mapping[str, Any]]:
    """
    Sort fetched rows by dotted document paths.

    The first key is the primary key. Sorting is stable, so ties keep
    fetch order. Missing and null values sort lowest.
    """
    ordered = list(rows)
    # Stable sorts applied last-key-first leave the first key dominant
    for key, direction in reversed(list(deferred.items())):
        column, path = mapper.split_path(key)
        ordered.sort(
            key=lambda row: sort_key(_resolve(row.get(column), path)),
            reverse=is_descending(direction),
        )
    return ordered


def _resolve(value: Any, path: list[str]) -> Any:
    for part in path:
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def sort_key(value: Any) -> tuple[int, Any]:
    """
    Rank values so mixed types never compare directly.

    Null < numbers and timestamps (compared as epoch seconds) < other text.
    Numeric text ranks as its number, so "9" sorts before "10".
    """
    if value is None:
        return (0, 0)
    if isinstance(value, bool):
        return (1, float(value))
    if isinstance(value, (int, float)):
        return (1, float(value))
    if isinstance(value, datetime):
        return (1, value.timestamp())
    text = str(value)
    try:
        number = float(text)
    except ValueError:
        pass
    else:
        if math.isfinite(number):
            return (1, number)
    try:
        return (1, datetime.fromisoformat(text).timestamp())
    except ValueError:
        return (2, text)
