"""
Document Materializer.

Maps a storage row (plus, for composite entities, already-fetched child
rows and referenced rows) into a populated document. Never does I/O:
whatever related data a document needs is fetched by the caller first.

Null and absent columns are dropped before validation so the model's
defaults apply: timestamps default to now, flags and enumerated fields to
the entity's documented default, embedded collections to empty lists.
Pydantic coerces ISO timestamps, numeric text and JSON blobs.
"""

from collections.abc import Iterable, Mapping
from typing import Any, TypeVar

from vaultdoc.docstore.columns import ColumnMapper
from vaultdoc.docstore.entity import EmbeddedCollection
from vaultdoc.models.base import Document

T = TypeVar("T", bound=Document)


def row_to_fields(row: Mapping[str, Any], mapper: ColumnMapper) -> dict[str, Any]:
    """Rename columns to document fields, dropping nulls."""
    return {mapper.to_field(column): value for column, value in row.items() if value is not None}


def from_row(
    model: type[T],
    row: Mapping[str, Any],
    mapper: ColumnMapper,
    embedded: Mapping[str, Iterable[Document]] | None = None,
    related: Mapping[str, Any] | None = None,
) -> T:
    """
    Build a document from a row.

    Args:
        model: Document class
        row: Storage row (column -> value)
        mapper: Column mapper of the row's table
        embedded: Field -> materialized sub-documents, for embedded collections
        related: Field -> value overrides, for populated references
    """
    data = row_to_fields(row, mapper)
    for name, items in (embedded or {}).items():
        data[name] = list(items)
    for name, value in (related or {}).items():
        if value is not None:
            data[name] = value
    return model.model_validate(data)


def embedded_from_rows(collection: EmbeddedCollection, rows: Iterable[Mapping[str, Any]]) -> list[Document]:
    """Materialize child rows as the sub-documents of one collection."""
    return [from_row(collection.model, row, collection.mapper) for row in rows]


def group_by_parent(collection: EmbeddedCollection, rows: Iterable[Mapping[str, Any]]) -> dict[str, list[Mapping[str, Any]]]:
    """Split a batch of child rows by parent id, keeping fetch order."""
    grouped: dict[str, list[Mapping[str, Any]]] = {}
    for row in rows:
        grouped.setdefault(row.get(collection.foreign_key), []).append(row)
    return grouped
