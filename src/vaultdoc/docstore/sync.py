"""
Save/Sync Engine.

Writes a document's primary row, then reconciles each embedded
collection with its child table:

- replace collections: delete every child row of the parent, bulk-insert
  the current array
- delta collections: delete the keys that disappeared, insert the entries
  that are new, leave the rest untouched

PostgREST gives no transaction across statements, so every save runs in
a SaveScope. Each completed step registers a compensating action; if a
later step fails the compensations run newest-first and the original
storage error is re-raised. A failing compensation turns the error into
InconsistentSaveError. Nothing is retried.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

from vaultdoc.docstore.entity import EmbeddedCollection
from vaultdoc.docstore.snapshot import Snapshot, plan_delta
from vaultdoc.errors import InconsistentSaveError
from vaultdoc.models.base import Document

logger = logging.getLogger(__name__)

Compensation = Callable[[], Awaitable[Any]]


class SaveScope:
    """
    Unit of work around one document save.

    Usage:
        async with SaveScope("users/123") as scope:
            ... write ...
            scope.on_rollback("delete inserted row", undo)
    """

    def __init__(self, label: str):
        self.label = label
        self._compensations: list[tuple[str, Compensation]] = []

    def on_rollback(self, description: str, action: Compensation) -> None:
        """Register the inverse of a step that just completed."""
        self._compensations.append((description, action))

    async def __aenter__(self) -> "SaveScope":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        compensations, self._compensations = self._compensations, []
        if exc is None or not isinstance(exc, Exception):
            return False

        failed: list[str] = []
        for description, action in reversed(compensations):
            try:
                await action()
            except Exception as undo_error:
                logger.error(f"Rollback of {self.label} failed at '{description}': {undo_error}")
                failed.append(description)

        if failed:
            raise InconsistentSaveError(self.label, failed) from exc

        logger.warning(f"Save of {self.label} rolled back after error: {exc}")
        return False


async def insert_primary(
    client: Any,
    table: str,
    doc: Document,
    row: Mapping[str, Any],
    scope: SaveScope,
    materialize: Callable[[Mapping[str, Any]], Document],
    assigned: tuple[str, ...] = (),
    upsert_on: str | None = None,
) -> None:
    """
    Insert the primary row and copy storage-assigned values back.

    `assigned` names the attributes (besides id) that storage fills in,
    such as the creation timestamp. With upsert_on, an existing row with
    the same natural key is updated instead and its identity adopted;
    that write is not compensated since the prior row state is unknown.
    """
    builder = client.table(table)
    if upsert_on:
        response = await builder.upsert(dict(row), on_conflict=upsert_on).execute()
    else:
        response = await builder.insert(dict(row)).execute()
    stored = materialize(response.data[0])
    logger.debug(f"Inserted {table}/{stored.id}")

    previous = {name: getattr(doc, name) for name in assigned}
    doc.id = stored.id
    for name in assigned:
        setattr(doc, name, getattr(stored, name))

    if upsert_on:
        return

    async def undo():
        await client.table(table).delete().eq("id", stored.id).execute()
        doc.id = None
        for name, value in previous.items():
            setattr(doc, name, value)

    scope.on_rollback(f"delete {table}/{stored.id}", undo)


async def update_primary(
    client: Any,
    table: str,
    doc: Document,
    row: Mapping[str, Any],
    scope: SaveScope,
) -> None:
    """Update the primary row by identity, keeping its before-image for rollback."""
    if not row:
        return
    before = await client.table(table).select("*").eq("id", doc.id).execute()
    await client.table(table).update(dict(row)).eq("id", doc.id).execute()
    logger.debug(f"Updated {table}/{doc.id}")

    if before.data:
        previous = {column: value for column, value in before.data[0].items() if column != "id"}

        async def undo():
            await client.table(table).update(previous).eq("id", doc.id).execute()

        scope.on_rollback(f"restore {table}/{doc.id}", undo)


async def sync_replace(
    client: Any,
    collection: EmbeddedCollection,
    parent_id: str,
    items: list[Any],
    scope: SaveScope,
    is_new: bool,
) -> None:
    """Full replace: delete all child rows of the parent, insert the current array."""
    table = collection.table
    fk = collection.foreign_key

    existing: list[Mapping[str, Any]] = []
    if not is_new:
        response = await client.table(table).select("*").eq(fk, parent_id).execute()
        existing = response.data or []
        await client.table(table).delete().eq(fk, parent_id).execute()

    async def restore():
        await client.table(table).delete().eq(fk, parent_id).execute()
        if existing:
            await client.table(table).insert([dict(r) for r in existing]).execute()

    scope.on_rollback(f"restore {table} of {parent_id}", restore)

    if items:
        await client.table(table).insert(ordered_rows(collection, parent_id, items)).execute()
    logger.debug(f"Replaced {table} of {parent_id}: {len(existing)} -> {len(items)} rows")


async def sync_delta(
    client: Any,
    collection: EmbeddedCollection,
    parent_id: str,
    items: list[Any],
    snapshot: Snapshot,
    scope: SaveScope,
) -> None:
    """Delta sync: delete removed keys, insert added entries, touch nothing else."""
    table = collection.table
    fk = collection.foreign_key
    key_column = collection.key_column

    delta = plan_delta(snapshot.keys_for(collection.field), items, collection.item_key)
    if delta.empty:
        return

    if delta.removed:
        response = await (
            client.table(table).select("*").eq(fk, parent_id).in_(key_column, delta.removed).execute()
        )
        removed_rows = response.data or []
        await client.table(table).delete().eq(fk, parent_id).in_(key_column, delta.removed).execute()

        async def reinsert():
            if removed_rows:
                await client.table(table).insert([dict(r) for r in removed_rows]).execute()

        scope.on_rollback(f"re-insert {len(removed_rows)} {table} rows", reinsert)

    if delta.added:
        rows = ordered_rows(collection, parent_id, delta.added)
        await client.table(table).insert(rows).execute()
        added_keys = [row[key_column] for row in rows]

        async def remove_added():
            await client.table(table).delete().eq(fk, parent_id).in_(key_column, added_keys).execute()

        scope.on_rollback(f"delete {len(added_keys)} new {table} rows", remove_added)

    logger.debug(f"Synced {table} of {parent_id}: -{len(delta.removed)} +{len(delta.added)}")


def ordered_rows(collection: EmbeddedCollection, parent_id: str, items: list[Any]) -> list[dict[str, Any]]:
    """
    Child rows for items, with the load-order column strictly increasing.

    Array order is stored as the order_by timestamp. Where an item's stamp
    is not after its predecessor's it is moved 1µs past it, on the row
    and on the item.
    """
    rows = [collection.to_row(parent_id, item) for item in items]
    column = collection.order_by
    if not column:
        return rows

    attribute = collection.model.attribute_for(collection.mapper.to_field(column))
    previous: datetime | None = None
    for item, row in zip(items, rows):
        if not isinstance(row.get(column), str):
            continue
        stamp = datetime.fromisoformat(row[column])
        if stamp.tzinfo is None:
            stamp = stamp.replace(tzinfo=timezone.utc)
        if previous is not None and stamp <= previous:
            stamp = previous + timedelta(microseconds=1)
            row[column] = stamp.isoformat()
            if attribute:
                setattr(collection.coerce(item), attribute, stamp)
        previous = stamp
    return rows
