"""
Repository base class.

A repository is the stateless façade for one entity: it owns the table
layout declaration and offers the document-store surface (find, count,
aggregate, save, bulk operations). Documents carry no behaviour; the
loaded Snapshot travels alongside a document into save().

Subclasses declare the layout:

    class WalletRepository(Repository[Wallet]):
        table = "wallets"
        model = Wallet
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import replace
from typing import Any, ClassVar, Generic, TypeVar

from pydantic_core import to_jsonable_python

from vaultdoc.config import settings
from vaultdoc.db import StorageClient, get_client
from vaultdoc.docstore.aggregation import AggregationEmulator, classify
from vaultdoc.docstore.columns import ColumnMapper
from vaultdoc.docstore.cursor import QueryCursor
from vaultdoc.docstore.entity import EmbeddedCollection, Reference
from vaultdoc.docstore.filters import translate_filter
from vaultdoc.docstore.materializer import embedded_from_rows, from_row, group_by_parent
from vaultdoc.docstore.paging import fetch_all
from vaultdoc.docstore.results import Translated, Translation, Unsupported
from vaultdoc.docstore.secrets import check_secret, hash_secret
from vaultdoc.docstore.snapshot import Snapshot, capture, secret_changed
from vaultdoc.docstore.sync import SaveScope, insert_primary, sync_delta, sync_replace, update_primary
from vaultdoc.docstore.values import utcnow
from vaultdoc.errors import MissingSnapshotError, UnsupportedQueryError
from vaultdoc.models.base import Document

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Document)


class Repository(Generic[T]):
    """
    Document-store façade over one table.

    Class attributes:
        table: Primary table
        model: Document class
        mapper: Column mapper (per-table overrides, JSON and array columns)
        embedded: Array fields stored in child tables
        references: Fields that populate() can expand
        secret_field: Attribute hashed with bcrypt whenever it changes
        assigned: Attributes storage fills in on insert (copied back)
        touched: Attribute set to now on every update
        upsert_conflict: Natural-key columns; inserts become upserts
    """

    table: ClassVar[str]
    model: ClassVar[type[Document]]
    mapper: ClassVar[ColumnMapper] = ColumnMapper()
    embedded: ClassVar[tuple[EmbeddedCollection, ...]] = ()
    references: ClassVar[tuple[Reference, ...]] = ()
    secret_field: ClassVar[str | None] = None
    assigned: ClassVar[tuple[str, ...]] = ("created_at",)
    touched: ClassVar[str | None] = None
    upsert_conflict: ClassVar[str | None] = None

    def __init__(self, client: StorageClient | None = None, strict: bool | None = None):
        self._client = client
        self.strict = settings.strict_queries if strict is None else strict

    async def client(self) -> StorageClient:
        if self._client is None:
            self._client = await get_client()
        return self._client

    @property
    def window(self) -> int:
        return settings.query_window

    @property
    def tracks_state(self) -> bool:
        """Whether saving a persisted document needs its loaded snapshot."""
        return bool(self.secret_field) or any(c.mode == "delta" for c in self.embedded)

    # =========================================================================
    # Construction
    # =========================================================================

    def new(self, data: Mapping[str, Any] | None = None, **fields: Any) -> T:
        """Build an unsaved document from document fields."""
        return self.model.model_validate({**(data or {}), **fields})

    async def create(self, data: Mapping[str, Any] | T) -> T:
        doc = self._coerce(data)
        await self.save(doc)
        return doc

    def _coerce(self, data: Mapping[str, Any] | T) -> T:
        if isinstance(data, self.model):
            return data
        return self.new(data)

    # =========================================================================
    # Reads
    # =========================================================================

    def find(self, filter_expr: Mapping[str, Any] | None = None, projection: Any = None) -> QueryCursor[T]:
        cursor = QueryCursor(self, filter_expr)
        if projection:
            cursor.select(projection)
        return cursor

    async def find_one(self, filter_expr: Mapping[str, Any] | None = None, projection: Any = None) -> T | None:
        docs = await self.find(filter_expr, projection).limit(1)
        return docs[0] if docs else None

    async def find_by_id(self, doc_id: str | None) -> T | None:
        if not doc_id:
            return None
        client = await self.client()
        response = await client.table(self.table).select("*").eq("id", str(doc_id)).limit(1).execute()
        docs = await self.materialize_rows(client, response.data or [])
        return docs[0] if docs else None

    async def count_documents(self, filter_expr: Mapping[str, Any] | None = None) -> int:
        client = await self.client()
        filter_expr = await self.expand_filter(client, filter_expr)
        query = self.refine(client.table(self.table).select("id", count="exact", head=True), filter_expr)
        response = await query.execute()
        return response.count or 0

    async def aggregate(self, pipeline: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
        """Evaluate one of the supported pipeline shapes (see docstore.aggregation)."""
        plan = self.resolve(classify(pipeline))
        if plan is None:
            return []
        client = await self.client()
        if plan.match:
            plan = replace(plan, match=await self.expand_filter(client, plan.match))
        emulator = AggregationEmulator(
            client,
            self.table,
            self.mapper,
            {c.field: c for c in self.embedded},
            self.refine,
            self.window,
        )
        return self.resolve(await emulator.run(plan)) or []

    # =========================================================================
    # Writes
    # =========================================================================

    async def save(self, doc: T, snapshot: Snapshot | None = None) -> Snapshot:
        """
        Persist a document and return its new snapshot.

        New documents are inserted and receive their identity and storage
        timestamps. Persisted documents are updated by identity, and every
        loaded embedded collection is reconciled. The whole save is one SaveScope:
        on a storage error the completed steps are compensated and the
        error is re-raised.
        """
        if not doc.is_new and snapshot is None and self.tracks_state:
            raise MissingSnapshotError(
                f"Saving {self.table}/{doc.id} needs the snapshot returned by track() or the previous save()"
            )
        is_new = doc.is_new
        snapshot = Snapshot() if is_new or snapshot is None else snapshot
        client = await self.client()

        async with SaveScope(f"{self.table}/{doc.id or 'new'}") as scope:
            await self._hash_secret(doc, snapshot, scope)

            if is_new:
                await insert_primary(
                    client,
                    self.table,
                    doc,
                    self.to_row(doc),
                    scope,
                    self._materialize_row,
                    self.assigned,
                    self.upsert_conflict,
                )
            else:
                if self.touched:
                    setattr(doc, self.touched, utcnow())
                await update_primary(client, self.table, doc, self.to_row(doc, for_update=True), scope)

            for collection in self.embedded:
                attribute = self.model.attribute_for(collection.field)
                if attribute in doc.unwritten:
                    continue
                items = [collection.coerce(item) for item in getattr(doc, attribute) or []]
                setattr(doc, attribute, items)
                if collection.mode == "replace":
                    await sync_replace(client, collection, doc.id, items, scope, is_new)
                else:
                    await sync_delta(client, collection, doc.id, items, snapshot, scope)

        return self.track(doc)

    def track(self, doc: T) -> Snapshot:
        """Snapshot of a document as it currently exists in storage."""
        secret = getattr(doc, self.secret_field) if self.secret_field else None
        keyed = [c for c in self.embedded if c.mode == "delta"]
        return capture(
            secret,
            {c.field: getattr(doc, self.model.attribute_for(c.field)) or [] for c in keyed},
            {c.field: c.item_key for c in keyed},
        )

    async def verify_secret(self, doc: T, plaintext: str) -> bool:
        """Compare a plaintext against the document's stored credential hash."""
        if not self.secret_field:
            return False
        return await check_secret(plaintext, getattr(doc, self.secret_field))

    async def insert_many(self, docs: Iterable[Mapping[str, Any] | T]) -> list[T]:
        """
        Insert documents in order.

        Flat entities go in one bulk statement; entities with embedded
        collections or credentials are saved one by one.
        """
        docs = [self._coerce(d) for d in docs]
        if not docs:
            return []
        if self.embedded or self.secret_field:
            for doc in docs:
                await self.save(doc)
            return docs

        client = await self.client()
        rows = [self.to_row(doc) for doc in docs]
        builder = client.table(self.table)
        if self.upsert_conflict:
            response = await builder.upsert(rows, on_conflict=self.upsert_conflict).execute()
        else:
            response = await builder.insert(rows).execute()
        for doc, row in zip(docs, response.data or []):
            stored = self._materialize_row(row)
            doc.id = stored.id
            for name in self.assigned:
                setattr(doc, name, getattr(stored, name))
        logger.debug(f"Inserted {len(docs)} rows into {self.table}")
        return docs

    async def update_many(self, filter_expr: Mapping[str, Any] | None, update: Mapping[str, Any]) -> int:
        """
        Update every matching document; returns the number of rows changed.

        Supports `$set` on primary fields, and `$pull` of entries from a
        keyed embedded collection: {"$pull": {"refreshTokens": {"tokenHash": h}}}.
        """
        client = await self.client()
        if "$pull" in update:
            if len(update) != 1:
                self.resolve(Unsupported("$pull cannot be combined with other update operators"))
            return await self._pull(client, filter_expr, update["$pull"])

        row = await self._update_row(update)
        if not row:
            return 0
        filter_expr = await self.expand_filter(client, filter_expr)
        query = self._match_all(self.refine(client.table(self.table).update(row), filter_expr), filter_expr)
        response = await query.execute()
        return len(response.data or [])

    async def find_by_id_and_update(self, doc_id: str, update: Mapping[str, Any], new: bool = True) -> T | None:
        """
        Apply a `$set` (or bare field mapping) to one document.

        Returns the document after the update, or before it with new=False;
        None when no document has that identity.
        """
        client = await self.client()
        row = await self._update_row(update)
        before = None if new else await self.find_by_id(doc_id)
        response = await client.table(self.table).update(row).eq("id", str(doc_id)).execute()
        if not response.data:
            return None
        if not new:
            return before
        docs = await self.materialize_rows(client, response.data[:1])
        return docs[0]

    async def find_one_and_update(self, filter_expr: Mapping[str, Any], update: Mapping[str, Any], new: bool = True) -> T | None:
        doc_id = await self._first_id(filter_expr)
        if doc_id is None:
            return None
        return await self.find_by_id_and_update(doc_id, update, new=new)

    async def find_by_id_and_delete(self, doc_id: str) -> T | None:
        """Delete one document (child rows cascade) and return it."""
        client = await self.client()
        before = await self.find_by_id(doc_id)
        if before is None:
            return None
        await client.table(self.table).delete().eq("id", str(doc_id)).execute()
        return before

    async def delete_one(self, filter_expr: Mapping[str, Any]) -> int:
        doc_id = await self._first_id(filter_expr)
        if doc_id is None:
            return 0
        client = await self.client()
        response = await client.table(self.table).delete().eq("id", doc_id).execute()
        return len(response.data or [])

    async def delete_many(self, filter_expr: Mapping[str, Any] | None = None) -> int:
        client = await self.client()
        filter_expr = await self.expand_filter(client, filter_expr)
        query = self._match_all(self.refine(client.table(self.table).delete(), filter_expr), filter_expr)
        response = await query.execute()
        deleted = len(response.data or [])
        logger.debug(f"Deleted {deleted} rows from {self.table}")
        return deleted

    # =========================================================================
    # Row mapping
    # =========================================================================

    def to_row(self, doc: T, for_update: bool = False) -> dict[str, Any]:
        """
        Primary-row payload of a document.

        Identity and embedded fields are left out, and so are the
        storage-assigned fields on update. Attributes a projection left out
        (and a missing credential) are never written. Populated references
        are written back as their id.
        """
        excluded = {"id", *doc.unwritten, *(self.model.attribute_for(c.field) for c in self.embedded)}
        if for_update:
            excluded.update(self.assigned)
        if self.secret_field and getattr(doc, self.secret_field) is None:
            excluded.add(self.secret_field)
        data = doc.model_dump(mode="json", by_alias=True, exclude=excluded)

        reference_fields = {ref.field for ref in self.references}
        row = {}
        for name, value in data.items():
            if name in reference_fields and isinstance(value, Mapping):
                value = value.get("id")
            row[self.mapper.to_column(name)] = value
        return row

    async def materialize_rows(
        self,
        client: Any,
        rows: list[Mapping[str, Any]],
        populate: Iterable[str] = (),
        embedded: set[str] | None = None,
    ) -> list[T]:
        """
        Turn fetched rows into documents.

        Related data is loaded in batches: one query per populated
        reference and one per embedded collection, for the whole page.
        """
        if not rows:
            return []

        related: dict[str, tuple[str, dict[str, Document]]] = {}
        for name in populate:
            reference = next((ref for ref in self.references if ref.field == name), None)
            if reference is None:
                self.resolve(Unsupported(f"{name} is not a reference of {self.table}"))
                continue
            column = self.mapper.to_column(name)
            ids = list(dict.fromkeys(row[column] for row in rows if row.get(column)))
            by_id: dict[str, Document] = {}
            if ids:
                response = await client.table(reference.table).select(reference.columns).in_("id", ids).execute()
                by_id = {r["id"]: from_row(reference.model, r, ColumnMapper()) for r in response.data or []}
            related[name] = (column, by_id)

        children = await self._load_embedded(client, [row["id"] for row in rows], embedded)

        docs = []
        for row in rows:
            subdocs = {
                field: embedded_from_rows(collection, grouped.get(row["id"], []))
                for field, (collection, grouped) in children.items()
            }
            refs = {name: by_id.get(row.get(column)) for name, (column, by_id) in related.items()}
            docs.append(from_row(self.model, row, self.mapper, subdocs, refs))
        return docs

    def _materialize_row(self, row: Mapping[str, Any]) -> T:
        return from_row(self.model, row, self.mapper)

    async def _load_embedded(
        self,
        client: Any,
        parent_ids: list[str],
        fields: set[str] | None,
    ) -> dict[str, tuple[EmbeddedCollection, dict[str, list[Mapping[str, Any]]]]]:
        loaded = {}
        for collection in self.embedded:
            if fields is not None and collection.field not in fields:
                continue

            def build(collection=collection):
                query = client.table(collection.table).select("*").in_(collection.foreign_key, parent_ids)
                if collection.order_by:
                    query = query.order(collection.order_by)
                return query.order("id")

            rows = await fetch_all(build, self.window)
            loaded[collection.field] = (collection, group_by_parent(collection, rows))
        return loaded

    # =========================================================================
    # Filters
    # =========================================================================

    def resolve(self, translation: Translation) -> Any:
        """
        Unwrap a translation result.

        Unsupported raises UnsupportedQueryError in strict mode; otherwise
        it is logged and its partial result is used.
        """
        if isinstance(translation, Translated):
            return translation.value
        if self.strict:
            raise UnsupportedQueryError(translation.reason)
        logger.warning(f"{self.table}: {translation.reason}; continuing with a broader result")
        return translation.partial

    def refine(self, query: Any, filter_expr: Mapping[str, Any] | None) -> Any:
        """Apply a filter to a query builder."""
        return self.resolve(translate_filter(query, filter_expr, self.mapper))

    async def expand_filter(self, client: Any, filter_expr: Mapping[str, Any] | None) -> dict[str, Any]:
        """
        Resolve `<embeddedCollection>.<field>` keys into identity constraints.

        `{"refreshTokens.tokenHash": h}` looks up the parent ids on the
        child table and becomes `{"_id": {"$in": [...]}}`.
        """
        filter_expr = dict(filter_expr or {})
        collections = {c.field: c for c in self.embedded}
        parent_ids: set[str] | None = None

        for key in list(filter_expr):
            head, _, rest = key.partition(".")
            if head not in collections or not rest:
                continue
            collection = collections[head]
            condition = {rest: filter_expr.pop(key)}
            query = client.table(collection.table).select(collection.foreign_key)
            query = self.resolve(translate_filter(query, condition, collection.mapper))
            response = await query.execute()
            ids = {row[collection.foreign_key] for row in response.data or []}
            parent_ids = ids if parent_ids is None else parent_ids & ids

        if parent_ids is None:
            return filter_expr

        for identity in ("_id", "id"):
            if identity in filter_expr:
                value = filter_expr.pop(identity)
                if isinstance(value, Mapping):
                    self.resolve(Unsupported(f"{identity} operators combined with embedded-path filters"))
                else:
                    parent_ids &= {str(value)}
        filter_expr["_id"] = {"$in": sorted(parent_ids)}
        return filter_expr

    def _match_all(self, query: Any, filter_expr: Mapping[str, Any] | None) -> Any:
        # PostgREST refuses UPDATE/DELETE without a WHERE clause
        if filter_expr:
            return query
        return query.not_.is_("id", "null")

    async def _first_id(self, filter_expr: Mapping[str, Any]) -> str | None:
        client = await self.client()
        filter_expr = await self.expand_filter(client, filter_expr)
        query = self.refine(client.table(self.table).select("id"), filter_expr)
        response = await query.limit(1).execute()
        return response.data[0]["id"] if response.data else None

    async def _update_row(self, update: Mapping[str, Any]) -> dict[str, Any]:
        operators = [key for key in update if key.startswith("$")]
        if operators:
            extra = [key for key in update if key != "$set"]
            if extra:
                self.resolve(Unsupported(f"update operators {', '.join(extra)}"))
            fields = dict(update.get("$set") or {})
        else:
            fields = dict(update)

        embedded = {c.field for c in self.embedded}
        row = {}
        for name, value in fields.items():
            if name in embedded or name in ("_id", "id"):
                self.resolve(Unsupported(f"update of {name}"))
                continue
            if self.secret_field and self.model.attribute_for(name) == self.secret_field and value is not None:
                value = await hash_secret(value)
            row[self.mapper.to_column(name)] = to_jsonable_python(value)

        if row and self.touched:
            row[self.mapper.to_column(self.touched)] = utcnow().isoformat()
        return row

    async def _pull(self, client: Any, filter_expr: Mapping[str, Any] | None, pull: Mapping[str, Any]) -> int:
        collections = {c.field: c for c in self.embedded if c.mode == "delta"}
        total = 0
        for field, condition in pull.items():
            collection = collections.get(field)
            if collection is None or not isinstance(condition, Mapping):
                self.resolve(Unsupported(f"$pull from {field}"))
                continue

            query = client.table(collection.table).delete()
            if filter_expr:
                expanded = await self.expand_filter(client, filter_expr)
                parents = await self.refine(client.table(self.table).select("id"), expanded).execute()
                parent_ids = [row["id"] for row in parents.data or []]
                if not parent_ids:
                    continue
                query = query.in_(collection.foreign_key, parent_ids)
            query = self.resolve(translate_filter(query, condition, collection.mapper))
            response = await query.execute()
            total += len(response.data or [])
        logger.debug(f"Pulled {total} embedded rows from {self.table}")
        return total

    # =========================================================================
    # Credentials
    # =========================================================================

    async def _hash_secret(self, doc: T, snapshot: Snapshot, scope: SaveScope) -> None:
        if not self.secret_field:
            return
        current = getattr(doc, self.secret_field)
        if not secret_changed(snapshot, current):
            return

        setattr(doc, self.secret_field, await hash_secret(current))

        async def restore():
            setattr(doc, self.secret_field, current)

        scope.on_rollback("restore plaintext credential", restore)
