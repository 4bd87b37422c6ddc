"""
Query Cursor.

A lazy, chainable, awaitable query. Chained calls only record intent;
storage is hit when the cursor is awaited, iterated or exec()'d, and
every execution queries again (nothing is cached).

    users = await repo.find({"role": "admin"}).sort({"createdAt": -1}).limit(20)

    async for tx in repo.find({"status": "pending"}).populate("userId"):
        ...
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from vaultdoc.docstore.sorting import apply_deferred_sort, translate_sort
from vaultdoc.models.base import Document

if TYPE_CHECKING:
    from vaultdoc.docstore.repository import Repository

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Document)


class QueryCursor(Generic[T]):
    """Accumulates filter, sort, paging, projection and populate intent."""

    def __init__(self, repository: Repository[T], filter_expr: Mapping[str, Any] | None = None):
        self._repository = repository
        self._filter = dict(filter_expr or {})
        self._sort: dict[str, Any] = {}
        self._limit: int | None = None
        self._skip = 0
        self._include: list[str] | None = None
        self._exclude: list[str] = []
        self._populate: list[str] = []

    def sort(self, spec: Mapping[str, Any] | str) -> QueryCursor[T]:
        """Add sort keys. Accepts {"field": 1 | -1} or "field -other"."""
        if isinstance(spec, str):
            spec = {name.lstrip("-"): -1 if name.startswith("-") else 1 for name in spec.split()}
        self._sort.update(spec)
        return self

    def limit(self, count: int) -> QueryCursor[T]:
        # limit(0) means no limit
        self._limit = int(count) or None
        return self

    def skip(self, count: int) -> QueryCursor[T]:
        self._skip = max(int(count), 0)
        return self

    def select(self, projection: Mapping[str, Any] | str) -> QueryCursor[T]:
        """
        Restrict the returned fields.

        "name email" or {"name": 1} fetches only those columns (identity
        and reference columns always come along); "-password" or
        {"password": 0} blanks the field after loading.
        """
        if isinstance(projection, str):
            projection = {name.lstrip("-"): 0 if name.startswith("-") else 1 for name in projection.split()}
        for name, flag in projection.items():
            if flag:
                self._include = [*(self._include or []), name]
            else:
                self._exclude.append(name)
        return self

    def populate(self, field_name: str) -> QueryCursor[T]:
        """Expand a reference field into the referenced document."""
        if field_name not in self._populate:
            self._populate.append(field_name)
        return self

    def lean(self) -> QueryCursor[T]:
        # Documents are already plain data
        return self

    async def exec(self) -> list[T]:
        repo = self._repository
        client = await repo.client()

        filter_expr = await repo.expand_filter(client, self._filter)
        query = client.table(repo.table).select(self._columns())
        query = repo.refine(query, filter_expr)
        query, deferred = translate_sort(query, self._sort, repo.mapper)
        query = self._paginate(query, repo.window)

        response = await query.execute()
        rows = response.data or []
        logger.debug(f"Fetched {len(rows)} rows from {repo.table}")

        if deferred:
            rows = apply_deferred_sort(rows, deferred, repo.mapper)

        docs = await repo.materialize_rows(client, rows, populate=self._populate, embedded=self._embedded_fields())
        unloaded = self._unloaded(repo.model)
        for doc in docs:
            for name in self._exclude:
                attribute = doc.attribute_for(name)
                if attribute:
                    setattr(doc, attribute, None)
            if unloaded:
                doc.mark_unloaded(unloaded)
        return docs

    def __await__(self):
        return self.exec().__await__()

    async def __aiter__(self) -> AsyncIterator[T]:
        for doc in await self.exec():
            yield doc

    def _paginate(self, query: Any, window: int) -> Any:
        if not self._skip:
            return query.limit(self._limit) if self._limit else query
        size = self._limit or window
        return query.range(self._skip, self._skip + size - 1)

    def _columns(self) -> str:
        if self._include is None:
            return "*"
        repo = self._repository
        embedded = {c.field for c in repo.embedded}
        columns = ["id"]
        for name in self._include:
            if name in embedded or name in ("_id", "id"):
                continue
            columns.append(repo.mapper.split_path(name)[0])
        for name in self._populate:
            columns.append(repo.mapper.to_column(name))
        return ",".join(dict.fromkeys(columns))

    def _unloaded(self, model: type[Document]) -> set[str]:
        """Attributes the projection keeps out of the documents."""
        unloaded: set[str] = set()
        if self._include is not None:
            kept = {"id"}
            for name in [*self._include, *self._populate]:
                attribute = model.attribute_for(name.split(".")[0])
                if attribute:
                    kept.add(attribute)
            unloaded = set(model.model_fields) - kept
        for name in self._exclude:
            attribute = model.attribute_for(name)
            if attribute:
                unloaded.add(attribute)
        return unloaded

    def _embedded_fields(self) -> set[str] | None:
        if self._include is None:
            return None
        return {name for name in self._include if name in {c.field for c in self._repository.embedded}}
