"""
Entity declarations.

Repositories describe their table layout with these dataclasses: which
array fields are embedded collections in child tables, and which fields
reference rows of other tables.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from vaultdoc.docstore.columns import ColumnMapper

if TYPE_CHECKING:
    from vaultdoc.models.base import Document


@dataclass(frozen=True)
class EmbeddedCollection:
    """
    An array-of-objects field stored as rows of a child table.

    Attributes:
        field: Document field name on the parent (e.g. "wallets")
        table: Child table (e.g. "user_wallets")
        model: Sub-document model for one entry
        foreign_key: Child column holding the parent id
        mode: "replace" deletes and re-inserts every row on save (small,
            fully owned collections); "delta" inserts/deletes only what
            changed, keyed by key_field
        key_field: Document field identifying an entry (delta mode)
        order_by: Child column giving load order
        read_only: Sub-document fields never written (storage assigns them)
    """

    field: str
    table: str
    model: type[Document]
    foreign_key: str = "user_id"
    mode: Literal["replace", "delta"] = "replace"
    key_field: str | None = None
    order_by: str | None = "created_at"
    read_only: frozenset[str] = frozenset({"id"})
    mapper: ColumnMapper = ColumnMapper()

    def __post_init__(self):
        if self.mode == "delta" and not self.key_field:
            raise ValueError(f"Delta collection {self.field} needs a key_field")

    @property
    def key_column(self) -> str:
        return self.mapper.to_column(self.key_field)

    def coerce(self, item: Any) -> Document:
        """Accept sub-documents given as plain dicts."""
        if isinstance(item, self.model):
            return item
        return self.model.model_validate(item)

    def item_key(self, item: Any) -> str:
        item = self.coerce(item)
        return getattr(item, self.model.attribute_for(self.key_field))

    def to_row(self, parent_id: str, item: Any) -> dict[str, Any]:
        item = self.coerce(item)
        excluded = {self.model.attribute_for(name) for name in self.read_only}
        data = item.model_dump(mode="json", by_alias=True, exclude=excluded)
        row = {self.mapper.to_column(name): value for name, value in data.items()}
        row[self.foreign_key] = parent_id
        return row


@dataclass(frozen=True)
class Reference:
    """
    A field holding the id of a row in another table.

    When populated, the field is replaced by the referenced row,
    materialized with `model` from the selected `columns`.
    """

    field: str
    table: str
    model: type[Document]
    columns: str = "*"
