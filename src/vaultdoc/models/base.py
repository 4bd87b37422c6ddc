"""
Document base model.

Documents are plain data: snake_case attributes, camelCase field names
(aliases) as the document vocabulary. Identity is `id`; `_id` is accepted
on input and emitted by to_document() for callers written against the
MongoDB shape.
"""

from collections.abc import Iterable
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PrivateAttr
from pydantic.alias_generators import to_camel


class Document(BaseModel):
    """Base class for every stored document and embedded sub-document."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str | None = Field(default=None, validation_alias=AliasChoices("_id", "id"))

    # Attributes a projection left out of the load
    _unloaded: frozenset[str] = PrivateAttr(default_factory=frozenset)

    def __str__(self) -> str:
        return self.id or ""

    @property
    def is_new(self) -> bool:
        """No identity yet: never saved."""
        return self.id is None

    @property
    def unwritten(self) -> frozenset[str]:
        """
        Attributes a save must not write.

        These are the attributes a projection did not load and the caller
        has not assigned since. Their values are defaults or blanks, not
        what storage holds.
        """
        return self._unloaded - self.model_fields_set

    def mark_unloaded(self, attributes: Iterable[str]) -> None:
        self._unloaded = frozenset(attributes)
        self.model_fields_set.difference_update(self._unloaded)

    @classmethod
    def attribute_for(cls, field_name: str) -> str | None:
        """Attribute name for a document field name (alias) or attribute name."""
        for name, info in cls.model_fields.items():
            if field_name == name or field_name == info.alias:
                return name
        return None

    def to_document(self) -> dict[str, Any]:
        """Dump as a document dict with both identity aliases."""
        data = self.model_dump(by_alias=True)
        data["_id"] = self.id
        return data
