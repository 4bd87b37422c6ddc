"""
Column Mapper.

Bidirectional translation between document field names (camelCase, the
vocabulary of filters, sort specs and pipelines) and Postgres column
names (snake_case). Pure and stateless: a static table of irregular
names, optional per-entity overrides, and a mechanical case conversion
for everything else. Filters, sorts and materialization all go through
the same mapper so they always agree.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field

# Field names that do not convert mechanically
COLUMN_MAP: dict[str, str] = {
    "_id": "id",
    "id": "id",
}

# Column names whose document field is not the mechanical inverse
FIELD_MAP: dict[str, str] = {
    "id": "id",
}

_UPPER = re.compile(r"[A-Z]")
_UNDERSCORE_WORD = re.compile(r"_([a-z0-9])")


def camel_to_snake(name: str) -> str:
    """createdAt -> created_at. Every capital starts a new word."""
    return _UPPER.sub(lambda m: "_" + m.group(0).lower(), name)


def snake_to_camel(name: str) -> str:
    """created_at -> createdAt."""
    return _UNDERSCORE_WORD.sub(lambda m: m.group(1).upper(), name)


@dataclass(frozen=True)
class ColumnMapper:
    """
    Field/column translation for one table.

    Attributes:
        overrides: Extra field -> column entries for this table (e.g. an
            alias field that reads another column)
        inverse: Extra column -> field entries; take precedence over the
            mechanical rule when materializing rows
        json_columns: Columns holding JSON blobs; dotted field names into
            them become PostgREST JSON paths
        array_columns: Columns holding Postgres arrays; scalar equality
            against them means membership
    """

    overrides: Mapping[str, str] = field(default_factory=dict)
    inverse: Mapping[str, str] = field(default_factory=dict)
    json_columns: frozenset[str] = frozenset()
    array_columns: frozenset[str] = frozenset()

    def to_column(self, field_name: str) -> str:
        """
        Map a document field name to its column.

        Total: unknown names fall back to the case conversion. A dotted
        name addresses a path inside the head field's column and becomes
        `col->a->>b`, so the final step is compared as text. Only names for
        which is_json_path() holds address real JSON keys.
        """
        if "." in field_name:
            head, *path = field_name.split(".")
            column = self.to_column(head)
            if len(path) == 1:
                return f"{column}->>{path[0]}"
            return f"{column}->" + "->".join(path[:-1]) + f"->>{path[-1]}"
        if field_name in self.overrides:
            return self.overrides[field_name]
        if field_name in COLUMN_MAP:
            return COLUMN_MAP[field_name]
        return camel_to_snake(field_name)

    def to_field(self, column: str) -> str:
        """Map a column name back to its document field name."""
        if column in self.inverse:
            return self.inverse[column]
        if column in FIELD_MAP:
            return FIELD_MAP[column]
        return snake_to_camel(column)

    def is_json_path(self, field_name: str) -> bool:
        """Whether a dotted name addresses a key inside a JSON column."""
        if "." not in field_name:
            return False
        return self.split_path(field_name)[0] in self.json_columns

    def is_array(self, field_name: str) -> bool:
        return self.to_column(field_name) in self.array_columns

    def split_path(self, field_name: str) -> tuple[str, list[str]]:
        """Split a dotted name into (head column, remaining document keys)."""
        head, *path = field_name.split(".")
        return self.to_column(head), path
