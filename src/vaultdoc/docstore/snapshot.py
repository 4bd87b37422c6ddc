"""
Loaded snapshots.

A Snapshot records what a document looked like in storage when it was
loaded (or last saved): the stored credential hash and the identifying
keys of each delta-synced embedded collection. It is an immutable value
handed back by the repository and passed into the next save, so the
change detection below is a pure function of (snapshot, current).
"""

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Snapshot:
    """
    Persisted state of one document.

    Attributes:
        secret: Credential value as stored (already hashed), if any
        keys: Per delta collection, the identifying keys stored for it
    """

    secret: str | None = None
    keys: Mapping[str, frozenset[str]] = field(default_factory=dict)

    def keys_for(self, collection: str) -> frozenset[str]:
        return self.keys.get(collection, frozenset())


@dataclass(frozen=True)
class Delta(Generic[T]):
    """Insert/delete plan for a keyed collection."""

    removed: list[str]
    added: list[T]

    @property
    def empty(self) -> bool:
        return not self.removed and not self.added


def secret_changed(snapshot: Snapshot, current: str | None) -> bool:
    """True when the credential differs from what is stored."""
    return current is not None and current != snapshot.secret


def plan_delta(original_keys: Iterable[str], items: Sequence[T], key: Callable[[T], str]) -> Delta[T]:
    """
    Compute the delta between stored keys and the current items.

    removed = stored keys no longer present; added = current items whose
    key is not stored yet, first occurrence only, in item order.
    """
    original = frozenset(original_keys)
    current_keys = {key(item) for item in items}
    removed = sorted(original - current_keys)

    added: list[T] = []
    seen: set[str] = set()
    for item in items:
        item_key = key(item)
        if item_key in original or item_key in seen:
            continue
        seen.add(item_key)
        added.append(item)
    return Delta(removed=removed, added=added)


def capture(secret: str | None, collections: Mapping[str, Iterable[Any]], key: Mapping[str, Callable[[Any], str]]) -> Snapshot:
    """Build a snapshot from a document's current credential and keyed collections."""
    return Snapshot(
        secret=secret,
        keys={name: frozenset(key[name](item) for item in items) for name, items in collections.items()},
    )
