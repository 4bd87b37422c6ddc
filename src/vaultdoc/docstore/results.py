"""
Tagged translation results.

Translators never raise for shapes they cannot express. They return
Unsupported, carrying the reason and the best-effort partial result, so
callers (and tests) can tell "no matches" apart from "could not express
this query" and decide for themselves.
"""

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Translated(Generic[T]):
    """The input was fully expressed."""

    value: T


@dataclass(frozen=True)
class Unsupported:
    """
    Part of the input could not be expressed.

    Attributes:
        reason: Human-readable description of what was dropped
        partial: What translating the supported part produced (a broader
            query, or None when nothing meaningful remains)
    """

    reason: str
    partial: Any = None


Translation = Translated[T] | Unsupported
