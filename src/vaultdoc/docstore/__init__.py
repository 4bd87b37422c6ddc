"""
Document store over Supabase.

MongoDB-style documents, filters, sort specs, cursors and a narrow set of
aggregation pipelines, on top of normalized Postgres tables reached
through PostgREST.
"""

from vaultdoc.docstore.columns import ColumnMapper
from vaultdoc.docstore.cursor import QueryCursor
from vaultdoc.docstore.entity import EmbeddedCollection, Reference
from vaultdoc.docstore.repository import Repository
from vaultdoc.docstore.results import Translated, Translation, Unsupported
from vaultdoc.docstore.snapshot import Snapshot
from vaultdoc.docstore.sync import SaveScope

__all__ = [
    "ColumnMapper",
    "EmbeddedCollection",
    "QueryCursor",
    "Reference",
    "Repository",
    "SaveScope",
    "Snapshot",
    "Translated",
    "Translation",
    "Unsupported",
]
