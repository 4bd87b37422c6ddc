"""
vaultdoc - Exceptions.

Storage failures are not wrapped: whatever the Supabase client raises
(postgrest APIError, transport errors) reaches the caller unchanged.
"""


class VaultdocError(Exception):
    """Base class for errors raised by the document store itself."""


class StorageNotConfiguredError(VaultdocError, RuntimeError):
    """Supabase URL or service key is missing."""


class UnsupportedQueryError(VaultdocError, ValueError):
    """A filter, update or pipeline shape that cannot be expressed."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class MissingSnapshotError(VaultdocError, ValueError):
    """A persisted document with tracked state was saved without its snapshot."""


class InconsistentSaveError(VaultdocError):
    """
    A save failed and rolling it back failed too.

    The original storage error is chained as __cause__. `failed_steps`
    names the compensations that did not complete, so the caller knows
    which rows may now disagree with the document.
    """

    def __init__(self, label: str, failed_steps: list[str]):
        super().__init__(
            f"Save of {label} failed and could not be fully rolled back: "
            + ", ".join(failed_steps)
        )
        self.label = label
        self.failed_steps = failed_steps
