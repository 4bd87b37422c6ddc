"""Transaction documents."""

from datetime import datetime
from typing import Literal

from pydantic import Field

from vaultdoc.docstore.values import utcnow
from vaultdoc.models.base import Document


class UserSummary(Document):
    """Owner of a transaction, as loaded by populate("userId")."""

    name: str = ""
    email: str = ""


class Transaction(Document):
    """
    A deposit, withdrawal or transfer.

    `user_id` is the owner's id, or a UserSummary once populated.
    `timestamp` doubles as the creation time (field name createdAt in
    filters and pipelines).
    """

    user_id: str | UserSummary = ""
    type: Literal["deposit", "withdraw", "send", "receive"] = "deposit"
    cryptocurrency: str = "ETH"
    amount: float = 0.0
    from_address: str | None = None
    to_address: str | None = None
    tx_hash: str | None = None
    network: str = "ethereum"
    status: str = "pending"
    confirmations: int = 0
    confirmed_at: datetime | None = None
    last_checked_at: datetime | None = None
    reorged: bool = False
    gas_used: float | None = None
    gas_fee: float | None = None
    block_number: int | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    description: str = ""
    admin_note: str = ""
    admin_edited: bool = False
    admin_edited_at: datetime | None = None

    @property
    def owner_id(self) -> str:
        if isinstance(self.user_id, UserSummary):
            return self.user_id.id or ""
        return self.user_id
