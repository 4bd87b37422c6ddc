"""Standalone wallet documents (admin-issued, with encrypted seed material)."""

from datetime import datetime
from typing import Any

from pydantic import Field

from vaultdoc.docstore.values import utcnow
from vaultdoc.models.base import Document


class Wallet(Document):
    user_id: str = ""
    network: str = "bitcoin"
    address: str = ""
    encrypted_mnemonic: str | None = None
    encrypted_seed: dict[str, Any] | None = None
    created_by_admin_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    seed_shown_at: datetime | None = None
    revoked: bool = False
