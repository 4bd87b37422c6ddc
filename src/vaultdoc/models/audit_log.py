from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from vaultdoc.docstore.values import utcnow
from vaultdoc.models.base import Document


class AuditLog(Document):
    """Security-relevant action by an admin, a user or the system."""

    actor_type: Literal["admin", "user", "system"] = "system"
    actor_id: str | None = None
    action: str = ""
    target_user_id: str | None = None
    target_wallet_id: str | None = None
    network: str | None = None
    ip: str | None = None
    user_agent: str | None = None
    success: bool = True
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def timestamp(self) -> datetime:
        return self.created_at
