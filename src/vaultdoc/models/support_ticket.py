from datetime import datetime
from typing import Literal

from pydantic import Field

from vaultdoc.docstore.values import utcnow
from vaultdoc.models.base import Document


class SupportTicket(Document):
    user_id: str | None = None
    name: str = ""
    email: str = ""
    subject: str = ""
    message: str = ""
    status: Literal["open", "in_progress", "resolved"] = "open"
    admin_note: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
