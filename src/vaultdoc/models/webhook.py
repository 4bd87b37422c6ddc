"""Outbound webhooks and their delivery queue."""

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from vaultdoc.docstore.values import utcnow
from vaultdoc.models.base import Document


class Webhook(Document):
    url: str = ""
    secret: str = ""
    events: list[str] = Field(default_factory=list)
    is_active: bool = True
    created_by: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class WebhookEvent(Document):
    """One pending or attempted delivery of an event to a webhook."""

    webhook_id: str = ""
    event_type: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)
    status: Literal["pending", "delivered", "failed"] = "pending"
    attempts: int = 0
    next_attempt_at: datetime = Field(default_factory=utcnow)
    last_error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
