from vaultdoc.docstore.columns import ColumnMapper
from vaultdoc.docstore.repository import Repository
from vaultdoc.models.webhook import Webhook, WebhookEvent


class WebhookRepository(Repository[Webhook]):
    """Webhooks; `{"events": "tx.confirmed"}` matches hooks subscribed to that event."""

    table = "webhooks"
    model = Webhook
    mapper = ColumnMapper(array_columns=frozenset({"events"}))

    async def subscribed(self, event_type: str) -> list[Webhook]:
        return await self.find({"isActive": True, "events": event_type})


class WebhookEventRepository(Repository[WebhookEvent]):
    table = "webhook_events"
    model = WebhookEvent
    mapper = ColumnMapper(json_columns=frozenset({"payload"}))
