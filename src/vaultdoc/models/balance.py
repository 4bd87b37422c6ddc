from datetime import datetime

from pydantic import Field

from vaultdoc.docstore.values import utcnow
from vaultdoc.models.base import Document


class Balance(Document):
    """Cached balance of one currency on one wallet address."""

    user_id: str = ""
    wallet_address: str = ""
    cryptocurrency: str = ""
    balance: float = 0.0
    network: str = "ethereum"
    last_updated: datetime = Field(default_factory=utcnow)
