from datetime import datetime

from pydantic import Field

from vaultdoc.docstore.values import utcnow
from vaultdoc.models.base import Document


class Token(Document):
    """ERC-20 style token held on a wallet address. `balance` is raw base units as text."""

    user_id: str = ""
    wallet_address: str = ""
    contract_address: str = ""
    symbol: str = ""
    name: str = ""
    decimals: int = 18
    balance: str = "0"
    network: str = "ethereum"
    is_custom: bool = False
    logo_url: str | None = None
    price_usd: float | None = None
    last_updated: datetime = Field(default_factory=utcnow)
