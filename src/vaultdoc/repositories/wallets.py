from vaultdoc.docstore.repository import Repository
from vaultdoc.models.wallet import Wallet


class WalletRepository(Repository[Wallet]):
    table = "wallets"
    model = Wallet

    async def active_for_user(self, user_id: str) -> list[Wallet]:
        return await self.find({"userId": user_id, "revoked": False}).sort({"createdAt": 1})
