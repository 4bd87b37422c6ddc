"""
User repository.

Wallets and notifications are small and fully owned, so they are
replaced wholesale on save. Refresh tokens are keyed by their hash and
synced as a delta, so a save never touches tokens it did not change.
"""

from typing import Any

from vaultdoc.docstore.columns import ColumnMapper
from vaultdoc.docstore.entity import EmbeddedCollection
from vaultdoc.docstore.repository import Repository
from vaultdoc.models.user import Notification, RefreshToken, User, UserWallet

USER_COLUMNS = ColumnMapper(json_columns=frozenset({"kyc_data"}))


class UserRepository(Repository[User]):
    table = "users"
    model = User
    mapper = USER_COLUMNS
    secret_field = "password"
    embedded = (
        EmbeddedCollection(field="wallets", table="user_wallets", model=UserWallet),
        EmbeddedCollection(field="notifications", table="user_notifications", model=Notification),
        EmbeddedCollection(
            field="refreshTokens",
            table="user_refresh_tokens",
            model=RefreshToken,
            mode="delta",
            key_field="tokenHash",
        ),
    )

    async def find_by_email(self, email: str) -> User | None:
        return await self.find_one({"email": email.strip().lower()})

    async def find_by_refresh_token(self, token_hash: str) -> User | None:
        return await self.find_one({"refreshTokens.tokenHash": token_hash})

    async def compare_password(self, user: User, candidate: str) -> bool:
        return await self.verify_secret(user, candidate)

    async def revoke_refresh_token(self, token_hash: str, filter_expr: dict[str, Any] | None = None) -> int:
        """Remove one issued refresh token from whichever user holds it."""
        return await self.update_many(filter_expr or {}, {"$pull": {"refreshTokens": {"tokenHash": token_hash}}})
