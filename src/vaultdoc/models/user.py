"""
User documents.

A user owns three embedded collections, each stored in its own child
table: wallets (user_wallets), notifications (user_notifications) and
issued refresh tokens (user_refresh_tokens).
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator

from vaultdoc.docstore.values import utcnow
from vaultdoc.models.base import Document


class UserWallet(Document):
    """Wallet entry embedded in a user."""

    address: str = ""
    encrypted_private_key: str | None = None
    encrypted_data_key: str | None = None
    key_id: str | None = None
    network: str = "ethereum"
    watch_only: bool = False
    label: str = ""
    balance_override_btc: float | None = None
    balance_override_usd: float | None = None
    balance_updated_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)


class Notification(Document):
    """In-app notification; `banner` notifications show until they expire."""

    message: str = ""
    type: Literal["info", "warning", "error", "success", "banner"] = "info"
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    read: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime | None = None


class RefreshToken(Document):
    """Issued refresh token, identified by the hash of the token."""

    token_hash: str
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime


class User(Document):
    """Platform user account."""

    email: str = ""
    password: str | None = None  # bcrypt hash once saved
    name: str = ""
    role: Literal["user", "admin"] = "user"
    is_admin: bool = False
    kyc_status: Literal["pending", "approved", "rejected"] = "pending"
    kyc_review_message: str = ""
    recovery_status: str = "NO_KYC"
    kyc_data: dict[str, Any] = Field(default_factory=dict)
    two_factor_enabled: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    wallets: list[UserWallet] = Field(default_factory=list)
    notifications: list[Notification] = Field(default_factory=list)
    refresh_tokens: list[RefreshToken] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @model_validator(mode="after")
    def admin_role_implies_flag(self) -> "User":
        if self.role == "admin":
            self.is_admin = True
        return self
