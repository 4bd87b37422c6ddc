"""Document models. Plain data: persistence lives in vaultdoc.repositories."""

from vaultdoc.models.audit_log import AuditLog
from vaultdoc.models.balance import Balance
from vaultdoc.models.base import Document
from vaultdoc.models.support_ticket import SupportTicket
from vaultdoc.models.token import Token
from vaultdoc.models.transaction import Transaction, UserSummary
from vaultdoc.models.user import Notification, RefreshToken, User, UserWallet
from vaultdoc.models.wallet import Wallet
from vaultdoc.models.webhook import Webhook, WebhookEvent

__all__ = [
    "AuditLog",
    "Balance",
    "Document",
    "Notification",
    "RefreshToken",
    "SupportTicket",
    "Token",
    "Transaction",
    "User",
    "UserSummary",
    "UserWallet",
    "Wallet",
    "Webhook",
    "WebhookEvent",
]
