"""Per-entity repositories."""

from vaultdoc.repositories.audit_logs import AuditLogRepository
from vaultdoc.repositories.balances import BalanceRepository
from vaultdoc.repositories.support_tickets import SupportTicketRepository
from vaultdoc.repositories.tokens import TokenRepository
from vaultdoc.repositories.transactions import TransactionRepository
from vaultdoc.repositories.users import UserRepository
from vaultdoc.repositories.wallets import WalletRepository
from vaultdoc.repositories.webhooks import WebhookEventRepository, WebhookRepository

__all__ = [
    "AuditLogRepository",
    "BalanceRepository",
    "SupportTicketRepository",
    "TokenRepository",
    "TransactionRepository",
    "UserRepository",
    "WalletRepository",
    "WebhookEventRepository",
    "WebhookRepository",
]
