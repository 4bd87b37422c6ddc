from vaultdoc.docstore.repository import Repository
from vaultdoc.models.balance import Balance


class BalanceRepository(Repository[Balance]):
    """One row per (user, address, currency); saving a new balance upserts."""

    table = "balances"
    model = Balance
    assigned = ()
    upsert_conflict = "user_id,wallet_address,cryptocurrency"
