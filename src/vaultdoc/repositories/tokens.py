from vaultdoc.docstore.repository import Repository
from vaultdoc.models.token import Token


class TokenRepository(Repository[Token]):
    """One row per (user, address, contract); saving a new token upserts."""

    table = "tokens"
    model = Token
    assigned = ()
    upsert_conflict = "user_id,wallet_address,contract_address"
