from vaultdoc.docstore.columns import ColumnMapper
from vaultdoc.docstore.entity import Reference
from vaultdoc.docstore.repository import Repository
from vaultdoc.models.transaction import Transaction, UserSummary


class TransactionRepository(Repository[Transaction]):
    """Transactions; `createdAt` in filters, sorts and pipelines reads `timestamp`."""

    table = "transactions"
    model = Transaction
    mapper = ColumnMapper(overrides={"createdAt": "timestamp"})
    references = (Reference(field="userId", table="users", model=UserSummary, columns="id,name,email"),)
    assigned = ()
