from vaultdoc.docstore.columns import ColumnMapper
from vaultdoc.docstore.repository import Repository
from vaultdoc.models.audit_log import AuditLog


class AuditLogRepository(Repository[AuditLog]):
    """Audit trail. `timestamp` is accepted as a field name for `createdAt`."""

    table = "audit_logs"
    model = AuditLog
    mapper = ColumnMapper(overrides={"timestamp": "created_at"}, json_columns=frozenset({"details"}))

    async def record(self, action: str, **fields) -> AuditLog:
        return await self.create({"action": action, **fields})
