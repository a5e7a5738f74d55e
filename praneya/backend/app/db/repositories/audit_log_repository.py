# backend/app/db/repositories/audit_log_repository.py
from datetime import datetime
from typing import List, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.audit_log import AuditLog
from app.db.repositories.base import TenantRepository

# Columns callers may sort on; anything else is rejected by the schema
SORTABLE_COLUMNS = {
    "created_at": AuditLog.created_at,
    "action": AuditLog.action,
    "resource_type": AuditLog.resource_type,
}


class AuditLogRepository(TenantRepository[AuditLog]):
    """Append-only access to audit_logs"""

    def __init__(self, session: AsyncSession, tenant_id: str):
        super().__init__(AuditLog, session, tenant_id)

    async def get_by_idempotency_key(self, key: str) -> Optional[AuditLog]:
        result = await self.session.execute(
            self.scoped().where(AuditLog.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    async def page(
        self,
        limit: int,
        offset: int,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> List[AuditLog]:
        column = SORTABLE_COLUMNS[order_by]
        ordering = column.desc() if descending else column.asc()
        result = await self.session.execute(
            self.scoped().order_by(ordering, AuditLog.id).offset(offset).limit(limit)
        )
        return list(result.scalars().all())

    async def count_actions(
        self,
        pattern: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> int:
        """Count entries whose action matches a LIKE pattern in a time range"""
        query = (
            select(func.count(AuditLog.id))
            .where(AuditLog.tenant_id == self.tenant_id)
            .where(AuditLog.action.like(pattern))
        )
        if start is not None:
            query = query.where(AuditLog.created_at >= start)
        if end is not None:
            query = query.where(AuditLog.created_at <= end)
        result = await self.session.execute(query)
        return result.scalar() or 0
