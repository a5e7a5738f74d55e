# backend/app/services/audit_service.py
"""
Audit log reads and compliance reporting.

Reading the audit trail is itself audited: the AUDIT_LOG_VIEW entry is written
in the same transaction as the page it describes.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit_log import AuditLogger, RequestMeta
from app.core.constants import AuditAction, ResourceType
from app.core.exceptions import ValidationError
from app.core.input_validation import validate_payload
from app.core.tenant import validate_tenant_id
from app.db.base import utcnow
from app.db.database import Database
from app.db.repositories.audit_log_repository import AuditLogRepository
from app.db.repositories.consent_repository import ConsentRepository
from app.db.repositories.user_repository import UserRepository
from app.schemas.audit import Pagination

logger = logging.getLogger(__name__)


def _as_naive_utc(value: datetime) -> datetime:
    # Stored timestamps are naive UTC
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class AuditService:
    """Tenant scoped access to the audit trail"""

    def __init__(self, database: Database, audit_logger: AuditLogger):
        self.database = database
        self.audit_logger = audit_logger

    async def get_audit_logs(
        self,
        tenant_id: str,
        pagination: Union[Pagination, Dict[str, Any], None],
        requested_by: Optional[str],
        *,
        meta: Optional[RequestMeta] = None,
    ) -> Dict[str, Any]:
        """
        Get audit logs for compliance reporting.

        Returns ``{"data", "total", "limit", "offset", "has_more"}``; ``total``
        and ``data`` are read before the view entry is added.
        """
        validate_tenant_id(tenant_id)
        options = validate_payload(Pagination, pagination or {})

        async def read(session: AsyncSession) -> Dict[str, Any]:
            repo = AuditLogRepository(session, tenant_id)
            total = await repo.count()
            rows = await repo.page(
                options.limit,
                options.offset,
                order_by=options.order_by,
                descending=options.order_direction == "DESC",
            )

            await self.audit_logger.record(
                session,
                tenant_id=tenant_id,
                actor_id=requested_by,
                action=AuditAction.AUDIT_LOG_VIEW,
                resource_type=ResourceType.AUDIT_LOGS.value,
                new_values=options.model_dump(),
                meta=meta,
            )

            return {
                "data": [row.to_dict() for row in rows],
                "total": total,
                "limit": options.limit,
                "offset": options.offset,
                "has_more": options.offset + options.limit < total,
            }

        return await self.database.with_transaction(tenant_id, read)

    async def generate_compliance_report(
        self,
        tenant_id: str,
        start_date: datetime,
        end_date: datetime,
    ) -> Dict[str, Any]:
        """Summarize users, consent coverage and audited events in a date range"""
        validate_tenant_id(tenant_id)
        start_date, end_date = _as_naive_utc(start_date), _as_naive_utc(end_date)
        if start_date > end_date:
            raise ValidationError("start_date must not be after end_date")

        async def build(session: AsyncSession) -> Dict[str, Any]:
            audit = AuditLogRepository(session, tenant_id)
            return {
                "total_users": await UserRepository(session, tenant_id).count(),
                "consented_users": await ConsentRepository(session, tenant_id).count_consented_users(),
                "data_access_events": await audit.count_actions("%ACCESS%", start_date, end_date),
                "security_events": await audit.count_actions("%LOGIN%", start_date, end_date),
            }

        report = await self.database.with_tenant(tenant_id, build)
        report.update({
            "tenant_id": tenant_id,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "generated_at": utcnow().isoformat(),
        })

        logger.info(
            "Compliance report generated",
            extra={"tenant_id": tenant_id, "total_users": report["total_users"]},
        )
        return report
