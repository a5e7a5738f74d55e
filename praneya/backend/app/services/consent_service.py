# backend/app/services/consent_service.py
"""Medical disclaimer consent tracking"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit_log import AuditLogger, AuditTrail, RequestMeta
from app.core.constants import AuditAction, ConsentStatus, ResourceType
from app.core.exceptions import NotFoundError, ValidationError
from app.core.tenant import parse_uuid, validate_tenant_id
from app.db.base import utcnow
from app.db.database import Database
from app.db.repositories.consent_repository import ConsentRepository
from app.db.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


class ConsentService:

    def __init__(self, database: Database, audit_logger: AuditLogger):
        self.database = database
        self.audit_logger = audit_logger

    async def record_consent(
        self,
        tenant_id: str,
        user_id,
        disclaimer_id,
        *,
        meta: Optional[RequestMeta] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record a user's consent to a disclaimer version, with request origin"""
        validate_tenant_id(tenant_id)
        user_id = parse_uuid(user_id, "user_id")
        disclaimer_id = parse_uuid(disclaimer_id, "disclaimer_id")
        meta = meta or RequestMeta()

        async def insert(session: AsyncSession, trail: AuditTrail):
            if await UserRepository(session, tenant_id).get(user_id) is None:
                raise NotFoundError("User not found")

            repo = ConsentRepository(session, tenant_id)
            if await repo.get_disclaimer(disclaimer_id) is None:
                raise NotFoundError("Disclaimer not found")
            if await repo.get_granted(user_id, disclaimer_id) is not None:
                raise ValidationError("Consent already granted for this disclaimer")

            consent = await repo.create({
                "user_id": user_id,
                "disclaimer_id": disclaimer_id,
                "status": ConsentStatus.GRANTED.value,
                "ip_address": meta.ip_address,
                "user_agent": meta.user_agent,
                "consented_at": utcnow(),
            })
            trail.resource_id = str(consent.id)
            return consent.to_dict()

        return await self.audit_logger.with_audit(
            tenant_id,
            str(user_id),
            AuditAction.RECORD_CONSENT,
            ResourceType.USER_CONSENTS.value,
            None,
            insert,
            meta=meta,
            idempotency_key=idempotency_key,
        )

    async def withdraw_consent(
        self,
        tenant_id: str,
        user_id,
        disclaimer_id,
        *,
        meta: Optional[RequestMeta] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Withdraw a granted consent; the row is kept with its withdrawal time"""
        validate_tenant_id(tenant_id)
        user_id = parse_uuid(user_id, "user_id")
        disclaimer_id = parse_uuid(disclaimer_id, "disclaimer_id")

        async def apply(session: AsyncSession, trail: AuditTrail):
            repo = ConsentRepository(session, tenant_id)
            consent = await repo.get_granted(user_id, disclaimer_id)
            if consent is None:
                raise NotFoundError("Consent not found")

            trail.resource_id = str(consent.id)
            trail.old_values = {"status": consent.status}
            consent = await repo.update(consent, {
                "status": ConsentStatus.WITHDRAWN.value,
                "withdrawn_at": utcnow(),
            })
            return consent.to_dict()

        return await self.audit_logger.with_audit(
            tenant_id,
            str(user_id),
            AuditAction.WITHDRAW_CONSENT,
            ResourceType.USER_CONSENTS.value,
            None,
            apply,
            meta=meta,
            idempotency_key=idempotency_key,
        )

    async def has_current_consent(self, tenant_id: str, user_id) -> bool:
        """Whether the user has granted consent to the disclaimer currently in force"""
        validate_tenant_id(tenant_id)
        user_id = parse_uuid(user_id, "user_id")

        async def check(session: AsyncSession) -> bool:
            return await ConsentRepository(session, tenant_id).has_current_consent(user_id)

        return await self.database.with_tenant(tenant_id, check)
