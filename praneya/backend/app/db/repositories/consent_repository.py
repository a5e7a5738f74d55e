# backend/app/db/repositories/consent_repository.py
from typing import Optional
from uuid import UUID
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import ConsentStatus
from app.db.models.consent import MedicalDisclaimer, UserConsent
from app.db.repositories.base import TenantRepository


class ConsentRepository(TenantRepository[UserConsent]):
    """Repository for UserConsent operations"""

    def __init__(self, session: AsyncSession, tenant_id: str):
        super().__init__(UserConsent, session, tenant_id)

    async def get_disclaimer(self, disclaimer_id: UUID) -> Optional[MedicalDisclaimer]:
        result = await self.session.execute(
            select(MedicalDisclaimer).where(MedicalDisclaimer.id == disclaimer_id)
        )
        return result.scalar_one_or_none()

    async def get_granted(self, user_id: UUID, disclaimer_id: UUID) -> Optional[UserConsent]:
        result = await self.session.execute(
            self.scoped()
            .where(UserConsent.user_id == user_id)
            .where(UserConsent.disclaimer_id == disclaimer_id)
            .where(UserConsent.status == ConsentStatus.GRANTED.value)
        )
        return result.scalars().first()

    async def has_current_consent(self, user_id: UUID) -> bool:
        """Granted consent to the disclaimer version currently in force"""
        result = await self.session.execute(
            select(UserConsent.id)
            .join(MedicalDisclaimer, UserConsent.disclaimer_id == MedicalDisclaimer.id)
            .where(UserConsent.tenant_id == self.tenant_id)
            .where(UserConsent.user_id == user_id)
            .where(UserConsent.status == ConsentStatus.GRANTED.value)
            .where(MedicalDisclaimer.is_current.is_(True))
            .limit(1)
        )
        return result.first() is not None

    async def count_consented_users(self) -> int:
        result = await self.session.execute(
            select(func.count(func.distinct(UserConsent.user_id)))
            .where(UserConsent.tenant_id == self.tenant_id)
            .where(UserConsent.status == ConsentStatus.GRANTED.value)
        )
        return result.scalar() or 0
