# backend/app/db/repositories/health_profile_repository.py
from typing import Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.health_profile import HealthProfile
from app.db.repositories.base import TenantRepository


class HealthProfileRepository(TenantRepository[HealthProfile]):
    """Repository for HealthProfile operations"""

    def __init__(self, session: AsyncSession, tenant_id: str):
        super().__init__(HealthProfile, session, tenant_id)

    async def get_by_user(self, user_id: UUID, for_update: bool = False) -> Optional[HealthProfile]:
        """Get the profile belonging to ``user_id``"""
        query = self.scoped().where(HealthProfile.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()
