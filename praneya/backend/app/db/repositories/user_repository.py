# backend/app/db/repositories/user_repository.py
from datetime import datetime
from typing import Optional
from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import utcnow
from app.db.models.user import User
from app.db.repositories.base import TenantRepository


class UserRepository(TenantRepository[User]):
    """Repository for User operations"""

    def __init__(self, session: AsyncSession, tenant_id: str):
        super().__init__(User, session, tenant_id)

    async def get_by_external_id(self, external_id: str) -> Optional[User]:
        """Get user by identity provider uid"""
        result = await self.session.execute(
            self.scoped().where(User.external_id == external_id)
        )
        return result.scalar_one_or_none()

    async def record_login_success(self, external_id: str) -> int:
        """Reset failed attempts and stamp last_login"""
        result = await self.session.execute(
            update(User)
            .where(User.tenant_id == self.tenant_id)
            .where(User.external_id == external_id)
            .values(
                last_login=utcnow(),
                failed_login_attempts=0,
                account_locked_until=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def record_login_failure(
        self, external_id: str, max_attempts: int, locked_until: datetime
    ) -> int:
        """
        Atomically increment failed attempts, locking the account once the
        attempt that reaches ``max_attempts`` is recorded.
        """
        result = await self.session.execute(
            update(User)
            .where(User.tenant_id == self.tenant_id)
            .where(User.external_id == external_id)
            .values(
                failed_login_attempts=User.failed_login_attempts + 1,
                account_locked_until=case(
                    (User.failed_login_attempts >= max_attempts - 1, locked_until),
                    else_=User.account_locked_until,
                ),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
