# backend/app/db/repositories/family_repository.py
from typing import Any, Dict, List, Optional
from uuid import UUID
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import utcnow, to_primitive
from app.db.models.family import FamilyAccount, FamilyMember
from app.db.models.user import User
from app.db.repositories.base import TenantRepository


class FamilyAccountRepository(TenantRepository[FamilyAccount]):
    """Repository for FamilyAccount operations"""

    def __init__(self, session: AsyncSession, tenant_id: str):
        super().__init__(FamilyAccount, session, tenant_id)

    async def lock(self, account_id: UUID) -> Optional[FamilyAccount]:
        """
        Take the account's row write lock for the rest of the transaction.

        A no-op write locks on every backend (row lock on PostgreSQL, the
        database write lock on SQLite), so two transactions cannot both read
        the member count before one of them inserts.
        """
        result = await self.session.execute(
            update(FamilyAccount)
            .where(FamilyAccount.tenant_id == self.tenant_id)
            .where(FamilyAccount.id == account_id)
            .values(updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return await self.get(account_id)


class FamilyMemberRepository(TenantRepository[FamilyMember]):
    """Repository for FamilyMember operations"""

    def __init__(self, session: AsyncSession, tenant_id: str):
        super().__init__(FamilyMember, session, tenant_id)

    async def count_for_account(self, account_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count(FamilyMember.id))
            .where(FamilyMember.tenant_id == self.tenant_id)
            .where(FamilyMember.family_account_id == account_id)
        )
        return result.scalar() or 0

    async def get_membership(self, account_id: UUID, user_id: UUID) -> Optional[FamilyMember]:
        result = await self.session.execute(
            self.scoped()
            .where(FamilyMember.family_account_id == account_id)
            .where(FamilyMember.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def list_with_users(self, account_id: UUID) -> List[Dict[str, Any]]:
        """Members of an account joined with the member's email and role"""
        result = await self.session.execute(
            select(FamilyMember, User.email, User.role)
            .join(User, (User.id == FamilyMember.user_id) & (User.tenant_id == FamilyMember.tenant_id))
            .where(FamilyMember.tenant_id == self.tenant_id)
            .where(FamilyMember.family_account_id == account_id)
            .order_by(FamilyMember.added_at)
        )
        members = []
        for member, email, role in result.all():
            row = member.to_dict()
            row["email"] = to_primitive(email)
            row["role"] = role
            members.append(row)
        return members
