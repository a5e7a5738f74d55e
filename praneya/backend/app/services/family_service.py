# backend/app/services/family_service.py
"""
Family account management

The member cap is enforced inside the inserting transaction, after taking the
account's row lock, so concurrent adds cannot overshoot max_members.
"""
import logging
from typing import Any, Dict, List, Literal, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit_log import AuditLogger, AuditTrail, RequestMeta
from app.core.config import Settings
from app.core.constants import AuditAction, CACHE_TTL, CacheNamespace, ResourceType
from app.core.exceptions import CapacityExceededError, NotFoundError, ValidationError
from app.core.input_validation import validate_payload
from app.core.tenant import parse_uuid, validate_tenant_id
from app.db.database import Database
from app.db.repositories.family_repository import FamilyAccountRepository, FamilyMemberRepository
from app.db.repositories.user_repository import UserRepository
from app.schemas.family import FamilyAccountCreate, FamilyMemberCreate
from app.services.cache import TenantCache

logger = logging.getLogger(__name__)

FamilyPermission = Literal["can_view_health_data", "can_manage_meals"]


def members_cache_key(family_account_id) -> str:
    return f"{family_account_id}:members"


class FamilyService:
    """Capacity-enforced, audited family membership"""

    def __init__(self, database: Database, cache: TenantCache, audit_logger: AuditLogger, settings: Settings):
        self.database = database
        self.cache = cache
        self.audit_logger = audit_logger
        self.settings = settings

    async def create_account(
        self,
        tenant_id: str,
        account_data: Union[FamilyAccountCreate, Dict[str, Any]],
        created_by: Optional[str],
        *,
        meta: Optional[RequestMeta] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a family account owned by its primary user"""
        validate_tenant_id(tenant_id)
        payload = validate_payload(FamilyAccountCreate, account_data)
        max_members = payload.max_members or self.settings.DEFAULT_FAMILY_MAX_MEMBERS

        async def insert(session: AsyncSession, trail: AuditTrail):
            if await UserRepository(session, tenant_id).get(payload.primary_user_id) is None:
                raise NotFoundError("User not found")
            account = await FamilyAccountRepository(session, tenant_id).create({
                "primary_user_id": payload.primary_user_id,
                "family_name": payload.family_name,
                "max_members": max_members,
            })
            trail.resource_id = str(account.id)
            return account.to_dict()

        return await self.audit_logger.with_audit(
            tenant_id,
            created_by,
            AuditAction.CREATE_FAMILY_ACCOUNT,
            ResourceType.FAMILY_ACCOUNTS.value,
            None,
            insert,
            meta=meta,
            idempotency_key=idempotency_key,
        )

    async def get_members(
        self,
        tenant_id: str,
        family_account_id,
        requested_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Get family members with proper permissions.

        When ``requested_by`` is given it must be the primary user or a member
        of the account; otherwise the account is reported as not found.
        """
        validate_tenant_id(tenant_id)
        family_account_id = parse_uuid(family_account_id, "family_account_id")

        if requested_by is not None and not await self.check_member_access(
            tenant_id, family_account_id, requested_by
        ):
            raise NotFoundError("Family account not found")

        async def load(session: AsyncSession):
            if await FamilyAccountRepository(session, tenant_id).get(family_account_id) is None:
                return None
            return await FamilyMemberRepository(session, tenant_id).list_with_users(family_account_id)

        members = await self.cache.read_through(
            tenant_id,
            CacheNamespace.FAMILY,
            members_cache_key(family_account_id),
            lambda: self.database.with_tenant(tenant_id, load),
            CACHE_TTL["FAMILY_MEMBERS"],
        )
        if members is None:
            raise NotFoundError("Family account not found")
        return members

    async def add_member(
        self,
        tenant_id: str,
        family_account_id,
        member_data: Union[FamilyMemberCreate, Dict[str, Any]],
        added_by: Optional[str],
        *,
        meta: Optional[RequestMeta] = None,
        idempotency_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Add family member with validation"""
        validate_tenant_id(tenant_id)
        family_account_id = parse_uuid(family_account_id, "family_account_id")
        payload = validate_payload(FamilyMemberCreate, member_data)

        async def insert(session: AsyncSession, trail: AuditTrail):
            # Lock first: the count below must not be read by two writers at once
            account = await FamilyAccountRepository(session, tenant_id).lock(family_account_id)
            if account is None:
                raise NotFoundError("Family account not found")

            if await UserRepository(session, tenant_id).get(payload.user_id) is None:
                raise NotFoundError("User not found")

            members = FamilyMemberRepository(session, tenant_id)
            if await members.get_membership(family_account_id, payload.user_id) is not None:
                raise ValidationError("User is already a member of this family account")

            current_count = await members.count_for_account(family_account_id)
            if current_count >= account.max_members:
                raise CapacityExceededError(
                    f"Family account is at maximum capacity ({account.max_members} members)",
                    details={"max_members": account.max_members},
                )

            member = await members.create({**payload.model_dump(), "family_account_id": family_account_id})
            trail.resource_id = str(member.id)
            return member.to_dict()

        member = await self.audit_logger.with_audit(
            tenant_id,
            added_by,
            AuditAction.ADD_FAMILY_MEMBER,
            ResourceType.FAMILY_MEMBERS.value,
            None,
            insert,
            meta=meta,
            idempotency_key=idempotency_key,
            timeout=timeout,
        )

        # Invalidate family cache
        await self.cache.delete(tenant_id, CacheNamespace.FAMILY, members_cache_key(family_account_id))
        return member

    async def check_member_access(
        self,
        tenant_id: str,
        family_account_id,
        user_id,
        permission: Optional[FamilyPermission] = None,
    ) -> bool:
        """
        True if ``user_id`` is the account's primary user, or a member holding
        ``permission`` (any member when no permission is asked for).
        """
        validate_tenant_id(tenant_id)
        family_account_id = parse_uuid(family_account_id, "family_account_id")
        user_id = parse_uuid(user_id, "user_id")

        async def check(session: AsyncSession) -> bool:
            account = await FamilyAccountRepository(session, tenant_id).get(family_account_id)
            if account is None:
                return False
            if account.primary_user_id == user_id:
                return True
            membership = await FamilyMemberRepository(session, tenant_id).get_membership(
                family_account_id, user_id
            )
            if membership is None:
                return False
            return permission is None or bool(getattr(membership, permission))

        return await self.database.with_tenant(tenant_id, check)
