# backend/app/services/user_service.py
"""Tenant-scoped user management with caching and audit logging."""
import hashlib
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit_log import AuditLogger, AuditTrail, RequestMeta
from app.core.config import Settings
from app.core.constants import AuditAction, CACHE_TTL, CacheNamespace, ResourceType
from app.core.exceptions import NotFoundError, ValidationError
from app.core.input_validation import validate_payload
from app.core.logging import security_logger
from app.core.tenant import parse_uuid, validate_tenant_id
from app.db.base import utcnow
from app.db.database import Database
from app.db.repositories.user_repository import UserRepository
from app.schemas.user import UserCreate, UserUpdate
from app.services.cache import TenantCache

logger = logging.getLogger(__name__)


def external_id_cache_key(external_id: str) -> str:
    # Provider uids are free-form; cache key segments are not
    return f"external:{hashlib.sha256(external_id.encode()).hexdigest()}"


class UserService:
    """User identity operations within one tenant"""

    def __init__(self, database: Database, cache: TenantCache, audit_logger: AuditLogger, settings: Settings):
        self.database = database
        self.cache = cache
        self.audit_logger = audit_logger
        self.settings = settings

    async def get_by_external_id(self, tenant_id: str, external_id: str) -> Dict[str, Any]:
        """Get user by identity provider uid, cache first"""
        validate_tenant_id(tenant_id)
        if not external_id:
            raise ValidationError("External ID is required")

        async def load(session: AsyncSession):
            user = await UserRepository(session, tenant_id).get_by_external_id(external_id)
            return user.to_dict() if user else None

        user = await self.cache.read_through(
            tenant_id,
            CacheNamespace.USERS,
            external_id_cache_key(external_id),
            lambda: self.database.with_tenant(tenant_id, load),
            CACHE_TTL["USER_PROFILE"],
        )
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def get_by_id(self, tenant_id: str, user_id) -> Dict[str, Any]:
        """Get user by primary key, cache first"""
        validate_tenant_id(tenant_id)
        user_id = parse_uuid(user_id, "user_id")

        async def load(session: AsyncSession):
            user = await UserRepository(session, tenant_id).get(user_id)
            return user.to_dict() if user else None

        user = await self.cache.read_through(
            tenant_id,
            CacheNamespace.USERS,
            str(user_id),
            lambda: self.database.with_tenant(tenant_id, load),
            CACHE_TTL["USER_PROFILE"],
        )
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def create(
        self,
        tenant_id: str,
        user_data: Union[UserCreate, Dict[str, Any]],
        created_by: Optional[str] = None,
        *,
        meta: Optional[RequestMeta] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create new user with audit logging"""
        validate_tenant_id(tenant_id)
        payload = validate_payload(UserCreate, user_data)

        async def insert(session: AsyncSession, trail: AuditTrail):
            repo = UserRepository(session, tenant_id)
            if await repo.get_by_external_id(payload.external_id) is not None:
                raise ValidationError("A user with this external ID already exists")
            user = await repo.create(payload.model_dump(mode="json"))
            trail.resource_id = str(user.id)
            return user.to_dict()

        return await self.audit_logger.with_audit(
            tenant_id,
            created_by,
            AuditAction.CREATE_USER,
            ResourceType.USERS.value,
            None,
            insert,
            meta=meta,
            idempotency_key=idempotency_key,
        )

    async def update(
        self,
        tenant_id: str,
        user_id,
        update_data: Union[UserUpdate, Dict[str, Any]],
        updated_by: Optional[str],
        *,
        meta: Optional[RequestMeta] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Update user with cache invalidation"""
        validate_tenant_id(tenant_id)
        user_id = parse_uuid(user_id, "user_id")
        changes = validate_payload(UserUpdate, update_data).model_dump(mode="json", exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update")

        async def apply(session: AsyncSession, trail: AuditTrail):
            repo = UserRepository(session, tenant_id)
            user = await repo.get(user_id)
            if user is None:
                raise NotFoundError("User not found")
            before = user.to_dict()
            trail.old_values = {key: before.get(key) for key in changes}
            user = await repo.update(user, changes)
            return user.to_dict()

        user = await self.audit_logger.with_audit(
            tenant_id,
            updated_by,
            AuditAction.UPDATE_USER,
            ResourceType.USERS.value,
            str(user_id),
            apply,
            meta=meta,
            idempotency_key=idempotency_key,
        )

        await self._invalidate(tenant_id, user)
        return user

    async def record_login_attempt(
        self,
        tenant_id: str,
        external_id: str,
        success: bool,
        *,
        meta: Optional[RequestMeta] = None,
    ) -> Dict[str, Any]:
        """
        Record login attempt with security tracking.

        Success resets the failure counter; the failure that reaches
        MAX_FAILED_LOGIN_ATTEMPTS locks the account for ACCOUNT_LOCKOUT_MINUTES.
        Unknown users are audited too, then reported as NotFoundError.
        """
        validate_tenant_id(tenant_id)
        if not external_id:
            raise ValidationError("External ID is required")

        async def apply(session: AsyncSession, trail: AuditTrail):
            repo = UserRepository(session, tenant_id)
            if success:
                updated = await repo.record_login_success(external_id)
            else:
                locked_until = utcnow() + timedelta(minutes=self.settings.ACCOUNT_LOCKOUT_MINUTES)
                updated = await repo.record_login_failure(
                    external_id, self.settings.MAX_FAILED_LOGIN_ATTEMPTS, locked_until
                )

            user = await repo.get_by_external_id(external_id) if updated else None
            trail.new_values = {"external_id": external_id, "success": success, "known_user": user is not None}
            if user is None:
                return None
            trail.resource_id = str(user.id)
            return user.to_dict()

        user = await self.audit_logger.with_audit(
            tenant_id,
            None,
            AuditAction.LOGIN_SUCCESS if success else AuditAction.LOGIN_FAILED,
            ResourceType.AUTHENTICATION.value,
            None,
            apply,
            meta=meta,
        )

        if user is None:
            raise NotFoundError("User not found")

        await self._invalidate(tenant_id, user)

        locked_until = user.get("account_locked_until")
        is_locked = locked_until is not None and datetime.fromisoformat(locked_until) > utcnow()
        if is_locked and not success:
            security_logger.warning(
                "Account locked after repeated login failures",
                extra={
                    "event": "auth.account_locked",
                    "tenant_id": tenant_id,
                    "user_id": user["id"],
                    "failed_login_attempts": user["failed_login_attempts"],
                },
            )

        return {
            "user_id": user["id"],
            "failed_login_attempts": user["failed_login_attempts"],
            "account_locked_until": locked_until,
            "is_locked": is_locked,
        }

    async def _invalidate(self, tenant_id: str, user: Dict[str, Any]) -> None:
        await self.cache.invalidate_for_user(tenant_id, user["id"], namespaces=(CacheNamespace.USERS,))
        await self.cache.delete(tenant_id, CacheNamespace.USERS, external_id_cache_key(user["external_id"]))
