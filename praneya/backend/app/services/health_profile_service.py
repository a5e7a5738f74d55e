# backend/app/services/health_profile_service.py
"""
Health profile management with PHI protection.

Reads: cache (try) -> database on miss -> PHI gate, every time. The cache
holds the unfiltered record; redaction happens only in the gate.
Writes: one audited transaction, then health cache invalidation.
"""
import logging
from typing import Any, Dict, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.audit_log import AuditLogger, AuditTrail, RequestMeta
from app.core.constants import AuditAction, CACHE_TTL, CacheNamespace, ResourceType, SubscriptionTier
from app.core.exceptions import NotFoundError, ValidationError
from app.core.input_validation import validate_payload
from app.core.phi import PHIGate, filter_by_tier, hidden_fields, parse_tier
from app.core.tenant import parse_uuid, validate_tenant_id
from app.db.database import Database
from app.db.repositories.health_profile_repository import HealthProfileRepository
from app.db.repositories.user_repository import UserRepository
from app.schemas.health_profile import HealthProfileCreate, HealthProfileUpdate
from app.services.cache import TenantCache

logger = logging.getLogger(__name__)


class HealthProfileService:
    """Tier-filtered, PHI-gated health profile access"""

    def __init__(self, database: Database, cache: TenantCache, audit_logger: AuditLogger, phi_gate: PHIGate):
        self.database = database
        self.cache = cache
        self.audit_logger = audit_logger
        self.phi_gate = phi_gate

    async def get(
        self,
        tenant_id: str,
        user_id,
        subscription_tier: Union[str, SubscriptionTier],
        requested_by: Optional[str],
    ) -> Dict[str, Any]:
        """Get health profile with subscription tier filtering"""
        validate_tenant_id(tenant_id)
        user_id = parse_uuid(user_id, "user_id")
        tier = parse_tier(subscription_tier)
        cache_id = str(user_id)

        async def query(session: AsyncSession):
            profile = await HealthProfileRepository(session, tenant_id).get_by_user(user_id)
            return profile.to_dict() if profile else None

        async def load() -> Optional[Dict[str, Any]]:
            # Cache for short duration (sensitive health data)
            return await self.cache.read_through(
                tenant_id,
                CacheNamespace.HEALTH,
                cache_id,
                lambda: self.database.with_tenant(tenant_id, query),
                CACHE_TTL["HEALTH_PROFILE"],
            )

        profile = await self.phi_gate.with_phi(
            tenant_id,
            requested_by,
            tier,
            load,
            resource_type=ResourceType.HEALTH_PROFILES.value,
            resource_id=cache_id,
        )
        if profile is None:
            raise NotFoundError("Health profile not found")
        return profile

    async def create(
        self,
        tenant_id: str,
        user_id,
        profile_data: Union[HealthProfileCreate, Dict[str, Any]],
        created_by: Optional[str],
        subscription_tier: Union[str, SubscriptionTier],
        *,
        meta: Optional[RequestMeta] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create the one profile a user may have"""
        validate_tenant_id(tenant_id)
        user_id = parse_uuid(user_id, "user_id")
        tier = parse_tier(subscription_tier)
        values = self._strip_gated_fields(
            validate_payload(HealthProfileCreate, profile_data).model_dump(exclude_unset=True), tier, tenant_id
        )

        async def insert(session: AsyncSession, trail: AuditTrail):
            if await UserRepository(session, tenant_id).get(user_id) is None:
                raise NotFoundError("User not found")
            repo = HealthProfileRepository(session, tenant_id)
            if await repo.get_by_user(user_id) is not None:
                raise ValidationError("Health profile already exists")
            profile = await repo.create({**values, "user_id": user_id})
            trail.resource_id = str(user_id)
            return profile.to_dict()

        profile = await self.audit_logger.with_audit(
            tenant_id,
            created_by,
            AuditAction.CREATE_HEALTH_PROFILE,
            ResourceType.HEALTH_PROFILES.value,
            str(user_id),
            insert,
            meta=meta,
            idempotency_key=idempotency_key,
        )
        await self.cache.invalidate_health(tenant_id, str(user_id))
        return filter_by_tier(profile, tier)

    async def update(
        self,
        tenant_id: str,
        user_id,
        profile_data: Union[HealthProfileUpdate, Dict[str, Any]],
        updated_by: Optional[str],
        subscription_tier: Union[str, SubscriptionTier],
        *,
        meta: Optional[RequestMeta] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Update health profile with cache invalidation and safety checks"""
        validate_tenant_id(tenant_id)
        user_id = parse_uuid(user_id, "user_id")
        tier = parse_tier(subscription_tier)
        changes = self._strip_gated_fields(
            validate_payload(HealthProfileUpdate, profile_data).model_dump(exclude_unset=True), tier, tenant_id
        )
        if not changes:
            raise ValidationError("No fields to update")

        async def apply(session: AsyncSession, trail: AuditTrail):
            repo = HealthProfileRepository(session, tenant_id)
            profile = await repo.get_by_user(user_id, for_update=True)
            if profile is None:
                raise NotFoundError("Health profile not found")
            before = profile.to_dict()
            trail.old_values = {key: before.get(key) for key in changes}
            profile = await repo.update(profile, changes)
            return profile.to_dict()

        profile = await self.audit_logger.with_audit(
            tenant_id,
            updated_by,
            AuditAction.UPDATE_HEALTH_PROFILE,
            ResourceType.HEALTH_PROFILES.value,
            str(user_id),
            apply,
            meta=meta,
            idempotency_key=idempotency_key,
        )

        # Invalidate health-related cache when profile changes
        await self.cache.invalidate_health(tenant_id, str(user_id))
        return filter_by_tier(profile, tier)

    @staticmethod
    def _strip_gated_fields(values: Dict[str, Any], tier: SubscriptionTier, tenant_id: str) -> Dict[str, Any]:
        """Premium-only fields are never written on behalf of other tiers"""
        blocked = hidden_fields(tier) & values.keys()
        if blocked:
            logger.warning(
                "Dropping premium-only health fields from write",
                extra={"tenant_id": tenant_id, "tier": tier.value, "fields": sorted(blocked)},
            )
        return {key: value for key, value in values.items() if key not in blocked}
