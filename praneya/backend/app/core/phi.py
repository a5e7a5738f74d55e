# backend/app/core/phi.py
"""
PHI protection gate.

Tier filtering lives in one policy table and one function. Every read of a
regulated record goes through ``PHIGate.with_phi``, which audits the read and
applies the policy as its last step, whether the record came from the cache
or from the database.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional, Union

from app.core.audit_log import AuditLogger
from app.core.constants import AuditAction, ResourceType, SubscriptionTier
from app.core.exceptions import ValidationError
from app.core.tenant import validate_tenant_id

logger = logging.getLogger(__name__)

# Premium-only health fields
PHI_FIELDS: FrozenSet[str] = frozenset({"lab_values", "biometric_data", "clinical_notes"})

# Tier -> PHI fields the tier may see
TIER_PHI_POLICY: Dict[SubscriptionTier, FrozenSet[str]] = {
    SubscriptionTier.BASIC: frozenset(),
    SubscriptionTier.ENHANCED: frozenset(),
    SubscriptionTier.PREMIUM: PHI_FIELDS,
}


def parse_tier(tier: Union[str, SubscriptionTier]) -> SubscriptionTier:
    try:
        return SubscriptionTier(getattr(tier, "value", tier))
    except ValueError:
        raise ValidationError("Invalid subscription tier")


def hidden_fields(tier: Union[str, SubscriptionTier]) -> FrozenSet[str]:
    """PHI fields the tier must not receive"""
    return PHI_FIELDS - TIER_PHI_POLICY[parse_tier(tier)]


def filter_by_tier(record: Optional[Dict[str, Any]], tier: Union[str, SubscriptionTier]) -> Optional[Dict[str, Any]]:
    """Return a copy of ``record`` without the fields ``tier`` may not see"""
    if record is None:
        return None
    blocked = hidden_fields(tier)
    return {key: value for key, value in record.items() if key not in blocked}


class PHIGate:
    """Single enforcement point for tier-gated reads"""

    def __init__(self, audit_logger: AuditLogger):
        self.audit_logger = audit_logger

    async def with_phi(
        self,
        tenant_id: str,
        requestor_id: Optional[str],
        tier: Union[str, SubscriptionTier],
        fn: Callable[[], Awaitable[Optional[Dict[str, Any]]]],
        *,
        resource_type: str = ResourceType.HEALTH_PROFILES.value,
        resource_id: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Load a raw record with ``fn``, log the read, then redact it for ``tier``.

        The read event is written before anything is returned; if it cannot be
        persisted the caller gets AuditWriteFailure instead of the data.
        """
        validate_tenant_id(tenant_id)
        tier = parse_tier(tier)

        record = await fn()

        await self.audit_logger.log_read_access(
            tenant_id,
            requestor_id,
            resource_type,
            resource_id=resource_id,
            details={"tier": tier.value, "found": record is not None},
            action=AuditAction.PHI_ACCESS,
        )

        return filter_by_tier(record, tier)
