from fastapi import APIRouter, Depends, Header
from typing import Any, Dict, Optional
from uuid import UUID

from app.api.dependencies import PRIVILEGED_ROLES, get_current_user, get_request_meta, get_services
from app.core.audit_log import RequestMeta
from app.core.exceptions import NotFoundError
from app.core.tenant import require_tenant
from app.schemas.health_profile import HealthProfileCreate, HealthProfileUpdate
from app.services.container import Services

router = APIRouter()


def _ensure_profile_access(current_user: Dict[str, Any], user_id: UUID) -> None:
    # Reported as absent so other users' profiles cannot be enumerated
    if current_user["id"] != str(user_id) and current_user.get("role") not in PRIVILEGED_ROLES:
        raise NotFoundError("Health profile not found")


@router.get("/{user_id}")
async def get_health_profile(
    user_id: UUID,
    tenant_id: str = Depends(require_tenant),
    current_user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Health profile, redacted for the caller's subscription tier"""
    _ensure_profile_access(current_user, user_id)
    return await services.health_profiles.get(
        tenant_id, user_id, current_user["subscription_tier"], current_user["id"]
    )


@router.post("/{user_id}", status_code=201)
async def create_health_profile(
    user_id: UUID,
    profile_in: HealthProfileCreate,
    tenant_id: str = Depends(require_tenant),
    current_user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
    meta: RequestMeta = Depends(get_request_meta),
    idempotency_key: Optional[str] = Header(None),
):
    _ensure_profile_access(current_user, user_id)
    return await services.health_profiles.create(
        tenant_id,
        user_id,
        profile_in,
        current_user["id"],
        current_user["subscription_tier"],
        meta=meta,
        idempotency_key=idempotency_key,
    )


@router.patch("/{user_id}")
async def update_health_profile(
    user_id: UUID,
    profile_in: HealthProfileUpdate,
    tenant_id: str = Depends(require_tenant),
    current_user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
    meta: RequestMeta = Depends(get_request_meta),
    idempotency_key: Optional[str] = Header(None),
):
    _ensure_profile_access(current_user, user_id)
    return await services.health_profiles.update(
        tenant_id,
        user_id,
        profile_in,
        current_user["id"],
        current_user["subscription_tier"],
        meta=meta,
        idempotency_key=idempotency_key,
    )
