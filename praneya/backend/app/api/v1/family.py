from fastapi import APIRouter, Depends, Header
from typing import Any, Dict, Optional
from uuid import UUID

from app.api.dependencies import get_current_user, get_request_meta, get_services
from app.core.audit_log import RequestMeta
from app.core.exceptions import NotFoundError
from app.core.tenant import require_tenant
from app.schemas.family import FamilyAccountCreate, FamilyMemberCreate
from app.services.container import Services

router = APIRouter()


@router.post("", status_code=201)
async def create_family_account(
    account_in: FamilyAccountCreate,
    tenant_id: str = Depends(require_tenant),
    current_user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
    meta: RequestMeta = Depends(get_request_meta),
    idempotency_key: Optional[str] = Header(None),
):
    return await services.families.create_account(
        tenant_id, account_in, current_user["id"], meta=meta, idempotency_key=idempotency_key
    )


@router.get("/{account_id}/members")
async def list_family_members(
    account_id: UUID,
    tenant_id: str = Depends(require_tenant),
    current_user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return await services.families.get_members(tenant_id, account_id, current_user["id"])


@router.post("/{account_id}/members", status_code=201)
async def add_family_member(
    account_id: UUID,
    member_in: FamilyMemberCreate,
    tenant_id: str = Depends(require_tenant),
    current_user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
    meta: RequestMeta = Depends(get_request_meta),
    idempotency_key: Optional[str] = Header(None),
):
    """Add a member; 409 once the account is full"""
    if not await services.families.check_member_access(tenant_id, account_id, current_user["id"]):
        raise NotFoundError("Family account not found")
    return await services.families.add_member(
        tenant_id, account_id, member_in, current_user["id"], meta=meta, idempotency_key=idempotency_key
    )
