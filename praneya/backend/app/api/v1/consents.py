from fastapi import APIRouter, Depends, Header
from typing import Any, Dict, Optional
from uuid import UUID

from app.api.dependencies import get_current_user, get_request_meta, get_services
from app.core.audit_log import RequestMeta
from app.core.tenant import require_tenant
from app.schemas.consent import ConsentCreate
from app.services.container import Services

router = APIRouter()


@router.post("", status_code=201)
async def record_consent(
    consent_in: ConsentCreate,
    tenant_id: str = Depends(require_tenant),
    current_user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
    meta: RequestMeta = Depends(get_request_meta),
    idempotency_key: Optional[str] = Header(None),
):
    return await services.consents.record_consent(
        tenant_id, current_user["id"], consent_in.disclaimer_id, meta=meta, idempotency_key=idempotency_key
    )


@router.delete("/{disclaimer_id}")
async def withdraw_consent(
    disclaimer_id: UUID,
    tenant_id: str = Depends(require_tenant),
    current_user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
    meta: RequestMeta = Depends(get_request_meta),
    idempotency_key: Optional[str] = Header(None),
):
    return await services.consents.withdraw_consent(
        tenant_id, current_user["id"], disclaimer_id, meta=meta, idempotency_key=idempotency_key
    )


@router.get("/current")
async def get_current_consent(
    tenant_id: str = Depends(require_tenant),
    current_user: Dict[str, Any] = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return {"has_current_consent": await services.consents.has_current_consent(tenant_id, current_user["id"])}
