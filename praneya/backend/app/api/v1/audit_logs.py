from datetime import datetime
from fastapi import APIRouter, Depends
from typing import Any, Dict

from app.api.dependencies import get_request_meta, get_services, require_privileged_user
from app.core.audit_log import RequestMeta
from app.core.tenant import require_tenant
from app.services.container import Services

router = APIRouter()


@router.get("")
async def list_audit_logs(
    limit: int = 50,
    offset: int = 0,
    order_by: str = "created_at",
    order_direction: str = "DESC",
    tenant_id: str = Depends(require_tenant),
    current_user: Dict[str, Any] = Depends(require_privileged_user),
    services: Services = Depends(get_services),
    meta: RequestMeta = Depends(get_request_meta),
):
    """Paginated audit trail; the read itself is recorded"""
    pagination = {
        "limit": limit,
        "offset": offset,
        "order_by": order_by,
        "order_direction": order_direction.upper(),
    }
    return await services.audit.get_audit_logs(tenant_id, pagination, current_user["id"], meta=meta)


@router.get("/compliance-report")
async def compliance_report(
    start_date: datetime,
    end_date: datetime,
    tenant_id: str = Depends(require_tenant),
    current_user: Dict[str, Any] = Depends(require_privileged_user),
    services: Services = Depends(get_services),
):
    return await services.audit.generate_compliance_report(tenant_id, start_date, end_date)
