# backend/app/api/dependencies.py
from fastapi import Depends, Header, HTTPException, Request, status
from typing import Any, Dict, Optional

from app.core.audit_log import RequestMeta
from app.core.constants import UserRole
from app.core.exceptions import NotFoundError, ValidationError
from app.core.tenant import require_tenant
from app.services.container import Services

# Roles allowed to read other users' records and the audit trail
PRIVILEGED_ROLES = frozenset({
    UserRole.SUPER_ADMIN.value,
    UserRole.TENANT_ADMIN.value,
    UserRole.HEALTHCARE_PROVIDER.value,
})


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_request_meta(request: Request) -> RequestMeta:
    """Origin of the request, recorded on audit entries"""
    return RequestMeta(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


async def get_current_user(
    tenant_id: str = Depends(require_tenant),
    x_user_id: Optional[str] = Header(None),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """
    Resolve the calling user inside the request's tenant.

    Identity is asserted by the gateway in X-User-ID; the user must exist in
    the tenant and be active.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )

    try:
        user = await services.users.get_by_id(tenant_id, x_user_id)
    except (NotFoundError, ValidationError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive"
        )

    if not user.get("is_active"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive"
        )

    return user


async def require_privileged_user(
    current_user: Dict[str, Any] = Depends(get_current_user),
) -> Dict[str, Any]:
    """Verify the caller holds an administrative or provider role"""
    if current_user.get("role") not in PRIVILEGED_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions"
        )
    return current_user
