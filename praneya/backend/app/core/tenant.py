"""Tenant and identifier validation shared by the data access layer and routes."""
import re
import uuid
from typing import Optional
from fastapi import Header

from app.core.exceptions import ValidationError

# Tenant ids are embedded in cache keys and SCAN patterns, so glob
# metacharacters and the key separator are rejected.
TENANT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,100}$")


def validate_tenant_id(tenant_id: Optional[str]) -> str:
    """
    Validate a tenant identifier before any I/O happens.

    Raises:
        ValidationError: If the tenant id is missing or malformed
    """
    if not tenant_id or not isinstance(tenant_id, str):
        raise ValidationError("Tenant ID is required")

    if not TENANT_ID_PATTERN.match(tenant_id):
        raise ValidationError("Invalid tenant ID format")

    return tenant_id


def parse_uuid(value, field: str = "id") -> uuid.UUID:
    """Coerce a caller supplied identifier to a UUID"""
    if isinstance(value, uuid.UUID):
        return value

    if not value:
        raise ValidationError(f"{field} is required")

    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError):
        raise ValidationError(f"Invalid {field} format")


async def require_tenant(
    x_tenant_id: Optional[str] = Header(None),
) -> str:
    """
    FastAPI dependency that extracts and validates the tenant ID from request headers.

    Args:
        x_tenant_id: Tenant ID from X-Tenant-ID header

    Returns:
        Validated tenant ID

    Raises:
        ValidationError: If tenant ID is missing or invalid
    """
    return validate_tenant_id(x_tenant_id)
