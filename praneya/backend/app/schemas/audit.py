# backend/app/schemas/audit.py
from pydantic import Field
from typing import Literal

from app.core.input_validation import SecureBaseModel


class Pagination(SecureBaseModel):
    limit: int = Field(50, ge=1, le=500)
    offset: int = Field(0, ge=0)
    order_by: Literal["created_at", "action", "resource_type"] = "created_at"
    order_direction: Literal["ASC", "DESC"] = "DESC"
