# backend/app/schemas/family.py
from pydantic import Field, field_validator
from typing import Optional
from uuid import UUID

from app.core.input_validation import SecureBaseModel, sanitize_text


class FamilyAccountCreate(SecureBaseModel):
    primary_user_id: UUID
    family_name: Optional[str] = Field(None, max_length=255)
    max_members: Optional[int] = Field(None, ge=1, le=20)

    @field_validator("family_name")
    @classmethod
    def strip_markup(cls, v):
        return sanitize_text(v)


class FamilyMemberCreate(SecureBaseModel):
    user_id: UUID
    relationship_type: Optional[str] = Field(None, max_length=50, alias="relationship")
    can_view_health_data: bool = False
    can_manage_meals: bool = False

    @field_validator("relationship_type")
    @classmethod
    def strip_markup(cls, v):
        return sanitize_text(v)
