# backend/app/schemas/health_profile.py
from pydantic import Field, field_validator
from typing import Any, Dict, List, Optional

from app.core.input_validation import SecureBaseModel, sanitize_text


class HealthProfileBase(SecureBaseModel):
    age_range: Optional[str] = Field(None, max_length=20)
    gender: Optional[str] = Field(None, max_length=20)
    activity_level: Optional[str] = Field(None, max_length=20)
    dietary_restrictions: Optional[List[str]] = None
    allergies: Optional[List[str]] = None
    health_conditions: Optional[List[str]] = None
    medications: Optional[List[str]] = None

    # Premium tier only
    lab_values: Optional[Dict[str, Any]] = None
    biometric_data: Optional[Dict[str, Any]] = None
    clinical_notes: Optional[str] = None

    @field_validator("clinical_notes")
    @classmethod
    def strip_markup(cls, v):
        return sanitize_text(v)


class HealthProfileCreate(HealthProfileBase):
    pass


class HealthProfileUpdate(HealthProfileBase):
    """Partial update; only fields the caller set are written"""
    pass
