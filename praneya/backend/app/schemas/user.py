# backend/app/schemas/user.py
from pydantic import EmailStr, Field
from typing import Optional

from app.core.constants import SubscriptionTier, UserRole
from app.core.input_validation import SecureBaseModel


class UserCreate(SecureBaseModel):
    external_id: str = Field(min_length=1, max_length=255)
    email: EmailStr
    role: UserRole = UserRole.END_USER
    subscription_tier: SubscriptionTier = SubscriptionTier.BASIC
    device_fingerprint: Optional[str] = None
    is_active: bool = True


class UserUpdate(SecureBaseModel):
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    subscription_tier: Optional[SubscriptionTier] = None
    device_fingerprint: Optional[str] = None
    is_active: Optional[bool] = None
