# backend/app/db/models/consent.py
from sqlalchemy import Column, String, Boolean, ForeignKey, DateTime, Text, Uuid
import uuid
from app.core.constants import ConsentStatus
from app.db.base import BaseModel, TenantScopedModel


class MedicalDisclaimer(BaseModel):
    """Versioned disclaimer text; reference data shared by all tenants"""
    __tablename__ = "medical_disclaimers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    version = Column(String(50), nullable=False)
    content = Column(Text, nullable=False)
    effective_date = Column(DateTime, nullable=False)
    is_current = Column(Boolean, default=False, nullable=False)


class UserConsent(TenantScopedModel):
    """Consent given by a user to a disclaimer version"""
    __tablename__ = "user_consents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    tenant_id = Column(String(100), ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    disclaimer_id = Column(Uuid, ForeignKey("medical_disclaimers.id"), nullable=False)

    status = Column(String(20), default=ConsentStatus.PENDING.value, nullable=False)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    consented_at = Column(DateTime, nullable=True)
    withdrawn_at = Column(DateTime, nullable=True)
