# backend/app/db/models/health_profile.py
from sqlalchemy import Column, String, ForeignKey, JSON, Text, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
import uuid
from app.db.base import TenantScopedModel


class HealthProfile(TenantScopedModel):
    """
    Tiered health data for one user.

    lab_values, biometric_data and clinical_notes are premium-only and are
    stripped by the PHI gate for every other tier.
    """
    __tablename__ = "health_profiles"
    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", name="uq_health_profiles_tenant_user"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    tenant_id = Column(String(100), ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)

    # Baseline (all tiers)
    age_range = Column(String(20), nullable=True)
    gender = Column(String(20), nullable=True)
    activity_level = Column(String(20), nullable=True)
    dietary_restrictions = Column(JSON, default=list)
    allergies = Column(JSON, default=list)
    health_conditions = Column(JSON, default=list)
    medications = Column(JSON, default=list)

    # Premium tier only
    lab_values = Column(JSON, nullable=True)
    biometric_data = Column(JSON, nullable=True)
    clinical_notes = Column(Text, nullable=True)

    # Relationships
    user = relationship("User", back_populates="health_profile")
