# backend/app/db/models/user.py
from sqlalchemy import Column, String, Boolean, ForeignKey, DateTime, Integer, Text, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
import uuid
from app.core.constants import SubscriptionTier, UserRole
from app.db.base import TenantScopedModel


class User(TenantScopedModel):
    """User identity within a tenant, soft-disabled rather than deleted"""
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("tenant_id", "external_id", name="uq_users_tenant_external_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    tenant_id = Column(String(100), ForeignKey("tenants.id"), nullable=False, index=True)

    # Identity provider subject (firebase uid)
    external_id = Column(String(255), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)

    role = Column(String(50), default=UserRole.END_USER.value, nullable=False)
    subscription_tier = Column(String(20), default=SubscriptionTier.BASIC.value, nullable=False)
    device_fingerprint = Column(Text, nullable=True)

    # Login security
    last_login = Column(DateTime, nullable=True)
    failed_login_attempts = Column(Integer, default=0, nullable=False)
    account_locked_until = Column(DateTime, nullable=True)

    # Status
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="users")
    health_profile = relationship("HealthProfile", back_populates="user", uselist=False)
