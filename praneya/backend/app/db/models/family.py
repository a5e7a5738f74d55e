# backend/app/db/models/family.py
from sqlalchemy import Column, String, Boolean, ForeignKey, Integer, DateTime, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
import uuid
from app.db.base import TenantScopedModel, utcnow


class FamilyAccount(TenantScopedModel):
    """Household owning a bounded set of members"""
    __tablename__ = "family_accounts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    tenant_id = Column(String(100), ForeignKey("tenants.id"), nullable=False, index=True)
    primary_user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    family_name = Column(String(255), nullable=True)
    max_members = Column(Integer, default=6, nullable=False)

    members = relationship("FamilyMember", back_populates="family_account", cascade="all, delete-orphan")


class FamilyMember(TenantScopedModel):
    """Links a user to a family account with permission flags"""
    __tablename__ = "family_members"
    __table_args__ = (
        UniqueConstraint("family_account_id", "user_id", name="uq_family_members_account_user"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    tenant_id = Column(String(100), ForeignKey("tenants.id"), nullable=False, index=True)
    family_account_id = Column(Uuid, ForeignKey("family_accounts.id"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    relationship_type = Column("relationship", String(50), nullable=True)

    # Permissions
    can_view_health_data = Column(Boolean, default=False, nullable=False)
    can_manage_meals = Column(Boolean, default=False, nullable=False)

    added_at = Column(DateTime, default=utcnow, nullable=False)

    family_account = relationship("FamilyAccount", back_populates="members")
