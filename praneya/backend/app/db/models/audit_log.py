# backend/app/db/models/audit_log.py
from sqlalchemy import Column, String, ForeignKey, JSON, Text, Uuid, UniqueConstraint, event
import uuid
from app.db.base import TenantScopedModel


class AuditLog(TenantScopedModel):
    """Immutable record of who did what to which resource"""
    __tablename__ = "audit_logs"
    __table_args__ = (
        UniqueConstraint("tenant_id", "idempotency_key", name="uq_audit_logs_tenant_idempotency_key"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    tenant_id = Column(String(100), ForeignKey("tenants.id"), nullable=False, index=True)

    # Actor, may be a system actor without a users row
    user_id = Column(String(100), nullable=True, index=True)

    # Action details
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(100), nullable=True)
    resource_id = Column(String(100), nullable=True)

    # Data changes
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)

    # Request details
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    # Caller supplied key that makes retried mutations replay instead of repeat
    idempotency_key = Column(String(255), nullable=True)


@event.listens_for(AuditLog, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise RuntimeError("audit_logs rows are immutable")


@event.listens_for(AuditLog, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise RuntimeError("audit_logs rows are immutable")
