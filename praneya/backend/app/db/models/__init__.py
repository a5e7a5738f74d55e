# backend/app/db/models/__init__.py
from app.db.models.tenant import Tenant
from app.db.models.user import User
from app.db.models.health_profile import HealthProfile
from app.db.models.family import FamilyAccount, FamilyMember
from app.db.models.consent import MedicalDisclaimer, UserConsent
from app.db.models.audit_log import AuditLog

__all__ = [
    "Tenant",
    "User",
    "HealthProfile",
    "FamilyAccount",
    "FamilyMember",
    "MedicalDisclaimer",
    "UserConsent",
    "AuditLog",
]
