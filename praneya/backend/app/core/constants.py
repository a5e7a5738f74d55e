# backend/app/core/constants.py
from enum import Enum
from typing import Dict, FrozenSet


class SubscriptionTier(str, Enum):
    BASIC = "basic"
    ENHANCED = "enhanced"
    PREMIUM = "premium"


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    TENANT_ADMIN = "tenant_admin"
    HEALTHCARE_PROVIDER = "healthcare_provider"
    FAMILY_ADMIN = "family_admin"
    END_USER = "end_user"


class ConsentStatus(str, Enum):
    PENDING = "pending"
    GRANTED = "granted"
    WITHDRAWN = "withdrawn"


class AuditAction(str, Enum):
    CREATE_USER = "CREATE_USER"
    UPDATE_USER = "UPDATE_USER"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    CREATE_HEALTH_PROFILE = "CREATE_HEALTH_PROFILE"
    UPDATE_HEALTH_PROFILE = "UPDATE_HEALTH_PROFILE"
    PHI_ACCESS = "PHI_ACCESS"
    CREATE_FAMILY_ACCOUNT = "CREATE_FAMILY_ACCOUNT"
    ADD_FAMILY_MEMBER = "ADD_FAMILY_MEMBER"
    RECORD_CONSENT = "RECORD_CONSENT"
    WITHDRAW_CONSENT = "WITHDRAW_CONSENT"
    AUDIT_LOG_VIEW = "AUDIT_LOG_VIEW"


class ResourceType(str, Enum):
    USERS = "users"
    HEALTH_PROFILES = "health_profiles"
    FAMILY_ACCOUNTS = "family_accounts"
    FAMILY_MEMBERS = "family_members"
    USER_CONSENTS = "user_consents"
    AUDIT_LOGS = "audit_logs"
    AUTHENTICATION = "authentication"


# Audit write shares the mutation's transaction for these (fail closed)
REGULATED_RESOURCES: FrozenSet[str] = frozenset({
    ResourceType.USERS.value,
    ResourceType.HEALTH_PROFILES.value,
    ResourceType.FAMILY_ACCOUNTS.value,
    ResourceType.FAMILY_MEMBERS.value,
    ResourceType.USER_CONSENTS.value,
})


class CacheNamespace(str, Enum):
    USERS = "users"
    HEALTH = "health"
    MEDICAL = "medical"
    PROFILE = "profile"
    FAMILY = "family"


# Cache TTL values in seconds
CACHE_TTL: Dict[str, int] = {
    # API responses from external services
    "EDAMAM_RECIPE": 24 * 60 * 60,
    "EDAMAM_NUTRITION": 24 * 60 * 60,
    "EDAMAM_FOOD_DB": 7 * 24 * 60 * 60,

    # User data (shorter TTL for healthcare compliance)
    "USER_PROFILE": 15 * 60,
    "HEALTH_PROFILE": 5 * 60,  # sensitive data
    "FAMILY_MEMBERS": 30 * 60,

    # Generated content
    "AI_RECIPE": 2 * 60 * 60,
    "MEAL_PLAN": 1 * 60 * 60,

    # Session and auth
    "USER_SESSION": 30 * 60,
    "AUTH_TOKEN": 15 * 60,

    # Rate limiting
    "RATE_LIMIT": 60,
}

# Namespaces whose cache writes are logged
SENSITIVE_NAMESPACES: FrozenSet[str] = frozenset({"health", "medical"})
