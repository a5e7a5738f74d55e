# backend/app/services/container.py
"""Wires the data access services around injected database and redis handles"""
from dataclasses import dataclass

from redis.asyncio import Redis

from app.core.audit_log import AuditLogger
from app.core.config import Settings
from app.core.phi import PHIGate
from app.db.database import Database
from app.middleware.rate_limit import RateLimiter
from app.services.audit_service import AuditService
from app.services.cache import TenantCache
from app.services.consent_service import ConsentService
from app.services.family_service import FamilyService
from app.services.health_profile_service import HealthProfileService
from app.services.user_service import UserService


@dataclass
class Services:
    database: Database
    cache: TenantCache
    audit_logger: AuditLogger
    rate_limiter: RateLimiter
    users: UserService
    health_profiles: HealthProfileService
    families: FamilyService
    consents: ConsentService
    audit: AuditService


def build_services(database: Database, redis_client: Redis, settings: Settings) -> Services:
    cache = TenantCache(redis_client)
    audit_logger = AuditLogger(database)
    return Services(
        database=database,
        cache=cache,
        audit_logger=audit_logger,
        rate_limiter=RateLimiter(redis_client),
        users=UserService(database, cache, audit_logger, settings),
        health_profiles=HealthProfileService(database, cache, audit_logger, PHIGate(audit_logger)),
        families=FamilyService(database, cache, audit_logger, settings),
        consents=ConsentService(database, audit_logger),
        audit=AuditService(database, audit_logger),
    )
