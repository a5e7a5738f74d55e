from fastapi import APIRouter
from app.api.v1 import audit_logs, consents, family, health_profiles

api_router = APIRouter()

api_router.include_router(health_profiles.router, prefix="/health-profiles", tags=["health-profiles"])
api_router.include_router(family.router, prefix="/family", tags=["family"])
api_router.include_router(consents.router, prefix="/consents", tags=["consents"])
api_router.include_router(audit_logs.router, prefix="/audit-logs", tags=["audit"])
