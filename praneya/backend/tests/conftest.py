"""
Pytest configuration and fixtures
Shared test setup for all test modules
"""

import uuid
from datetime import datetime
from typing import AsyncGenerator, Awaitable, Callable, Dict

import pytest
from fakeredis import FakeAsyncRedis, FakeServer
from httpx import ASGITransport, AsyncClient

from app.core.config import Settings
from app.db.database import Database
from app.db.models.consent import MedicalDisclaimer
from app.db.models.tenant import Tenant
from app.main import create_app
from app.services.container import Services, build_services

TENANT_A = "tenant-a"
TENANT_B = "tenant-b"

FULL_PROFILE = {
    "age_range": "30-39",
    "gender": "female",
    "activity_level": "moderate",
    "dietary_restrictions": ["vegetarian"],
    "allergies": ["peanuts"],
    "health_conditions": ["type_2_diabetes"],
    "medications": ["metformin"],
    "lab_values": {"hba1c": 6.8, "ldl": 130},
    "biometric_data": {"weight_kg": 68.5, "height_cm": 170},
    "clinical_notes": "Monitor carbohydrate intake",
}


@pytest.fixture
def settings() -> Settings:
    """Test settings, isolated from any local .env"""
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        DB_POOL_SIZE=5,
        DB_MAX_OVERFLOW=5,
        DB_POOL_TIMEOUT=5.0,
        RATE_LIMIT_PER_MINUTE=1000,
    )


@pytest.fixture
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    """Fresh SQLite database file per test with a real connection pool"""

    db = Database(
        f"sqlite+aiosqlite:///{tmp_path / 'praneya_test.db'}",
        pool_size=5,
        max_overflow=5,
        pool_timeout=5.0,
        # Writers queue on the database lock instead of failing
        connect_args={"timeout": 30},
    )
    await db.init_db()

    async with db.session_factory() as session:
        session.add_all([
            Tenant(id=TENANT_A, name="Clinic A"),
            Tenant(id=TENANT_B, name="Clinic B"),
        ])
        await session.commit()

    yield db
    await db.close()


@pytest.fixture
def redis_server() -> FakeServer:
    """Backing server for fakeredis; set ``connected = False`` to simulate an outage"""
    return FakeServer()


@pytest.fixture
async def redis_client(redis_server: FakeServer) -> AsyncGenerator[FakeAsyncRedis, None]:
    client = FakeAsyncRedis(server=redis_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def services(database: Database, redis_client: FakeAsyncRedis, settings: Settings) -> Services:
    return build_services(database, redis_client, settings)


@pytest.fixture
def make_user(services: Services) -> Callable[..., Awaitable[Dict]]:
    """Factory creating users through the audited service path"""

    async def _make_user(tenant_id: str = TENANT_A, tier: str = "basic", role: str = "end_user") -> Dict:
        external_id = f"uid-{uuid.uuid4().hex[:12]}"
        return await services.users.create(
            tenant_id,
            {
                "external_id": external_id,
                "email": f"{external_id}@praneya-health.com",
                "role": role,
                "subscription_tier": tier,
            },
        )

    return _make_user


@pytest.fixture
async def premium_user(make_user) -> Dict:
    return await make_user(tier="premium")


@pytest.fixture
async def basic_user(make_user) -> Dict:
    return await make_user(tier="basic")


@pytest.fixture
async def premium_profile(services: Services, premium_user: Dict) -> Dict:
    """Full health profile written by a premium user"""
    return await services.health_profiles.create(
        TENANT_A, premium_user["id"], FULL_PROFILE, premium_user["id"], "premium"
    )


@pytest.fixture
async def current_disclaimer(database: Database) -> MedicalDisclaimer:
    async with database.session_factory() as session:
        disclaimer = MedicalDisclaimer(
            version="2024.1",
            content="Praneya does not provide medical advice.",
            effective_date=datetime(2024, 1, 1),
            is_current=True,
        )
        session.add(disclaimer)
        await session.commit()
        return disclaimer


@pytest.fixture
async def client(services: Services, settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to an app running on the test stores"""
    app = create_app(settings, services=services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def auth_headers(user: Dict, tenant_id: str = TENANT_A) -> Dict[str, str]:
    return {"X-Tenant-ID": tenant_id, "X-User-ID": user["id"]}
