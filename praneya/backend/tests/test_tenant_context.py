# tests/test_tenant_context.py
"""
Tenant context and transaction coordination
Tests: tenant id validation, connection release, rollback, deadlines
"""

import asyncio
import uuid

import pytest
from sqlalchemy import func, select

from app.core.exceptions import NotFoundError, TransientStoreError, ValidationError
from app.core.tenant import parse_uuid, validate_tenant_id
from app.db.database import Database
from app.db.models.user import User
from app.db.repositories.user_repository import UserRepository

from conftest import TENANT_A, TENANT_B


async def count_users(database, tenant_id):
    async def query(session):
        return await UserRepository(session, tenant_id).count()
    return await database.with_tenant(tenant_id, query)


class TestTenantValidation:

    @pytest.mark.parametrize("tenant_id", ["", None, "tenant:a", "tenant*", "a" * 101, "../etc"])
    def test_malformed_tenant_rejected(self, tenant_id):
        with pytest.raises(ValidationError):
            validate_tenant_id(tenant_id)

    def test_valid_tenant_returned(self):
        assert validate_tenant_id("clinic_42-east") == "clinic_42-east"

    def test_parse_uuid(self):
        value = uuid.uuid4()
        assert parse_uuid(str(value)) == value
        with pytest.raises(ValidationError, match="Invalid user_id format"):
            parse_uuid("not-a-uuid", "user_id")

    @pytest.mark.asyncio
    async def test_validation_happens_before_checkout(self, database):
        """No connection is borrowed for a bad tenant id"""

        async def never_called(session):
            raise AssertionError("callback must not run")

        checked_out_before = database.engine.pool.checkedout()
        with pytest.raises(ValidationError):
            await database.with_tenant("", never_called)
        assert database.engine.pool.checkedout() == checked_out_before


class TestWithTenant:

    @pytest.mark.asyncio
    async def test_connection_released_on_error(self, database):

        async def boom(session):
            await session.execute(select(1))
            raise RuntimeError("callback failed")

        with pytest.raises(RuntimeError):
            await database.with_tenant(TENANT_A, boom)

        assert database.engine.pool.checkedout() == 0

    @pytest.mark.asyncio
    async def test_connection_released_on_cancellation(self, database):
        started = asyncio.Event()

        async def slow(session):
            await session.execute(select(1))
            started.set()
            await asyncio.sleep(10)

        task = asyncio.create_task(database.with_tenant(TENANT_A, slow))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert database.engine.pool.checkedout() == 0

    @pytest.mark.asyncio
    async def test_queries_scoped_to_tenant(self, database, make_user):
        user = await make_user(tenant_id=TENANT_A)

        async def lookup(session):
            return await UserRepository(session, TENANT_B).get(uuid.UUID(user["id"]))

        assert await database.with_tenant(TENANT_B, lookup) is None
        assert await count_users(database, TENANT_A) == 1
        assert await count_users(database, TENANT_B) == 0


class TestWithTransaction:

    @pytest.mark.asyncio
    async def test_commits_on_success(self, database):

        async def insert(session):
            await UserRepository(session, TENANT_A).create({
                "external_id": "uid-commit",
                "email": "commit@praneya-health.com",
            })

        await database.with_transaction(TENANT_A, insert)
        assert await count_users(database, TENANT_A) == 1

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, database):

        async def insert_then_fail(session):
            await UserRepository(session, TENANT_A).create({
                "external_id": "uid-rollback",
                "email": "rollback@praneya-health.com",
            })
            raise NotFoundError("Family account not found")

        with pytest.raises(NotFoundError):
            await database.with_transaction(TENANT_A, insert_then_fail)

        assert await count_users(database, TENANT_A) == 0

    @pytest.mark.asyncio
    async def test_deadline_rolls_back(self, database):

        async def insert_then_stall(session):
            await UserRepository(session, TENANT_A).create({
                "external_id": "uid-deadline",
                "email": "deadline@praneya-health.com",
            })
            await asyncio.sleep(5)

        with pytest.raises(TimeoutError):
            await database.with_transaction(TENANT_A, insert_then_stall, timeout=0.2)

        assert await count_users(database, TENANT_A) == 0
        assert database.engine.pool.checkedout() == 0


class TestDatabaseHealth:

    @pytest.mark.asyncio
    async def test_health_check(self, database):
        health = await database.health_check()

        assert health["status"] == "healthy"
        assert "latency_ms" in health["details"]

    @pytest.mark.asyncio
    async def test_unreachable_database_is_transient(self, tmp_path):
        missing = Database(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nowhere.db'}")

        async def query(session):
            return await session.execute(select(func.count(User.id)))

        try:
            with pytest.raises(TransientStoreError):
                await missing.with_tenant(TENANT_A, query)
        finally:
            await missing.close()
