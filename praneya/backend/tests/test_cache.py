# tests/test_cache.py
"""
Cache layer tests
Tests: key generation, tenant tags, TTLs, invalidation, store outages
"""

import asyncio
import json
import logging

import pytest

from app.core.constants import CACHE_TTL, CacheNamespace
from app.core.exceptions import TransientStoreError, ValidationError
from app.services.cache import generate_cache_key

from conftest import TENANT_A, TENANT_B


class TestCacheKeys:

    def test_key_layout(self):
        assert generate_cache_key(TENANT_A, CacheNamespace.HEALTH, "u1") == "tenant:tenant-a:health:u1"

    @pytest.mark.parametrize("identifier", ["u*", "u?", "u[1]", "", "u 1"])
    def test_glob_characters_rejected(self, identifier):
        with pytest.raises(ValidationError):
            generate_cache_key(TENANT_A, "health", identifier)

    def test_tenant_required(self):
        with pytest.raises(ValidationError, match="Tenant ID is required"):
            generate_cache_key("", "health", "u1")


class TestTenantIsolation:

    @pytest.mark.asyncio
    async def test_other_tenant_gets_miss(self, services):
        await services.cache.set(TENANT_A, "health", "U1", {"allergies": ["shellfish"]}, 5)

        assert await services.cache.get(TENANT_B, "health", "U1") is None
        assert await services.cache.get(TENANT_A, "health", "U1") == {"allergies": ["shellfish"]}

    @pytest.mark.asyncio
    async def test_tag_mismatch_is_miss_and_security_event(self, services, redis_client, caplog):
        # Entry planted under tenant A's key but tagged for tenant B
        await redis_client.set(
            "tenant:tenant-a:users:u1",
            json.dumps({"data": {"email": "x@praneya-health.com"}, "tenant_id": TENANT_B, "timestamp": "t"}),
        )

        with caplog.at_level(logging.ERROR, logger="app.security"):
            assert await services.cache.get(TENANT_A, "users", "u1") is None

        events = [r for r in caplog.records if getattr(r, "event", None) == "TenantIsolationViolation"]
        assert len(events) == 1
        assert events[0].cached_tenant == TENANT_B

    @pytest.mark.asyncio
    async def test_undecodable_entry_is_miss(self, services, redis_client):
        await redis_client.set("tenant:tenant-a:users:u2", "{not json")
        assert await services.cache.get(TENANT_A, "users", "u2") is None


class TestTTL:

    @pytest.mark.asyncio
    async def test_entry_expires_to_clean_miss(self, services):
        await services.cache.set(TENANT_A, "health", "U1", {"age_range": "30-39"}, 1)
        assert await services.cache.get(TENANT_A, "health", "U1") == {"age_range": "30-39"}

        await asyncio.sleep(1.5)

        assert await services.cache.get(TENANT_A, "health", "U1") is None

    @pytest.mark.asyncio
    async def test_health_profile_ttl_applied(self, services, redis_client, premium_user, premium_profile):
        await services.health_profiles.get(TENANT_A, premium_user["id"], "premium", premium_user["id"])

        ttl = await redis_client.ttl(f"tenant:{TENANT_A}:health:{premium_user['id']}")
        assert 0 < ttl <= CACHE_TTL["HEALTH_PROFILE"]

    @pytest.mark.asyncio
    async def test_sensitive_write_is_logged(self, services, caplog):
        with caplog.at_level(logging.INFO, logger="app.services.cache"):
            await services.cache.set(TENANT_A, CacheNamespace.MEDICAL, "U1", {"x": 1}, 60)

        assert "Cache set for sensitive data" in caplog.text


class TestInvalidation:

    @pytest.mark.asyncio
    async def test_invalidate_health_clears_user_namespaces(self, services):
        for namespace in ("health", "medical", "profile"):
            await services.cache.set(TENANT_A, namespace, "U1", {"n": namespace}, 60)
        await services.cache.set(TENANT_A, "health", "U1:summary", {"n": "summary"}, 60)
        await services.cache.set(TENANT_A, "health", "U10", {"n": "other user"}, 60)

        await services.cache.invalidate_health(TENANT_A, "U1")

        for namespace in ("health", "medical", "profile"):
            assert await services.cache.get(TENANT_A, namespace, "U1") is None
        assert await services.cache.get(TENANT_A, "health", "U1:summary") is None
        assert await services.cache.get(TENANT_A, "health", "U10") == {"n": "other user"}

    @pytest.mark.asyncio
    async def test_invalidate_tenant_leaves_other_tenants(self, services):
        await services.cache.set(TENANT_A, "users", "U1", {"a": 1}, 60)
        await services.cache.set(TENANT_B, "users", "U1", {"b": 1}, 60)

        cleared = await services.cache.invalidate_tenant(TENANT_A)

        assert cleared == 1
        assert await services.cache.get(TENANT_A, "users", "U1") is None
        assert await services.cache.get(TENANT_B, "users", "U1") == {"b": 1}

    @pytest.mark.asyncio
    async def test_update_then_read_is_fresh(self, services, premium_user, premium_profile):
        await services.health_profiles.get(TENANT_A, premium_user["id"], "premium", premium_user["id"])

        await services.health_profiles.update(
            TENANT_A, premium_user["id"], {"allergies": ["peanuts", "soy"]}, premium_user["id"], "premium"
        )
        profile = await services.health_profiles.get(TENANT_A, premium_user["id"], "premium", premium_user["id"])

        assert profile["allergies"] == ["peanuts", "soy"]


class TestReadThroughGeneration:

    @pytest.mark.asyncio
    async def test_eviction_blocks_older_population(self, services):
        generation = await services.cache.generation(TENANT_A, "health", "U1")

        await services.cache.delete(TENANT_A, "health", "U1")
        written = await services.cache.set_if_generation(TENANT_A, "health", "U1", {"old": True}, 60, generation)

        assert written is False
        assert await services.cache.get(TENANT_A, "health", "U1") is None

    @pytest.mark.asyncio
    async def test_population_without_eviction_writes(self, services):
        generation = await services.cache.generation(TENANT_A, "health", "U1")

        assert await services.cache.set_if_generation(TENANT_A, "health", "U1", {"v": 1}, 60, generation)
        assert await services.cache.get(TENANT_A, "health", "U1") == {"v": 1}

    @pytest.mark.asyncio
    async def test_generation_survives_tenant_clear(self, services, redis_client):
        await services.cache.invalidate_health(TENANT_A, "U1")
        await services.cache.invalidate_tenant(TENANT_A)

        assert await services.cache.generation(TENANT_A, "health", "U1") == 1

    @pytest.mark.asyncio
    async def test_update_during_slow_read_is_not_overwritten(
        self, services, monkeypatch, premium_user, premium_profile
    ):
        user_id = premium_user["id"]
        guarded_set = services.cache.set_if_generation
        interleaved = []

        async def write_lands_first(*args, **kwargs):
            # The reader already holds the old row; the update commits before it caches
            if not interleaved:
                interleaved.append(True)
                await services.health_profiles.update(
                    TENANT_A, user_id, {"allergies": ["shellfish"]}, user_id, "premium"
                )
            return await guarded_set(*args, **kwargs)

        monkeypatch.setattr(services.cache, "set_if_generation", write_lands_first)

        stale = await services.health_profiles.get(TENANT_A, user_id, "premium", user_id)
        fresh = await services.health_profiles.get(TENANT_A, user_id, "premium", user_id)

        assert stale["allergies"] == ["peanuts"]
        assert fresh["allergies"] == ["shellfish"]

    @pytest.mark.asyncio
    async def test_member_list_not_repopulated_after_add(self, services, monkeypatch, make_user):
        owner, joiner = await make_user(), await make_user()
        account = await services.families.create_account(TENANT_A, {"primary_user_id": owner["id"]}, owner["id"])
        guarded_set = services.cache.set_if_generation
        interleaved = []

        async def write_lands_first(*args, **kwargs):
            if not interleaved:
                interleaved.append(True)
                await services.families.add_member(TENANT_A, account["id"], {"user_id": joiner["id"]}, owner["id"])
            return await guarded_set(*args, **kwargs)

        monkeypatch.setattr(services.cache, "set_if_generation", write_lands_first)

        before = await services.families.get_members(TENANT_A, account["id"])
        after = await services.families.get_members(TENANT_A, account["id"])

        assert before == []
        assert [m["user_id"] for m in after] == [joiner["id"]]


class TestStoreOutage:

    @pytest.mark.asyncio
    async def test_get_during_outage_is_miss(self, services, redis_server):
        redis_server.connected = False
        assert await services.cache.get(TENANT_A, "users", "U1") is None

    @pytest.mark.asyncio
    async def test_invalidation_during_outage_raises(self, services, redis_server):
        redis_server.connected = False
        with pytest.raises(TransientStoreError):
            await services.cache.invalidate_health(TENANT_A, "U1")

    @pytest.mark.asyncio
    async def test_reads_fall_back_to_database(self, services, redis_server, premium_user, premium_profile):
        redis_server.connected = False

        profile = await services.health_profiles.get(TENANT_A, premium_user["id"], "basic", premium_user["id"])

        assert profile["allergies"] == ["peanuts"]

    @pytest.mark.asyncio
    async def test_health_check_reports_outage(self, services, redis_server):
        assert (await services.cache.health_check())["status"] == "healthy"

        redis_server.connected = False

        assert (await services.cache.health_check())["status"] == "unhealthy"
