# tests/test_phi.py
"""
PHI protection tests
Tests: tier redaction on fresh and cached reads, read auditing, write stripping
"""

import logging

import pytest
from sqlalchemy import select

from app.core.constants import AuditAction, CacheNamespace, SubscriptionTier
from app.core.exceptions import AuditWriteFailure, NotFoundError, ValidationError
from app.core.phi import PHI_FIELDS, filter_by_tier, hidden_fields
from app.db.models.audit_log import AuditLog

from conftest import FULL_PROFILE, TENANT_A, TENANT_B

BASELINE_FIELDS = {"age_range", "gender", "activity_level", "dietary_restrictions", "allergies",
                   "health_conditions", "medications"}


async def phi_reads(database, tenant_id=TENANT_A):
    async with database.session_factory() as session:
        result = await session.execute(
            select(AuditLog)
            .where(AuditLog.tenant_id == tenant_id)
            .where(AuditLog.action == AuditAction.PHI_ACCESS.value)
        )
        return list(result.scalars().all())


class TestTierPolicy:

    def test_premium_sees_everything(self):
        assert hidden_fields("premium") == frozenset()

    @pytest.mark.parametrize("tier", ["basic", "enhanced"])
    def test_lower_tiers_lose_phi(self, tier):
        assert hidden_fields(tier) == PHI_FIELDS

        filtered = filter_by_tier(dict(FULL_PROFILE), tier)
        assert PHI_FIELDS.isdisjoint(filtered)
        assert BASELINE_FIELDS <= filtered.keys()

    def test_filter_returns_a_copy(self):
        record = dict(FULL_PROFILE)
        filter_by_tier(record, SubscriptionTier.BASIC)
        assert "lab_values" in record

    def test_unknown_tier_rejected(self):
        with pytest.raises(ValidationError, match="Invalid subscription tier"):
            filter_by_tier({}, "platinum")


class TestRedactionRoundTrip:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tier", ["basic", "enhanced"])
    async def test_lower_tier_read_is_redacted(self, services, premium_user, premium_profile, tier):
        profile = await services.health_profiles.get(TENANT_A, premium_user["id"], tier, premium_user["id"])

        assert PHI_FIELDS.isdisjoint(profile)
        assert profile["allergies"] == ["peanuts"]

    @pytest.mark.asyncio
    async def test_premium_read_is_complete(self, services, premium_user, premium_profile):
        profile = await services.health_profiles.get(TENANT_A, premium_user["id"], "premium", premium_user["id"])

        assert profile["lab_values"] == FULL_PROFILE["lab_values"]
        assert profile["biometric_data"] == FULL_PROFILE["biometric_data"]
        assert profile["clinical_notes"] == FULL_PROFILE["clinical_notes"]

    @pytest.mark.asyncio
    async def test_cached_read_is_still_redacted(self, services, premium_user, premium_profile):
        """A premium read warms the cache; a basic read served from it is filtered"""
        await services.health_profiles.get(TENANT_A, premium_user["id"], "premium", premium_user["id"])
        assert await services.cache.get(TENANT_A, CacheNamespace.HEALTH, premium_user["id"]) is not None

        profile = await services.health_profiles.get(TENANT_A, premium_user["id"], "basic", "viewer-1")

        assert PHI_FIELDS.isdisjoint(profile)

    @pytest.mark.asyncio
    async def test_create_response_is_redacted_for_writer_tier(self, services, basic_user):
        profile = await services.health_profiles.create(
            TENANT_A, basic_user["id"], FULL_PROFILE, basic_user["id"], "basic"
        )
        assert PHI_FIELDS.isdisjoint(profile)

    @pytest.mark.asyncio
    async def test_non_premium_writes_drop_gated_fields(self, services, basic_user):
        await services.health_profiles.create(TENANT_A, basic_user["id"], FULL_PROFILE, basic_user["id"], "basic")

        stored = await services.health_profiles.get(TENANT_A, basic_user["id"], "premium", "provider-1")

        assert stored["lab_values"] is None
        assert stored["biometric_data"] is None
        assert stored["clinical_notes"] is None
        assert stored["medications"] == ["metformin"]

    @pytest.mark.asyncio
    async def test_clinical_notes_are_sanitized(self, services, premium_user):
        profile = await services.health_profiles.create(
            TENANT_A,
            premium_user["id"],
            {"clinical_notes": "<script>alert(1)</script>Low sodium"},
            premium_user["id"],
            "premium",
        )
        assert "<script>" not in profile["clinical_notes"]
        assert "Low sodium" in profile["clinical_notes"]


class TestReadAuditing:

    @pytest.mark.asyncio
    async def test_every_read_is_audited(self, services, database, premium_user, premium_profile):
        for tier in ("premium", "basic"):
            await services.health_profiles.get(TENANT_A, premium_user["id"], tier, "provider-7")

        reads = await phi_reads(database)
        assert len(reads) == 2
        assert {r.new_values["tier"] for r in reads} == {"premium", "basic"}
        assert all(r.user_id == "provider-7" and r.resource_id == premium_user["id"] for r in reads)

    @pytest.mark.asyncio
    async def test_missing_profile_read_is_audited_then_not_found(self, services, database, basic_user):
        with pytest.raises(NotFoundError):
            await services.health_profiles.get(TENANT_A, basic_user["id"], "basic", basic_user["id"])

        reads = await phi_reads(database)
        assert len(reads) == 1
        assert reads[0].new_values["found"] is False

    @pytest.mark.asyncio
    async def test_read_audit_failure_withholds_data(self, services, premium_user, premium_profile, monkeypatch):

        async def failing_record(session, **kwargs):
            raise AuditWriteFailure("Audit log write failed")

        monkeypatch.setattr(services.audit_logger, "record", failing_record)

        with pytest.raises(AuditWriteFailure):
            await services.health_profiles.get(TENANT_A, premium_user["id"], "premium", premium_user["id"])


class TestProfileIsolation:

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_read_profile(self, services, premium_user, premium_profile):
        with pytest.raises(NotFoundError):
            await services.health_profiles.get(TENANT_B, premium_user["id"], "premium", "intruder")

    @pytest.mark.asyncio
    async def test_other_tenant_cannot_read_cached_profile(self, services, premium_user, premium_profile):
        await services.health_profiles.get(TENANT_A, premium_user["id"], "premium", premium_user["id"])

        with pytest.raises(NotFoundError):
            await services.health_profiles.get(TENANT_B, premium_user["id"], "premium", "intruder")

    @pytest.mark.asyncio
    async def test_gated_field_drop_is_logged(self, services, basic_user, caplog):
        with caplog.at_level(logging.WARNING, logger="app.services.health_profile_service"):
            await services.health_profiles.create(
                TENANT_A, basic_user["id"], FULL_PROFILE, basic_user["id"], "enhanced"
            )

        assert "Dropping premium-only health fields from write" in caplog.text
