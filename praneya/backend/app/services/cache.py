# backend/app/services/cache.py
"""
Tenant-namespaced Redis cache.

Entries are stored as ``{"data", "tenant_id", "timestamp"}`` under
``tenant:{tenant_id}:{namespace}:{identifier}``. A read whose embedded tenant
tag does not match the requested tenant is a miss. The cache is never the
source of truth: clearing it at any time is safe.

Each entry has a generation counter under ``generation:{cache_key}``. Targeted
evictions bump it before deleting, and read-through population only writes if
the counter is unchanged since before the database load, so a slow reader
cannot put back a record that a concurrent write has already invalidated.
"""
import json
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from app.core.constants import CACHE_TTL, CacheNamespace, SENSITIVE_NAMESPACES
from app.core.exceptions import TransientStoreError, ValidationError
from app.core.logging import security_logger
from app.core.tenant import validate_tenant_id

logger = logging.getLogger(__name__)

# Key segments must not inject glob syntax into invalidation patterns
KEY_SEGMENT_PATTERN = re.compile(r"^[A-Za-z0-9_.:@-]{1,255}$")

SCAN_BATCH_SIZE = 500

# Outlives any entry TTL so an in-flight read always sees a bump
GENERATION_TTL = 24 * 60 * 60


def generate_cache_key(tenant_id: str, namespace: str, identifier: str) -> str:
    """Cache key generation with tenant isolation"""
    tenant_id = validate_tenant_id(tenant_id)
    namespace = str(getattr(namespace, "value", namespace))
    identifier = str(identifier)
    for segment in (namespace, identifier):
        if not KEY_SEGMENT_PATTERN.match(segment):
            raise ValidationError("Invalid cache key segment")
    return f"tenant:{tenant_id}:{namespace}:{identifier}"


def generation_key(cache_key: str) -> str:
    # Outside the tenant:* keyspace so pattern clears leave counters alone
    return f"generation:{cache_key}"


class TenantCache:
    """Cache operations over an injected ``redis.asyncio`` client"""

    def __init__(self, redis_client: Redis):
        self.redis = redis_client

    async def set(
        self,
        tenant_id: str,
        namespace: str,
        identifier: str,
        value: Any,
        ttl: int = CACHE_TTL["USER_PROFILE"],
        *,
        raise_on_error: bool = True,
    ) -> bool:
        """
        Store ``value`` with its tenant tag.

        With ``raise_on_error=False`` a failed write is logged and reported as
        ``False``. Read-through population goes through ``set_if_generation``.
        """
        cache_key = generate_cache_key(tenant_id, namespace, identifier)
        namespace = str(getattr(namespace, "value", namespace))

        try:
            await self.redis.setex(cache_key, ttl, self._encode(tenant_id, value))
        except RedisError as exc:
            logger.error(
                "Cache set error",
                extra={"tenant_id": tenant_id, "namespace": namespace, "error": str(exc)},
            )
            if raise_on_error:
                raise TransientStoreError("Cache unavailable") from exc
            return False

        self._log_set(tenant_id, namespace, ttl)
        return True

    async def generation(self, tenant_id: str, namespace: str, identifier: str) -> Optional[int]:
        """Current generation of one entry; None when the store is unreachable"""
        cache_key = generate_cache_key(tenant_id, namespace, identifier)
        try:
            current = await self.redis.get(generation_key(cache_key))
        except RedisError as exc:
            logger.error("Cache generation read error", extra={"tenant_id": tenant_id, "error": str(exc)})
            return None
        return int(current or 0)

    async def set_if_generation(
        self,
        tenant_id: str,
        namespace: str,
        identifier: str,
        value: Any,
        ttl: int,
        expected_generation: int,
    ) -> bool:
        """
        Store ``value`` only if no eviction happened since ``expected_generation``
        was read. Never raises for store errors; returns whether it wrote.
        """
        cache_key = generate_cache_key(tenant_id, namespace, identifier)
        namespace = str(getattr(namespace, "value", namespace))
        counter_key = generation_key(cache_key)
        payload = self._encode(tenant_id, value)

        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                await pipe.watch(counter_key)
                if int(await pipe.get(counter_key) or 0) != expected_generation:
                    logger.info(
                        "Skipping stale cache population",
                        extra={"tenant_id": tenant_id, "namespace": namespace},
                    )
                    return False
                pipe.multi()
                pipe.setex(cache_key, ttl, payload)
                await pipe.execute()
        except WatchError:
            logger.info(
                "Skipping stale cache population",
                extra={"tenant_id": tenant_id, "namespace": namespace},
            )
            return False
        except RedisError as exc:
            logger.error(
                "Cache set error",
                extra={"tenant_id": tenant_id, "namespace": namespace, "error": str(exc)},
            )
            return False

        self._log_set(tenant_id, namespace, ttl)
        return True

    async def read_through(
        self,
        tenant_id: str,
        namespace: str,
        identifier: str,
        loader: Callable[[], Awaitable[Optional[Any]]],
        ttl: int,
    ) -> Optional[Any]:
        """
        Cached value, else ``loader()``'s result cached under a generation
        guard. A None result is not cached.
        """
        cached = await self.get(tenant_id, namespace, identifier)
        if cached is not None:
            return cached

        generation = await self.generation(tenant_id, namespace, identifier)
        value = await loader()
        if value is not None and generation is not None:
            await self.set_if_generation(tenant_id, namespace, identifier, value, ttl, generation)
        return value

    async def get(self, tenant_id: str, namespace: str, identifier: str) -> Optional[Any]:
        """
        Get a value cached for ``tenant_id``.

        Unreachable store, undecodable payloads and tenant tag mismatches are
        all misses.
        """
        cache_key = generate_cache_key(tenant_id, namespace, identifier)
        namespace = str(getattr(namespace, "value", namespace))

        try:
            cached_value = await self.redis.get(cache_key)
        except RedisError as exc:
            logger.error(
                "Cache get error",
                extra={"tenant_id": tenant_id, "namespace": namespace, "error": str(exc)},
            )
            return None

        if cached_value is None:
            return None

        try:
            parsed = json.loads(cached_value)
        except (TypeError, ValueError):
            logger.warning("Discarding undecodable cache entry", extra={"tenant_id": tenant_id, "namespace": namespace})
            return None

        if not isinstance(parsed, dict) or parsed.get("tenant_id") != tenant_id:
            security_logger.error(
                "Tenant isolation violation in cache",
                extra={
                    "event": "TenantIsolationViolation",
                    "requested_tenant": tenant_id,
                    "cached_tenant": parsed.get("tenant_id") if isinstance(parsed, dict) else None,
                    "namespace": namespace,
                    "identifier": identifier,
                },
            )
            return None

        return parsed.get("data")

    async def delete(self, tenant_id: str, namespace: str, identifier: str) -> None:
        """Delete one cache entry"""
        cache_key = generate_cache_key(tenant_id, namespace, identifier)
        try:
            await self._bump_generation(cache_key)
            await self.redis.delete(cache_key)
        except RedisError as exc:
            logger.error("Cache delete error", extra={"tenant_id": tenant_id, "error": str(exc)})
            raise TransientStoreError("Cache unavailable") from exc

        logger.info(
            "Cache deleted",
            extra={"tenant_id": tenant_id, "namespace": str(getattr(namespace, "value", namespace))},
        )

    async def clear_pattern(self, pattern: str) -> int:
        """Delete every key matching ``pattern``; returns the number removed"""
        cleared = 0
        try:
            batch = []
            async for key in self.redis.scan_iter(match=pattern, count=SCAN_BATCH_SIZE):
                batch.append(key)
                if len(batch) >= SCAN_BATCH_SIZE:
                    cleared += await self.redis.delete(*batch)
                    batch = []
            if batch:
                cleared += await self.redis.delete(*batch)
        except RedisError as exc:
            logger.error("Cache pattern clear error", extra={"pattern": pattern, "error": str(exc)})
            raise TransientStoreError("Cache unavailable") from exc

        logger.info("Cache pattern cleared", extra={"pattern": pattern, "keys_cleared": cleared})
        return cleared

    async def invalidate_tenant(self, tenant_id: str) -> int:
        """Invalidate all cache for a tenant"""
        tenant_id = validate_tenant_id(tenant_id)
        return await self.clear_pattern(f"tenant:{tenant_id}:*")

    async def invalidate_health(self, tenant_id: str, user_id: str) -> int:
        """Invalidate health-related cache for specific user"""
        return await self.invalidate_for_user(
            tenant_id,
            user_id,
            namespaces=(CacheNamespace.HEALTH, CacheNamespace.MEDICAL, CacheNamespace.PROFILE),
        )

    async def invalidate_for_user(
        self,
        tenant_id: str,
        user_id: str,
        namespaces: Iterable[CacheNamespace] = tuple(CacheNamespace),
    ) -> int:
        """Evict ``{user_id}`` and ``{user_id}:*`` in each namespace"""
        cleared = 0
        for namespace in namespaces:
            exact_key = generate_cache_key(tenant_id, namespace, user_id)
            try:
                await self._bump_generation(exact_key)
            except RedisError as exc:
                logger.error("Cache generation bump error", extra={"tenant_id": tenant_id, "error": str(exc)})
                raise TransientStoreError("Cache unavailable") from exc
            cleared += await self.clear_pattern(exact_key)
            cleared += await self.clear_pattern(f"{exact_key}:*")
        return cleared

    async def health_check(self) -> Dict[str, Any]:
        """Health check for Redis"""
        start = time.perf_counter()
        try:
            await self.redis.ping()
        except RedisError as exc:
            return {"status": "unhealthy", "details": {"error": str(exc)}}
        return {
            "status": "healthy",
            "details": {"latency_ms": round((time.perf_counter() - start) * 1000, 2)},
        }

    async def _bump_generation(self, cache_key: str) -> None:
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.incr(generation_key(cache_key))
            pipe.expire(generation_key(cache_key), GENERATION_TTL)
            await pipe.execute()

    @staticmethod
    def _encode(tenant_id: str, value: Any) -> str:
        return json.dumps({
            "data": value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "tenant_id": tenant_id,
        })

    @staticmethod
    def _log_set(tenant_id: str, namespace: str, ttl: int) -> None:
        if namespace in SENSITIVE_NAMESPACES:
            logger.info(
                "Cache set for sensitive data",
                extra={"tenant_id": tenant_id, "namespace": namespace, "ttl": ttl},
            )
