# backend/app/db/database.py
"""
Connection pool, tenant context and transaction coordination.

Every operation borrows one pooled connection for the lifetime of its callback
and gives it back on every exit path. Nothing tenant-specific outlives the
transaction it was set in.
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import InterfaceError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import Settings
from app.core.exceptions import TransientStoreError
from app.core.tenant import validate_tenant_id

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _async_url(url: str) -> str:
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


async def set_tenant_context(session: AsyncSession, tenant_id: str) -> None:
    """Set tenant context for Row Level Security, scoped to the current transaction"""
    if session.bind.dialect.name != "postgresql":
        return
    await session.execute(
        text("SELECT set_config('app.current_tenant', :tenant_id, true)"),
        {"tenant_id": tenant_id},
    )


class Database:
    """Owns the engine (connection pool) and hands out tenant-scoped sessions"""

    def __init__(
        self,
        url: str,
        *,
        pool_size: int = 20,
        max_overflow: int = 10,
        pool_timeout: float = 10.0,
        echo: bool = False,
        connect_args: Optional[Dict[str, Any]] = None,
    ):
        self.engine = create_async_engine(
            _async_url(url),
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_pre_ping=True,
            echo=echo,
            connect_args=connect_args or {},
        )
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.DATABASE_URL,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            echo=settings.DEBUG,
        )

    @asynccontextmanager
    async def tenant_session(
        self, tenant_id: str, *, timeout: Optional[float] = None
    ) -> AsyncIterator[AsyncSession]:
        """
        Check out one connection scoped to ``tenant_id``.

        The connection is returned to the pool when the block exits, whatever
        the outcome; uncommitted work is rolled back. ``timeout`` bounds
        checkout plus everything run inside the block.
        """
        tenant_id = validate_tenant_id(tenant_id)

        async with self.session_factory() as session:
            try:
                async with asyncio.timeout(timeout):
                    # Checkout happens here, not lazily on first query
                    await session.connection()
                    await set_tenant_context(session, tenant_id)
                    yield session
            except PoolTimeoutError as exc:
                logger.error(
                    "Connection pool exhausted",
                    extra={"tenant_id": tenant_id, "pool": self.engine.pool.status()},
                )
                raise TransientStoreError("Database connection unavailable") from exc
            except (OperationalError, InterfaceError) as exc:
                logger.error(
                    "Database error with tenant context",
                    extra={"tenant_id": tenant_id, "error": str(exc.orig)},
                )
                raise TransientStoreError("Database operation failed") from exc

    async def with_tenant(
        self,
        tenant_id: str,
        fn: Callable[[AsyncSession], Awaitable[T]],
        *,
        timeout: Optional[float] = None,
    ) -> T:
        """Run ``fn(session)`` on a tenant-scoped connection"""
        async with self.tenant_session(tenant_id, timeout=timeout) as session:
            return await fn(session)

    async def with_transaction(
        self,
        tenant_id: str,
        fn: Callable[[AsyncSession], Awaitable[T]],
        *,
        timeout: Optional[float] = None,
    ) -> T:
        """
        Run ``fn(session)`` as one atomic unit of work.

        Commits only if ``fn`` returns; any exception, cancellation included,
        rolls everything back.
        """
        async with self.tenant_session(tenant_id, timeout=timeout) as session:
            try:
                result = await fn(session)
                await session.commit()
            except BaseException:
                await session.rollback()
                raise
            return result

    async def init_db(self) -> None:
        """Initialize database (create tables)"""
        from app.db.base import Base
        from app.db import models  # noqa: F401  registers every model

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def health_check(self) -> Dict[str, Any]:
        """Round-trip a trivial query and report pool usage"""
        start = time.perf_counter()
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as exc:
            return {"status": "unhealthy", "details": {"error": str(exc)}}

        return {
            "status": "healthy",
            "details": {
                "latency_ms": round((time.perf_counter() - start) * 1000, 2),
                "pool": self.engine.pool.status(),
            },
        }

    async def close(self) -> None:
        """Close database connections"""
        await self.engine.dispose()
        logger.info("Database pool closed")
