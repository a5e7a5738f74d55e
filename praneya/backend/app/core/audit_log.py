# backend/app/core/audit_log.py
"""
Audit logging for tracked operations.

Mutations of regulated resources are written in the same transaction as their
audit row: if the audit insert fails the mutation is rolled back, and a failed
mutation leaves no audit row. Reads of PHI get their own access event.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import AuditAction, REGULATED_RESOURCES
from app.core.exceptions import AuditWriteFailure, DataAccessError
from app.core.logging import security_logger
from app.db.database import Database
from app.db.models.audit_log import AuditLog
from app.db.repositories.audit_log_repository import AuditLogRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class AuditTrail:
    """
    Mutable record handed to an audited callback.

    The callback may fill in the resource id of a row it created and the
    values it replaced; ``new_values`` defaults to the callback's result.
    """
    resource_id: Optional[str] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RequestMeta:
    """Where a tracked operation came from"""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditLogger:
    """Writes audit entries and wraps mutating callbacks with them"""

    def __init__(self, database: Database):
        self.database = database

    async def record(
        self,
        session: AsyncSession,
        *,
        tenant_id: str,
        actor_id: Optional[str],
        action: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        meta: Optional[RequestMeta] = None,
        idempotency_key: Optional[str] = None,
    ) -> AuditLog:
        """Insert one audit row in the caller's transaction"""
        meta = meta or RequestMeta()
        entry = AuditLog(
            tenant_id=tenant_id,
            user_id=str(actor_id) if actor_id is not None else None,
            action=str(getattr(action, "value", action)),
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            old_values=old_values,
            new_values=new_values,
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
            idempotency_key=idempotency_key,
        )
        try:
            session.add(entry)
            await session.flush()
        except SQLAlchemyError as exc:
            security_logger.error(
                "Audit write failed",
                extra={
                    "event": "audit.write_failed",
                    "tenant_id": tenant_id,
                    "action": entry.action,
                    "resource_type": resource_type,
                    "error": str(exc),
                },
            )
            raise AuditWriteFailure("Audit log write failed") from exc
        return entry

    async def with_audit(
        self,
        tenant_id: str,
        actor_id: Optional[str],
        action: str,
        resource_type: str,
        resource_id: Optional[str],
        fn: Callable[[AsyncSession, AuditTrail], Awaitable[T]],
        *,
        meta: Optional[RequestMeta] = None,
        idempotency_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> T:
        """
        Run ``fn(session, trail)`` and persist an audit entry for it.

        Regulated resource types share one transaction between the mutation
        and its audit row. Other resource types are audited after the commit,
        and a failed audit write there is logged without undoing the change.

        A repeated ``idempotency_key`` returns the recorded result of the
        first call without running ``fn`` again. For non-regulated types the
        key is only as durable as the best-effort audit row that carries it.
        """
        trail = AuditTrail(resource_id=str(resource_id) if resource_id is not None else None)
        regulated = resource_type in REGULATED_RESOURCES
        replayed = False

        async def unit_of_work(session: AsyncSession):
            nonlocal replayed
            if idempotency_key:
                previous = await AuditLogRepository(session, tenant_id).get_by_idempotency_key(
                    idempotency_key
                )
                if previous is not None:
                    replayed = True
                    logger.info(
                        "Replaying audited operation",
                        extra={"tenant_id": tenant_id, "action": previous.action},
                    )
                    return previous.new_values

            try:
                result = await fn(session, trail)
            except Exception:
                logger.warning(
                    "Audited operation failed",
                    extra={"tenant_id": tenant_id, "action": str(getattr(action, "value", action))},
                    exc_info=True,
                )
                raise

            if trail.new_values is None and isinstance(result, dict):
                trail.new_values = result

            if regulated:
                await self.record(
                    session,
                    tenant_id=tenant_id,
                    actor_id=actor_id,
                    action=action,
                    resource_type=resource_type,
                    resource_id=trail.resource_id,
                    old_values=trail.old_values,
                    new_values=trail.new_values,
                    meta=meta,
                    idempotency_key=idempotency_key,
                )
            return result

        result = await self.database.with_transaction(tenant_id, unit_of_work, timeout=timeout)

        if not regulated and not replayed:
            await self._record_best_effort(
                tenant_id=tenant_id,
                actor_id=actor_id,
                action=action,
                resource_type=resource_type,
                resource_id=trail.resource_id,
                old_values=trail.old_values,
                new_values=trail.new_values,
                meta=meta,
                idempotency_key=idempotency_key,
            )
        return result

    async def log_read_access(
        self,
        tenant_id: str,
        requestor_id: Optional[str],
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        action: str = AuditAction.PHI_ACCESS,
    ) -> None:
        """Persist a read event; raises AuditWriteFailure if it cannot"""

        async def write(session: AsyncSession):
            await self.record(
                session,
                tenant_id=tenant_id,
                actor_id=requestor_id,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                new_values=details,
            )

        await self.database.with_transaction(tenant_id, write)

    async def _record_best_effort(self, **kwargs) -> None:
        tenant_id = kwargs["tenant_id"]

        async def write(session: AsyncSession):
            await self.record(session, **kwargs)

        try:
            await self.database.with_transaction(tenant_id, write)
        except DataAccessError:
            security_logger.error(
                "Audit entry lost for committed non-regulated operation",
                extra={
                    "event": "audit.best_effort_failed",
                    "tenant_id": tenant_id,
                    "action": str(getattr(kwargs["action"], "value", kwargs["action"])),
                    "resource_type": kwargs.get("resource_type"),
                },
            )
