# backend/app/db/repositories/base.py
from typing import Any, Generic, TypeVar, Type, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.sql import Select

from app.core.tenant import validate_tenant_id

ModelType = TypeVar("ModelType")


class TenantRepository(Generic[ModelType]):
    """
    Base repository with common CRUD operations, bound to one tenant.

    Every statement built here carries the tenant filter. Repositories never
    commit; the transaction coordinator owns the unit of work.
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession, tenant_id: str):
        self.model = model
        self.session = session
        self.tenant_id = validate_tenant_id(tenant_id)

    def scoped(self, query: Optional[Select] = None) -> Select:
        """Restrict a select to the repository's tenant"""
        if query is None:
            query = select(self.model)
        return query.where(self.model.tenant_id == self.tenant_id)

    async def get(self, id: Any) -> Optional[ModelType]:
        """Get by ID"""
        result = await self.session.execute(
            self.scoped().where(self.model.id == id)
        )
        return result.scalar_one_or_none()

    async def count(self, filters: Optional[dict] = None) -> int:
        query = select(func.count()).select_from(self.model).where(
            self.model.tenant_id == self.tenant_id
        )
        if filters:
            for key, value in filters.items():
                query = query.where(getattr(self.model, key) == value)
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def create(self, obj_in: dict) -> ModelType:
        """Create new record inside the current transaction"""
        db_obj = self.model(**{**obj_in, "tenant_id": self.tenant_id})
        self.session.add(db_obj)
        await self.session.flush()
        await self.session.refresh(db_obj)
        return db_obj

    async def update(self, db_obj: ModelType, obj_in: dict) -> ModelType:
        """Apply changes to a record already loaded in this tenant"""
        for key, value in obj_in.items():
            setattr(db_obj, key, value)
        await self.session.flush()
        await self.session.refresh(db_obj)
        return db_obj
