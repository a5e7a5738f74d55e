# backend/app/db/base.py
from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, DateTime, inspect
from datetime import datetime, date, timezone
from decimal import Decimal
from typing import Any, Dict
import uuid

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_primitive(value: Any) -> Any:
    """Convert a column value to something json.dumps accepts"""
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


class BaseModel(Base):
    """Abstract base model with common fields"""
    __abstract__ = True

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize mapped columns to a JSON-safe dict"""
        return {
            attr.key: to_primitive(getattr(self, attr.key))
            for attr in inspect(self).mapper.column_attrs
        }


class TenantScopedModel(BaseModel):
    """Base for every row owned by a tenant; subclasses define tenant_id"""
    __abstract__ = True
