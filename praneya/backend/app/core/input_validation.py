# backend/app/core/input_validation.py
"""
Input validation and sanitization
Rejects malformed payloads before any I/O and strips markup from free text
"""

from typing import Any, Dict, Type, TypeVar, Union
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
import bleach

from app.core.exceptions import ValidationError

SchemaType = TypeVar("SchemaType", bound=BaseModel)


class SecureBaseModel(BaseModel):
    """Base model with built-in security validations"""

    # Prevent extra fields, validate on assignment
    model_config = ConfigDict(extra="forbid", validate_assignment=True, populate_by_name=True)


def sanitize_text(value: Any) -> Any:
    """Remove all HTML tags and null bytes from a string"""
    if not isinstance(value, str):
        return value
    clean = bleach.clean(value, tags=[], strip=True)
    return clean.replace("\x00", "")


def validate_payload(schema: Type[SchemaType], data: Union[SchemaType, Dict[str, Any]]) -> SchemaType:
    """
    Parse ``data`` with ``schema``, translating pydantic errors to the
    data access ValidationError with an actionable message.
    """
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'payload'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ValidationError(f"Invalid input: {problems}") from exc
