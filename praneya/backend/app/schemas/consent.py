# backend/app/schemas/consent.py
from uuid import UUID

from app.core.input_validation import SecureBaseModel


class ConsentCreate(SecureBaseModel):
    disclaimer_id: UUID
