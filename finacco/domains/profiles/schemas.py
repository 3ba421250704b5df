from datetime import datetime
from typing import Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator

PHONE_CHARS = set("+0123456789 -()")


class ProfileUpdate(BaseModel):
    """Editable account fields; anything else (is_admin included) is rejected."""
    full_name: Optional[str] = Field(None, max_length=200)
    phone: Optional[str] = Field(None, max_length=30)

    model_config = ConfigDict(extra="forbid")

    @field_validator("full_name", "phone")
    @classmethod
    def strip_value(cls, v):
        return v.strip() if v is not None else v

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v and not set(v) <= PHONE_CHARS:
            raise ValueError("Please enter a valid phone number")
        return v


class ProfileResponse(BaseModel):
    id: uuid.UUID
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    is_admin: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
