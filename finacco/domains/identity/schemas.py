from datetime import datetime
from typing import Optional
import uuid

from pydantic import BaseModel, ConfigDict, EmailStr, Field

MIN_PASSWORD_LENGTH = 6


class SignUpRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=128)
    full_name: Optional[str] = Field(None, max_length=200)


class SignInRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class SignOutRequest(BaseModel):
    refresh_token: Optional[str] = None


class PasswordResetRequest(BaseModel):
    email: EmailStr
    redirect_to: Optional[str] = None


class PasswordUpdateRequest(BaseModel):
    token: str
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=128)


class SessionResponse(BaseModel):
    """Token set returned on sign-in and refresh"""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: float
    user_id: uuid.UUID
    email: Optional[str] = None


class UserResponse(BaseModel):
    uuid: uuid.UUID
    email: EmailStr
    full_name: Optional[str] = None
    provider: str
    is_confirmed: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OAuthStartResponse(BaseModel):
    url: str


class MessageResponse(BaseModel):
    message: str


class CallbackResponse(SessionResponse):
    redirect_to: str = "/"
