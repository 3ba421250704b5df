from finacco.domains.identity.entities import AuthChangeEvent, Session, User
from finacco.domains.identity.schemas import (
    SignUpRequest, SignInRequest, RefreshRequest, SignOutRequest,
    PasswordResetRequest, PasswordUpdateRequest, SessionResponse, UserResponse,
)

__all__ = [
    "AuthChangeEvent", "Session", "User",
    "SignUpRequest", "SignInRequest", "RefreshRequest", "SignOutRequest",
    "PasswordResetRequest", "PasswordUpdateRequest", "SessionResponse", "UserResponse",
]
