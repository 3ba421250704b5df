import uuid
from datetime import timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from finacco.core.clock import utcnow
from finacco.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS = "access"
REFRESH = "refresh"
EMAIL_CONFIRM = "email_confirm"
PASSWORD_RESET = "password_reset"
OAUTH_STATE = "oauth_state"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    # bcrypt only looks at the first 72 bytes
    return pwd_context.verify(plain_password[:72], hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password[:72])


def _encode(data: Dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    now = utcnow()
    to_encode.update({
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
        "jti": uuid.uuid4().hex,
    })
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed access token (default lifetime from settings)."""
    return _encode(data, ACCESS, expires_delta or timedelta(minutes=settings.access_token_expire_minutes))


def create_refresh_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    return _encode(data, REFRESH, expires_delta or timedelta(days=settings.refresh_token_expire_days))


def create_email_token(data: Dict[str, Any], token_type: str, expires_delta: Optional[timedelta] = None) -> str:
    """One-time token for confirmation, password reset and OAuth state links."""
    return _encode(data, token_type, expires_delta or timedelta(hours=settings.email_token_expire_hours))


def verify_token(token: str, token_type: str = ACCESS) -> Optional[Dict[str, Any]]:
    """Decode a token and check its type; None when invalid or expired."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None

    if payload.get("type") != token_type:
        return None

    return payload


def extract_token_from_header(authorization: str) -> Optional[str]:
    """Extract the bearer token from an Authorization header."""
    if not authorization:
        return None

    parts = authorization.split()

    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None

    return parts[1]
