from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from finacco.core.auth import bearer_scheme, get_current_user
from finacco.core.db import get_db
from finacco.core.errors import AuthError
from finacco.domains.identity.entities import Session, User
from finacco.domains.identity.mailer import Mailer
from finacco.domains.identity.schemas import (
    CallbackResponse, MessageResponse, OAuthStartResponse, PasswordResetRequest,
    PasswordUpdateRequest, RefreshRequest, SessionResponse, SignInRequest,
    SignOutRequest, SignUpRequest, UserResponse,
)
from finacco.domains.identity.services import IdentityService

router = APIRouter(prefix="/auth", tags=["authentication"])

CONFIRMATION_SUCCESS_PATH = "/auth/confirmation/success"
CONFIRMATION_ERROR_PATH = "/auth/confirmation/error"


def get_mailer() -> Mailer:
    return Mailer()


def session_response(session: Session) -> SessionResponse:
    return SessionResponse(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_at=session.expires_at,
        user_id=session.user_id,
        email=session.email,
    )


def user_response(user: User) -> UserResponse:
    return UserResponse(
        uuid=user.uuid,
        email=user.email,
        full_name=user.full_name,
        provider=user.provider,
        is_confirmed=user.is_confirmed,
        created_at=user.created_at,
    )


@router.get("")
async def sign_in_entry(next: Optional[str] = Query(None)):
    """Sign-in entry point; ``next`` is where the client returns after signing in."""
    return {
        "next": next or "/",
        "methods": ["password", "google"],
        "sign_in": "/auth/sign-in",
        "sign_up": "/auth/sign-up",
        "oauth": "/auth/oauth/google",
    }


@router.post("/sign-up", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(data: SignUpRequest, db: AsyncSession = Depends(get_db), mailer: Mailer = Depends(get_mailer)):
    user = await IdentityService(db, mailer).sign_up(data.email, data.password, data.full_name)
    return user_response(user)


@router.post("/sign-in", response_model=SessionResponse)
async def sign_in(data: SignInRequest, db: AsyncSession = Depends(get_db)):
    session = await IdentityService(db).sign_in_with_password(data.email, data.password)
    return session_response(session)


@router.post("/refresh", response_model=SessionResponse)
async def refresh(data: RefreshRequest, db: AsyncSession = Depends(get_db)):
    session = await IdentityService(db).refresh_session(data.refresh_token)
    return session_response(session)


@router.post("/sign-out", response_model=MessageResponse)
async def sign_out(
    data: Optional[SignOutRequest] = None,
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
):
    token = (data.refresh_token if data else None) or (credentials.credentials if credentials else None)
    if not token:
        raise AuthError("Not authenticated", code="not_authenticated")
    await IdentityService(db).sign_out(token)
    return MessageResponse(message="Signed out")


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)):
    return user_response(user)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    data: PasswordResetRequest,
    db: AsyncSession = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    await IdentityService(db, mailer).reset_password_for_email(data.email, data.redirect_to)
    return MessageResponse(message="If an account exists for this email, a password reset link has been sent")


@router.post("/update-password", response_model=UserResponse)
async def update_password(data: PasswordUpdateRequest, db: AsyncSession = Depends(get_db)):
    user = await IdentityService(db).update_password(data.token, data.new_password)
    return user_response(user)


@router.get("/oauth/{provider}", response_model=OAuthStartResponse)
async def oauth_start(provider: str, redirect_to: Optional[str] = Query(None), db: AsyncSession = Depends(get_db)):
    return OAuthStartResponse(url=IdentityService(db).sign_in_with_oauth(provider, redirect_to))


@router.get("/callback", response_model=CallbackResponse)
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    if error or not code or not state:
        raise AuthError(f"OAuth sign-in failed: {error or 'missing code'}", code="oauth_failed")
    session, redirect_to = await IdentityService(db).exchange_oauth_code(code, state)
    return CallbackResponse(**session_response(session).model_dump(), redirect_to=redirect_to)


@router.get("/confirm")
async def confirm_email(token: str = Query(...), db: AsyncSession = Depends(get_db)):
    """Target of the emailed confirmation link."""
    try:
        await IdentityService(db).confirm_email(token)
    except AuthError:
        return RedirectResponse(CONFIRMATION_ERROR_PATH, status_code=status.HTTP_303_SEE_OTHER)
    return RedirectResponse(CONFIRMATION_SUCCESS_PATH, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/confirmation/success", response_model=MessageResponse)
async def confirmation_success():
    return MessageResponse(message="Your email has been confirmed. You can now sign in.")


@router.get("/confirmation/error", response_model=MessageResponse)
async def confirmation_error():
    return MessageResponse(message="The confirmation link is invalid or has expired. Please sign up again or request a new link.")
