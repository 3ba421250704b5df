import logging
import time
import uuid
from datetime import timedelta
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlencode, urlsplit

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from finacco.core import security
from finacco.core.clock import utcnow
from finacco.core.config import settings
from finacco.core.errors import AuthError, ConflictError, ExternalServiceError, FormValidationError, NotFoundError
from finacco.db.repositories.profile_repository import ProfileRepository
from finacco.db.repositories.user_repository import RefreshTokenRepository, UserRepository
from finacco.domains.identity.entities import AuthChangeEvent, Session, User
from finacco.domains.identity.mailer import Mailer
from finacco.domains.identity.schemas import MIN_PASSWORD_LENGTH
from finacco.domains.profiles.entities import Profile

logger = logging.getLogger(__name__)

AuthListener = Callable[[AuthChangeEvent, Optional[Session]], None]

OAUTH_PROVIDERS = ("google",)
OAUTH_STATE_TTL = timedelta(minutes=10)

_listeners: List[AuthListener] = []


def on_auth_state_change(listener: AuthListener) -> Callable[[], None]:
    """Register a provider-level auth event listener; returns the unsubscribe callable."""
    _listeners.append(listener)

    def unsubscribe() -> None:
        if listener in _listeners:
            _listeners.remove(listener)

    return unsubscribe


def _emit(event: AuthChangeEvent, session: Optional[Session]) -> None:
    for listener in list(_listeners):
        try:
            listener(event, session)
        except Exception:
            logger.exception("Auth state listener failed for %s", event.value)


def safe_redirect(target: Optional[str], default: str) -> str:
    """``target`` when it is a local path or a URL on the site's own origin, else ``default``."""
    if not target:
        return default
    if not any(ord(c) < 33 or c == "\\" for c in target):
        parts = urlsplit(target)
        if not parts.scheme and not parts.netloc:
            if target.startswith("/") and not target.startswith("//"):
                return target
        else:
            site = urlsplit(settings.site_url)
            if (parts.scheme.lower(), parts.netloc.lower()) == (site.scheme.lower(), site.netloc.lower()):
                return target
    logger.warning("Ignoring off-site redirect target %r", target)
    return default


class IdentityService:
    """Auth provider: accounts, sessions, confirmation and recovery links, OAuth"""

    def __init__(self, session: AsyncSession, mailer: Mailer = None, http_client: httpx.AsyncClient = None):
        self.session = session
        self.user_repository = UserRepository(session)
        self.refresh_tokens = RefreshTokenRepository(session)
        self.profiles = ProfileRepository(session)
        self.mailer = mailer or Mailer()
        self.http_client = http_client

    async def _issue_session(self, user: User) -> Session:
        claims = {"sub": str(user.uuid), "email": user.email}
        access_token = security.create_access_token(claims)
        refresh_token = security.create_refresh_token(claims)

        refresh_claims = security.verify_token(refresh_token, security.REFRESH)
        await self.refresh_tokens.create(
            user.uuid,
            refresh_claims["jti"],
            expires_at=utcnow() + timedelta(days=settings.refresh_token_expire_days),
        )

        return Session(
            user_id=user.uuid,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=time.time() + settings.access_token_expire_minutes * 60,
            email=user.email,
        )

    async def sign_up(self, email: str, password: str, full_name: Optional[str] = None) -> User:
        """Create an unconfirmed account and mail the confirmation link."""
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise FormValidationError({"password": f"Password must be at least {MIN_PASSWORD_LENGTH} characters"})

        if await self.user_repository.email_exists(email):
            raise ConflictError("User already registered")

        user = await self.user_repository.create(User.create_user(email, password, full_name))
        await self.profiles.upsert(Profile.for_user(user.uuid, user.email, full_name))

        token = security.create_email_token({"sub": str(user.uuid)}, security.EMAIL_CONFIRM)
        link = f"{settings.site_url}/auth/confirm?{urlencode({'token': token})}"
        await self.mailer.send(
            user.email,
            "Confirm your Finacco Solutions account",
            f"Welcome to Finacco Solutions.\n\nConfirm your email address by opening this link:\n{link}\n",
        )

        logger.info("User %s signed up", user.uuid)
        return user

    async def confirm_email(self, token: str) -> User:
        payload = security.verify_token(token, security.EMAIL_CONFIRM)
        if not payload:
            raise AuthError("Invalid or expired confirmation link", code="invalid_confirmation")

        user = await self.user_repository.get_by_uuid(uuid.UUID(payload["sub"]))
        if not user:
            raise AuthError("Invalid or expired confirmation link", code="invalid_confirmation")

        if not user.is_confirmed:
            user.confirm_email()
            user = await self.user_repository.update(user)
            _emit(AuthChangeEvent.USER_UPDATED, None)
            logger.info("User %s confirmed email", user.uuid)
        return user

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        user = await self.user_repository.get_by_email(email)

        if not user or not user.authenticate(password):
            raise AuthError("Invalid login credentials", code="invalid_credentials")
        if not user.is_active:
            raise AuthError("Account is disabled", code="account_disabled")
        if not user.is_confirmed:
            raise AuthError("Email not confirmed", code="email_not_confirmed")

        session = await self._issue_session(user)
        logger.info("User %s signed in", user.uuid)
        _emit(AuthChangeEvent.SIGNED_IN, session)
        return session

    async def refresh_session(self, refresh_token: str) -> Session:
        """Exchange a refresh token for a new session; the old refresh token is revoked."""
        payload = security.verify_token(refresh_token, security.REFRESH)
        if not payload or not await self.refresh_tokens.is_active(payload["jti"]):
            raise AuthError("Invalid refresh token", code="invalid_refresh_token")

        await self.refresh_tokens.revoke(payload["jti"])

        user = await self.user_repository.get_by_uuid(uuid.UUID(payload["sub"]))
        if not user or not user.is_active:
            raise AuthError("Invalid refresh token", code="invalid_refresh_token")

        session = await self._issue_session(user)
        logger.info("Session refreshed for user %s", user.uuid)
        _emit(AuthChangeEvent.TOKEN_REFRESHED, session)
        return session

    async def get_user(self, access_token: str) -> User:
        payload = security.verify_token(access_token, security.ACCESS)
        if not payload:
            raise AuthError("Invalid or expired token", code="invalid_token")

        user = await self.user_repository.get_by_uuid(uuid.UUID(payload["sub"]))
        if not user or not user.is_active:
            raise AuthError("Invalid or expired token", code="invalid_token")
        return user

    async def sign_out(self, token: str) -> int:
        """Revoke every refresh session of the token's user. Unknown tokens are ignored."""
        payload = security.verify_token(token, security.REFRESH) or security.verify_token(token, security.ACCESS)
        if not payload:
            return 0

        user_id = uuid.UUID(payload["sub"])
        revoked = await self.refresh_tokens.revoke_all_for_user(user_id)
        logger.info("User %s signed out (%d sessions revoked)", user_id, revoked)
        _emit(AuthChangeEvent.SIGNED_OUT, None)
        return revoked

    async def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> None:
        """Mail a recovery link. Unknown addresses are accepted without a trace."""
        user = await self.user_repository.get_by_email(email)
        if not user or not user.password_hash:
            logger.info("Password reset requested for unknown or passwordless account")
            return

        # The hash fingerprint makes the link single-use: it stops matching once the password changes
        token = security.create_email_token(
            {"sub": str(user.uuid), "pwd": user.password_hash[-12:]},
            security.PASSWORD_RESET,
            timedelta(hours=1),
        )
        target = safe_redirect(redirect_to, "/auth")
        if target.startswith("/"):
            target = settings.site_url.rstrip("/") + target
        link = f"{target}?{urlencode({'type': 'recovery', 'token': token})}"
        await self.mailer.send(
            user.email,
            "Reset your Finacco Solutions password",
            f"Open this link to choose a new password:\n{link}\n\nIf you did not ask for this, ignore this email.\n",
        )

    async def update_password(self, token: str, new_password: str) -> User:
        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            raise FormValidationError({"new_password": f"Password must be at least {MIN_PASSWORD_LENGTH} characters"})

        payload = security.verify_token(token, security.PASSWORD_RESET)
        user = await self.user_repository.get_by_uuid(uuid.UUID(payload["sub"])) if payload else None
        if not user or not user.password_hash or user.password_hash[-12:] != payload.get("pwd"):
            raise AuthError("Invalid or expired recovery link", code="invalid_recovery")

        _emit(AuthChangeEvent.PASSWORD_RECOVERY, None)
        user.set_password(new_password)
        user = await self.user_repository.update(user)
        await self.refresh_tokens.revoke_all_for_user(user.uuid)

        logger.info("Password updated for user %s", user.uuid)
        _emit(AuthChangeEvent.USER_UPDATED, None)
        return user

    def sign_in_with_oauth(self, provider: str, redirect_to: Optional[str] = None) -> str:
        """Build the provider authorize URL; the state token carries the post-login path."""
        if provider not in OAUTH_PROVIDERS:
            raise NotFoundError(f"Unsupported OAuth provider '{provider}'")
        if not settings.oauth_google_client_id:
            raise ExternalServiceError("Google sign-in is not configured", code="oauth_not_configured")

        state = security.create_email_token(
            {"provider": provider, "redirect_to": safe_redirect(redirect_to, "/")},
            security.OAUTH_STATE,
            OAUTH_STATE_TTL,
        )
        params = {
            "client_id": settings.oauth_google_client_id,
            "redirect_uri": f"{settings.site_url}/auth/callback",
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "prompt": "select_account",
        }
        return f"{settings.oauth_google_authorize_url}?{urlencode(params)}"

    async def _fetch_oauth_identity(self, client: httpx.AsyncClient, code: str) -> dict:
        token_response = await client.post(
            settings.oauth_google_token_url,
            data={
                "code": code,
                "client_id": settings.oauth_google_client_id,
                "client_secret": settings.oauth_google_client_secret,
                "redirect_uri": f"{settings.site_url}/auth/callback",
                "grant_type": "authorization_code",
            },
        )
        token_response.raise_for_status()
        access_token = token_response.json().get("access_token")
        if not access_token:
            raise ExternalServiceError("Invalid token response from Google")

        info_response = await client.get(
            settings.oauth_google_userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        info_response.raise_for_status()
        return info_response.json()

    async def exchange_oauth_code(self, code: str, state: str) -> Tuple[Session, str]:
        """Complete the callback: returns the new session and the path to continue to."""
        claims = security.verify_token(state, security.OAUTH_STATE)
        if not claims:
            raise AuthError("Invalid or expired OAuth state", code="invalid_oauth_state")

        try:
            if self.http_client is not None:
                info = await self._fetch_oauth_identity(self.http_client, code)
            else:
                async with httpx.AsyncClient(timeout=httpx.Timeout(15.0, connect=5.0)) as client:
                    info = await self._fetch_oauth_identity(client, code)
        except httpx.HTTPError as e:
            logger.error("OAuth code exchange failed: %s", e)
            raise ExternalServiceError("Google authentication failed. Please try again.") from e

        email = info.get("email")
        if not email or info.get("email_verified") is False:
            raise AuthError("OAuth account has no verified email", code="oauth_email_unverified")

        user = await self.user_repository.get_by_email(email)
        if user is None:
            user = await self.user_repository.create(
                User.create_oauth_user(email, claims["provider"], info.get("name"))
            )
        elif not user.is_confirmed:
            user.confirm_email()
            user = await self.user_repository.update(user)

        if not user.is_active:
            raise AuthError("Account is disabled", code="account_disabled")

        await self.profiles.upsert(Profile.for_user(user.uuid, user.email, user.full_name))

        session = await self._issue_session(user)
        logger.info("User %s signed in with %s", user.uuid, claims["provider"])
        _emit(AuthChangeEvent.SIGNED_IN, session)
        return session, safe_redirect(claims.get("redirect_to"), "/")
