import asyncio
import enum
import logging
import uuid
from typing import Awaitable, Callable, NamedTuple, Optional, Set
from urllib.parse import quote

from finacco.core.config import settings
from finacco.domains.identity.entities import AuthChangeEvent, Session
from finacco.domains.session.manager import SIGN_IN_PATH, SessionManager

logger = logging.getLogger(__name__)

AdminLookup = Callable[[uuid.UUID], Awaitable[bool]]


class GuardState(str, enum.Enum):
    UNCHECKED = "unchecked"
    CHECKING = "checking"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"
    ADMIN_VERIFIED = "admin_verified"
    ADMIN_DENIED = "admin_denied"


class GuardResult(NamedTuple):
    checked: bool
    is_authenticated: bool
    is_admin: bool
    redirect_to: Optional[str] = None


def sign_in_redirect(requested_path: str) -> str:
    """Sign-in entry point that returns the user to ``requested_path`` afterwards."""
    return f"{SIGN_IN_PATH}?next={quote(requested_path or '/', safe='/')}"


class AuthGuard:
    """Gate for one protected route.

    Each check bumps a generation counter; a check that finishes after a newer
    one has started leaves the state alone.
    """

    def __init__(
        self,
        manager: SessionManager,
        is_admin_lookup: Optional[AdminLookup] = None,
        admin_only: bool = False,
        interval: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if admin_only and is_admin_lookup is None:
            raise ValueError("Admin-only routes need an admin lookup")
        self.manager = manager
        self.is_admin_lookup = is_admin_lookup
        self.admin_only = admin_only
        self.interval = settings.auth_guard_interval_seconds if interval is None else interval
        self._sleep = sleep

        self.state = GuardState.UNCHECKED
        self.result = GuardResult(checked=False, is_authenticated=False, is_admin=False)
        self.requested_path = "/"
        self._generation = 0
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._timer: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    async def _lookup_admin(self, session: Session) -> bool:
        try:
            return bool(await self.is_admin_lookup(session.user_id))
        except Exception as e:
            logger.warning("Admin lookup failed for %s, denying: %s", session.user_id, e)
            return False

    async def protect(self, requested_path: Optional[str] = None) -> GuardResult:
        if requested_path is not None:
            self.requested_path = requested_path
        self._generation += 1
        generation = self._generation
        self.state = GuardState.CHECKING

        try:
            session = await self.manager.get_session()
        except Exception as e:
            logger.warning("Session check failed: %s", e)
            session = None

        if generation != self._generation:
            return self.result

        if session is None:
            state = GuardState.UNAUTHENTICATED
            result = GuardResult(True, False, False, sign_in_redirect(self.requested_path))
        elif not self.admin_only:
            state = GuardState.AUTHENTICATED
            result = GuardResult(True, True, False)
        else:
            self.state = GuardState.AUTHENTICATED
            is_admin = await self._lookup_admin(session)
            if generation != self._generation:
                return self.result
            if is_admin:
                state = GuardState.ADMIN_VERIFIED
                result = GuardResult(True, True, True)
            else:
                state = GuardState.ADMIN_DENIED
                result = GuardResult(True, True, False, "/")

        self.state = state
        self.result = result
        logger.debug("Guard for %s: %s", self.requested_path, state.value)
        return result

    def _on_auth_change(self, event: AuthChangeEvent, session: Optional[Session]) -> None:
        try:
            task = asyncio.get_running_loop().create_task(self.protect())
        except RuntimeError:
            logger.debug("No running loop for %s re-check", event.value)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _periodic(self) -> None:
        while True:
            await self._sleep(self.interval)
            await self.protect()

    def start(self) -> None:
        """Re-check on auth state changes and on a timer until stopped."""
        if self._unsubscribe is None:
            self._unsubscribe = self.manager.subscribe(self._on_auth_change)
        if self._timer is None or self._timer.done():
            self._timer = asyncio.get_running_loop().create_task(self._periodic())

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for task in list(self._pending):
            task.cancel()
        self._generation += 1
