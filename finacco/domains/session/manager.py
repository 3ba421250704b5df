"""Process-wide session store.

The manager owns the current :class:`Session`, persists it to a
:class:`SessionStorage` shared with peer contexts and keeps it fresh. Peers
observing the same storage converge on its value: a sign-in, refresh or
sign-out written by one manager is picked up by every other one.

Nothing here raises to callers except an explicit password sign-in; session
check and refresh failures become state transitions (no session).
"""
import asyncio
import json
import logging
import time
from typing import Awaitable, Callable, List, Optional

from finacco.core.config import settings
from finacco.core.errors import AuthError
from finacco.domains.identity.entities import AuthChangeEvent, Session
from finacco.domains.session.provider import AuthProvider
from finacco.domains.session.storage import SessionStorage

logger = logging.getLogger(__name__)

STORAGE_KEY = "finacco.auth.session"
SIGN_IN_PATH = "/auth"
# A session this close to expiry is refreshed before it is handed out
EXPIRY_LEEWAY_SECONDS = 60.0

SessionListener = Callable[[AuthChangeEvent, Optional[Session]], None]


class SessionManager:
    def __init__(
        self,
        provider: AuthProvider,
        storage: Optional[SessionStorage] = None,
        refresh_interval: Optional[float] = None,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        on_sign_in_required: Optional[Callable[[str], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.provider = provider
        self.storage = storage if storage is not None else SessionStorage()
        self.refresh_interval = settings.session_refresh_interval_seconds if refresh_interval is None else refresh_interval
        self.max_retries = max_retries or settings.session_check_retries
        self.base_delay = settings.session_retry_base_delay if base_delay is None else base_delay
        self.on_sign_in_required = on_sign_in_required
        self._sleep = sleep
        self._clock = clock

        self._session: Optional[Session] = None
        self._listeners: List[SessionListener] = []
        self._refresh_task: Optional[asyncio.Task] = None
        self._refresh_lock = asyncio.Lock()
        # Bumped on every sign-out; a refresh that straddles one is discarded
        self._sign_outs = 0

        self._unsubscribe_storage = self.storage.subscribe(self._on_storage_change, owner=self)
        self._session = self._read_storage()

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def is_refreshing(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register for auth state changes; returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: AuthChangeEvent, session: Optional[Session]) -> None:
        logger.info("Auth state changed: %s", event.value)
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception("Session listener failed for %s", event.value)

    def _read_storage(self) -> Optional[Session]:
        raw = self.storage.get(STORAGE_KEY)
        if not raw:
            return None
        try:
            return Session.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding unreadable stored session")
            self.storage.remove(STORAGE_KEY, source=self)
            return None

    def _set_session(self, session: Session, event: AuthChangeEvent) -> Session:
        self._session = session
        self.storage.set(STORAGE_KEY, json.dumps(session.to_dict()), source=self)
        self._notify(event, session)
        return session

    def _drop_local(self) -> bool:
        had_session = self._session is not None or self.storage.get(STORAGE_KEY) is not None
        self._sign_outs += 1
        self._session = None
        self.storage.remove(STORAGE_KEY, source=self)
        return had_session

    def _on_storage_change(self, key: str, old: Optional[str], new: Optional[str]) -> None:
        if key != STORAGE_KEY:
            return

        if new is None:
            self._sign_outs += 1
            if self._session is not None:
                self._session = None
                self.stop_refresh()
                self._notify(AuthChangeEvent.SIGNED_OUT, None)
            return

        session = self._read_storage()
        if session is None or session == self._session:
            return
        event = AuthChangeEvent.SIGNED_IN if self._session is None else AuthChangeEvent.TOKEN_REFRESHED
        self._session = session
        self._notify(event, session)

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        session = await self.provider.sign_in_with_password(email, password)
        return self._set_session(session, AuthChangeEvent.SIGNED_IN)

    async def refresh(self) -> Session:
        """Exchange the current refresh token with the provider.

        Raises AuthError when there is nothing to refresh or the provider
        rejects the token; transport failures propagate unchanged.
        """
        current = self._session
        if current is None:
            raise AuthError("No session to refresh")

        async with self._refresh_lock:
            # Another caller refreshed while this one waited
            if self._session is not None and self._session.refresh_token != current.refresh_token:
                return self._session
            if self._session is None:
                raise AuthError("Session was cleared")

            sign_outs = self._sign_outs
            session = await self.provider.refresh_session(current.refresh_token)
            if sign_outs != self._sign_outs or self._session is None:
                logger.info("Discarding refresh that completed after sign-out")
                raise AuthError("Session was cleared")
            return self._set_session(session, AuthChangeEvent.TOKEN_REFRESHED)

    async def get_session(self) -> Optional[Session]:
        """Current session, refreshed when missing or about to expire.

        Transient refresh failures are retried with exponential backoff; a
        provider rejection is not. Exhausted retries yield None.
        """
        if self._session is None:
            self._session = self._read_storage()
        if self._session is None:
            return None
        if not self._session.is_expired(self._clock(), leeway=EXPIRY_LEEWAY_SECONDS):
            return self._session

        for attempt in range(self.max_retries):
            try:
                return await self.refresh()
            except AuthError as e:
                logger.info("Session refresh rejected: %s", e.message)
                if self._drop_local():
                    self._notify(AuthChangeEvent.SIGNED_OUT, None)
                return None
            except Exception as e:
                logger.warning("Session check attempt %d/%d failed: %s", attempt + 1, self.max_retries, e)
                if attempt < self.max_retries - 1:
                    await self._sleep(self.base_delay * 2 ** attempt)

        logger.error("Session check failed after %d attempts", self.max_retries)
        return None

    def start_refresh(self) -> None:
        if self.is_refreshing:
            return
        self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_loop())

    def stop_refresh(self) -> None:
        task = self._refresh_task
        self._refresh_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _refresh_loop(self) -> None:
        while True:
            await self._sleep(self.refresh_interval)
            if self._session is None:
                continue
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Periodic session refresh failed: %s", e)
                self._refresh_task = None
                self._force_sign_in()
                return

    def _force_sign_in(self) -> None:
        if self._drop_local():
            self._notify(AuthChangeEvent.SIGNED_OUT, None)
        if self.on_sign_in_required is not None:
            self.on_sign_in_required(SIGN_IN_PATH)

    async def handle_visibility_change(self, visible: bool) -> Optional[Session]:
        """Re-validate when the context comes back to the foreground."""
        if not visible:
            return None
        stored = self._read_storage()
        if stored != self._session:
            self._session = stored
        return await self.get_session()

    async def clear_session(self) -> None:
        """Sign out locally and with the provider. Safe to call repeatedly."""
        self.stop_refresh()
        session = self._session or self._read_storage()
        self._drop_local()

        if session is None:
            return

        try:
            await self.provider.sign_out(session.refresh_token)
        except Exception as e:
            logger.warning("Provider sign-out failed: %s", e)
        self._notify(AuthChangeEvent.SIGNED_OUT, None)

    def close(self) -> None:
        self.stop_refresh()
        self._unsubscribe_storage()
        self._listeners.clear()
