"""
AuthTokenManager - sole owner of the bearer-token session.

Responsibilities:
- attach ``Authorization: Bearer <token>`` to outgoing requests
- persist the session (auth_token / user_data) in a SessionStore
- tear the session down on 401 and emit SessionEvent.EXPIRED
- single-flight token refresh shared by every concurrent caller
- follow changes made by other contexts sharing the same store
"""

import asyncio
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from loguru import logger

from glynac.services.errors import ApiError
from glynac.services.storage import (
    AUTH_TOKEN_KEY,
    USER_DATA_KEY,
    MemorySessionStore,
    SessionStore,
)
from glynac.services.transport import RequestDescriptor


class SessionEvent(str, Enum):
    """Session lifecycle signals."""

    LOGGED_IN = "LOGGED_IN"
    REFRESHED = "REFRESHED"
    LOGGED_OUT = "LOGGED_OUT"
    EXPIRED = "EXPIRED"  # UI should send the user to the login surface


@dataclass
class AuthSession:
    token: str
    user: dict[str, Any] | None = None


SessionListener = Callable[[SessionEvent, AuthSession | None], None]
TokenRefresher = Callable[[str], Awaitable[str]]


class AuthTokenManager:
    """
    Manages the auth session for one client context.

    Usage:
        auth = AuthTokenManager(store)
        auth.restore()
        auth.subscribe(lambda event, session: ...)
        descriptor = auth.attach(descriptor)
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        refresher: TokenRefresher | None = None,
    ):
        self._store = store or MemorySessionStore()
        self._refresher = refresher
        self._session: AuthSession | None = None
        self._listeners: list[SessionListener] = []
        self._refresh_task: asyncio.Task[str | None] | None = None
        self._unsubscribe_store = self._store.subscribe(self._on_store_change)

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def session(self) -> AuthSession | None:
        return self._session

    @property
    def token(self) -> str | None:
        return self._session.token if self._session else None

    @property
    def user(self) -> dict[str, Any] | None:
        return self._session.user if self._session else None

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    def set_refresher(self, refresher: TokenRefresher) -> None:
        self._refresher = refresher

    def restore(self) -> AuthSession | None:
        """Load a persisted session; corrupted user data clears everything."""
        token = self._store.get(AUTH_TOKEN_KEY)
        raw_user = self._store.get(USER_DATA_KEY)

        if not token:
            self._session = None
            return None

        user = None
        if raw_user:
            try:
                user = json.loads(raw_user)
            except ValueError:
                logger.error("Stored user data is corrupted, clearing session")
                self._store.remove(AUTH_TOKEN_KEY, origin=self)
                self._store.remove(USER_DATA_KEY, origin=self)
                self._session = None
                return None

        self._session = AuthSession(token=token, user=user)
        logger.info("Restored persisted auth session")
        return self._session

    def attach(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        """Return the descriptor with the current bearer token (if any)."""
        token = self.token
        if not token:
            return descriptor.without_header("Authorization")
        return descriptor.with_headers({"Authorization": f"Bearer {token}"})

    def set_token(self, token: str | None) -> None:
        """Replace (or clear, with None) the bearer token."""
        if token is None:
            if self._session is None and self._store.get(AUTH_TOKEN_KEY) is None:
                return
            self._session = None
            self._store.remove(AUTH_TOKEN_KEY, origin=self)
            return

        self._store.reload()
        user = self._session.user if self._session else None
        self._session = AuthSession(token=token, user=user)
        self._store.set(AUTH_TOKEN_KEY, token, origin=self)

    def set_session(self, token: str, user: dict[str, Any] | None) -> AuthSession:
        """Start a session after a successful login or register."""
        self._store.reload()
        self._session = AuthSession(token=token, user=user)
        self._store.set(AUTH_TOKEN_KEY, token, origin=self)
        if user is not None:
            self._store.set(USER_DATA_KEY, json.dumps(user), origin=self)
        self._emit(SessionEvent.LOGGED_IN)
        return self._session

    def update_user(self, user: dict[str, Any]) -> None:
        """Replace the stored user profile, keeping the token."""
        self._store.reload()
        if self._session is None:
            logger.debug("[Auth] No session, user profile not stored")
            return
        self._session.user = user
        self._store.set(USER_DATA_KEY, json.dumps(user), origin=self)

    def clear(self) -> None:
        """Drop the session and its persisted keys."""
        self._session = None
        self._store.remove(AUTH_TOKEN_KEY, origin=self)
        self._store.remove(USER_DATA_KEY, origin=self)

    def logout(self) -> None:
        had_session = self._session is not None
        self.clear()
        if had_session:
            self._emit(SessionEvent.LOGGED_OUT)

    def on_unauthorized(self) -> None:
        """React to a 401: clear credentials and signal session expiry."""
        logger.warning("Received 401, clearing auth session")
        self.clear()
        self._emit(SessionEvent.EXPIRED)

    async def refresh(self) -> str | None:
        """
        Exchange the current token for a new one.

        Concurrent callers share a single refresh. On failure the session is
        torn down as on logout and EXPIRED is emitted.
        """
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._do_refresh())
        # shield: a cancelled caller must not cancel the shared refresh
        return await asyncio.shield(self._refresh_task)

    async def _do_refresh(self) -> str | None:
        token = self.token
        if not token or self._refresher is None:
            logger.debug("[Auth] Nothing to refresh")
            return None

        try:
            new_token = await self._refresher(token)
        except ApiError as e:
            logger.warning(f"Token refresh failed: {e.message}")
            self.clear()
            self._emit(SessionEvent.EXPIRED)
            return None

        # A logout during the refresh wins, including one in another process
        self._store.reload()
        if self.token != token:
            return self.token

        self.set_token(new_token)
        logger.info("Auth token refreshed")
        self._emit(SessionEvent.REFRESHED)
        return new_token

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a session listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def detach(self) -> None:
        """Stop following the shared store."""
        self._unsubscribe_store()

    def _on_store_change(
        self, key: str, old: str | None, new: str | None, origin: Any
    ) -> None:
        if origin is self:
            return

        if key == AUTH_TOKEN_KEY:
            if new is None:
                if self._session is not None:
                    logger.info("Auth token removed in another context, logging out")
                    self._session = None
                    self._emit(SessionEvent.LOGGED_OUT)
            elif self.token != new:
                user = self._session.user if self._session else self._stored_user()
                self._session = AuthSession(token=new, user=user)
                self._emit(SessionEvent.REFRESHED)

        elif key == USER_DATA_KEY and self._session is not None and new is not None:
            try:
                self._session.user = json.loads(new)
            except ValueError:
                logger.warning("Ignoring corrupted user data from another context")

    def _stored_user(self) -> dict[str, Any] | None:
        raw = self._store.get(USER_DATA_KEY)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            return None

    def _emit(self, event: SessionEvent) -> None:
        logger.debug(f"[Auth] {event.value}")
        for listener in list(self._listeners):
            try:
                listener(event, self._session)
            except Exception as e:
                logger.error(f"Session listener failed on {event.value}: {e}")
