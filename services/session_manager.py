"""Session lifecycle: validation, proactive refresh and expiry sign-out.

The manager owns two scoped resources, an auth event subscription and a
periodic re-validation task. Both are acquired by `start()` and released by
`stop()`; `async with manager:` does both.
"""

import asyncio
import time
from enum import Enum
from typing import Callable, Optional

from core.config import settings
from core.exceptions import AppException
from core.logger import get_logger
from schemas import SessionInfo
from services.app_state import AppState
from services.auth_client import AuthClient, AuthEvent, Subscription

logger = get_logger("services.session_manager")

SESSION_EXPIRED_TITLE = "Session Expired"
SESSION_EXPIRED_MESSAGE = "Your session has expired. Please sign in again."


class SessionStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    VALID = "valid"
    EXPIRING = "expiring"
    INVALID = "invalid"
    CLEARED = "cleared"


class SessionLifecycleManager:
    """Keeps `AppState.user` in step with the identity session."""

    def __init__(
        self,
        auth: AuthClient,
        state: AppState,
        refresh_buffer: Optional[int] = None,
        check_interval: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.auth = auth
        self.state = state
        self.refresh_buffer = refresh_buffer if refresh_buffer is not None else settings.session_refresh_buffer_seconds
        self.check_interval = check_interval if check_interval is not None else settings.session_check_interval_seconds
        self.clock = clock
        self.status = SessionStatus.UNINITIALIZED
        self.expires_at: Optional[int] = None
        self._subscription: Optional[Subscription] = None
        self._task: Optional[asyncio.Task] = None
        self._disposed = False

    # Validation

    def validate(self) -> bool:
        """Check the stored session, refreshing it when close to expiry.

        A missing or already expired session is invalid. A session expiring
        within `refresh_buffer` seconds is marked EXPIRING and refreshed; it
        only becomes VALID again if the refresh succeeds.
        """
        try:
            session = self.auth.get_session()
        except AppException as exc:
            logger.error("Session validation error: %s", exc.message)
            self._set_status(SessionStatus.INVALID)
            return False
        if session is None:
            self._set_status(SessionStatus.INVALID)
            return False

        remaining = session.expires_at - self.clock()
        if remaining <= 0:
            self._set_status(SessionStatus.INVALID)
            return False
        if remaining < self.refresh_buffer:
            self._set_status(SessionStatus.EXPIRING)
            try:
                session = self.auth.refresh_session()
            except AppException as exc:
                logger.warning("Session refresh failed: %s", exc.message)
                self._set_status(SessionStatus.INVALID)
                return False

        self.expires_at = session.expires_at
        self._set_status(SessionStatus.VALID)
        return True

    def initialize(self) -> bool:
        """Adopt the stored session, or clear local state if it is unusable."""
        if self.validate():
            session = self.auth.get_session()
            self.state.user = session.user if session else None
            return self.state.user is not None
        self.clear()
        return False

    def check(self) -> bool:
        """Periodic re-validation; signs out with a notification on failure."""
        if self.state.user is None:
            return False
        if self.validate():
            return True
        logger.info("Session for user %s expired", self.state.user.id)
        self.clear()
        self.state.notify(SESSION_EXPIRED_TITLE, SESSION_EXPIRED_MESSAGE)
        return False

    def clear(self) -> None:
        """Drop the stored session and every piece of derived in-memory state."""
        try:
            self.auth.clear_session()
        finally:
            self.state.reset()
            self.expires_at = None
            self._set_status(SessionStatus.CLEARED)

    # Identity events

    def _on_auth_event(self, event: AuthEvent, session: Optional[SessionInfo]) -> None:
        if self._disposed:
            return
        if event is AuthEvent.SIGNED_OUT:
            self.state.reset()
            self.expires_at = None
            self._set_status(SessionStatus.CLEARED)
            return
        if session is None:
            return
        self.state.user = session.user
        if event in (AuthEvent.SIGNED_IN, AuthEvent.TOKEN_REFRESHED):
            self.expires_at = session.expires_at
            self._set_status(SessionStatus.VALID)

    def _set_status(self, status: SessionStatus) -> None:
        if status is not self.status:
            logger.info("Session status %s -> %s", self.status.value, status.value)
        self.status = status

    # Scoped resources

    async def _run_checks(self) -> None:
        while True:
            await asyncio.sleep(self.check_interval)
            try:
                self.check()
            except AppException as exc:
                logger.error("Session check error: %s", exc.message)

    async def start(self) -> bool:
        """Subscribe to auth events, validate the session and start polling."""
        self._disposed = False
        self._subscription = self.auth.subscribe(self._on_auth_event)
        valid = self.initialize()
        self._task = asyncio.create_task(self._run_checks())
        return valid

    async def stop(self) -> None:
        self._disposed = True
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def __aenter__(self) -> "SessionLifecycleManager":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()
