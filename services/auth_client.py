"""Client-side view of the identity service.

Keeps the current session in local storage under a fixed key and notifies
subscribers of sign-in, sign-out, token refresh and user updates.
"""

from enum import Enum
from typing import Callable, List, Optional

from core.exceptions import AppException, SessionExpiredError
from core.logger import get_logger
from schemas import AuthResponse, AuthUser, SessionInfo
from services.identity import IdentityService
from services.local_store import SESSION_STORAGE_KEY, LocalStore

logger = get_logger("services.auth_client")


class AuthEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


AuthListener = Callable[[AuthEvent, Optional[SessionInfo]], None]


class Subscription:
    """Handle returned by `AuthClient.subscribe`; releasing it is idempotent."""

    def __init__(self, client: "AuthClient", listener: AuthListener):
        self._client = client
        self._listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._client._remove_listener(self._listener)
            self.active = False

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.unsubscribe()


class AuthClient:
    """Session holder and event source for one client process."""

    def __init__(self, identity: IdentityService, storage: LocalStore):
        self.identity = identity
        self.storage = storage
        self._listeners: List[AuthListener] = []

    # Event stream

    def subscribe(self, listener: AuthListener) -> Subscription:
        self._listeners.append(listener)
        return Subscription(self, listener)

    def _remove_listener(self, listener: AuthListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: AuthEvent, session: Optional[SessionInfo]) -> None:
        logger.info("Auth state changed: %s", event.value)
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception("Auth listener failed on %s", event.value)

    # Session storage

    def get_session(self) -> Optional[SessionInfo]:
        raw = self.storage.get(SESSION_STORAGE_KEY)
        return SessionInfo.model_validate(raw) if raw else None

    def _store_session(self, session: SessionInfo) -> None:
        self.storage.set(SESSION_STORAGE_KEY, session.model_dump())

    def refresh_session(self) -> SessionInfo:
        """Rotate the stored session.

        Raises:
            SessionExpiredError: If there is no session or the refresh is rejected.
        """
        current = self.get_session()
        if current is None:
            raise SessionExpiredError("No session to refresh")
        session = self.identity.refresh(current.refresh_token)
        self._store_session(session)
        self._emit(AuthEvent.TOKEN_REFRESHED, session)
        return session

    # Auth operations

    def sign_up(self, email: str, password: str) -> AuthResponse:
        result = self.identity.sign_up(email, password)
        if result.session is not None:
            self._store_session(result.session)
            self._emit(AuthEvent.SIGNED_IN, result.session)
        return result

    def sign_in(self, email: str, password: str) -> AuthResponse:
        result = self.identity.sign_in(email, password)
        self._store_session(result.session)
        self._emit(AuthEvent.SIGNED_IN, result.session)
        return result

    def sign_out(self) -> None:
        current = self.get_session()
        self.storage.remove(SESSION_STORAGE_KEY)
        if current is not None:
            self.identity.sign_out(current.access_token)
        self._emit(AuthEvent.SIGNED_OUT, None)

    def clear_session(self) -> None:
        """Drop the stored session even if revoking it server-side fails."""
        current = self.get_session()
        self.storage.remove(SESSION_STORAGE_KEY)
        if current is not None:
            try:
                self.identity.sign_out(current.access_token)
            except AppException as exc:
                logger.warning("Sign-out during session clear failed: %s", exc.message)
        self._emit(AuthEvent.SIGNED_OUT, None)

    def update_user(self, email: str) -> AuthUser:
        current = self.get_session()
        if current is None:
            raise SessionExpiredError()
        user = self.identity.update_email(current.user.id, email)
        session = current.model_copy(update={"user": user})
        self._store_session(session)
        self._emit(AuthEvent.USER_UPDATED, session)
        return user
