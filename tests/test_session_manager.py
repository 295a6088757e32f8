"""Tests for session validation, proactive refresh and the periodic check."""
import asyncio

import pytest

from core.exceptions import SessionExpiredError
from schemas import AuthUser, SessionInfo
from services.app_state import AppState
from services.auth_client import AuthEvent, Subscription
from services.session_manager import SESSION_EXPIRED_TITLE, SessionLifecycleManager, SessionStatus

NOW = 1_700_000_000
USER = AuthUser(id="user-1", email="jane@example.com", email_confirmed=True)


def make_session(expires_in, token="access"):
    return SessionInfo(access_token=token, refresh_token=f"{token}-refresh", expires_at=NOW + expires_in, user=USER)


class FakeAuth:
    """Stands in for AuthClient and records what the manager asked of it."""

    def __init__(self, session=None, refreshed=None, refresh_error=None):
        self.session = session
        self.refreshed = refreshed
        self.refresh_error = refresh_error
        self.listeners = []
        self.cleared = 0
        self.status_at_refresh = []
        self.manager = None

    def get_session(self):
        return self.session

    def refresh_session(self):
        self.status_at_refresh.append(self.manager.status)
        if self.refresh_error is not None:
            raise self.refresh_error
        self.session = self.refreshed
        return self.refreshed

    def clear_session(self):
        self.cleared += 1
        self.session = None

    def subscribe(self, listener):
        self.listeners.append(listener)
        return Subscription(self, listener)

    def _remove_listener(self, listener):
        self.listeners.remove(listener)


def make_manager(auth, state=None, check_interval=300):
    manager = SessionLifecycleManager(
        auth, state or AppState(), refresh_buffer=60, check_interval=check_interval, clock=lambda: NOW
    )
    auth.manager = manager
    return manager


def test_session_near_expiry_is_refreshed_before_valid():
    auth = FakeAuth(session=make_session(30), refreshed=make_session(3600, token="fresh"))
    manager = make_manager(auth)

    assert manager.validate() is True
    assert auth.status_at_refresh == [SessionStatus.EXPIRING]
    assert manager.status is SessionStatus.VALID
    assert manager.expires_at == NOW + 3600


def test_session_outside_buffer_is_not_refreshed():
    auth = FakeAuth(session=make_session(600))
    manager = make_manager(auth)

    assert manager.validate() is True
    assert auth.status_at_refresh == []
    assert manager.expires_at == NOW + 600


def test_failed_refresh_marks_session_invalid():
    auth = FakeAuth(session=make_session(30), refresh_error=SessionExpiredError("Invalid refresh token"))
    manager = make_manager(auth)

    assert manager.validate() is False
    assert manager.status is SessionStatus.INVALID


@pytest.mark.parametrize("session", [None, make_session(0), make_session(-10)])
def test_missing_or_expired_session_is_invalid(session):
    auth = FakeAuth(session=session)
    manager = make_manager(auth)

    assert manager.validate() is False
    assert manager.status is SessionStatus.INVALID
    assert auth.status_at_refresh == []


def test_initialize_adopts_user_or_clears():
    state = AppState()
    assert make_manager(FakeAuth(session=make_session(600)), state).initialize() is True
    assert state.user == USER

    auth = FakeAuth(session=None)
    state.api_key = "secret-key"
    manager = make_manager(auth, state)
    assert manager.initialize() is False
    assert auth.cleared == 1
    assert state.user is None and state.api_key == ""
    assert manager.status is SessionStatus.CLEARED


def test_check_signs_out_with_notification():
    state = AppState(user=USER)
    auth = FakeAuth(session=make_session(-1))
    manager = make_manager(auth, state)

    assert manager.check() is False
    assert state.user is None
    assert [n.title for n in state.notifications] == [SESSION_EXPIRED_TITLE]


def test_check_without_user_is_noop():
    auth = FakeAuth(session=None)
    assert make_manager(auth).check() is False
    assert auth.cleared == 0


def test_auth_events_update_state():
    state = AppState()
    manager = make_manager(FakeAuth(), state)

    manager._on_auth_event(AuthEvent.SIGNED_IN, make_session(600))
    assert state.user == USER
    assert manager.status is SessionStatus.VALID

    manager._on_auth_event(AuthEvent.SIGNED_OUT, None)
    assert state.user is None
    assert manager.status is SessionStatus.CLEARED


@pytest.mark.asyncio
async def test_start_and_stop_release_resources():
    auth = FakeAuth(session=make_session(600))
    state = AppState()
    manager = make_manager(auth, state)

    assert await manager.start() is True
    assert len(auth.listeners) == 1
    task = manager._task

    await manager.stop()
    assert auth.listeners == []
    assert task.cancelled()
    assert manager._task is None

    manager._on_auth_event(AuthEvent.SIGNED_OUT, None)
    assert state.user == USER


@pytest.mark.asyncio
async def test_periodic_check_signs_out_expired_session():
    auth = FakeAuth(session=make_session(600))
    state = AppState()

    async with make_manager(auth, state, check_interval=0.01):
        assert state.user == USER
        auth.session = make_session(-1)
        for _ in range(50):
            if state.user is None:
                break
            await asyncio.sleep(0.01)

    assert state.user is None
    assert state.notifications[-1].title == SESSION_EXPIRED_TITLE
