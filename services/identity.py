"""Identity service: accounts, credentials and issued sessions.

Passwords are stored as PBKDF2-SHA256 hashes. A session is an opaque
access/refresh token pair with an absolute expiry in epoch seconds; refreshing
rotates both tokens.
"""

import base64
import hashlib
import hmac
import os
import secrets
import time
from typing import Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import AuthenticationError, DatabaseError, NotFoundError, SessionExpiredError, ValidationError
from core.logger import get_logger
from core.repository import save
from database.models import Account, AuthSession
from schemas import AuthResponse, AuthUser, SessionInfo

logger = get_logger("services.identity")

_PBKDF2_ALG = "sha256"
_PBKDF2_ITERATIONS = 200_000
MIN_PASSWORD_LENGTH = 6


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64_decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def hash_password(password: str) -> str:
    salt = os.urandom(16)
    dk = hashlib.pbkdf2_hmac(_PBKDF2_ALG, password.encode("utf-8"), salt, _PBKDF2_ITERATIONS)
    return f"pbkdf2_{_PBKDF2_ALG}${_PBKDF2_ITERATIONS}${_b64(salt)}${_b64(dk)}"


def verify_password(password: str, password_hash: str) -> bool:
    try:
        scheme, iter_s, salt_b64, dk_b64 = password_hash.split("$", 3)
    except ValueError:
        return False
    if not scheme.startswith("pbkdf2_"):
        return False
    alg = scheme.split("_", 1)[1]
    actual = hashlib.pbkdf2_hmac(alg, password.encode("utf-8"), _b64_decode(salt_b64), int(iter_s))
    return hmac.compare_digest(actual, _b64_decode(dk_b64))


def _to_user(account: Account) -> AuthUser:
    return AuthUser(id=account.id, email=account.email, email_confirmed=bool(account.email_confirmed))


class IdentityService:
    """Account and session operations over the `accounts`/`auth_sessions` tables."""

    def __init__(
        self,
        session: Session,
        ttl_seconds: Optional[int] = None,
        require_email_confirmation: Optional[bool] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.session = session
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.session_ttl_seconds
        self.require_email_confirmation = (
            settings.require_email_confirmation if require_email_confirmation is None else require_email_confirmation
        )
        self.clock = clock

    def _now(self) -> int:
        return int(self.clock())

    def _issue_session(self, account: Account) -> SessionInfo:
        record = AuthSession(
            access_token=secrets.token_urlsafe(32),
            refresh_token=secrets.token_urlsafe(32),
            user_id=account.id,
            expires_at=self._now() + self.ttl_seconds,
        )
        save(self.session, record)
        return SessionInfo(
            access_token=record.access_token,
            refresh_token=record.refresh_token,
            expires_at=record.expires_at,
            user=_to_user(account),
        )

    def _account_by_email(self, email: str) -> Optional[Account]:
        return self.session.scalars(select(Account).where(Account.email == email.strip().lower())).first()

    def sign_up(self, email: str, password: str) -> AuthResponse:
        """Create an account.

        A session is issued right away unless email confirmation is required.

        Raises:
            ValidationError: On missing fields, a short password or a taken email.
        """
        if not email or not password:
            raise ValidationError("Please fill in all fields")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError("Password must be at least 6 characters", field="password")
        if self._account_by_email(email):
            raise ValidationError("User already registered", field="email")

        account = save(self.session, Account(
            email=email.strip().lower(),
            password_hash=hash_password(password),
            email_confirmed=not self.require_email_confirmation,
        ))
        logger.info("Account created: %s", account.id)
        if self.require_email_confirmation:
            return AuthResponse(user=_to_user(account), session=None)
        return AuthResponse(user=_to_user(account), session=self._issue_session(account))

    def sign_in(self, email: str, password: str) -> AuthResponse:
        account = self._account_by_email(email or "")
        if account is None or not verify_password(password or "", account.password_hash):
            raise AuthenticationError("Invalid login credentials")
        if not account.email_confirmed:
            raise AuthenticationError("Email not confirmed")
        logger.info("User %s signed in", account.id)
        return AuthResponse(user=_to_user(account), session=self._issue_session(account))

    def refresh(self, refresh_token: str) -> SessionInfo:
        """Exchange a refresh token for a new session, revoking the old one."""
        record = self.session.scalars(
            select(AuthSession).where(AuthSession.refresh_token == refresh_token)
        ).first()
        if record is None:
            raise SessionExpiredError("Invalid refresh token")
        account = self.session.get(Account, record.user_id)
        if account is None:
            raise SessionExpiredError("Account no longer exists")
        self.session.delete(record)
        new_session = self._issue_session(account)
        logger.info("Session refreshed for user %s", account.id)
        return new_session

    def sign_out(self, access_token: str) -> None:
        self._execute(delete(AuthSession).where(AuthSession.access_token == access_token), "sign_out")

    def user_for_token(self, access_token: str) -> AuthUser:
        """Resolve a bearer token to its user.

        Raises:
            SessionExpiredError: If the token is unknown or expired.
        """
        record = self.session.get(AuthSession, access_token)
        if record is None or record.expires_at <= self._now():
            raise SessionExpiredError()
        account = self.session.get(Account, record.user_id)
        if account is None:
            raise SessionExpiredError()
        return _to_user(account)

    def confirm_email(self, user_id: str) -> AuthUser:
        account = self._get_account(user_id)
        account.email_confirmed = True
        return _to_user(save(self.session, account))

    def update_email(self, user_id: str, email: str) -> AuthUser:
        if not email:
            raise ValidationError("Email is required", field="email")
        other = self._account_by_email(email)
        if other is not None and other.id != user_id:
            raise ValidationError("Email already in use", field="email")
        account = self._get_account(user_id)
        account.email = email.strip().lower()
        return _to_user(save(self.session, account))

    def delete_user(self, user_id: str) -> None:
        """Privileged removal of an account and all its sessions."""
        self._execute(delete(AuthSession).where(AuthSession.user_id == user_id), "delete_user", commit=False)
        self._execute(delete(Account).where(Account.id == user_id), "delete_user")
        logger.info("Account %s deleted", user_id)

    def _get_account(self, user_id: str) -> Account:
        account = self.session.get(Account, user_id)
        if account is None:
            raise NotFoundError("Account", user_id)
        return account

    def _execute(self, stmt, operation: str, commit: bool = True) -> None:
        try:
            self.session.execute(stmt)
            if commit:
                self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise DatabaseError(f"Identity operation failed: {operation}", operation=operation) from exc
