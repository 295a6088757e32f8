"""Shared FastAPI dependencies: bearer authentication and collaborators."""

from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import SessionExpiredError, ValidationError
from database.deps import get_db_write
from schemas import AuthUser
from services.food_classifier import FoodClassifier
from services.identity import IdentityService

bearer_scheme = HTTPBearer(auto_error=False)


def get_identity(db: Session = Depends(get_db_write)) -> IdentityService:
    return IdentityService(db)


def get_access_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> str:
    if credentials is None or not credentials.credentials:
        raise SessionExpiredError("Authentication required")
    return credentials.credentials


def get_current_user(
    token: str = Depends(get_access_token),
    identity: IdentityService = Depends(get_identity),
) -> AuthUser:
    """Resolve the bearer token; expired or unknown tokens yield 401."""
    return identity.user_for_token(token)


def get_classifier() -> FoodClassifier:
    return FoodClassifier()


def resolve_timezone(tz: Optional[str] = None):
    """Zone for day boundaries: the `tz` query parameter or the configured default."""
    if not tz:
        return settings.timezone
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown time zone '{tz}'", field="tz") from exc
