"""Authentication router: sign-up, sign-in, token refresh and sign-out."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.dependencies import get_access_token, get_identity
from core.exceptions import AppException
from core.logger import get_logger
from database.deps import get_db_write
from schemas import AuthResponse, CredentialsRequest, RefreshRequest, SessionInfo, SignUpRequest, SignUpResponse
from services.identity import IdentityService
from services.meal_store import MealStore
from services.nutrition_calculator import nutrition_calculator

logger = get_logger("api.auth")
router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/signup", response_model=SignUpResponse, status_code=201)
def sign_up(
    payload: SignUpRequest,
    identity: IdentityService = Depends(get_identity),
    db: Session = Depends(get_db_write),
):
    """Create an account and, when a profile is supplied, its nutrition targets.

    The profile is stored against the new account even if email confirmation
    withholds the session; a failure to store it does not fail the sign-up.
    """
    result = identity.sign_up(payload.email, payload.password)
    if payload.profile is not None:
        try:
            MealStore(db).upsert_settings(result.user.id, nutrition_calculator.build_profile(payload.profile))
        except AppException as exc:
            logger.error("Error saving profile during signup: %s", exc.message)
    return SignUpResponse(user=result.user, session=result.session, auto_logged_in=result.session is not None)


@router.post("/signin", response_model=AuthResponse)
def sign_in(payload: CredentialsRequest, identity: IdentityService = Depends(get_identity)):
    return identity.sign_in(payload.email, payload.password)


@router.post("/refresh", response_model=SessionInfo)
def refresh(payload: RefreshRequest, identity: IdentityService = Depends(get_identity)):
    return identity.refresh(payload.refresh_token)


@router.post("/signout", status_code=204)
def sign_out(token: str = Depends(get_access_token), identity: IdentityService = Depends(get_identity)):
    identity.sign_out(token)
