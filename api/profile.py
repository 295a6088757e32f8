"""Profile and settings router.

Saving a profile recomputes the calorie and macro targets; targets are never
accepted from the client directly.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.dependencies import get_current_user, get_identity
from core.logger import get_logger
from database.deps import get_db_read, get_db_write
from schemas import ApiKeyRequest, AuthUser, NutritionTargets, ProfileInput, SettingsResponse
from services.identity import IdentityService
from services.meal_store import MealStore
from services.nutrition_calculator import nutrition_calculator

logger = get_logger("api.profile")
router = APIRouter(prefix="/api", tags=["profile"])


def _settings_response(user_id: str, stored: dict) -> SettingsResponse:
    data = {k: v for k, v in (stored or {}).items() if k != "gemini_api_key"}
    data["user_id"] = user_id
    return SettingsResponse(**data, has_api_key=bool((stored or {}).get("gemini_api_key")))


@router.get("/settings", response_model=SettingsResponse)
def get_settings(user: AuthUser = Depends(get_current_user), db: Session = Depends(get_db_read)):
    """Return the stored profile and targets; an empty record if none was saved."""
    return _settings_response(user.id, MealStore(db).get_settings(user.id))


@router.put("/profile", response_model=SettingsResponse)
def save_profile(
    payload: ProfileInput,
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db_write),
):
    profile = nutrition_calculator.build_profile(payload)
    stored = MealStore(db).upsert_settings(user.id, profile)
    logger.info("Profile saved for user %s (%s kcal)", user.id, profile.target_calories)
    return _settings_response(user.id, stored)


@router.put("/settings/api-key", response_model=SettingsResponse)
def save_api_key(
    payload: ApiKeyRequest,
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db_write),
):
    stored = MealStore(db).update_settings(user.id, gemini_api_key=payload.api_key)
    return _settings_response(user.id, stored)


@router.post("/nutrition/targets", response_model=NutritionTargets)
def preview_targets(payload: ProfileInput):
    """Compute targets for a profile without storing anything."""
    return nutrition_calculator.calculate_targets(payload)


@router.delete("/account", status_code=204)
def delete_account(
    user: AuthUser = Depends(get_current_user),
    identity: IdentityService = Depends(get_identity),
    db: Session = Depends(get_db_write),
):
    """Delete every meal, the settings and the account itself."""
    MealStore(db).delete_account(user.id)
    identity.delete_user(user.id)
