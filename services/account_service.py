"""Account flows: sign-up with profile, profile and API key saves, deletion.

A profile submitted at sign-up is saved as soon as a session exists. When the
identity service withholds a session (email confirmation pending) the profile
is stashed in local storage and saved on the first load after sign-in.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from core.exceptions import AppException, ValidationError
from core.logger import get_logger
from schemas import AuthResponse, AuthUser, NutritionTargets, ProfileData, ProfileInput, SessionInfo
from services.app_state import AppState
from services.auth_client import AuthClient
from services.identity import MIN_PASSWORD_LENGTH
from services.local_store import PENDING_PROFILE_KEY, LocalStore
from services.meal_store import MealStore
from services.nutrition_calculator import NutritionCalculator, nutrition_calculator

logger = get_logger("services.account_service")

DEFAULT_TARGETS = NutritionTargets()


@dataclass
class SignUpResult:
    user: AuthUser
    session: Optional[SessionInfo]
    auto_logged_in: bool


def _as_profile(profile: Union[ProfileInput, Dict[str, Any]]) -> ProfileInput:
    if isinstance(profile, ProfileInput):
        return profile
    try:
        return ProfileInput.model_validate(profile)
    except PydanticValidationError as exc:
        raise ValidationError("Please fill in all profile fields", field="profile") from exc


class AccountService:
    """Identity plus settings operations that touch the in-memory state."""

    def __init__(
        self,
        auth: AuthClient,
        store: MealStore,
        storage: LocalStore,
        state: AppState,
        calculator: NutritionCalculator = nutrition_calculator,
    ):
        self.auth = auth
        self.store = store
        self.storage = storage
        self.state = state
        self.calculator = calculator

    def sign_up(
        self,
        email: str,
        password: str,
        profile: Optional[Union[ProfileInput, Dict[str, Any]]] = None,
    ) -> SignUpResult:
        """Create an account and sign in right away when the provider allows it.

        Raises:
            ValidationError: For missing credentials, a short password or an
                incomplete profile. Failures saving the profile are only logged.
        """
        if not email or not password:
            raise ValidationError("Please fill in all fields")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError("Password must be at least 6 characters", field="password")
        profile_data = self.calculator.build_profile(_as_profile(profile)) if profile is not None else None

        result = self.auth.sign_up(email, password)
        if result.session is not None:
            if profile_data is not None:
                self._save_profile_quietly(result.user.id, profile_data)
            return SignUpResult(result.user, result.session, auto_logged_in=True)

        try:
            signed_in = self.auth.sign_in(email, password)
        except AppException as exc:
            logger.info("Auto sign-in after sign-up not available (%s)", exc.message)
        else:
            if profile_data is not None:
                self._save_profile_quietly(signed_in.user.id, profile_data)
            return SignUpResult(signed_in.user, signed_in.session, auto_logged_in=True)

        if profile_data is not None:
            self.storage.set(PENDING_PROFILE_KEY, profile_data.model_dump())
        return SignUpResult(result.user, None, auto_logged_in=False)

    def sign_in(self, email: str, password: str) -> AuthResponse:
        if not email or not password:
            raise ValidationError("Please fill in all fields")
        return self.auth.sign_in(email, password)

    def _save_profile_quietly(self, user_id: str, profile: ProfileData) -> None:
        try:
            self.store.upsert_settings(user_id, profile)
        except AppException as exc:
            logger.error("Error saving profile during sign-up: %s", exc.message)

    def save_pending_profile(self, user_id: str) -> bool:
        """Save and discard a stashed sign-up profile.

        The stash is removed even when saving fails, in which case the
        profile is lost and False is returned.
        """
        raw = self.storage.get(PENDING_PROFILE_KEY)
        if not raw:
            return False
        try:
            self.store.upsert_settings(user_id, ProfileData.model_validate(raw))
            return True
        except (AppException, PydanticValidationError) as exc:
            logger.warning("Could not save pending profile data: %s", exc)
            return False
        finally:
            self.storage.remove(PENDING_PROFILE_KEY)

    def load_settings(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Copy stored settings (API key, targets) into the state."""
        stored = self.store.get_settings(user_id)
        self.state.settings = stored
        if not stored:
            return None
        if stored.get("gemini_api_key"):
            self.state.api_key = stored["gemini_api_key"]
        targets = self.state.targets.model_copy()
        if stored.get("target_calories"):
            targets.target_calories = stored["target_calories"]
        if stored.get("target_protein") or stored.get("target_carbs") or stored.get("target_fats"):
            targets.target_protein = stored.get("target_protein") or DEFAULT_TARGETS.target_protein
            targets.target_carbs = stored.get("target_carbs") or DEFAULT_TARGETS.target_carbs
            targets.target_fats = stored.get("target_fats") or DEFAULT_TARGETS.target_fats
        self.state.targets = targets
        return stored

    def save_profile(self, user_id: str, profile: Union[ProfileInput, Dict[str, Any]]) -> ProfileData:
        """Recompute targets from the profile, store them and apply them locally."""
        profile_data = self.calculator.build_profile(_as_profile(profile))
        stored = self.store.upsert_settings(user_id, profile_data)
        self.state.targets = NutritionTargets(**profile_data.model_dump(include=set(NutritionTargets.model_fields)))
        self.state.settings = {**(self.state.settings or {}), **stored}
        logger.info("Profile saved for user %s: %s kcal", user_id, profile_data.target_calories)
        return profile_data

    def save_api_key(self, user_id: str, api_key: str) -> None:
        self.store.update_settings(user_id, gemini_api_key=api_key)
        self.state.api_key = api_key

    def sign_out(self) -> None:
        self.auth.clear_session()
        self.state.reset()

    def delete_account(self, user_id: str) -> None:
        """Remove meals, settings and the identity record, then sign out."""
        self.store.delete_account(user_id)
        self.auth.identity.delete_user(user_id)
        self.auth.clear_session()
        self.state.reset()
