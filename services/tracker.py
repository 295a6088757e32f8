"""Diet tracker: the client-side application context.

Bundles the state, the session manager, the aggregator, account flows and the
capture pipeline around one database session and one local store. Use it as
an async context manager so the session timer and auth subscription are
always released.
"""

from datetime import date, datetime, timezone, tzinfo
from typing import Any, Callable, Dict, Optional, Union

from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import AppException, SessionExpiredError
from core.logger import get_logger
from schemas import DayView, ProfileData, ProfileInput
from services.account_service import AccountService, SignUpResult
from services.app_state import AppState
from services.auth_client import AuthClient
from services.capture_pipeline import CapturePipeline, CaptureResult
from services.daily_aggregator import DailyAggregator
from services.food_classifier import FoodClassifier
from services.identity import IdentityService
from services.local_store import LocalStore
from services.meal_store import MealStore
from services.session_manager import SessionLifecycleManager

logger = get_logger("services.tracker")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DietTracker:

    def __init__(
        self,
        db: Session,
        storage: Optional[LocalStore] = None,
        classifier: Optional[FoodClassifier] = None,
        identity: Optional[IdentityService] = None,
        tz: Optional[tzinfo] = None,
        clock: Callable[[], datetime] = _utcnow,
        check_interval: Optional[float] = None,
    ):
        self.tz = tz or settings.timezone
        self.clock = clock
        self.state = AppState()
        self.storage = storage if storage is not None else LocalStore(settings.storage_path)
        self.store = MealStore(db)
        self.auth = AuthClient(identity or IdentityService(db, clock=lambda: clock().timestamp()), self.storage)
        self.sessions = SessionLifecycleManager(
            self.auth, self.state, check_interval=check_interval, clock=lambda: clock().timestamp()
        )
        self.aggregator = DailyAggregator(self.store, self.tz)
        self.accounts = AccountService(self.auth, self.store, self.storage, self.state)
        self.pipeline = CapturePipeline(
            self.store, classifier or FoodClassifier(), self.state, tz=self.tz, clock=clock
        )

    def today(self) -> date:
        return self.clock().astimezone(self.tz).date()

    # Lifecycle

    async def start(self) -> bool:
        self.pipeline.disposed = False
        signed_in = await self.sessions.start()
        if signed_in:
            self.load_user_data()
        return signed_in

    async def stop(self) -> None:
        self.pipeline.close()
        await self.sessions.stop()

    async def __aenter__(self) -> "DietTracker":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.stop()

    # Data loading

    def load_user_data(self, day: Optional[date] = None) -> Optional[DayView]:
        """Load settings and the meals/summary for `day` into the state.

        Failures are reported as a notification and leave the state as is.
        """
        user = self.state.user
        if user is None:
            raise SessionExpiredError()
        day = day or self.state.current_date or self.today()
        try:
            self.accounts.save_pending_profile(user.id)
            self.accounts.load_settings(user.id)
            view = self.aggregator.load_day(user.id, day)
        except AppException as exc:
            logger.error("Error loading user data: %s", exc.message)
            self.state.notify("Error", "Failed to load your data")
            return None
        self.state.apply_day(view)
        return view

    def change_date(self, day: date) -> Optional[DayView]:
        return self.load_user_data(day)

    # Account flows

    def sign_up(self, email: str, password: str, profile: Optional[Union[ProfileInput, Dict[str, Any]]] = None) -> SignUpResult:
        result = self.accounts.sign_up(email, password, profile)
        if result.auto_logged_in:
            self.state.user = result.user
            self.load_user_data()
        return result

    def sign_in(self, email: str, password: str) -> None:
        result = self.accounts.sign_in(email, password)
        self.state.user = result.user
        self.load_user_data()

    def save_profile(self, profile: Union[ProfileInput, Dict[str, Any]]) -> ProfileData:
        return self.accounts.save_profile(self._require_user(), profile)

    def save_api_key(self, api_key: str) -> bool:
        try:
            self.accounts.save_api_key(self._require_user(), api_key)
        except AppException as exc:
            logger.error("Failed to save API key: %s", exc.message)
            self.state.notify("Error", "Failed to save API key")
            return False
        self.state.notify("Success", "API key saved successfully!")
        return True

    def sign_out(self) -> bool:
        try:
            self.accounts.sign_out()
        except AppException as exc:
            logger.error("Sign-out failed: %s", exc.message)
            self.state.notify("Error", "Failed to sign out")
            return False
        return True

    def delete_account(self) -> None:
        try:
            self.accounts.delete_account(self._require_user())
        except AppException:
            self.state.notify("Error", "Failed to delete account")
            raise
        self.state.notify("Success", "Account deleted successfully!")

    async def capture(self, image: Optional[bytes], content_type: Optional[str] = None) -> CaptureResult:
        if self.state.current_date is None and self.state.user is not None:
            self.load_user_data()
        return await self.pipeline.capture(image, content_type)

    def _require_user(self) -> str:
        if self.state.user is None:
            raise SessionExpiredError()
        return self.state.user.id
