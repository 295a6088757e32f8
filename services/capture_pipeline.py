"""Photo capture to saved meal.

Each stage fails on its own: the failure becomes a notification on the
`AppState` and a `CaptureResult` with the stage's status, and work already
done by earlier stages is kept. Nothing is retried.
"""

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Callable, Optional

from core.config import settings
from core.exceptions import AppException, ClassifierError, ConfigurationError
from core.logger import get_logger
from schemas import FoodAnalysis, MacroSplit, MealRecord
from services.app_state import AppState
from services.daily_aggregator import local_date
from services.food_classifier import FoodClassifier, encode_image
from services.meal_store import MealStore
from services.nutrition_calculator import NutritionCalculator, nutrition_calculator

logger = get_logger("services.capture_pipeline")

ERROR_TITLE = "Error"


class CaptureStatus(str, Enum):
    SAVED = "saved"
    INVALID_INPUT = "invalid_input"
    NEEDS_CONFIGURATION = "needs_configuration"
    IMAGE_ERROR = "image_error"
    CLASSIFIER_ERROR = "classifier_error"
    PERSISTENCE_ERROR = "persistence_error"
    CANCELLED = "cancelled"


@dataclass
class CaptureResult:
    status: CaptureStatus
    meal: Optional[MealRecord] = None
    analysis: Optional[FoodAnalysis] = None
    macros: Optional[MacroSplit] = None
    error: Optional[str] = None
    error_details: Optional[dict] = None

    @property
    def ok(self) -> bool:
        return self.status is CaptureStatus.SAVED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CapturePipeline:
    """Orchestrates encode -> classify -> estimate macros -> persist -> update state."""

    def __init__(
        self,
        store: MealStore,
        classifier: FoodClassifier,
        state: AppState,
        calculator: NutritionCalculator = nutrition_calculator,
        encoder: Callable[[Optional[bytes], Optional[str]], str] = encode_image,
        tz: Optional[tzinfo] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.classifier = classifier
        self.state = state
        self.calculator = calculator
        self.encoder = encoder
        self.tz = tz or settings.timezone
        self.clock = clock
        self.disposed = False

    def close(self) -> None:
        """Stop acting on results; a capture awaiting the classifier is dropped."""
        self.disposed = True

    def _fail(self, status: CaptureStatus, message: str, **extra) -> CaptureResult:
        self.state.notify(ERROR_TITLE, message)
        return CaptureResult(status=status, error=message, **extra)

    async def capture(self, image: Optional[bytes], content_type: Optional[str] = None) -> CaptureResult:
        if self.disposed:
            return CaptureResult(status=CaptureStatus.CANCELLED)

        # 1. input and credential
        if not image:
            return self._fail(CaptureStatus.INVALID_INPUT, "No file selected")
        if self.state.user is None:
            return self._fail(CaptureStatus.INVALID_INPUT, "Please sign in to log meals")
        if not self.state.api_key:
            return self._fail(
                CaptureStatus.NEEDS_CONFIGURATION,
                "Please configure your Gemini API key in settings first",
                error_details={"config_key": "gemini_api_key"},
            )

        # 2. encode
        try:
            encoded = self.encoder(image, content_type)
        except AppException as exc:
            logger.error("File conversion error: %s", exc.message)
            return self._fail(CaptureStatus.IMAGE_ERROR, "Failed to process the image. Please try a different image.")

        # 3 + 4. classify; unparsable replies are absorbed by the classifier
        failure: Optional[AppException] = None
        try:
            analysis = await self.classifier.analyze(encoded, self.state.api_key)
        except (ConfigurationError, ClassifierError) as exc:
            failure = exc
        if self.disposed:
            logger.info("Capture finished after shutdown; result discarded")
            return CaptureResult(status=CaptureStatus.CANCELLED)
        if isinstance(failure, ConfigurationError):
            return self._fail(CaptureStatus.NEEDS_CONFIGURATION, failure.message, error_details=failure.details)
        if isinstance(failure, ClassifierError):
            logger.error("Analysis error (%s): %s", failure.reason.value, failure.message)
            return self._fail(CaptureStatus.CLASSIFIER_ERROR, failure.message, error_details=failure.details)
        if analysis.fallback:
            logger.warning("Using fallback food estimate for user %s", self.state.user.id)

        # 5. macros
        macros = self.calculator.estimate_meal_macros(analysis.calories)

        # 6. persist
        try:
            meal = self.store.add_meal(
                user_id=self.state.user.id,
                foods=analysis.foods,
                calories=analysis.calories,
                protein=macros.protein,
                carbs=macros.carbs,
                fats=macros.fats,
                image=encoded,
                created_at=self.clock(),
            )
        except AppException as exc:
            logger.error("Database error while saving meal: %s", exc.message)
            return self._fail(
                CaptureStatus.PERSISTENCE_ERROR,
                "Failed to save meal to database",
                analysis=analysis,
                macros=macros,
            )

        # 7. keep the viewed day in step with the store
        if self.state.current_date is not None and local_date(meal.created_at, self.tz) == self.state.current_date:
            self.state.add_meal(meal)
        logger.info("Captured meal %s: %s (%s kcal)", meal.id, ", ".join(meal.foods), meal.calories)
        return CaptureResult(status=CaptureStatus.SAVED, meal=meal, analysis=analysis, macros=macros)
