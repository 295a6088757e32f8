"""Meals router.

Lists a day's meals and totals, runs photo capture and deletes meals. Days
are calendar dates in the zone given by `tz` (IANA name) or the server
default.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.orm import Session

from api.dependencies import get_classifier, get_current_user, resolve_timezone
from core.exceptions import AppException, CLASSIFIER_HTTP_STATUS, ClassifierFailure, NotFoundError
from core.logger import get_logger
from database.deps import get_db_read, get_db_write
from schemas import AuthUser, CaptureResponse, DailySummary, MealRecord
from services.app_state import AppState
from services.capture_pipeline import CapturePipeline, CaptureResult, CaptureStatus
from services.daily_aggregator import DailyAggregator
from services.food_classifier import FoodClassifier
from services.meal_store import MealStore

logger = get_logger("api.meals")
router = APIRouter(prefix="/api", tags=["meals"])

_CAPTURE_HTTP_STATUS = {
    CaptureStatus.INVALID_INPUT: 400,
    CaptureStatus.NEEDS_CONFIGURATION: 412,
    CaptureStatus.IMAGE_ERROR: 422,
    CaptureStatus.PERSISTENCE_ERROR: 500,
    CaptureStatus.CANCELLED: 503,
}


def _capture_error(result: CaptureResult) -> AppException:
    details = dict(result.error_details or {}, stage=result.status.value)
    if result.status is CaptureStatus.CLASSIFIER_ERROR:
        status_code = CLASSIFIER_HTTP_STATUS[ClassifierFailure(details["reason"])]
    else:
        status_code = _CAPTURE_HTTP_STATUS[result.status]
    if result.analysis is not None:
        details["analysis"] = result.analysis.model_dump()
    return AppException(result.error, status_code=status_code, details=details)


@router.get("/meals", response_model=List[MealRecord])
def list_meals(
    day: date = Query(..., alias="date"),
    tz=Depends(resolve_timezone),
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db_read),
):
    """Return the user's meals for the day, newest first."""
    return DailyAggregator(MealStore(db), tz).list_meals_for_date(user.id, day)


@router.get("/summary", response_model=DailySummary)
def daily_summary(
    day: date = Query(..., alias="date"),
    tz=Depends(resolve_timezone),
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db_read),
):
    """Return summed calories and macros for the day; zeros when nothing was logged."""
    return DailyAggregator(MealStore(db), tz).summarize_date(user.id, day)


@router.post("/meals/capture", response_model=CaptureResponse, status_code=201)
async def capture_meal(
    image: Optional[UploadFile] = File(None),
    day: Optional[date] = Query(None, alias="date"),
    tz=Depends(resolve_timezone),
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db_write),
    classifier: FoodClassifier = Depends(get_classifier),
):
    """Classify a meal photo, save the meal and return the refreshed day.

    The returned day is the one the meal was logged on unless `date` names
    another day to view.
    """
    store = MealStore(db)
    aggregator = DailyAggregator(store, tz)
    stored = store.get_settings(user.id) or {}
    state = AppState(user=user, api_key=stored.get("gemini_api_key") or "")
    pipeline = CapturePipeline(store, classifier, state, tz=tz)
    state.apply_day(aggregator.load_day(user.id, day or pipeline.clock().astimezone(tz).date()))

    content = await image.read() if image is not None else None
    result = await pipeline.capture(content, image.content_type if image is not None else None)
    if not result.ok:
        raise _capture_error(result)
    return CaptureResponse(meal=result.meal, analysis=result.analysis, day=state.day_view())


@router.delete("/meals/{meal_id}", status_code=204)
def delete_meal(meal_id: str, user: AuthUser = Depends(get_current_user), db: Session = Depends(get_db_write)):
    store = MealStore(db)
    meal = store.get_meal(meal_id)
    if meal is None or meal.user_id != user.id:
        raise NotFoundError("Meal", meal_id)
    store.delete_meal(meal_id)
    logger.info("Meal %s deleted by user %s", meal_id, user.id)
