"""Schemas for meals, daily summaries and capture results."""

from datetime import date, datetime
from pydantic import BaseModel, Field
from typing import List, Optional


class MealRecord(BaseModel):
    """A persisted meal as returned by the meal store."""

    id: str
    user_id: str
    foods: List[str] = []
    calories: int = 0
    protein: Optional[float] = None
    carbs: Optional[float] = None
    fats: Optional[float] = None
    image: Optional[str] = None
    created_at: datetime


class DailySummary(BaseModel):
    """Summed nutrition for one calendar day."""

    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fats: float = 0


class DayView(BaseModel):
    """Meals (newest first) and totals for one calendar day."""

    date: date
    meals: List[MealRecord] = []
    summary: DailySummary = Field(default_factory=DailySummary)


class FoodAnalysis(BaseModel):
    """Classifier output resolved to a food list and calorie estimate."""

    foods: List[str] = []
    calories: int = 0
    fallback: bool = False


class CaptureResponse(BaseModel):
    """Outcome of a photo capture: the saved meal and the refreshed day."""

    meal: MealRecord
    analysis: FoodAnalysis
    day: DayView
