"""Schemas for body profiles, nutrition targets and user settings."""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import Literal, Optional

Gender = Literal["male", "female"]
Goal = Literal["lose", "maintain", "gain"]


class ProfileInput(BaseModel):
    """Body metrics and goal submitted from the profile or sign-up form."""

    gender: Gender = Field(..., examples=["female"])
    height_cm: float = Field(..., gt=0, examples=[168.0], description="Height in centimeters")
    weight_kg: float = Field(..., gt=0, examples=[64.0], description="Weight in kilograms")
    age: int = Field(..., gt=0, examples=[29], description="Age in years")
    goal: Goal = Field(..., examples=["maintain"], description="Goal: lose, maintain or gain")


class MacroSplit(BaseModel):
    """Protein/carbohydrate/fat grams derived from a calorie figure."""

    protein: float
    carbs: float
    fats: float


class NutritionTargets(BaseModel):
    """Daily calorie and macro targets derived from a profile."""

    target_calories: int = 2000
    target_protein: int = 200
    target_carbs: int = 200
    target_fats: int = 150


class ProfileData(ProfileInput, NutritionTargets):
    """A profile together with the targets computed from it at save time."""


class SettingsResponse(BaseModel):
    """Stored settings for a user; every profile field may still be unset."""

    user_id: str
    gender: Optional[str] = None
    height_cm: Optional[float] = None
    weight_kg: Optional[float] = None
    age: Optional[int] = None
    goal: Optional[str] = None
    target_calories: Optional[int] = None
    target_protein: Optional[int] = None
    target_carbs: Optional[int] = None
    target_fats: Optional[int] = None
    has_api_key: bool = False
    updated_at: Optional[datetime] = None


class ApiKeyRequest(BaseModel):
    api_key: str = Field(..., min_length=1, description="Classifier API key")
