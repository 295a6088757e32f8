"""Pydantic schema package for request, response and value models."""

from .profile_schema import (
    ProfileInput,
    ProfileData,
    MacroSplit,
    NutritionTargets,
    SettingsResponse,
    ApiKeyRequest,
)
from .meal_schema import MealRecord, DailySummary, DayView, FoodAnalysis, CaptureResponse
from .auth_schema import (
    CredentialsRequest,
    SignUpRequest,
    RefreshRequest,
    AuthUser,
    SessionInfo,
    AuthResponse,
    SignUpResponse,
)

__all__ = [
    "ProfileInput",
    "ProfileData",
    "MacroSplit",
    "NutritionTargets",
    "SettingsResponse",
    "ApiKeyRequest",
    "MealRecord",
    "DailySummary",
    "DayView",
    "FoodAnalysis",
    "CaptureResponse",
    "CredentialsRequest",
    "SignUpRequest",
    "RefreshRequest",
    "AuthUser",
    "SessionInfo",
    "AuthResponse",
    "SignUpResponse",
]
