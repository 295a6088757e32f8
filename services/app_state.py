"""In-memory application state for one signed-in client.

Passed explicitly to the session manager, capture pipeline and tracker
instead of living in module globals.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from schemas import AuthUser, DailySummary, DayView, MealRecord, NutritionTargets


@dataclass
class Notification:
    """A user-facing message, e.g. a collaborator failure or session expiry."""

    title: str
    message: str


@dataclass
class AppState:
    user: Optional[AuthUser] = None
    api_key: str = ""
    current_date: Optional[date] = None
    targets: NutritionTargets = field(default_factory=NutritionTargets)
    settings: Optional[dict] = None
    meals: List[MealRecord] = field(default_factory=list)
    summary: DailySummary = field(default_factory=DailySummary)
    notifications: List[Notification] = field(default_factory=list)

    def notify(self, title: str, message: str) -> Notification:
        note = Notification(title, message)
        self.notifications.append(note)
        return note

    def apply_day(self, view: DayView) -> None:
        self.current_date = view.date
        self.meals = list(view.meals)
        self.summary = view.summary.model_copy()

    def add_meal(self, meal: MealRecord) -> None:
        """Prepend a freshly saved meal and add it to the running totals."""
        self.meals.insert(0, meal)
        self.summary.calories += meal.calories or 0
        self.summary.protein += meal.protein or 0
        self.summary.carbs += meal.carbs or 0
        self.summary.fats += meal.fats or 0

    def day_view(self) -> DayView:
        return DayView(date=self.current_date, meals=list(self.meals), summary=self.summary.model_copy())

    def reset(self) -> None:
        """Return to the signed-out defaults; pending notifications are kept."""
        self.user = None
        self.api_key = ""
        self.targets = NutritionTargets()
        self.settings = None
        self.meals = []
        self.summary = DailySummary()
