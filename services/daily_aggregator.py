"""Day-scoped meal listing and nutrition totals.

A calendar day spans [00:00:00.000, 23:59:59.999] in the caller's time zone,
both ends inclusive, so a meal logged at 23:59:59.999 belongs to that day and
one at 00:00:00.000 belongs to the next.
"""

from datetime import date, datetime, time, timedelta, tzinfo
from typing import List, Optional, Tuple

from core.config import settings
from core.logger import get_logger
from schemas import DailySummary, DayView, MealRecord
from services.meal_store import MealStore

logger = get_logger("services.daily_aggregator")

END_OF_DAY = time(23, 59, 59, 999000)


def day_window(day: date, tz: tzinfo) -> Tuple[datetime, datetime]:
    """Return the inclusive (start, end) of `day` as aware datetimes in `tz`."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day, END_OF_DAY, tzinfo=tz)
    return start, end


def local_date(moment: datetime, tz: tzinfo) -> date:
    """Calendar date of an aware `moment` as seen from `tz`."""
    return moment.astimezone(tz).date()


class DailyAggregator:
    """Computes the meal list and summed nutrition for a user and a day."""

    def __init__(self, store: MealStore, tz: Optional[tzinfo] = None):
        self.store = store
        self.tz = tz or settings.timezone

    def list_meals_for_date(self, user_id: str, day: date) -> List[MealRecord]:
        start, end = day_window(day, self.tz)
        return self.store.list_meals(user_id, start, end)

    def summarize_date(self, user_id: str, day: date) -> DailySummary:
        """Fold calories and macros over the day's meals; missing values count as 0."""
        start, end = day_window(day, self.tz)
        summary = DailySummary()
        for calories, protein, carbs, fats in self.store.list_meal_nutrition(user_id, start, end):
            summary.calories += calories or 0
            summary.protein += protein or 0
            summary.carbs += carbs or 0
            summary.fats += fats or 0
        logger.debug("Summary for %s on %s: %s", user_id, day, summary)
        return summary

    def load_day(self, user_id: str, day: date) -> DayView:
        return DayView(
            date=day,
            meals=self.list_meals_for_date(user_id, day),
            summary=self.summarize_date(user_id, day),
        )
