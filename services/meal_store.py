"""Meal and settings persistence.

`MealStore` is the single gateway to the `meals` and `user_settings` tables.
Time-range queries take timezone-aware datetimes; rows are stored in UTC.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import DateTime, Integer, String, column, delete, insert, select, table, update
from sqlalchemy.exc import OperationalError, ProgrammingError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import DatabaseError
from core.logger import get_logger
from core.repository import BaseRepository, save
from database.models import Meal, UserSettings, truncate_to_millis, utcnow
from schemas import MealRecord, ProfileData

logger = get_logger("services.meal_store")

PROFILE_FIELDS = ("gender", "height_cm", "weight_kg", "age", "goal")
TARGET_FIELDS = ("target_calories", "target_protein", "target_carbs", "target_fats")
SETTINGS_FIELDS = PROFILE_FIELDS + TARGET_FIELDS + ("gemini_api_key",)

# Subset of user_settings that predates the profile columns.
_basic_settings = table(
    "user_settings",
    column("user_id", String),
    *(column(name, Integer) for name in TARGET_FIELDS),
    column("updated_at", DateTime),
)

NutritionRow = Tuple[Optional[float], Optional[float], Optional[float], Optional[float]]


def to_storage_time(value: datetime) -> datetime:
    """Convert an aware datetime to the naive UTC form used in the database.

    Sub-millisecond digits are dropped so that no stored meal falls between
    a day's last millisecond and the next day's first.
    """
    if value.tzinfo is None:
        raise ValueError("timezone-aware datetime required")
    return truncate_to_millis(value.astimezone(timezone.utc).replace(tzinfo=None))


def from_storage_time(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc)


def _is_missing_column(exc: SQLAlchemyError) -> bool:
    if not isinstance(exc, (OperationalError, ProgrammingError)):
        return False
    if getattr(exc.orig, "pgcode", None) == "42703":
        return True
    return "column" in str(exc.orig).lower()


def meal_to_record(meal: Meal) -> MealRecord:
    return MealRecord(
        id=meal.id,
        user_id=meal.user_id,
        foods=json.loads(meal.foods or "[]"),
        calories=meal.calories or 0,
        protein=meal.protein,
        carbs=meal.carbs,
        fats=meal.fats,
        image=meal.image,
        created_at=from_storage_time(meal.created_at),
    )


def settings_to_dict(row: UserSettings) -> Dict[str, Any]:
    data = {name: getattr(row, name) for name in SETTINGS_FIELDS}
    data["user_id"] = row.user_id
    data["updated_at"] = row.updated_at
    return data


class MealStore(BaseRepository[Meal]):
    """Persistence gateway for meals and user settings."""

    def __init__(self, session: Session):
        super().__init__(Meal, session)

    # Settings

    def get_settings(self, user_id: str) -> Optional[Dict[str, Any]]:
        row = self.session.get(UserSettings, user_id)
        return settings_to_dict(row) if row else None

    def upsert_settings(self, user_id: str, profile: ProfileData) -> Dict[str, Any]:
        """Insert or merge a profile and its targets into the user's settings.

        Fields not carried by `profile` (e.g. the API key) are kept. If the
        database lacks the profile columns only the targets are written; the
        profile values are then lost and only a warning is logged.
        """
        values = profile.model_dump(include=set(PROFILE_FIELDS + TARGET_FIELDS))
        try:
            return self._merge_settings(user_id, values)
        except DatabaseError as exc:
            cause = exc.__cause__
            if not (isinstance(cause, SQLAlchemyError) and _is_missing_column(cause)):
                raise
            logger.warning("Profile columns not found for user %s, saving basic targets only", user_id)
        return self._upsert_basic_targets(user_id, {name: values[name] for name in TARGET_FIELDS})

    def update_settings(self, user_id: str, **fields: Any) -> Dict[str, Any]:
        """Merge arbitrary known settings fields, e.g. `gemini_api_key`."""
        unknown = set(fields) - set(SETTINGS_FIELDS)
        if unknown:
            raise ValueError(f"Unknown settings fields: {sorted(unknown)}")
        return self._merge_settings(user_id, fields)

    def _merge_settings(self, user_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        try:
            row = self.session.get(UserSettings, user_id)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise DatabaseError("Failed to load user settings", operation="upsert") from exc
        if row is None:
            row = UserSettings(user_id=user_id)
        for name, value in values.items():
            setattr(row, name, value)
        row.updated_at = utcnow()
        return settings_to_dict(save(self.session, row))

    def _upsert_basic_targets(self, user_id: str, targets: Dict[str, Any]) -> Dict[str, Any]:
        values = dict(targets, updated_at=utcnow())
        try:
            exists = self.session.execute(
                select(_basic_settings.c.user_id).where(_basic_settings.c.user_id == user_id)
            ).first()
            if exists:
                stmt = update(_basic_settings).where(_basic_settings.c.user_id == user_id).values(**values)
            else:
                stmt = insert(_basic_settings).values(user_id=user_id, **values)
            self.session.execute(stmt)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Error saving basic targets for user %s: %s", user_id, exc)
            raise DatabaseError("Failed to save nutrition targets", operation="upsert") from exc
        return dict(values, user_id=user_id)

    # Meals

    def list_meals(self, user_id: str, start: datetime, end: datetime) -> List[MealRecord]:
        """Return the user's meals with `start <= created_at <= end`, newest first."""
        stmt = (
            select(Meal)
            .where(Meal.user_id == user_id)
            .where(Meal.created_at >= to_storage_time(start))
            .where(Meal.created_at <= to_storage_time(end))
            .order_by(Meal.created_at.desc())
        )
        return [meal_to_record(m) for m in self.session.scalars(stmt)]

    def list_meal_nutrition(self, user_id: str, start: datetime, end: datetime) -> List[NutritionRow]:
        """Like `list_meals` but fetch only (calories, protein, carbs, fats)."""
        stmt = (
            select(Meal.calories, Meal.protein, Meal.carbs, Meal.fats)
            .where(Meal.user_id == user_id)
            .where(Meal.created_at >= to_storage_time(start))
            .where(Meal.created_at <= to_storage_time(end))
        )
        return [tuple(row) for row in self.session.execute(stmt)]

    def add_meal(
        self,
        user_id: str,
        foods: Sequence[str],
        calories: int,
        protein: Optional[float],
        carbs: Optional[float],
        fats: Optional[float],
        image: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> MealRecord:
        """Insert a meal; the id and (unless given) timestamp are assigned here."""
        meal = Meal(
            user_id=user_id,
            foods=json.dumps(list(foods)),
            calories=calories,
            protein=protein,
            carbs=carbs,
            fats=fats,
            image=image,
            created_at=to_storage_time(created_at) if created_at else utcnow(),
        )
        meal = self.create(meal)
        logger.info("Meal %s saved for user %s (%s kcal)", meal.id, user_id, calories)
        return meal_to_record(meal)

    def get_meal(self, meal_id: str) -> Optional[MealRecord]:
        meal = self.get_by_id(meal_id)
        return meal_to_record(meal) if meal else None

    def delete_meal(self, meal_id: str) -> bool:
        return self.delete_by_id(meal_id)

    def delete_account(self, user_id: str) -> int:
        """Remove every meal and the settings row of a user.

        Returns:
            Number of meals removed.
        """
        try:
            removed = self.session.execute(delete(Meal).where(Meal.user_id == user_id)).rowcount
            self.session.execute(delete(UserSettings).where(UserSettings.user_id == user_id))
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Account data deletion failed for user %s", user_id)
            raise DatabaseError("Failed to delete account data", operation="delete_account") from exc
        logger.info("Deleted account data for user %s (%s meals)", user_id, removed)
        return removed
