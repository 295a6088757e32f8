"""SQLAlchemy ORM models for the diet tracker.

Accounts and auth sessions back the identity service; settings and meals back
the meal store. Models stay behavior-free. All timestamps are stored as naive
UTC datetimes.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, Text, Index
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone
from uuid import uuid4

Base = declarative_base()


def truncate_to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def utcnow() -> datetime:
    """Current naive UTC time at millisecond precision, like every stored timestamp."""
    return truncate_to_millis(datetime.now(timezone.utc).replace(tzinfo=None))


def new_id() -> str:
    return str(uuid4())


class Account(Base):
    """Identity record: credentials and confirmation state."""

    __tablename__ = "accounts"
    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    email_confirmed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class AuthSession(Base):
    """Issued access/refresh token pair; `expires_at` is epoch seconds."""

    __tablename__ = "auth_sessions"
    access_token = Column(String, primary_key=True)
    refresh_token = Column(String, nullable=False, unique=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    expires_at = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)


class UserSettings(Base):
    """Body metrics, derived nutrition targets and the classifier API key."""

    __tablename__ = "user_settings"
    user_id = Column(String(36), primary_key=True)
    gender = Column(String, nullable=True)
    height_cm = Column(Float, nullable=True)
    weight_kg = Column(Float, nullable=True)
    age = Column(Integer, nullable=True)
    goal = Column(String, nullable=True)
    target_calories = Column(Integer, nullable=True)
    target_protein = Column(Integer, nullable=True)
    target_carbs = Column(Integer, nullable=True)
    target_fats = Column(Integer, nullable=True)
    gemini_api_key = Column(String, nullable=True)
    updated_at = Column(DateTime, default=utcnow)


class Meal(Base):
    """A captured meal. `foods` is a JSON-encoded list of names."""

    __tablename__ = "meals"
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False)
    foods = Column(Text, nullable=False, default="[]")
    calories = Column(Integer, nullable=False, default=0)
    protein = Column(Float, nullable=True)
    carbs = Column(Float, nullable=True)
    fats = Column(Float, nullable=True)
    image = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("ix_meals_user_created", "user_id", "created_at"),)
