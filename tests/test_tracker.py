"""Tests for the client application context: sign-in, day loading and capture."""
import asyncio
from datetime import date, timezone

import httpx
import pytest

from schemas import ProfileInput
from services.capture_pipeline import CaptureStatus
from services.local_store import SESSION_STORAGE_KEY, LocalStore
from services.nutrition_calculator import nutrition_calculator
from services.tracker import DietTracker

PROFILE = {"gender": "female", "height_cm": 165, "weight_kg": 60, "age": 28, "goal": "maintain"}
PHOTO = b"\xff\xd8\xff\xe0fake-jpeg"
APPLE_AND_TOAST = '{"detected_foods": ["apple", "toast"], "total_calories": 300}'


@pytest.fixture
def storage():
    return LocalStore()


@pytest.fixture
def make_tracker(db, storage, clock, reply_with):
    def factory(reply=APPLE_AND_TOAST):
        return DietTracker(db, storage=storage, classifier=reply_with(reply), tz=timezone.utc, clock=clock)

    return factory


@pytest.mark.asyncio
async def test_sign_up_loads_day_and_targets(make_tracker):
    async with make_tracker() as tracker:
        assert tracker.state.user is None
        tracker.sign_up("jane@example.com", "secret1", PROFILE)

        state = tracker.state
        assert state.user.email == "jane@example.com"
        assert state.current_date == date(2024, 1, 5)
        expected = nutrition_calculator.calculate_targets(ProfileInput(**PROFILE))
        assert state.targets == expected


@pytest.mark.asyncio
async def test_capture_then_change_date(make_tracker):
    async with make_tracker() as tracker:
        tracker.sign_up("jane@example.com", "secret1")
        assert tracker.save_api_key("secret-key") is True
        assert tracker.state.notifications[-1].message == "API key saved successfully!"

        result = await tracker.capture(PHOTO, "image/jpeg")
        assert result.ok
        assert tracker.state.summary.calories == 300
        assert [m.id for m in tracker.state.meals] == [result.meal.id]

        tracker.change_date(date(2024, 1, 4))
        assert tracker.state.meals == []
        assert tracker.state.summary.calories == 0

        tracker.change_date(date(2024, 1, 5))
        assert tracker.state.summary.calories == 300
        assert tracker.state.summary.protein == pytest.approx(22.5)


@pytest.mark.asyncio
async def test_capture_without_api_key_notifies(make_tracker):
    async with make_tracker() as tracker:
        tracker.sign_up("jane@example.com", "secret1")
        result = await tracker.capture(PHOTO, "image/jpeg")

        assert not result.ok
        assert tracker.state.notifications[-1].message == "Please configure your Gemini API key in settings first"


@pytest.mark.asyncio
async def test_stored_session_is_restored_on_start(make_tracker, storage):
    async with make_tracker() as tracker:
        tracker.sign_up("jane@example.com", "secret1")
        tracker.save_api_key("secret-key")

    async with make_tracker() as restored:
        assert restored.state.user.email == "jane@example.com"
        assert restored.state.api_key == "secret-key"
        assert restored.state.current_date == date(2024, 1, 5)


@pytest.mark.asyncio
async def test_expired_session_is_cleared_on_start(make_tracker, storage, clock):
    async with make_tracker() as tracker:
        tracker.sign_up("jane@example.com", "secret1")

    clock.advance(3600)
    async with make_tracker() as restored:
        assert restored.state.user is None
        assert SESSION_STORAGE_KEY not in storage


@pytest.mark.asyncio
async def test_sign_out_clears_state(make_tracker, storage):
    async with make_tracker() as tracker:
        tracker.sign_up("jane@example.com", "secret1")
        assert tracker.sign_out() is True
        assert tracker.state.user is None
        assert SESSION_STORAGE_KEY not in storage


@pytest.mark.asyncio
async def test_delete_account_notifies(make_tracker):
    async with make_tracker() as tracker:
        user = tracker.sign_up("jane@example.com", "secret1").user
        tracker.delete_account()

        assert tracker.state.user is None
        assert tracker.state.notifications[-1].message == "Account deleted successfully!"
        assert tracker.store.get_settings(user.id) is None


@pytest.mark.asyncio
async def test_capture_finishing_after_stop_leaves_state_alone(db, clock, make_classifier):
    started = asyncio.Event()
    release = asyncio.Event()

    async def slow_reply(request):
        started.set()
        await release.wait()
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": APPLE_AND_TOAST}]}}]})

    tracker = DietTracker(db, storage=LocalStore(), classifier=make_classifier(slow_reply), tz=timezone.utc, clock=clock)
    await tracker.start()
    user = tracker.sign_up("jane@example.com", "secret1").user
    tracker.save_api_key("secret-key")
    notifications = list(tracker.state.notifications)

    pending = asyncio.create_task(tracker.capture(PHOTO, "image/jpeg"))
    await started.wait()
    await tracker.stop()
    release.set()
    result = await pending

    assert result.status is CaptureStatus.CANCELLED
    assert tracker.state.meals == []
    assert tracker.state.summary.calories == 0
    assert tracker.state.notifications == notifications
    assert tracker.aggregator.list_meals_for_date(user.id, date(2024, 1, 5)) == []


@pytest.mark.asyncio
async def test_capture_after_stop_is_ignored(make_tracker):
    tracker = make_tracker()
    await tracker.start()
    tracker.sign_up("jane@example.com", "secret1")
    tracker.save_api_key("secret-key")
    await tracker.stop()

    result = await tracker.capture(PHOTO, "image/jpeg")
    assert result.status is CaptureStatus.CANCELLED
    assert tracker.state.meals == []
