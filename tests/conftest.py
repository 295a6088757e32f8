"""Shared fixtures: an in-memory database, a fixed clock and mock classifiers.

The environment is pinned before any application module is imported so the
engines and the logger pick up the test configuration.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone

os.environ["WRITE_DATABASE_URL"] = "sqlite://"
os.environ["READ_DATABASE_URL"] = "sqlite://"
os.environ["TRACKER_TIMEZONE"] = "UTC"
os.environ["REQUIRE_EMAIL_CONFIRMATION"] = "false"
os.environ.setdefault("TRACKER_LOG_DIR", tempfile.mkdtemp(prefix="diet-tracker-logs-"))

import httpx
import pytest
from fastapi.testclient import TestClient

from database import WriteSessionLocal, init_db, write_engine
from database.models import Base
from services.food_classifier import FoodClassifier

CLASSIFIER_URL = "https://classifier.test/v1beta"


def gemini_payload(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class FakeClock:
    """Settable UTC clock; `advance` moves it forward."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def timestamp(self):
        return self.now.timestamp()

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


def _clear_tables():
    with write_engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def db():
    """A write session on a freshly emptied in-memory database."""
    init_db()
    session = WriteSessionLocal()
    try:
        yield session
    finally:
        session.close()
        _clear_tables()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 5, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def make_classifier():
    """Build a `FoodClassifier` whose HTTP calls are answered by `handler`."""
    clients = []

    def factory(handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return FoodClassifier(base_url=CLASSIFIER_URL, model="test-model", client=client)

    return factory


@pytest.fixture
def reply_with(make_classifier):
    """Classifier that always answers with the given model text."""

    def factory(text, status_code=200):
        def handler(request):
            return httpx.Response(status_code, json=gemini_payload(text))

        return make_classifier(handler)

    return factory


@pytest.fixture
def classifier_reply():
    """Mutable reply used by the API client's classifier."""
    return {"text": '{"detected_foods": ["apple", "toast"], "total_calories": 300}', "status_code": 200}


@pytest.fixture
def client(db, classifier_reply, make_classifier):
    from api.dependencies import get_classifier
    from main import app

    def handler(request):
        return httpx.Response(classifier_reply["status_code"], json=gemini_payload(classifier_reply["text"]))

    app.dependency_overrides[get_classifier] = lambda: make_classifier(handler)
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
