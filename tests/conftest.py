"""
Pytest configuration and fixtures for testing.

Settings are read once at import time, so the environment is prepared
before anything from the application is imported.
"""
import os

os.environ["TEST_MODE"] = "true"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.pop("OPENROUTER_API_KEY", None)
os.environ.pop("ELEVENLABS_API_KEY", None)

import pytest
from datetime import datetime
from mongomock_motor import AsyncMongoMockClient
from scriptgenius.db.mongo import mongodb


@pytest.fixture
def db():
    """
    Fixture that provides an isolated, in-memory MongoDB for each test.

    The application reaches the database through ``mongodb.db``, so swapping
    it here is enough for services and routes alike.
    """
    previous = mongodb.db
    mongodb.db = AsyncMongoMockClient()["scriptgenius_test"]
    yield mongodb.db
    mongodb.db = previous


@pytest.fixture
def client(db):
    """TestClient bound to the in-memory database (startup hooks are not run)."""
    from fastapi.testclient import TestClient
    from main import app
    return TestClient(app)


@pytest.fixture
def fake_chain(monkeypatch):
    """Replace the LLM call with a canned script and record the topics asked for."""
    from scriptgenius.ai.script_chain import script_chain

    topics = []

    async def generate(topic, category=None, tags=None):
        topics.append(topic)
        return f'"Which {topic} is your favourite?"\n\n"Share your pick below!"'

    monkeypatch.setattr(script_chain, "generate", generate)
    return topics


async def add_scripts(db, user_id, count, created_at=None):
    """Insert ``count`` script documents for a user directly into the store."""
    for i in range(count):
        await db.scripts.insert_one({
            "user_id": user_id,
            "prompt_text": f"topic {i}",
            "generated_text": f"script {i}",
            "category": None,
            "tags": [],
            "created_at": created_at or datetime.utcnow(),
            "updated_at": None,
            "audio_url": None,
            "audio_filename": None
        })
