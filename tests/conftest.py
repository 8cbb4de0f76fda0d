# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up mock environment variables before any imports
# - Provides an in-memory Supabase stand-in and common sample rows
# =============================================================================

import os

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# This must happen before importing app.config which loads settings immediately

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-enough-length")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")

from uuid import uuid4

import pytest

from core.events import ErrorEventBus, PERMISSION_ERROR
from tests.fakes import FakeSupabase


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def user_id():
    """A fresh user UUID (as a string, the way tokens carry it)."""
    return str(uuid4())


@pytest.fixture
def supabase():
    """In-memory Supabase client."""
    return FakeSupabase()


@pytest.fixture
def bus():
    return ErrorEventBus()


@pytest.fixture
def permission_events(bus):
    """Every permission-error event emitted on `bus`, in order."""
    events = []
    bus.on(PERMISSION_ERROR, events.append)
    return events


@pytest.fixture
def notices():
    """Records change notices instead of publishing them to Redis."""
    sent = []

    def notify(table, user_id=None):
        sent.append((table, str(user_id) if user_id is not None else None))
        return True

    notify.sent = sent
    return notify


@pytest.fixture
def sample_task_rows(user_id):
    """Three tasks with distinct creation times, deliberately out of order."""
    return [
        {
            "id": str(uuid4()),
            "user_id": user_id,
            "title": "Water plants",
            "description": "",
            "completed": True,
            "created_at": "2024-01-15T09:00:00+00:00",
        },
        {
            "id": str(uuid4()),
            "user_id": user_id,
            "title": "Buy milk",
            "description": "2 litres",
            "completed": False,
            "created_at": "2024-01-15T11:00:00+00:00",
        },
        {
            "id": str(uuid4()),
            "user_id": user_id,
            "title": "Call mum",
            "description": "",
            "completed": False,
            "created_at": "2024-01-15T10:00:00+00:00",
        },
    ]


@pytest.fixture
def client(monkeypatch):
    """
    TestClient with the application lifespan running, minus the Redis relay.

    `client.app` is the FastAPI app; dependency overrides set by a test are
    cleared afterwards.
    """
    from fastapi.testclient import TestClient
    from app.main import app

    async def no_redis(hub):
        return None

    monkeypatch.setattr("app.main.redis_change_listener", no_redis)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
