# =============================================================================
# tests/test_websocket.py - Live Stream Tests
# =============================================================================
# Streams run against the in-memory Supabase client; tokens are signed with
# the HS256 secret from the test environment.
# =============================================================================

import time

import pytest
from fastapi import WebSocketDisconnect
from jose import jwt

from app.config import settings
from app.websocket.routes import LiveStream
from core.subscriptions import CollectionSubscription
from lib.supabase_client import SupabaseClient
from tests.fakes import permission_error
from tests.test_subscriptions import ManualSource


def make_token(user_id: str, expires_in: int = 3600) -> str:
    claims = {
        "sub": user_id,
        "email": "ada@example.com",
        "aud": "authenticated",
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(claims, settings.SUPABASE_JWT_SECRET, algorithm="HS256")


def receive_until(websocket, predicate, limit: int = 10) -> dict:
    """Read JSON messages until one matches `predicate`."""
    for _ in range(limit):
        message = websocket.receive_json()
        if predicate(message):
            return message
    raise AssertionError("expected message never arrived")


def settled(message: dict) -> bool:
    return message["type"] == "snapshot" and message["loading"] is False


@pytest.fixture
def live_db(monkeypatch, supabase):
    monkeypatch.setattr(SupabaseClient, "for_user", staticmethod(lambda access_token: supabase))
    return supabase


class TestTasksStream:

    def test_invalid_token_is_rejected(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/ws/tasks?token=not-a-jwt") as websocket:
                websocket.receive_json()

    def test_expired_token_is_rejected(self, client, user_id):
        token = make_token(user_id, expires_in=-60)
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect(f"/ws/tasks?token={token}") as websocket:
                websocket.receive_json()

    def test_snapshot_filter_and_sign_out(self, client, live_db, user_id, sample_task_rows):
        live_db.tables["tasks"] = sample_task_rows

        with client.websocket_connect(f"/ws/tasks?token={make_token(user_id)}") as websocket:
            auth = websocket.receive_json()
            assert auth == {"type": "auth", "user_id": user_id}

            snapshot = receive_until(websocket, settled)
            assert snapshot["stream"] == "tasks"
            assert snapshot["filter"] == "all"
            assert snapshot["error"] is None
            assert [t["title"] for t in snapshot["data"]] == ["Buy milk", "Call mum", "Water plants"]

            websocket.send_json({"type": "filter", "value": "completed"})
            filtered = websocket.receive_json()
            assert filtered["filter"] == "completed"
            assert [t["title"] for t in filtered["data"]] == ["Water plants"]

            websocket.send_text("ping")
            assert websocket.receive_text() == "pong"

            websocket.send_json({"type": "auth", "token": None})
            assert websocket.receive_json() == {"type": "auth", "user_id": None}
            signed_out = receive_until(websocket, settled)
            assert signed_out["data"] == []

    def test_unknown_filter(self, client, live_db, user_id):
        with client.websocket_connect(f"/ws/tasks?token={make_token(user_id)}") as websocket:
            receive_until(websocket, settled)

            websocket.send_json({"type": "filter", "value": "archived"})

            message = websocket.receive_json()
            assert message["type"] == "error"
            assert "archived" in message["message"]

    def test_only_own_tasks(self, client, live_db, user_id, sample_task_rows):
        other = dict(sample_task_rows[0], id="someone-else", user_id="other-user")
        live_db.tables["tasks"] = sample_task_rows + [other]

        with client.websocket_connect(f"/ws/tasks?token={make_token(user_id)}") as websocket:
            snapshot = receive_until(websocket, settled)

        assert len(snapshot["data"]) == 3
        assert all(t["user_id"] == user_id for t in snapshot["data"])


class TestLiveStreamRender:

    def shuffled_tasks(self):
        return [
            {"id": "b", "title": "B", "completed": True, "created_at": "2024-01-02T00:00:00Z"},
            {"id": "d", "title": "D", "completed": False, "created_at": "2024-01-04T00:00:00Z"},
            {"id": "a", "title": "A", "completed": False, "created_at": "2024-01-01T00:00:00Z"},
            {"id": "c", "title": "C", "completed": False, "created_at": "2024-01-03T00:00:00Z"},
        ]

    def stream_with(self, bus, snapshot):
        subscription = CollectionSubscription(bus)
        source = ManualSource()
        subscription.set_query(source)
        source.push(snapshot)
        return LiveStream("tasks", subscription, source_for=lambda user: source, token=None)

    def test_tasks_are_sent_newest_first(self, bus):
        stream = self.stream_with(bus, self.shuffled_tasks())

        message = stream.render(stream.subscription.state)

        assert [task["id"] for task in message["data"]] == ["d", "c", "b", "a"]
        assert message["filter"] == "all"
        assert message["loading"] is False

    def test_filter_keeps_newest_first(self, bus):
        stream = self.stream_with(bus, self.shuffled_tasks())

        stream.set_filter("active")
        message = stream.outbox.get_nowait()

        assert [task["id"] for task in message["data"]] == ["d", "c", "a"]
        assert message["filter"] == "active"


class TestTaskDocumentStream:

    def test_missing_task_is_null(self, client, live_db, user_id):
        path = f"/ws/tasks/3f2b8c1e-0000-4000-8000-000000000000?token={make_token(user_id)}"

        with client.websocket_connect(path) as websocket:
            snapshot = receive_until(websocket, settled)

        assert snapshot["stream"] == "task"
        assert snapshot["data"] is None

    def test_existing_task(self, client, live_db, user_id, sample_task_rows):
        live_db.tables["tasks"] = sample_task_rows
        task = sample_task_rows[1]

        with client.websocket_connect(f"/ws/tasks/{task['id']}?token={make_token(user_id)}") as websocket:
            snapshot = receive_until(websocket, settled)

        assert snapshot["data"]["title"] == "Buy milk"


class TestImagesStream:

    def test_permission_denied_degrades_to_error(self, client, live_db, user_id):
        live_db.fail_next("image_records", permission_error())

        with client.websocket_connect(f"/ws/images?token={make_token(user_id)}") as websocket:
            snapshot = receive_until(websocket, settled)

        assert snapshot["stream"] == "images"
        assert snapshot["data"] == []
        assert snapshot["error"]["code"] == "PERMISSION_DENIED"


class TestStatus:

    def test_status_shape(self, client):
        body = client.get("/ws/status").json()
        assert set(body) == {"total_connections", "active_channels", "channel_count"}
