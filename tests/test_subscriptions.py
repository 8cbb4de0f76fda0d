# =============================================================================
# tests/test_subscriptions.py - Live Subscription Tests
# =============================================================================
# Sources are driven by hand here; lib/realtime.py sources are covered in
# test_realtime.py.
# =============================================================================

import pytest

from app.exceptions import PermissionDeniedError
from core.events import PermissionErrorReporter
from core.subscriptions import (
    CollectionSubscription,
    DocumentSubscription,
    SubscriptionError,
)
from tests.fakes import FakeAPIError, permission_error


class ManualSource:
    """ChangeSource whose pushes are triggered by the test."""

    def __init__(self, table="tasks"):
        self.table = table
        self.on_change = None
        self.on_error = None
        self.unsubscribed = False

    def subscribe(self, on_change, on_error):
        self.on_change = on_change
        self.on_error = on_error

        def unsubscribe():
            self.unsubscribed = True

        return unsubscribe

    def push(self, snapshot):
        self.on_change(snapshot)

    def fail(self, error):
        self.on_error(error)


def rows(count):
    # Server order: newest first
    return [
        {"id": f"task-{i}", "title": f"Task {i}", "created_at": f"2024-01-{28 - i:02d}T00:00:00Z"}
        for i in range(count)
    ]


# =============================================================================
# Collection
# =============================================================================

class TestCollectionSubscription:

    def test_starts_loading(self, bus):
        subscription = CollectionSubscription(bus)
        assert subscription.state.loading is True
        assert subscription.state.data == []

    def test_null_query_is_not_ready(self, bus):
        subscription = CollectionSubscription(bus)
        subscription.set_query(None)

        assert subscription.state.loading is False
        assert subscription.state.data == []
        assert subscription.state.error is None

    def test_loading_until_first_snapshot(self, bus):
        subscription = CollectionSubscription(bus)
        source = ManualSource()
        subscription.set_query(source)

        assert subscription.state.loading is True

        source.push(rows(2))
        assert subscription.state.loading is False

    @pytest.mark.parametrize("count", [0, 1, 5])
    def test_snapshot_of_n_rows(self, bus, count):
        subscription = CollectionSubscription(bus)
        source = ManualSource()
        subscription.set_query(source)

        snapshot = list(reversed(rows(count)))

        source.push(snapshot)

        # Ordering is left to the stream renderer
        assert [row["id"] for row in subscription.state.data] == [row["id"] for row in snapshot]

    def test_each_push_replaces_the_result(self, bus):
        subscription = CollectionSubscription(bus)
        source = ManualSource()
        subscription.set_query(source)

        source.push(rows(3))
        source.push(rows(1))

        assert [row["id"] for row in subscription.state.data] == ["task-0"]

    def test_listeners_see_every_state(self, bus):
        subscription = CollectionSubscription(bus)
        states = []
        subscription.listen(states.append)
        source = ManualSource()

        subscription.set_query(source)
        source.push(rows(1))

        assert [state.loading for state in states] == [True, False]

    def test_changing_query_tears_down_previous(self, bus):
        subscription = CollectionSubscription(bus)
        old, new = ManualSource(), ManualSource()

        subscription.set_query(old)
        subscription.set_query(new)

        assert old.unsubscribed is True
        assert new.unsubscribed is False

    def test_late_push_from_old_source_is_ignored(self, bus):
        subscription = CollectionSubscription(bus)
        old, new = ManualSource(), ManualSource()
        subscription.set_query(old)
        subscription.set_query(new)
        new.push(rows(1))

        old.push(rows(4))

        assert len(subscription.state.data) == 1

    def test_close_unsubscribes_and_ignores_pushes(self, bus):
        subscription = CollectionSubscription(bus)
        source = ManualSource()
        subscription.set_query(source)
        source.push(rows(2))

        subscription.close()
        source.push(rows(5))

        assert source.unsubscribed is True
        assert len(subscription.state.data) == 2


class TestSubscriptionFailures:

    def test_permission_error_is_reported_and_degrades(self, bus, permission_events):
        subscription = CollectionSubscription(bus)
        source = ManualSource(table="image_records")
        subscription.set_query(source)
        source.push(rows(2))

        source.fail(permission_error())

        state = subscription.state
        assert state.data == []
        assert state.loading is False
        assert isinstance(state.error, SubscriptionError)
        assert state.error.permission_denied is True
        assert state.error.path == "image_records"

        assert len(permission_events) == 1
        assert permission_events[0].path == "image_records"
        assert permission_events[0].operation == "list"

    def test_other_errors_are_not_reported(self, bus, permission_events):
        subscription = CollectionSubscription(bus)
        source = ManualSource()
        subscription.set_query(source)

        source.fail(FakeAPIError("timeout"))

        assert subscription.state.error.permission_denied is False
        assert subscription.state.error.to_dict()["code"] == "SUBSCRIPTION_FAILED"
        assert permission_events == []

    def test_state_degrades_even_when_reporter_raises(self, bus):
        PermissionErrorReporter(bus, raise_errors=True).mount()
        subscription = CollectionSubscription(bus)
        source = ManualSource()
        subscription.set_query(source)
        source.push(rows(2))

        with pytest.raises(PermissionDeniedError):
            source.fail(permission_error())

        assert subscription.state.data == []
        assert subscription.state.error.permission_denied is True


# =============================================================================
# Document
# =============================================================================

class TestDocumentSubscription:

    def test_missing_document_is_none(self, bus):
        subscription = DocumentSubscription(bus)
        source = ManualSource()
        subscription.set_query(source)

        source.push(None)

        assert subscription.state.data is None
        assert subscription.state.loading is False
        assert subscription.state.error is None

    def test_document_updates(self, bus):
        subscription = DocumentSubscription(bus)
        source = ManualSource()
        subscription.set_query(source)

        source.push({"id": "task-1", "completed": False})
        source.push({"id": "task-1", "completed": True})

        assert subscription.state.data == {"id": "task-1", "completed": True}

    def test_null_query(self, bus):
        subscription = DocumentSubscription(bus)
        subscription.set_query(None)
        assert subscription.state.data is None
        assert subscription.state.loading is False

    def test_permission_error_uses_get_operation(self, bus, permission_events):
        subscription = DocumentSubscription(bus)
        source = ManualSource()
        subscription.set_query(source)

        source.fail(permission_error())

        assert permission_events[0].operation == "get"
        assert subscription.state.data is None
