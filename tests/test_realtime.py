# =============================================================================
# tests/test_realtime.py - Change Hub and Live Source Tests
# =============================================================================

import asyncio
import threading

import pytest

from core.subscriptions import CollectionSubscription, DocumentSubscription
from lib.realtime import (
    ChangeHub,
    CollectionQuery,
    LiveDocument,
    LiveQuery,
    RefetchingSource,
)


class Collector:
    """on_change / on_error pair that can be awaited."""

    def __init__(self):
        self.snapshots = []
        self.errors = []
        self._event = asyncio.Event()

    def on_change(self, snapshot):
        self.snapshots.append(snapshot)
        self._event.set()

    def on_error(self, error):
        self.errors.append(error)
        self._event.set()

    async def wait(self, timeout=2.0):
        await asyncio.wait_for(self._event.wait(), timeout)
        self._event.clear()


# =============================================================================
# ChangeHub
# =============================================================================

class TestChangeHub:

    def test_notify_reaches_table_listeners(self):
        hub = ChangeHub()
        seen = []
        hub.add_listener("tasks", seen.append)
        hub.add_listener("image_records", lambda user_id: seen.append("wrong table"))

        assert hub.notify("tasks", "u1") == 1
        assert seen == ["u1"]

    def test_remove_listener(self):
        hub = ChangeHub()
        seen = []
        remove = hub.add_listener("tasks", seen.append)

        remove()
        remove()

        assert hub.notify("tasks") == 0
        assert hub.listener_count() == 0

    def test_listener_count(self):
        hub = ChangeHub()
        hub.add_listener("tasks", print)
        hub.add_listener("tasks", print)
        hub.add_listener("image_records", print)

        assert hub.listener_count("tasks") == 2
        assert hub.listener_count() == 3


# =============================================================================
# RefetchingSource
# =============================================================================

class TestRefetchingSource:

    @pytest.mark.asyncio
    async def test_initial_snapshot(self):
        hub = ChangeHub()
        source = RefetchingSource(lambda: ["a"], hub, "tasks")
        collector = Collector()

        unsubscribe = source.subscribe(collector.on_change, collector.on_error)
        await collector.wait()
        unsubscribe()

        assert collector.snapshots == [["a"]]

    @pytest.mark.asyncio
    async def test_refetch_on_change(self):
        hub = ChangeHub()
        results = iter([["a"], ["a", "b"]])
        source = RefetchingSource(lambda: next(results), hub, "tasks")
        collector = Collector()

        unsubscribe = source.subscribe(collector.on_change, collector.on_error)
        await collector.wait()
        hub.notify("tasks")
        await collector.wait()
        unsubscribe()

        assert collector.snapshots == [["a"], ["a", "b"]]

    @pytest.mark.asyncio
    async def test_notice_from_worker_thread(self):
        hub = ChangeHub()
        results = iter([["a"], ["a", "b"]])
        source = RefetchingSource(lambda: next(results), hub, "tasks", owner_id="u1")
        collector = Collector()

        unsubscribe = source.subscribe(collector.on_change, collector.on_error)
        await collector.wait()
        await asyncio.to_thread(hub.notify, "tasks", "u1")
        await collector.wait()
        unsubscribe()

        assert collector.snapshots == [["a"], ["a", "b"]]

    @pytest.mark.asyncio
    async def test_notices_for_other_users_are_skipped(self):
        hub = ChangeHub()
        calls = []

        def fetch():
            calls.append(1)
            return []

        source = RefetchingSource(fetch, hub, "tasks", owner_id="u1")
        collector = Collector()
        unsubscribe = source.subscribe(collector.on_change, collector.on_error)
        await collector.wait()

        hub.notify("tasks", "u2")
        await asyncio.sleep(0.05)
        unsubscribe()

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_fetch_error_goes_to_on_error(self):
        hub = ChangeHub()

        def fetch():
            raise RuntimeError("boom")

        collector = Collector()
        unsubscribe = RefetchingSource(fetch, hub, "tasks").subscribe(
            collector.on_change, collector.on_error
        )
        await collector.wait()
        unsubscribe()

        assert collector.snapshots == []
        assert str(collector.errors[0]) == "boom"

    @pytest.mark.asyncio
    async def test_nothing_delivered_after_unsubscribe(self):
        hub = ChangeHub()
        gate = threading.Event()

        def fetch():
            gate.wait(2)
            return ["late"]

        collector = Collector()
        unsubscribe = RefetchingSource(fetch, hub, "tasks").subscribe(
            collector.on_change, collector.on_error
        )
        unsubscribe()
        gate.set()
        await asyncio.sleep(0.05)

        assert collector.snapshots == []
        assert hub.listener_count("tasks") == 0

    @pytest.mark.asyncio
    async def test_older_fetch_never_overwrites_newer(self):
        hub = ChangeHub()
        gate = threading.Event()
        first_done = threading.Event()
        calls = []

        def fetch():
            calls.append(1)
            if len(calls) == 1:
                gate.wait(2)
                first_done.set()
                return ["stale"]
            return ["fresh"]

        collector = Collector()
        unsubscribe = RefetchingSource(fetch, hub, "tasks").subscribe(
            collector.on_change, collector.on_error
        )
        while not calls:
            await asyncio.sleep(0.005)
        hub.notify("tasks")
        await collector.wait()

        gate.set()
        await asyncio.to_thread(first_done.wait, 2)
        await asyncio.sleep(0.05)
        unsubscribe()

        assert collector.snapshots == [["fresh"]]


# =============================================================================
# Live Supabase Sources
# =============================================================================

class TestLiveQuery:

    @pytest.mark.asyncio
    async def test_live_query_feeds_subscription(self, supabase, bus, user_id):
        hub = ChangeHub()
        supabase.tables["tasks"] = [
            {"id": "t1", "user_id": user_id, "title": "old", "created_at": "2024-01-01T00:00:00Z"},
            {"id": "t2", "user_id": user_id, "title": "new", "created_at": "2024-01-02T00:00:00Z"},
            {"id": "t3", "user_id": "someone-else", "title": "x", "created_at": "2024-01-03T00:00:00Z"},
        ]
        query = CollectionQuery(
            "tasks",
            filters=(("user_id", user_id),),
            order_by="created_at",
            descending=True,
        )
        subscription = CollectionSubscription(bus)
        received = asyncio.Event()
        subscription.listen(lambda state: received.set() if not state.loading else None)

        subscription.set_query(LiveQuery(supabase, query, hub))
        await asyncio.wait_for(received.wait(), 2)

        assert [row["title"] for row in subscription.state.data] == ["new", "old"]

        received.clear()
        supabase.tables["tasks"].append(
            {"id": "t4", "user_id": user_id, "title": "newest", "created_at": "2024-01-04T00:00:00Z"}
        )
        hub.notify("tasks", user_id)
        await asyncio.wait_for(received.wait(), 2)
        subscription.close()

        assert [row["title"] for row in subscription.state.data] == ["newest", "new", "old"]

    def test_query_owner(self):
        query = CollectionQuery("tasks", filters=(("user_id", "u1"),))
        assert query.owner_id == "u1"
        assert CollectionQuery("tasks").owner_id is None

    def test_equal_queries_compare_equal(self):
        first = CollectionQuery("tasks", filters=(("user_id", "u1"),), order_by="created_at")
        second = CollectionQuery("tasks", filters=(("user_id", "u1"),), order_by="created_at")
        assert first == second

    @pytest.mark.asyncio
    async def test_live_document_missing_then_created(self, supabase, bus, user_id):
        hub = ChangeHub()
        subscription = DocumentSubscription(bus)
        received = asyncio.Event()
        subscription.listen(lambda state: received.set() if not state.loading else None)

        subscription.set_query(
            LiveDocument(supabase, "tasks", "t1", hub, filters={"user_id": user_id})
        )
        await asyncio.wait_for(received.wait(), 2)
        assert subscription.state.data is None

        received.clear()
        supabase.tables["tasks"] = [{"id": "t1", "user_id": user_id, "title": "Buy milk"}]
        hub.notify("tasks", user_id)
        await asyncio.wait_for(received.wait(), 2)
        subscription.close()

        assert subscription.state.data["title"] == "Buy milk"
