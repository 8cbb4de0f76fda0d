# =============================================================================
# lib/realtime.py - Live Query Sources
# =============================================================================
# Turns plain Supabase queries into live change sources.
#
# Writers publish "table changed" notices (see app/websocket/broadcast.py);
# the application lifespan relays them into a ChangeHub. A LiveQuery or
# LiveDocument registered with the hub re-runs its query whenever its table
# changes and pushes the full result (a snapshot) to its subscriber.
#
# Every source implements the same observer contract:
#
#   unsubscribe = source.subscribe(on_change, on_error)
#
# Usage:
#   hub = ChangeHub()
#   query = CollectionQuery("tasks", filters=(("user_id", uid),), order_by="created_at", descending=True)
#   unsubscribe = LiveQuery(client, query, hub).subscribe(print, print)
#   hub.notify("tasks", uid)   # -> refetch, print(new snapshot)
#   unsubscribe()
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from supabase import Client

from lib.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

Unsubscribe = Callable[[], None]


class ChangeSource(Protocol[T_co]):
    """Anything a subscription can register with."""

    def subscribe(
        self,
        on_change: Callable[[T_co], None],
        on_error: Callable[[Exception], None],
    ) -> Unsubscribe:
        ...


# =============================================================================
# Query Descriptor
# =============================================================================

@dataclass(frozen=True)
class CollectionQuery:
    """
    Description of a collection query: equality filters plus ordering.

    Frozen so that two descriptors for the same query compare equal, which
    lets subscribers skip re-registration when nothing changed.
    """
    table: str
    filters: tuple[tuple[str, Any], ...] = ()
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None

    @property
    def filter_dict(self) -> dict[str, Any]:
        return dict(self.filters)

    @property
    def owner_id(self) -> str | None:
        """Value of the user_id filter, if the query is scoped to one user."""
        owner = self.filter_dict.get("user_id")
        return str(owner) if owner is not None else None


# =============================================================================
# Change Hub
# =============================================================================

HubListener = Callable[[str | None], None]


class ChangeHub:
    """
    In-process fan-out of table change notices.

    Listeners receive the user_id carried by the notice (or None when the
    writer did not scope it).
    """

    def __init__(self):
        self._listeners: dict[str, list[HubListener]] = {}

    def add_listener(self, table: str, listener: HubListener) -> Unsubscribe:
        self._listeners.setdefault(table, []).append(listener)

        def remove() -> None:
            listeners = self._listeners.get(table)
            if listeners and listener in listeners:
                listeners.remove(listener)
                if not listeners:
                    del self._listeners[table]

        return remove

    def notify(self, table: str, user_id: str | None = None) -> int:
        """
        Tell every listener of `table` that it changed.

        Returns:
            int: Number of listeners notified
        """
        listeners = list(self._listeners.get(table, ()))
        for listener in listeners:
            listener(user_id)
        logger.debug(f"Change on {table} (user={user_id}) -> {len(listeners)} listeners")
        return len(listeners)

    def listener_count(self, table: str | None = None) -> int:
        if table is not None:
            return len(self._listeners.get(table, ()))
        return sum(len(listeners) for listeners in self._listeners.values())


# =============================================================================
# Live Sources
# =============================================================================

class RefetchingSource(Generic[T]):
    """
    Change source that re-runs `fetch` on every change notice for `table`.

    The blocking fetch runs in a worker thread so the event loop stays
    responsive. Results are delivered in request order: a slow, older
    fetch never overwrites a newer snapshot, and nothing is delivered after
    unsubscribe. Must be subscribed from within a running event loop.
    """

    def __init__(
        self,
        fetch: Callable[[], T],
        hub: ChangeHub,
        table: str,
        owner_id: str | None = None,
    ):
        self.fetch = fetch
        self.hub = hub
        self.table = table
        self.owner_id = owner_id

    def subscribe(
        self,
        on_change: Callable[[T], None],
        on_error: Callable[[Exception], None],
    ) -> Unsubscribe:
        loop = asyncio.get_running_loop()
        pending: set[asyncio.Task] = set()
        active = True
        issued = 0
        delivered = 0

        async def refresh(seq: int) -> None:
            nonlocal delivered
            try:
                result = await asyncio.to_thread(self.fetch)
            except Exception as e:
                if active and seq > delivered:
                    delivered = seq
                    try:
                        on_error(e)
                    except Exception:
                        logger.exception(f"Error handler for {self.table} failed")
                return

            if active and seq > delivered:
                delivered = seq
                on_change(result)

        def start() -> None:
            nonlocal issued
            if not active:
                return
            issued += 1
            task = loop.create_task(refresh(issued))
            pending.add(task)
            task.add_done_callback(pending.discard)

        def schedule(user_id: str | None = None) -> None:
            if self.owner_id and user_id and user_id != self.owner_id:
                return
            try:
                on_loop = asyncio.get_running_loop() is loop
            except RuntimeError:
                on_loop = False
            # Writers running in worker threads notify from off the loop
            if on_loop:
                start()
            else:
                loop.call_soon_threadsafe(start)

        remove_listener = self.hub.add_listener(self.table, schedule)
        schedule()

        def unsubscribe() -> None:
            nonlocal active
            if not active:
                return
            active = False
            remove_listener()
            for task in list(pending):
                task.cancel()

        return unsubscribe


class LiveQuery(RefetchingSource[list[dict[str, Any]]]):
    """Live snapshot of a collection query."""

    def __init__(self, client: Client, query: CollectionQuery, hub: ChangeHub):
        self.client = client
        self.query = query
        super().__init__(
            fetch=self._fetch,
            hub=hub,
            table=query.table,
            owner_id=query.owner_id,
        )

    def _fetch(self) -> list[dict[str, Any]]:
        return SupabaseClient.select_rows(
            self.client,
            self.query.table,
            filters=self.query.filter_dict,
            order_by=self.query.order_by,
            descending=self.query.descending,
            limit=self.query.limit,
        )


class LiveDocument(RefetchingSource[dict[str, Any] | None]):
    """Live view of one row; pushes None while the row does not exist."""

    def __init__(
        self,
        client: Client,
        table: str,
        doc_id: str,
        hub: ChangeHub,
        filters: dict[str, Any] | None = None,
    ):
        self.client = client
        self.doc_id = doc_id
        self.filters = filters or {}
        owner = self.filters.get("user_id")
        super().__init__(
            fetch=self._fetch,
            hub=hub,
            table=table,
            owner_id=str(owner) if owner is not None else None,
        )

    def _fetch(self) -> dict[str, Any] | None:
        return SupabaseClient.fetch_row(self.client, self.table, self.doc_id, filters=self.filters)
