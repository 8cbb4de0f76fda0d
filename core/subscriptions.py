# =============================================================================
# core/subscriptions.py - Live Collection / Document Subscriptions
# =============================================================================
# Local state fed by a ChangeSource (see lib/realtime.py).
#
# A subscription owns one registration at a time. Changing the source tears
# the old registration down before the new one is made; every push replaces
# the whole result; failures are classified, reported on the diagnostic bus
# when permission was denied, and degrade the state to empty + error.
#
# Usage:
#   tasks = CollectionSubscription(bus)
#   tasks.listen(lambda state: print(state.data))
#   tasks.set_query(LiveQuery(client, query, hub))
#   ...
#   tasks.close()
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from core.events import ErrorEventBus, report_permission_error
from lib.realtime import ChangeSource, Unsubscribe
from lib.supabase_client import is_permission_denied

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SubscriptionError(Exception):
    """
    Typed failure of a live subscription.

    Attributes:
        path: Table the subscription was watching
        permission_denied: True when the service refused the read
    """

    def __init__(self, path: str, error: Exception, permission_denied: bool = False):
        super().__init__(f"Subscription to {path} failed: {error}")
        self.path = path
        self.permission_denied = permission_denied
        self.cause = error

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "code": "PERMISSION_DENIED" if self.permission_denied else "SUBSCRIPTION_FAILED",
            "message": str(self),
        }


@dataclass(frozen=True)
class SubscriptionState(Generic[T]):
    data: T
    loading: bool = True
    error: SubscriptionError | None = None


CollectionState = SubscriptionState[list[dict[str, Any]]]
DocumentState = SubscriptionState[dict[str, Any] | None]


class _Subscription(Generic[T]):
    """Shared lifecycle of collection and document subscriptions."""

    operation = "list"

    def __init__(self, bus: ErrorEventBus | None, empty: T):
        self.bus = bus
        self._empty = empty
        self._state: SubscriptionState[T] = SubscriptionState(data=empty, loading=True)
        self._source: ChangeSource[T] | None = None
        self._unsubscribe: Unsubscribe | None = None
        self._listeners: list[Callable[[SubscriptionState[T]], None]] = []
        self._generation = 0

    @property
    def state(self) -> SubscriptionState[T]:
        return self._state

    @property
    def source(self) -> ChangeSource[T] | None:
        return self._source

    def listen(self, callback: Callable[[SubscriptionState[T]], None]) -> Unsubscribe:
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def set_query(self, source: ChangeSource[T] | None) -> None:
        """
        Point the subscription at a new source.

        None means "not ready" (e.g. no signed-in user yet): the state
        resolves to empty, not loading, without registering anywhere.
        """
        self._teardown()
        self._source = source

        if source is None:
            self._set_state(SubscriptionState(data=self._empty, loading=False))
            return

        self._generation += 1
        generation = self._generation
        self._set_state(SubscriptionState(data=self._empty, loading=True))

        def on_change(snapshot: T) -> None:
            if generation == self._generation:
                self._set_state(SubscriptionState(data=self._convert(snapshot), loading=False))

        def on_error(error: Exception) -> None:
            if generation == self._generation:
                self._fail(error)

        self._unsubscribe = source.subscribe(on_change, on_error)

    def close(self) -> None:
        self._teardown()
        self._source = None
        self._listeners.clear()

    def _teardown(self) -> None:
        # Bumping the generation makes late pushes from the old source no-ops
        self._generation += 1
        if self._unsubscribe is not None:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            unsubscribe()

    def _fail(self, error: Exception) -> None:
        path = getattr(self._source, "table", "unknown")
        denied = is_permission_denied(error)
        typed = SubscriptionError(path, error, permission_denied=denied)
        logger.warning(f"{typed}")
        try:
            if denied:
                report_permission_error(self.bus, path, self.operation)
        finally:
            self._set_state(SubscriptionState(data=self._empty, loading=False, error=typed))

    def _set_state(self, state: SubscriptionState[T]) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def _convert(self, snapshot: T) -> T:
        return snapshot


class CollectionSubscription(_Subscription[list[dict[str, Any]]]):
    """
    Live, ordered list of rows.

    Each push replaces the full result set and keeps the server's order.
    """

    operation = "list"

    def __init__(self, bus: ErrorEventBus | None):
        super().__init__(bus, empty=[])

    def _convert(self, snapshot: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return [dict(row) for row in snapshot]


class DocumentSubscription(_Subscription[dict[str, Any] | None]):
    """Live view of a single row; data is None when it does not exist."""

    operation = "get"

    def __init__(self, bus: ErrorEventBus | None):
        super().__init__(bus, empty=None)

    def _convert(self, snapshot: dict[str, Any] | None) -> dict[str, Any] | None:
        return dict(snapshot) if snapshot is not None else None
