# =============================================================================
# core/events.py - Diagnostic Event Bus
# =============================================================================
# A publish/subscribe channel for authorization failures.
#
# Producers (services, live subscriptions, the image workflow) emit a
# PermissionErrorEvent whenever the backing service refuses an operation.
# A PermissionErrorReporter mounted once per application instance turns the
# event into a PermissionDeniedError so developers see the refused path and
# operation.
#
# The bus is an explicit instance (stored on app.state), not a module-level
# singleton. Emit is synchronous and fire-and-forget; nothing is buffered, so
# events raised while no listener is attached are dropped.
#
# Usage:
#   bus = ErrorEventBus()
#   reporter = PermissionErrorReporter(bus, raise_errors=settings.DEBUG)
#   reporter.mount()
#   bus.emit(PERMISSION_ERROR, PermissionErrorEvent(path="tasks", operation="list"))
# =============================================================================

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from app.exceptions import PermissionDeniedError

logger = logging.getLogger(__name__)

PERMISSION_ERROR = "permission-error"

Operation = Literal["list", "get", "create", "update", "delete", "write"]


@dataclass(frozen=True)
class PermissionErrorEvent:
    """
    Context of a refused operation.

    Attributes:
        path: Table or storage path the operation addressed
        operation: What was attempted
        request_data: Payload of the refused write, if any
    """
    path: str
    operation: Operation
    request_data: dict[str, Any] | None = field(default=None)

    def to_error(self) -> PermissionDeniedError:
        return PermissionDeniedError(
            path=self.path,
            operation=self.operation,
            request_data=self.request_data,
        )


Listener = Callable[[Any], None]


class ErrorEventBus:
    """
    Minimal event emitter keyed by event name.

    Listeners are called synchronously in registration order. An exception
    raised by a listener propagates to the emitter.
    """

    def __init__(self):
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, listener: Listener) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def off(self, event: str, listener: Listener) -> None:
        """Detach a listener. Detaching an unknown listener is a no-op."""
        listeners = self._listeners.get(event)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[event]

    def emit(self, event: str, payload: Any) -> int:
        """
        Deliver `payload` to every listener of `event`.

        Returns:
            int: Number of listeners the event was delivered to
        """
        listeners = list(self._listeners.get(event, ()))
        if not listeners:
            logger.debug(f"No listeners for {event}, dropping event")
            return 0

        for listener in listeners:
            listener(payload)
        return len(listeners)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))


class PermissionErrorReporter:
    """
    Surfaces permission-error events to developers.

    Logs every event as an error. With `raise_errors` (development / DEBUG)
    the PermissionDeniedError is also raised from the listener, so it
    propagates through the emitting request and reaches the exception
    handler with full context.
    """

    def __init__(self, bus: ErrorEventBus, raise_errors: bool = False):
        self.bus = bus
        self.raise_errors = raise_errors
        self._mounted = False

    def mount(self) -> None:
        if self._mounted:
            return
        self.bus.on(PERMISSION_ERROR, self._handle)
        self._mounted = True

    def unmount(self) -> None:
        if not self._mounted:
            return
        self.bus.off(PERMISSION_ERROR, self._handle)
        self._mounted = False

    def _handle(self, event: PermissionErrorEvent) -> None:
        error = event.to_error()
        logger.error(f"Permission denied: {event.operation} on {event.path}")
        if self.raise_errors:
            raise error


def report_permission_error(
    bus: ErrorEventBus | None,
    path: str,
    operation: Operation,
    request_data: dict[str, Any] | None = None,
) -> PermissionDeniedError:
    """
    Emit a diagnostic event and return the error the producer should raise.

    Example:
        except Exception as e:
            if is_permission_denied(e):
                raise report_permission_error(bus, "tasks", "create", data)
    """
    event = PermissionErrorEvent(path=path, operation=operation, request_data=request_data)
    if bus is not None:
        bus.emit(PERMISSION_ERROR, event)
    return event.to_error()
