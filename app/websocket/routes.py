# =============================================================================
# app/websocket/routes.py - Live Collection Streams
# =============================================================================
# WebSocket endpoints that push live snapshots of the user's data.
#
# Connect:
#   ws://host/ws/tasks?token={jwt}
#   ws://host/ws/tasks/{task_id}?token={jwt}
#   ws://host/ws/images?token={jwt}
#
# Client -> server:
#   "ping"                                  -> "pong"
#   {"type": "auth", "token": "..." | null} -> switch user / sign out
#   {"type": "filter", "value": "active"}   -> (tasks only) all/active/completed
#
# Server -> client:
#   {"type": "auth", "user_id": "..." | null}
#   {"type": "snapshot", "stream": "tasks", "data": [...], "loading": false, "error": null}
#   {"type": "error", "message": "..."}
# =============================================================================

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from jose import JWTError

from app.auth import AuthUser, decode_access_token
from app.auth.dependencies import InvalidTokenError
from app.websocket.manager import websocket_manager
from core.auth_state import AuthState, AuthStateObserver, TokenIdentity
from core.events import ErrorEventBus
from core.models.task import TaskFilter
from core.services.task_service import filter_tasks
from core.subscriptions import (
    CollectionSubscription,
    DocumentSubscription,
    SubscriptionState,
)
from lib.realtime import ChangeHub, ChangeSource, CollectionQuery, LiveDocument, LiveQuery
from lib.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

router = APIRouter()


class LiveStream:
    """
    One connection's live view: who is signed in, and what they are watching.

    The subscription follows the auth state. Signing in (or refreshing the
    token) points it at a query scoped to that user; signing out leaves it
    empty. Every state change is queued for the sender task.
    """

    def __init__(
        self,
        name: str,
        subscription: CollectionSubscription | DocumentSubscription,
        source_for: Callable[[AuthUser], ChangeSource],
        token: str | None,
    ):
        self.name = name
        self.subscription = subscription
        self.source_for = source_for
        self.identity = TokenIdentity(verify=decode_access_token, token=token)
        self.auth = AuthStateObserver()
        self.outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self.task_filter = TaskFilter.ALL

    def start(self) -> None:
        self.subscription.listen(self._on_state)
        self.auth.listen(self._on_auth)
        self.auth.bind(self.identity)

    def close(self) -> None:
        self.auth.close()
        self.subscription.close()

    def set_token(self, token: str | None) -> None:
        self.identity.set_token(token)

    def set_filter(self, value: str) -> None:
        self.task_filter = TaskFilter(value)
        self._on_state(self.subscription.state)

    def render(self, state: SubscriptionState) -> dict[str, Any]:
        data = state.data
        message: dict[str, Any] = {"type": "snapshot", "stream": self.name}
        if self.name == "tasks":
            data = filter_tasks(data, self.task_filter)
            message["filter"] = self.task_filter.value
        message.update(
            data=data,
            loading=state.loading,
            error=state.error.to_dict() if state.error else None,
        )
        return message

    def _on_auth(self, state: AuthState) -> None:
        if state.loading:
            return
        user = state.user
        self.outbox.put_nowait({"type": "auth", "user_id": str(user.id) if user else None})
        self.subscription.set_query(self.source_for(user) if user else None)

    def _on_state(self, state: SubscriptionState) -> None:
        self.outbox.put_nowait(self.render(state))

    async def pump(self, websocket: WebSocket) -> None:
        """Send queued messages until the connection goes away."""
        while True:
            message = await self.outbox.get()
            if not await websocket_manager.send(websocket, jsonable_encoder(message)):
                return


def _verify_token(token: str | None) -> AuthUser | None:
    if not token:
        return None
    try:
        return decode_access_token(token)
    except (JWTError, InvalidTokenError) as e:
        logger.warning(f"WebSocket auth failed: {e}")
        return None


async def _handle_message(stream: LiveStream, websocket: WebSocket, data: str) -> None:
    if data == "ping":
        await websocket.send_text("pong")
        return

    try:
        message = json.loads(data)
    except ValueError:
        logger.debug(f"WebSocket received: {data[:100]}")
        return

    if not isinstance(message, dict):
        return

    kind = message.get("type")
    if kind == "auth":
        stream.set_token(message.get("token"))
    elif kind == "filter":
        try:
            stream.set_filter(message.get("value"))
        except ValueError:
            await websocket_manager.send(
                websocket,
                {"type": "error", "message": f"Unknown filter: {message.get('value')}"},
            )
    else:
        logger.debug(f"WebSocket received unknown message type: {kind}")


async def _serve(websocket: WebSocket, channel: str, stream: LiveStream) -> None:
    """Run a stream until the client disconnects, then tear everything down."""
    await websocket_manager.connect(channel, websocket)
    sender = asyncio.create_task(stream.pump(websocket))

    try:
        stream.start()

        while True:
            data = await websocket.receive_text()
            await _handle_message(stream, websocket, data)

    except WebSocketDisconnect:
        logger.info(f"WebSocket client disconnected from {channel}")
    finally:
        sender.cancel()
        stream.close()
        websocket_manager.disconnect(channel, websocket)


def _app_objects(websocket: WebSocket) -> tuple[ChangeHub, ErrorEventBus]:
    return websocket.app.state.change_hub, websocket.app.state.error_bus


# =============================================================================
# Endpoints
# =============================================================================

@router.websocket("/ws/tasks")
async def tasks_websocket(
    websocket: WebSocket,
    token: str = Query(..., description="JWT token for authentication"),
):
    """
    Live list of the user's tasks, newest first.

    The filter applies to the pushed snapshots only; the underlying
    subscription always watches every task of the user.
    """
    if _verify_token(token) is None:
        await websocket.close(code=4001, reason="Invalid token")
        return

    hub, bus = _app_objects(websocket)

    def source_for(user: AuthUser) -> ChangeSource:
        query = CollectionQuery(
            "tasks",
            filters=(("user_id", str(user.id)),),
            order_by="created_at",
            descending=True,
        )
        return LiveQuery(SupabaseClient.for_user(user.access_token), query, hub)

    stream = LiveStream("tasks", CollectionSubscription(bus), source_for, token)
    await _serve(websocket, "tasks", stream)


@router.websocket("/ws/tasks/{task_id}")
async def task_websocket(
    websocket: WebSocket,
    task_id: str,
    token: str = Query(..., description="JWT token for authentication"),
):
    """Live view of one task; `data` is null while it does not exist."""
    if _verify_token(token) is None:
        await websocket.close(code=4001, reason="Invalid token")
        return

    hub, bus = _app_objects(websocket)

    def source_for(user: AuthUser) -> ChangeSource:
        return LiveDocument(
            SupabaseClient.for_user(user.access_token),
            "tasks",
            task_id,
            hub,
            filters={"user_id": str(user.id)},
        )

    stream = LiveStream("task", DocumentSubscription(bus), source_for, token)
    await _serve(websocket, f"tasks/{task_id}", stream)


@router.websocket("/ws/images")
async def images_websocket(
    websocket: WebSocket,
    token: str = Query(..., description="JWT token for authentication"),
):
    """Live gallery of the user's image records, newest first."""
    if _verify_token(token) is None:
        await websocket.close(code=4001, reason="Invalid token")
        return

    hub, bus = _app_objects(websocket)

    def source_for(user: AuthUser) -> ChangeSource:
        query = CollectionQuery(
            "image_records",
            filters=(("user_id", str(user.id)),),
            order_by="timestamp",
            descending=True,
        )
        return LiveQuery(SupabaseClient.for_user(user.access_token), query, hub)

    stream = LiveStream("images", CollectionSubscription(bus), source_for, token)
    await _serve(websocket, "images", stream)


@router.get("/ws/status")
async def websocket_status():
    """WebSocket connection statistics."""
    channels = websocket_manager.get_active_channels()
    return {
        "total_connections": websocket_manager.get_connection_count(),
        "active_channels": channels,
        "channel_count": len(channels),
    }
