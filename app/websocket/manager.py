# =============================================================================
# app/websocket/manager.py - WebSocket Connection Manager
# =============================================================================
# Tracks open stream connections per channel ("tasks", "images",
# "tasks/{task_id}") and sends messages to them.
#
# Usage:
#   from app.websocket import websocket_manager
#
#   await websocket_manager.connect("tasks", websocket)
#   await websocket_manager.send(websocket, {"type": "snapshot", ...})
#   websocket_manager.disconnect("tasks", websocket)
# =============================================================================

import logging
from typing import Dict, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Registry of open WebSocket connections organized by channel.

    A user can hold several connections to the same channel (e.g. multiple
    browser tabs); each one runs its own subscription.
    """

    def __init__(self):
        # channel -> set of WebSocket connections
        self.connections: Dict[str, Set[WebSocket]] = {}
        self._total_connections = 0

    async def connect(self, channel: str, websocket: WebSocket) -> None:
        """Accept a new WebSocket connection and track it."""
        await websocket.accept()

        self.connections.setdefault(channel, set()).add(websocket)
        self._total_connections += 1

        logger.info(
            f"WebSocket connected to {channel}. "
            f"Total connections: {self._total_connections}"
        )

    def disconnect(self, channel: str, websocket: WebSocket) -> None:
        """Stop tracking a connection. Safe to call more than once."""
        sockets = self.connections.get(channel)
        if sockets is None or websocket not in sockets:
            return

        sockets.discard(websocket)
        self._total_connections -= 1

        if not sockets:
            del self.connections[channel]

        logger.info(
            f"WebSocket disconnected from {channel}. "
            f"Total connections: {self._total_connections}"
        )

    async def send(self, websocket: WebSocket, message: dict) -> bool:
        """
        Send one JSON message.

        Returns:
            bool: False if the connection is gone
        """
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.warning(f"Failed to send to WebSocket: {e}")
            return False

        logger.debug(f"Sent {message.get('type')} message")
        return True

    def get_connection_count(self, channel: str | None = None) -> int:
        """Connections on one channel, or in total."""
        if channel:
            return len(self.connections.get(channel, set()))
        return self._total_connections

    def get_active_channels(self) -> list[str]:
        """Channels with at least one open connection."""
        return list(self.connections.keys())


# Global singleton instance
websocket_manager = ConnectionManager()
