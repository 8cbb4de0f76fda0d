# =============================================================================
# app/websocket/__init__.py - WebSocket Module
# =============================================================================
# Live snapshot streams of the user's collections.
#
# Usage:
#   # Tell live subscriptions (in any worker process) that a table changed
#   from app.websocket.broadcast import publish_change
#
#   publish_change("tasks", user_id)
# =============================================================================

from app.websocket.manager import websocket_manager
from app.websocket.broadcast import (
    CHANGES_CHANNEL,
    change_notifier,
    parse_change,
    publish_change,
)

__all__ = [
    "websocket_manager",
    "publish_change",
    "change_notifier",
    "parse_change",
    "CHANGES_CHANNEL",
]
