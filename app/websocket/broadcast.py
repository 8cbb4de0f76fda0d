# =============================================================================
# app/websocket/broadcast.py - Cross-Process Change Notices
# =============================================================================
# Writers call publish_change() after every successful write so that live
# subscriptions (possibly in another worker process) re-fetch their snapshot.
#
# Uses Redis pub/sub for cross-process communication:
# - Services call publish_change(table, user_id)
# - The FastAPI lifespan listener relays each notice into the ChangeHub
# - change_notifier(hub) falls back to this process's hub when Redis is down
#
# Delivery is best-effort: a lost notice only delays visibility until the
# next change, it never loses data.
# =============================================================================

import json
import logging
from typing import Any, Callable

from lib.realtime import ChangeHub
from lib.utils import normalize_uuid

logger = logging.getLogger(__name__)

# Redis channel for table change notices
CHANGES_CHANNEL = "taskstudio:changes"


def get_redis_client():
    """Get a Redis client for pub/sub operations."""
    import redis
    from app.config import settings
    return redis.from_url(settings.REDIS_URL)


def publish_change(table: str, user_id: Any = None) -> bool:
    """
    Publish a "table changed" notice.

    Args:
        table: Table that was written
        user_id: Owner of the written row, so only that user's queries refetch

    Returns:
        bool: True if published successfully
    """
    try:
        client = get_redis_client()

        message = json.dumps({
            "table": table,
            "user_id": normalize_uuid(user_id) if user_id is not None else None,
        })

        client.publish(CHANGES_CHANNEL, message)

        logger.debug(f"Published change notice for {table} (user={user_id})")
        return True

    except Exception as e:
        logger.error(f"Failed to publish change notice: {e}")
        return False


def change_notifier(hub: ChangeHub | None) -> Callable[[str, Any], bool]:
    """
    Writer hook that publishes through Redis and, when that fails, still
    refreshes the live subscriptions of this process.

    Returns a callable with the publish_change() signature.
    """
    def notify(table: str, user_id: Any = None) -> bool:
        if publish_change(table, user_id):
            return True
        if hub is not None:
            hub.notify(table, normalize_uuid(user_id) if user_id is not None else None)
        return False

    return notify


def parse_change(raw: bytes | str) -> tuple[str, str | None] | None:
    """
    Decode a change notice received from Redis.

    Returns:
        (table, user_id), or None if the message is not a valid notice
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(f"Invalid JSON in change notice: {e}")
        return None

    if not isinstance(data, dict) or not data.get("table"):
        logger.warning(f"Change notice without table: {data!r}")
        return None

    return data["table"], data.get("user_id")
