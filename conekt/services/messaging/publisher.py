# conekt/services/messaging/publisher.py
"""
Publishing of message change events.

Events go to the channels of both participants ("user:{user_id}") through
the shared Broadcaster. Publishing is fire-and-forget: if the broadcast
backend is down we log and carry on. Messages are safe in the store and
clients catch up with a pull-based refresh.
"""

import json
import logging
from typing import Any, Dict

from conekt.core.broadcast import get_broadcast
from conekt.schemas.messaging import MessageRead

from .events import ChangeType, build_message_change_event

logger = logging.getLogger(__name__)


def user_channel(user_id: str) -> str:
    """Channel carrying every change relevant to one user."""
    return f"user:{user_id}"


async def publish_to_user(user_id: str, event: Dict[str, Any]) -> bool:
    """
    Publish an event to one user's channel.

    Returns:
        True if handed to the broadcast backend, False otherwise
    """
    channel = user_channel(user_id)
    try:
        broadcast = get_broadcast()
        await broadcast.publish(channel=channel, message=json.dumps(event))
        return True
    except RuntimeError as e:
        logger.warning(f"[BROADCAST] Broadcast not initialized, cannot publish: {e}")
    except Exception as e:
        logger.error(f"[BROADCAST] Failed to publish to {channel}: {e}")
    return False


async def publish_message_change(change_type: ChangeType, message: MessageRead) -> int:
    """
    Publish an INSERT/UPDATE for a message to both participants.

    Returns:
        Number of channels the event was handed to
    """
    event = build_message_change_event(change_type, message)
    delivered = 0
    for user_id in (message.sender_id, message.receiver_id):
        if await publish_to_user(user_id, event):
            delivered += 1

    logger.debug(
        f"[BROADCAST] Published {change_type.value} for message {message.id} "
        f"to {delivered} channel(s)"
    )
    return delivered
