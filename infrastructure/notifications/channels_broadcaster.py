"""
Channels Broadcaster
====================

Publishes order events through the Django Channels layer. Every user has a
dedicated group, joined by OrderEventsConsumer when a socket connects.
"""

import logging
from typing import Any, Dict, Iterable

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from .interface import NotificationBroadcasterInterface

logger = logging.getLogger(__name__)


def user_group_name(user_id: Any) -> str:
    return f"orders_user_{user_id}"


class ChannelsBroadcaster(NotificationBroadcasterInterface):
    def __init__(self):
        self.channel_layer = get_channel_layer()

    def publish(self, event_type: str, user_ids: Iterable[Any], payload: Dict[str, Any]) -> None:
        if self.channel_layer is None:
            logger.warning(f"No channel layer configured, dropping {event_type}")
            return

        message = {
            "type": "order_event",
            "event": event_type,
            "payload": payload,
        }

        for user_id in dict.fromkeys(str(uid) for uid in user_ids):
            try:
                async_to_sync(self.channel_layer.group_send)(user_group_name(user_id), message)
            except Exception as e:
                logger.warning(f"Failed to broadcast {event_type} to user {user_id}: {str(e)}")
