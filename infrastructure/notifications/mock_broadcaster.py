"""
Mock Broadcaster
================

Records notifications in memory instead of delivering them.
"""

import logging
from typing import Any, Dict, Iterable, List

from .interface import Notification, NotificationBroadcasterInterface

logger = logging.getLogger(__name__)


class MockBroadcaster(NotificationBroadcasterInterface):
    """
    Mock broadcaster for testing and development.

    Useful for:
        - Asserting which events an operation emitted
        - Running without a channel layer
    """

    def __init__(self):
        self.sent: List[Notification] = []

    def publish(self, event_type: str, user_ids: Iterable[Any], payload: Dict[str, Any]) -> None:
        recipients = list(dict.fromkeys(str(uid) for uid in user_ids))
        logger.info(f"[MOCK NOTIFY] {event_type} -> {recipients}")
        self.sent.append(Notification(event_type=event_type, user_ids=recipients, payload=payload))

    def events(self, event_type: str) -> List[Notification]:
        return [n for n in self.sent if n.event_type == event_type]

    def clear(self):
        self.sent.clear()
