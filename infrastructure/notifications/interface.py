"""
Notification Broadcaster Interface
===================================

Abstract base class for pushing real-time order events to connected users.
Delivery is best-effort: implementations never raise into the caller.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List


@dataclass
class Notification:
    """
    A single broadcast event.

    Attributes:
        event_type: Event name (e.g., 'order.created', 'orders.progress_updated')
        user_ids: Recipients of the event
        payload: JSON-serializable event body
    """

    event_type: str
    user_ids: List[str]
    payload: Dict[str, Any] = field(default_factory=dict)


class NotificationBroadcasterInterface(ABC):
    """
    Abstract interface for real-time notifications.

    Concrete implementations:
        - ChannelsBroadcaster: Django Channels groups, one per user
        - MockBroadcaster: records notifications in memory
    """

    @abstractmethod
    def publish(self, event_type: str, user_ids: Iterable[Any], payload: Dict[str, Any]) -> None:
        """
        Publish an event to every listed user.

        Failures are logged and swallowed; a notification that cannot be
        delivered must never undo or fail the operation that produced it.
        """
        pass
