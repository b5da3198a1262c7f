"""
Notification Service Abstraction Layer
========================================

Provides a unified interface for real-time, best-effort notifications to
buyers and sellers.
"""

from .channels_broadcaster import ChannelsBroadcaster, user_group_name
from .factory import NotificationFactory
from .interface import Notification, NotificationBroadcasterInterface
from .mock_broadcaster import MockBroadcaster

__all__ = [
    "NotificationBroadcasterInterface",
    "Notification",
    "ChannelsBroadcaster",
    "MockBroadcaster",
    "NotificationFactory",
    "user_group_name",
]
