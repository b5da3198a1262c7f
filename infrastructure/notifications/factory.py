"""
Notification Broadcaster Factory
=================================

Creates the broadcaster selected by settings.NOTIFICATION_BACKEND.
"""

import logging
from typing import Literal

from django.conf import settings

from .channels_broadcaster import ChannelsBroadcaster
from .interface import NotificationBroadcasterInterface
from .mock_broadcaster import MockBroadcaster

logger = logging.getLogger(__name__)

NotificationBackend = Literal["channels", "mock"]


class NotificationFactory:
    """
    Factory for creating broadcaster instances.

    Usage:
        # In settings.py
        NOTIFICATION_BACKEND = 'channels'  # or 'mock'

        broadcaster = NotificationFactory.create()
    """

    @staticmethod
    def create(backend: NotificationBackend | None = None) -> NotificationBroadcasterInterface:
        """
        Create a broadcaster instance.

        Raises:
            ValueError: If backend type is invalid
        """
        backend_type = backend or getattr(settings, "NOTIFICATION_BACKEND", "channels")

        logger.info(f"Creating notification broadcaster: {backend_type}")

        if backend_type == "channels":
            return ChannelsBroadcaster()
        elif backend_type == "mock":
            return MockBroadcaster()
        else:
            raise ValueError(f"Invalid notification backend: {backend_type}. " f"Supported: 'channels', 'mock'")
