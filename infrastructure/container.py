"""
Dependency Injection Container
================================

Simple service locator pattern for managing infrastructure dependencies.
Implements the Dependency Inversion Principle by providing centralized access
to infrastructure services through their abstract interfaces.

Usage:
    from infrastructure.container import container

    # In your service
    payment = container.payment()
    notifications = container.notifications()
"""

import logging
from typing import Optional

from .notifications import NotificationBroadcasterInterface, NotificationFactory
from .payments import PaymentFactory, PaymentProviderInterface

logger = logging.getLogger(__name__)


class ServiceContainer:
    """
    Service container for infrastructure dependencies.

    Implements lazy initialization and caching of service instances.
    Thread-safe singleton pattern.
    """

    _instance: Optional["ServiceContainer"] = None
    _initialized: bool = False

    def __new__(cls):
        """Ensure only one instance exists (singleton pattern)."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize container (only once)."""
        if not self._initialized:
            self._payment: Optional[PaymentProviderInterface] = None
            self._notifications: Optional[NotificationBroadcasterInterface] = None

            # Domain Services
            self._checkout_service = None
            self._reconciliation_service = None
            self._order_service = None

            self._initialized = True
            logger.info("Service container initialized")

    def payment(self, backend: Optional[str] = None) -> PaymentProviderInterface:
        """
        Get payment provider instance.

        Args:
            backend: Payment backend type ('stripe' or 'mock')
                    If None, uses configuration from settings

        Returns:
            PaymentProviderInterface implementation (cached)
        """
        if self._payment is None or backend is not None:
            self._payment = PaymentFactory.create(backend)
            logger.debug(f"Created payment service: {type(self._payment).__name__}")

        return self._payment

    def notifications(self, backend: Optional[str] = None) -> NotificationBroadcasterInterface:
        """
        Get notification broadcaster instance.

        Args:
            backend: Broadcaster type ('channels' or 'mock')
                    If None, uses configuration from settings

        Returns:
            NotificationBroadcasterInterface implementation (cached)
        """
        if self._notifications is None or backend is not None:
            self._notifications = NotificationFactory.create(backend)
            logger.debug(f"Created notification broadcaster: {type(self._notifications).__name__}")

        return self._notifications

    def checkout_service(self):
        """Get CheckoutService instance."""
        if self._checkout_service is None:
            from marketplace.ordering.domain.services import CheckoutService

            self._checkout_service = CheckoutService(
                payment_provider=self.payment(), broadcaster=self.notifications()
            )
            logger.debug("Created CheckoutService")
        return self._checkout_service

    def reconciliation_service(self):
        """Get ReconciliationService instance."""
        if self._reconciliation_service is None:
            from marketplace.ordering.domain.services import ReconciliationService

            self._reconciliation_service = ReconciliationService(
                payment_provider=self.payment(), broadcaster=self.notifications()
            )
            logger.debug("Created ReconciliationService")
        return self._reconciliation_service

    def order_service(self):
        """Get OrderService instance."""
        if self._order_service is None:
            from marketplace.ordering.domain.services import OrderService

            self._order_service = OrderService(payment_provider=self.payment(), broadcaster=self.notifications())
            logger.debug("Created OrderService")
        return self._order_service

    def reset(self):
        """
        Reset all cached service instances.

        Useful for testing or when switching between environments.
        """
        self._payment = None
        self._notifications = None
        self._checkout_service = None
        self._reconciliation_service = None
        self._order_service = None
        logger.info("Service container reset")

    def configure_for_testing(self):
        """
        Configure container with in-memory services for testing.

        Sets up:
            - Mock payment provider (instead of Stripe)
            - Mock broadcaster (instead of the channel layer)
        """
        self.reset()
        self._payment = PaymentFactory.create("mock")
        self._notifications = NotificationFactory.create("mock")
        logger.info("Service container configured for testing")


# Global singleton instance
container = ServiceContainer()


# Convenience functions for quick access
def get_payment() -> PaymentProviderInterface:
    """Get payment provider from global container."""
    return container.payment()


def get_notifications() -> NotificationBroadcasterInterface:
    """Get notification broadcaster from global container."""
    return container.notifications()
