"""
Service Container Tests
========================

Unit tests for dependency injection container.
"""

from django.test import SimpleTestCase, override_settings

from infrastructure.container import ServiceContainer, container, get_notifications, get_payment
from infrastructure.notifications import ChannelsBroadcaster, MockBroadcaster, NotificationBroadcasterInterface
from infrastructure.payments import MockPaymentProvider, PaymentProviderInterface, StripeProvider
from marketplace.ordering.domain.services import CheckoutService, OrderService, ReconciliationService


class ServiceContainerTest(SimpleTestCase):
    """Test ServiceContainer implementation."""

    def setUp(self):
        """Set up test fixtures."""
        # Reset container before each test
        container.reset()

    def tearDown(self):
        container.reset()

    def test_container_is_singleton(self):
        """Test that ServiceContainer is a singleton."""
        container1 = ServiceContainer()
        container2 = ServiceContainer()

        self.assertIs(container1, container2)
        self.assertIs(container1, container)

    @override_settings(PAYMENT_PROVIDER="stripe")
    def test_get_payment_service(self):
        """Test getting payment service from container."""
        payment = container.payment()

        self.assertIsInstance(payment, PaymentProviderInterface)
        self.assertIsInstance(payment, StripeProvider)

        # Second call should return cached instance
        payment2 = container.payment()
        self.assertIs(payment, payment2)

    @override_settings(NOTIFICATION_BACKEND="channels")
    def test_get_notifications(self):
        """Test getting the broadcaster from container."""
        notifications = container.notifications()

        self.assertIsInstance(notifications, NotificationBroadcasterInterface)
        self.assertIsInstance(notifications, ChannelsBroadcaster)
        self.assertIs(notifications, container.notifications())

    def test_payment_with_explicit_backend(self):
        """Test getting payment with explicit backend."""
        payment = container.payment("mock")
        self.assertIsInstance(payment, MockPaymentProvider)

    def test_domain_services_share_infrastructure(self):
        container.configure_for_testing()

        checkout = container.checkout_service()
        reconciliation = container.reconciliation_service()
        orders = container.order_service()

        self.assertIsInstance(checkout, CheckoutService)
        self.assertIsInstance(reconciliation, ReconciliationService)
        self.assertIsInstance(orders, OrderService)
        self.assertIs(checkout.payment_provider, container.payment())
        self.assertIs(orders.payment_provider, reconciliation.payment_provider)
        self.assertIs(orders.broadcaster, container.notifications())
        self.assertIs(orders, container.order_service())

    def test_reset_container(self):
        """Test resetting container clears cached instances."""
        payment1 = container.payment("mock")
        orders1 = container.order_service()

        container.reset()

        self.assertIsNot(payment1, container.payment("mock"))
        self.assertIsNot(orders1, container.order_service())

    @override_settings(PAYMENT_PROVIDER="stripe", NOTIFICATION_BACKEND="channels")
    def test_configure_for_testing(self):
        """Test configuring container for testing."""
        container.configure_for_testing()

        self.assertIsInstance(container.payment(), MockPaymentProvider)
        self.assertIsInstance(container.notifications(), MockBroadcaster)


class ConvenienceFunctionsTest(SimpleTestCase):
    """Test convenience functions for service access."""

    def setUp(self):
        """Set up test fixtures."""
        container.reset()

    def tearDown(self):
        container.reset()

    @override_settings(PAYMENT_PROVIDER="stripe")
    def test_get_payment_function(self):
        """Test get_payment convenience function."""
        payment = get_payment()

        self.assertIsInstance(payment, PaymentProviderInterface)
        self.assertIsInstance(payment, StripeProvider)

    @override_settings(NOTIFICATION_BACKEND="mock")
    def test_get_notifications_function(self):
        self.assertIsInstance(get_notifications(), MockBroadcaster)
