"""
Payment Service Abstraction Layer
==================================

Provides a unified interface for hosted checkout, webhook verification and
refunds across payment providers.
"""

from .factory import PaymentFactory
from .interface import (
    CheckoutSession,
    PaymentException,
    PaymentProviderInterface,
    PaymentStatus,
    RefundDeclinedError,
    WebhookEvent,
    WebhookVerificationError,
)
from .mock_provider import MockPaymentProvider
from .stripe_provider import StripeProvider

__all__ = [
    "PaymentProviderInterface",
    "CheckoutSession",
    "WebhookEvent",
    "PaymentStatus",
    "PaymentException",
    "WebhookVerificationError",
    "RefundDeclinedError",
    "StripeProvider",
    "MockPaymentProvider",
    "PaymentFactory",
]
