"""
Payment Provider Interface
===========================

Abstract base class defining the contract for payment operations.
The order subsystem only ever talks to the provider through this narrow
interface: hosted checkout sessions, webhook verification, session lookup
and refunds.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class PaymentStatus(str, Enum):
    """Payment status enumeration."""

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    REFUNDED = "refunded"


def payload_field(obj: Any, key: str, default: Any = None) -> Any:
    """Read a key from a provider object or plain dict, treating None as missing."""
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        return default
    return default if value is None else value


@dataclass
class CheckoutSession:
    """
    Represents a payment checkout session.

    Attributes:
        session_id: Unique session identifier
        url: Redirect URL for customer to complete payment
        amount: Settled/requested amount in smallest currency unit (cents),
            None when the provider does not report one
        currency: ISO currency code (e.g., 'usd')
        status: Current payment status of the session
        metadata: Custom data attached at creation time
        payment_intent_id: Payment intent created once the customer pays
    """

    session_id: str
    url: str
    amount: Optional[int]
    currency: str
    status: PaymentStatus
    metadata: Dict[str, Any] = field(default_factory=dict)
    payment_intent_id: Optional[str] = None

    @property
    def is_settled(self) -> bool:
        return self.status == PaymentStatus.SUCCEEDED


@dataclass
class WebhookEvent:
    """
    Represents a webhook event from payment provider.

    Attributes:
        event_id: Unique event identifier
        event_type: Type of event (e.g., 'checkout.session.completed')
        data: Event payload object
        created_at: Event creation timestamp
    """

    event_id: str
    event_type: str
    data: Dict[str, Any]
    created_at: int


class PaymentProviderInterface(ABC):
    """
    Abstract interface for payment provider operations.

    Concrete implementations:
        - StripeProvider: Stripe payment processing
        - MockPaymentProvider: in-memory provider for tests and local development
    """

    @abstractmethod
    def create_checkout_session(
        self,
        amount: Decimal,
        currency: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, Any]] = None,
        product_name: str = "Order Payment",
        product_description: Optional[str] = None,
    ) -> CheckoutSession:
        """
        Create a hosted payment checkout session.

        Args:
            amount: Payment amount in major currency unit
            currency: ISO currency code
            success_url: Redirect URL on successful payment
            cancel_url: Redirect URL on canceled payment
            metadata: Custom data to attach to session
            product_name: Line item name shown on the payment page
            product_description: Optional line item description

        Returns:
            CheckoutSession object with session details

        Raises:
            PaymentException: If session creation fails
        """
        pass

    @abstractmethod
    def retrieve_session(self, session_id: str) -> CheckoutSession:
        """
        Retrieve an existing checkout session.

        Raises:
            PaymentException: If retrieval fails
        """
        pass

    @abstractmethod
    def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify and parse webhook event from payment provider.

        Args:
            payload: Raw webhook payload bytes, exactly as received
            signature: Webhook signature header for verification

        Returns:
            Parsed and verified WebhookEvent

        Raises:
            WebhookVerificationError: If the payload or signature is invalid
        """
        pass

    @abstractmethod
    def session_from_event(self, event: WebhookEvent) -> CheckoutSession:
        """Build a CheckoutSession from the object carried by a checkout webhook event."""
        pass

    @abstractmethod
    def create_refund(
        self,
        payment_intent_id: str,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> bool:
        """
        Create a full refund for a payment.

        Args:
            payment_intent_id: Payment intent to refund
            reason: Refund reason
            idempotency_key: Key making retried refund requests safe

        Returns:
            True if the provider accepted the refund

        Raises:
            RefundDeclinedError: If the provider refused the refund
            PaymentException: If refund creation fails for any other reason
        """
        pass


class PaymentException(Exception):
    """Base exception for payment operations."""

    pass


class WebhookVerificationError(PaymentException):
    """Raised when a webhook payload cannot be authenticated or parsed."""

    pass


class RefundDeclinedError(PaymentException):
    """Raised when the provider refused a refund outright. Nothing was refunded."""

    pass
