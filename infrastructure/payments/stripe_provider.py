"""
Stripe Payment Provider
========================

Concrete implementation of PaymentProviderInterface using Stripe.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import stripe
from django.conf import settings
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .interface import (
    CheckoutSession,
    PaymentException,
    PaymentProviderInterface,
    PaymentStatus,
    RefundDeclinedError,
    WebhookEvent,
    WebhookVerificationError,
    payload_field,
)

logger = logging.getLogger(__name__)

# Transient Stripe failures are retried a bounded number of times; every other
# StripeError surfaces immediately.
transient_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(
        (
            stripe.RateLimitError,
            stripe.APIConnectionError,
            stripe.APIError,
        )
    ),
    reraise=True,
)


class StripeProvider(PaymentProviderInterface):
    """
    Stripe payment provider implementation.

    Configuration (in settings.py):
        STRIPE_SECRET_KEY: Stripe secret API key
        STRIPE_WEBHOOK_SECRET: Webhook endpoint secret for signature verification
        PAYMENT_PROVIDER_TIMEOUT: Seconds before an outbound Stripe call is abandoned
    """

    def __init__(self):
        """Initialize Stripe provider with API credentials."""
        stripe.api_key = getattr(settings, "STRIPE_SECRET_KEY", "")
        self.webhook_secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "")
        self.timeout = getattr(settings, "PAYMENT_PROVIDER_TIMEOUT", 10)

        stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout)
        # tenacity owns retries
        stripe.max_network_retries = 0

        if not stripe.api_key:
            logger.warning("STRIPE_SECRET_KEY not configured")

    @transient_retry
    def _create_checkout_session_api(self, **kwargs):
        """Internal method to create session with retries."""
        return stripe.checkout.Session.create(**kwargs)

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
        Create a Stripe checkout session.

        Args:
            amount: Payment amount in major currency unit (e.g., 10.50 USD)
            currency: ISO currency code (lowercase)
            success_url: Redirect URL on success
            cancel_url: Redirect URL on cancel
            metadata: Custom metadata
            product_name: Line item name
            product_description: Line item description

        Returns:
            CheckoutSession object

        Raises:
            PaymentException: If session creation fails
        """
        try:
            amount_cents = self._to_minor_units(amount)

            product_data = {"name": product_name}
            if product_description:
                product_data["description"] = product_description

            session_params = {
                "mode": "payment",
                "payment_method_types": ["card"],
                "line_items": [
                    {
                        "price_data": {
                            "currency": currency.lower(),
                            "unit_amount": amount_cents,
                            "product_data": product_data,
                        },
                        "quantity": 1,
                    }
                ],
                "success_url": success_url,
                "cancel_url": cancel_url,
            }

            if metadata:
                session_params["metadata"] = {key: str(value) for key, value in metadata.items()}

            session = self._create_checkout_session_api(**session_params)

            logger.info(f"Created Stripe checkout session: {session.id}")

            return CheckoutSession(
                session_id=session.id,
                url=session.url,
                amount=amount_cents,
                currency=currency.lower(),
                status=self._map_stripe_status(session.payment_status),
                metadata=metadata or {},
            )

        except stripe.StripeError as e:
            logger.error(f"Stripe session creation failed: {str(e)}")
            raise PaymentException(f"Failed to create checkout session: {str(e)}") from e

    @transient_retry
    def _retrieve_session_api(self, session_id):
        return stripe.checkout.Session.retrieve(session_id)

    def retrieve_session(self, session_id: str) -> CheckoutSession:
        """
        Retrieve an existing Stripe checkout session.

        Raises:
            PaymentException: If retrieval fails
        """
        try:
            session = self._retrieve_session_api(session_id)

            logger.info(f"Retrieved Stripe session: {session_id}")

            return self._to_checkout_session(session)

        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve session {session_id}: {str(e)}")
            raise PaymentException(f"Session retrieval failed: {str(e)}") from e

    def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        """
        Verify Stripe webhook signature and parse event.

        Args:
            payload: Raw webhook payload bytes
            signature: Stripe-Signature header value

        Returns:
            Verified WebhookEvent

        Raises:
            WebhookVerificationError: If verification fails
        """
        if not self.webhook_secret:
            logger.error("STRIPE_WEBHOOK_SECRET not configured. Rejecting webhook.")
            raise WebhookVerificationError("Webhook endpoint secret is not configured")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            logger.error(f"Invalid webhook payload: {str(e)}")
            raise WebhookVerificationError("Invalid webhook payload") from e
        except stripe.SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {str(e)}")
            raise WebhookVerificationError("Webhook signature verification failed") from e

        logger.info(f"Verified Stripe webhook event: {event['type']}")

        return WebhookEvent(
            event_id=event["id"],
            event_type=event["type"],
            data=event["data"]["object"],
            created_at=event["created"],
        )

    def session_from_event(self, event: WebhookEvent) -> CheckoutSession:
        return self._to_checkout_session(event.data)

    @transient_retry
    def _create_refund_api(self, **kwargs):
        return stripe.Refund.create(**kwargs)

    def create_refund(
        self,
        payment_intent_id: str,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> bool:
        """
        Create a full refund in Stripe.

        Args:
            payment_intent_id: Stripe payment intent ID
            reason: Refund reason (one of Stripe's reason codes)
            idempotency_key: Stripe idempotency key

        Returns:
            True if Stripe accepted the refund (succeeded or pending)

        Raises:
            RefundDeclinedError: If Stripe rejected the refund request
            PaymentException: If refund creation fails
        """
        try:
            refund_params = {"payment_intent": payment_intent_id}

            if reason:
                refund_params["reason"] = reason

            if idempotency_key:
                refund_params["idempotency_key"] = idempotency_key

            refund = self._create_refund_api(**refund_params)

            logger.info(f"Created refund: {refund.id} for payment {payment_intent_id} ({refund.status})")

            return refund.status in ("succeeded", "pending")

        except stripe.InvalidRequestError as e:
            if e.code == "charge_already_refunded":
                logger.info(f"Payment {payment_intent_id} was already refunded")
                return True
            logger.error(f"Refund declined: {str(e)}")
            raise RefundDeclinedError(f"Refund declined: {str(e)}") from e

        except stripe.StripeError as e:
            logger.error(f"Refund creation failed: {str(e)}")
            raise PaymentException(f"Refund failed: {str(e)}") from e

    def _to_checkout_session(self, session: Any) -> CheckoutSession:
        amount_total = payload_field(session, "amount_total")
        return CheckoutSession(
            session_id=payload_field(session, "id"),
            url=payload_field(session, "url", ""),
            amount=int(amount_total) if amount_total is not None else None,
            currency=payload_field(session, "currency", ""),
            status=self._map_stripe_status(payload_field(session, "payment_status")),
            metadata=dict(payload_field(session, "metadata", {})),
            payment_intent_id=self._intent_id(payload_field(session, "payment_intent")),
        )

    @staticmethod
    def _intent_id(payment_intent: Any) -> Optional[str]:
        # Expanded sessions carry the whole PaymentIntent object
        if payment_intent is None or isinstance(payment_intent, str):
            return payment_intent
        return payload_field(payment_intent, "id")

    @staticmethod
    def _to_minor_units(amount: Decimal) -> int:
        return int((Decimal(amount) * 100).quantize(Decimal("1")))

    def _map_stripe_status(self, stripe_status: str) -> PaymentStatus:
        """
        Map Stripe session payment status to internal PaymentStatus.

        Args:
            stripe_status: Stripe payment status string

        Returns:
            PaymentStatus enum value
        """
        status_mapping = {
            "unpaid": PaymentStatus.PENDING,
            "paid": PaymentStatus.SUCCEEDED,
            "no_payment_required": PaymentStatus.SUCCEEDED,
        }

        return status_mapping.get(stripe_status, PaymentStatus.PENDING)
