"""
Mock Payment Provider
=====================

In-memory implementation of PaymentProviderInterface for testing and local
development. Sessions live in a dict, refunds are recorded in a list, and
webhooks are signed with an HMAC of the configured webhook secret.
"""

import hashlib
import hmac
import json
import logging
import time
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from django.conf import settings

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


class MockPaymentProvider(PaymentProviderInterface):
    """
    Mock payment provider for testing and development.

    Instead of calling a payment processor, this provider:
        - Keeps checkout sessions in memory
        - Lets tests settle sessions with complete_session()
        - Produces signed webhook payloads with build_webhook()
        - Records refunds for verification (or fails them on demand)
    """

    def __init__(self, webhook_secret: Optional[str] = None):
        self.webhook_secret = webhook_secret or getattr(settings, "STRIPE_WEBHOOK_SECRET", "") or "whsec_mock"
        self.sessions: Dict[str, CheckoutSession] = {}
        self.refunds: List[Dict[str, Any]] = []
        self.fail_refunds = False
        self.decline_refunds = False
        self.fail_requests = False

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
        self._check_available()

        session_id = f"cs_mock_{uuid.uuid4().hex}"
        session = CheckoutSession(
            session_id=session_id,
            url=f"https://checkout.mock.local/pay/{session_id}",
            amount=int((Decimal(amount) * 100).quantize(Decimal("1"))),
            currency=currency.lower(),
            status=PaymentStatus.PENDING,
            metadata={key: str(value) for key, value in (metadata or {}).items()},
        )
        self.sessions[session_id] = session

        logger.info(f"[MOCK PAYMENT] Created checkout session {session_id} for '{product_name}'")
        return session

    def retrieve_session(self, session_id: str) -> CheckoutSession:
        self._check_available()

        try:
            return self.sessions[session_id]
        except KeyError:
            raise PaymentException(f"No such checkout session: {session_id}")

    def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        if not signature or not hmac.compare_digest(self.sign(payload), signature):
            logger.error("[MOCK PAYMENT] Webhook signature verification failed")
            raise WebhookVerificationError("Webhook signature verification failed")

        try:
            event = json.loads(payload)
            return WebhookEvent(
                event_id=event["id"],
                event_type=event["type"],
                data=event["data"]["object"],
                created_at=event["created"],
            )
        except (ValueError, KeyError, TypeError) as e:
            raise WebhookVerificationError("Invalid webhook payload") from e

    def session_from_event(self, event: WebhookEvent) -> CheckoutSession:
        data = event.data
        metadata = payload_field(data, "metadata", {})
        paid = payload_field(data, "payment_status") == "paid"
        return CheckoutSession(
            session_id=payload_field(data, "id"),
            url=payload_field(data, "url", ""),
            amount=payload_field(data, "amount_total"),
            currency=payload_field(data, "currency", ""),
            status=PaymentStatus.SUCCEEDED if paid else PaymentStatus.PENDING,
            metadata=dict(metadata) if isinstance(metadata, dict) else {},
            payment_intent_id=payload_field(data, "payment_intent"),
        )

    def create_refund(
        self,
        payment_intent_id: str,
        reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> bool:
        self._check_available()

        if self.fail_refunds:
            raise PaymentException(f"Refund failed for {payment_intent_id}")
        if self.decline_refunds:
            raise RefundDeclinedError(f"Refund declined for {payment_intent_id}")

        self.refunds.append(
            {
                "payment_intent_id": payment_intent_id,
                "reason": reason,
                "idempotency_key": idempotency_key,
            }
        )
        logger.info(f"[MOCK PAYMENT] Refunded {payment_intent_id}")
        return True

    # Test helpers

    def complete_session(self, session_id: str, payment_intent_id: Optional[str] = None) -> CheckoutSession:
        """Mark a session as paid, as if the customer finished checkout."""
        session = self.sessions[session_id]
        session.status = PaymentStatus.SUCCEEDED
        session.payment_intent_id = payment_intent_id or f"pi_mock_{uuid.uuid4().hex}"
        return session

    def add_session(
        self,
        session_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        amount: Optional[int] = None,
        paid: bool = True,
        payment_intent_id: Optional[str] = None,
    ) -> CheckoutSession:
        """Register an arbitrary session, e.g. one created outside this process."""
        session = CheckoutSession(
            session_id=session_id,
            url=f"https://checkout.mock.local/pay/{session_id}",
            amount=amount,
            currency="usd",
            status=PaymentStatus.SUCCEEDED if paid else PaymentStatus.PENDING,
            metadata=dict(metadata or {}),
            payment_intent_id=payment_intent_id,
        )
        self.sessions[session_id] = session
        return session

    def build_webhook(
        self, session: CheckoutSession, event_type: str = "checkout.session.completed"
    ) -> Tuple[bytes, str]:
        """Serialize a session into a signed webhook payload. Returns (payload, signature)."""
        event = {
            "id": f"evt_mock_{uuid.uuid4().hex}",
            "type": event_type,
            "created": int(time.time()),
            "data": {
                "object": {
                    "id": session.session_id,
                    "object": "checkout.session",
                    "url": session.url,
                    "amount_total": session.amount,
                    "currency": session.currency,
                    "payment_status": "paid" if session.is_settled else "unpaid",
                    "metadata": session.metadata,
                    "payment_intent": session.payment_intent_id,
                }
            },
        }
        payload = json.dumps(event).encode("utf-8")
        return payload, self.sign(payload)

    def sign(self, payload: bytes) -> str:
        return hmac.new(self.webhook_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()

    def _check_available(self):
        if self.fail_requests:
            raise PaymentException("Mock payment provider unavailable")
