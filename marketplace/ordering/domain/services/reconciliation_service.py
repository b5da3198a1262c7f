"""
ReconciliationService - Payment Reconciliation

Turns a settled checkout session into exactly one Order. Two paths race to do
it: the provider's webhook (push) and the returning client's confirm call
(pull). Both end in _materialize(); the unique checkout_session_id column is
what finally decides which insert wins.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from infrastructure.notifications import NotificationBroadcasterInterface
from infrastructure.payments import (
    CheckoutSession,
    PaymentException,
    PaymentProviderInterface,
    WebhookVerificationError,
)
from marketplace.catalog.domain.models.catalog import Gig
from marketplace.domain.events import OrderCreatedEvent, publish_event
from marketplace.infra.observability.metrics import order_value, orders_materialized_total, webhook_events_total
from marketplace.infra.observability.tracing import get_tracer
from marketplace.ordering.domain.models.order import Order
from marketplace.services.base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok

User = get_user_model()
tracer = get_tracer(__name__)

REQUIRED_METADATA = ("gigId", "buyerId", "sellerId")

HANDLED_EVENTS = (
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
)


@dataclass
class ReconciliationResult:
    """
    Attributes:
        order: The order linked to the session
        created: False when the order already existed (duplicate delivery)
    """

    order: Order
    created: bool


@dataclass
class WebhookOutcome:
    """
    Attributes:
        event_type: Provider event type
        handled: True when the event materialized (or matched) an order
        order: Linked order, if any
        created: True when this delivery created the order
    """

    event_type: str
    handled: bool
    order: Optional[Order] = None
    created: bool = False


class ReconciliationService(BaseService):
    """
    Service converting confirmed payments into orders.
    """

    def __init__(
        self,
        payment_provider: PaymentProviderInterface = None,
        broadcaster: NotificationBroadcasterInterface = None,
    ):
        super().__init__()
        if payment_provider is None or broadcaster is None:
            from infrastructure.container import container

            payment_provider = payment_provider or container.payment()
            broadcaster = broadcaster or container.notifications()
        self.payment_provider = payment_provider
        self.broadcaster = broadcaster

    @BaseService.log_performance
    def handle_webhook(self, payload: bytes, signature: str) -> ServiceResult[WebhookOutcome]:
        """
        Verify and process a provider webhook.

        Args:
            payload: Raw request body, byte for byte
            signature: Signature header sent with it

        Returns:
            ServiceResult with WebhookOutcome. Unhandled event types and
            sessions that are not settled yet succeed with handled=False.
        """
        with tracer.start_as_current_span("webhook_received") as span:
            try:
                event = self.payment_provider.verify_webhook(payload, signature)
            except WebhookVerificationError as e:
                self.logger.warning(f"Rejected webhook: {e}")
                webhook_events_total.labels(event_type="invalid_signature").inc()
                return service_err(ErrorCodes.INVALID_SIGNATURE, "Webhook signature verification failed")

            span.set_attribute("webhook.event_type", event.event_type)
            webhook_events_total.labels(event_type=event.event_type).inc()

            if event.event_type not in HANDLED_EVENTS:
                self.logger.info(f"Ignoring webhook event {event.event_id} ({event.event_type})")
                return service_ok(WebhookOutcome(event_type=event.event_type, handled=False))

            session = self.payment_provider.session_from_event(event)

            if not session.is_settled:
                # Delayed payment methods report completion before the funds settle;
                # async_payment_succeeded follows once they do.
                self.logger.info(f"Session {session.session_id} completed but not settled, waiting")
                return service_ok(WebhookOutcome(event_type=event.event_type, handled=False))

            result = self._materialize(session, source="webhook")
            if not result.ok:
                return result

            return service_ok(
                WebhookOutcome(
                    event_type=event.event_type,
                    handled=True,
                    order=result.value.order,
                    created=result.value.created,
                )
            )

    @BaseService.log_performance
    def confirm_session(self, user: User, session_id: str) -> ServiceResult[ReconciliationResult]:
        """
        Pull-path fallback called by the client returning from checkout.

        Args:
            user: Authenticated caller; must be the buyer recorded on the session
            session_id: Checkout session id from the success redirect

        Returns:
            ServiceResult with ReconciliationResult
        """
        if not session_id or not str(session_id).strip():
            return service_err(ErrorCodes.INVALID_INPUT, "session_id is required")

        with tracer.start_as_current_span("confirm_session") as span:
            span.set_attribute("user.id", str(user.pk))
            span.set_attribute("checkout.session_id", session_id)

            try:
                session = self.payment_provider.retrieve_session(session_id)
            except PaymentException as e:
                self.logger.error(f"Could not retrieve session {session_id}: {e}")
                return service_err(ErrorCodes.PAYMENT_PROVIDER_ERROR, "Payment provider is unavailable, try again later")

            if not session.is_settled:
                return service_err(ErrorCodes.PAYMENT_NOT_COMPLETED, "Payment not completed")

            buyer_id = session.metadata.get("buyerId")
            if buyer_id and buyer_id != str(user.pk):
                self.logger.warning(f"User {user.pk} tried to confirm session {session_id} owned by {buyer_id}")
                return service_err(ErrorCodes.NOT_ORDER_PARTY, "This checkout session belongs to another buyer")

            return self._materialize(session, source="confirm")

    def _materialize(self, session: CheckoutSession, source: str) -> ServiceResult[ReconciliationResult]:
        if not session.session_id:
            orders_materialized_total.labels(source=source, outcome="missing_metadata").inc()
            self.logger.error("Settled payment session has no id, cannot record an order")
            return service_err(ErrorCodes.MISSING_METADATA, "Payment session has no id")

        with tracer.start_as_current_span("materialize_order") as span:
            span.set_attribute("checkout.session_id", session.session_id)
            span.set_attribute("reconcile.source", source)

            existing = Order.objects.find_by_checkout_session(session.session_id)
            if existing is not None:
                orders_materialized_total.labels(source=source, outcome="duplicate").inc()
                self.logger.info(f"Session {session.session_id} already materialized as order {existing.id}")
                return service_ok(ReconciliationResult(order=existing, created=False))

            metadata = session.metadata or {}
            missing = [key for key in REQUIRED_METADATA if not metadata.get(key)]
            if missing:
                orders_materialized_total.labels(source=source, outcome="missing_metadata").inc()
                self.logger.error(f"Session {session.session_id} lacks metadata: {', '.join(missing)}")
                return service_err(ErrorCodes.MISSING_METADATA, f"Payment session is missing {', '.join(missing)}")

            try:
                gig = Gig.objects.get(id=metadata["gigId"])
                buyer = User.objects.get(pk=metadata["buyerId"])
                seller = User.objects.get(pk=metadata["sellerId"])
                price = self._settled_price(session)
            except (Gig.DoesNotExist, User.DoesNotExist, ValidationError, ValueError, InvalidOperation) as e:
                orders_materialized_total.labels(source=source, outcome="missing_metadata").inc()
                self.logger.error(f"Session {session.session_id} metadata does not resolve: {e}")
                return service_err(ErrorCodes.MISSING_METADATA, "Payment session metadata does not match a gig or user")

            try:
                with transaction.atomic():
                    order = Order.objects.create(
                        buyer=buyer,
                        seller=seller,
                        gig=gig,
                        price=price,
                        status=Order.STATUS_ACTIVE,
                        payment_intent_id=session.payment_intent_id or None,
                        checkout_session_id=session.session_id,
                    )
            except IntegrityError as e:
                # Lost the insert race against the other path
                existing = Order.objects.find_by_checkout_session(session.session_id)
                if existing is not None:
                    orders_materialized_total.labels(source=source, outcome="duplicate").inc()
                    self.logger.info(f"Concurrent materialization of {session.session_id}, returning {existing.id}")
                    return service_ok(ReconciliationResult(order=existing, created=False))

                orders_materialized_total.labels(source=source, outcome="failure").inc()
                self.logger.error(f"Could not store order for session {session.session_id}: {e}")
                return service_err(ErrorCodes.INTERNAL_ERROR, "Could not store order")

            orders_materialized_total.labels(source=source, outcome="created").inc()
            order_value.observe(float(order.price))
            span.set_attribute("order.id", str(order.id))
            self.logger.info(f"Materialized order {order.id} from session {session.session_id} via {source}")

            publish_event(self.broadcaster, OrderCreatedEvent(order))

            return service_ok(ReconciliationResult(order=order, created=True))

    @staticmethod
    def _settled_price(session: CheckoutSession) -> Decimal:
        # Provider-reported amount wins over the amount declared at checkout
        if session.amount is not None:
            price = Decimal(session.amount) / Decimal(100)
        else:
            price = Decimal(str(session.metadata.get("amount") or "0"))
        if price < 0:
            raise ValueError(f"negative settled amount {price}")
        return price.quantize(Decimal("0.01"))
