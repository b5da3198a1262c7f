"""
OrderService - Order Lifecycle Management

Handles order queries and the seller-driven transitions: start work, report
progress, complete, and cancel (refunding paid orders first).

Every transition is a single conditional UPDATE guarded by the status the
order must still have, so a transition that lost a race reports
invalid_order_state instead of overwriting the winner.
"""

from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from infrastructure.notifications import NotificationBroadcasterInterface
from infrastructure.payments import PaymentException, PaymentProviderInterface, RefundDeclinedError
from marketplace.domain.events import (
    OrderCancelledEvent,
    OrderCompletedEvent,
    OrderProgressUpdatedEvent,
    OrderStartedEvent,
    publish_event,
)
from marketplace.infra.observability.metrics import order_transitions_total, refunds_total
from marketplace.infra.observability.tracing import get_tracer
from marketplace.ordering.domain.models.order import Order
from marketplace.services.base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok

User = get_user_model()
tracer = get_tracer(__name__)

REFUND_REASON = "requested_by_customer"


class OrderService(BaseService):
    """
    Service for managing order lifecycle.
    """

    def __init__(
        self,
        payment_provider: PaymentProviderInterface = None,
        broadcaster: NotificationBroadcasterInterface = None,
    ):
        """
        Initialize OrderService.

        Args:
            payment_provider: Provider used to refund paid orders (injected)
            broadcaster: Real-time notification broadcaster (injected)
        """
        super().__init__()
        if payment_provider is None or broadcaster is None:
            from infrastructure.container import container

            payment_provider = payment_provider or container.payment()
            broadcaster = broadcaster or container.notifications()
        self.payment_provider = payment_provider
        self.broadcaster = broadcaster

    # Queries

    @BaseService.log_performance
    def get_order(self, order_id: str, user: User) -> ServiceResult[Order]:
        """
        Get order details (buyer or seller only).

        Args:
            order_id: Order UUID
            user: User requesting the order

        Returns:
            ServiceResult with Order instance
        """
        result = self._load(order_id)
        if not result.ok:
            return result

        order = result.value
        if not order.is_party(user):
            return service_err(ErrorCodes.NOT_ORDER_PARTY, "You are not a party to this order")

        return service_ok(order)

    @BaseService.log_performance
    def list_orders(
        self, user: User, status: Optional[str] = None, page: int = 1, page_size: int = 20
    ) -> ServiceResult[Dict]:
        """
        List orders where the user is buyer or seller, newest first.

        Args:
            user: User whose orders to list
            status: Optional status filter
            page: Page number
            page_size: Items per page

        Returns:
            ServiceResult with paginated order list
        """
        valid_statuses = [choice for choice, _ in Order.STATUS_CHOICES]
        if status and status not in valid_statuses:
            return service_err(ErrorCodes.INVALID_INPUT, f"Unknown status '{status}'")
        if page < 1 or page_size < 1:
            return service_err(ErrorCodes.INVALID_INPUT, "page and page_size must be positive")

        queryset = Order.objects.for_party(user).select_related("gig", "buyer", "seller")

        if status:
            queryset = queryset.filter(status=status)

        queryset = queryset.order_by("-created_at")

        offset = (page - 1) * page_size
        total_count = queryset.count()
        orders = list(queryset[offset : offset + page_size])

        result_data = {
            "results": orders,
            "count": total_count,
            "page": page,
            "page_size": page_size,
            "num_pages": (total_count + page_size - 1) // page_size,
        }

        self.logger.info(f"Listed orders for user {user.pk}: {total_count} total, page {page}")

        return service_ok(result_data)

    # Transitions

    @BaseService.log_performance
    def start_work(self, order_id: str, user: User) -> ServiceResult[Order]:
        """
        Mark an active, not yet started order as started (seller only).
        """
        with tracer.start_as_current_span("order_start_work") as span:
            span.set_attribute("order.id", str(order_id))

            result = self._load_for_seller(order_id, user)
            if not result.ok:
                return result
            order = result.value

            if order.status != Order.STATUS_ACTIVE or order.started:
                return self._reject("start", order, "Work can only be started once on an active order")

            changed = Order.objects.transition(
                order.id,
                Order.STATUS_ACTIVE,
                conditions={"started": False},
                started=True,
                started_at=timezone.now(),
            )
            if not changed:
                return self._reject("start", order, "Work can only be started once on an active order")

            order.refresh_from_db()
            order_transitions_total.labels(transition="start", outcome="success").inc()
            self.logger.info(f"Seller {user.pk} started work on order {order.id}")

            publish_event(self.broadcaster, OrderStartedEvent(order))

            return service_ok(order)

    @BaseService.log_performance
    def update_progress(self, order_id: str, user: User, progress) -> ServiceResult[Order]:
        """
        Record work progress on a started order (seller only).

        Args:
            order_id: Order UUID
            user: Seller reporting progress
            progress: Whole number from 0 to 100 (numeric strings accepted)

        Returns:
            ServiceResult with updated Order
        """
        with tracer.start_as_current_span("order_update_progress") as span:
            span.set_attribute("order.id", str(order_id))

            result = self._load_for_seller(order_id, user)
            if not result.ok:
                return result
            order = result.value

            value = parse_progress(progress)
            if value is None:
                order_transitions_total.labels(transition="progress", outcome="invalid_input").inc()
                return service_err(ErrorCodes.INVALID_INPUT, "Progress must be a whole number between 0 and 100")

            if order.status != Order.STATUS_ACTIVE or not order.started:
                return self._reject("progress", order, "Progress can only be reported on started, active orders")

            changed = Order.objects.transition(
                order.id,
                Order.STATUS_ACTIVE,
                conditions={"started": True},
                progress=value,
            )
            if not changed:
                return self._reject("progress", order, "Progress can only be reported on started, active orders")

            order.refresh_from_db()
            order_transitions_total.labels(transition="progress", outcome="success").inc()
            self.logger.info(f"Order {order.id} progress set to {value}")

            publish_event(self.broadcaster, OrderProgressUpdatedEvent(order, value))

            return service_ok(order)

    @BaseService.log_performance
    def complete_order(self, order_id: str, user: User) -> ServiceResult[Order]:
        """Complete an active order (seller only)."""
        result = self._load_for_seller(order_id, user)
        if not result.ok:
            return result
        return self._complete(result.value)

    @BaseService.log_performance
    def complete_latest_for_gig(self, gig_id: str, user: User) -> ServiceResult[Order]:
        """
        Complete the seller's most recent active order for a gig.

        Kept for older clients that only know the gig. When several active
        orders exist for the same gig, the newest one is completed.
        """
        result = self._latest_for_gig(gig_id, user)
        if not result.ok:
            return result
        return self._complete(result.value)

    @BaseService.log_performance
    def cancel_order(self, order_id: str, user: User, reason: str = "") -> ServiceResult[Order]:
        """
        Cancel an active order (seller only).

        Free orders are cancelled directly. Paid orders are refunded first; if
        the refund fails the order stays active and payment_provider_error is
        returned so the caller can retry.

        Args:
            order_id: Order UUID
            user: Seller cancelling the order
            reason: Optional free-text reason stored on the order

        Returns:
            ServiceResult with cancelled Order
        """
        with transaction.atomic():
            result = self._load_for_seller(order_id, user, lock=True)
            if not result.ok:
                return result
            result = self._cancel(result.value, reason)

        if result.ok:
            publish_event(self.broadcaster, OrderCancelledEvent(result.value))
        return result

    @BaseService.log_performance
    def cancel_latest_for_gig(self, gig_id: str, user: User, reason: str = "") -> ServiceResult[Order]:
        """Cancel the seller's most recent active order for a gig."""
        with transaction.atomic():
            result = self._latest_for_gig(gig_id, user, lock=True)
            if not result.ok:
                return result
            result = self._cancel(result.value, reason)

        if result.ok:
            publish_event(self.broadcaster, OrderCancelledEvent(result.value))
        return result

    # Internals

    def _complete(self, order: Order) -> ServiceResult[Order]:
        with tracer.start_as_current_span("order_complete") as span:
            span.set_attribute("order.id", str(order.id))

            if order.status != Order.STATUS_ACTIVE:
                return self._reject("complete", order, f"Cannot complete an order that is {order.status}")

            changed = Order.objects.transition(
                order.id,
                Order.STATUS_ACTIVE,
                status=Order.STATUS_COMPLETED,
                completed_at=timezone.now(),
            )
            if not changed:
                return self._reject("complete", order, "Order is no longer active")

            order.refresh_from_db()
            order_transitions_total.labels(transition="complete", outcome="success").inc()
            self.logger.info(f"Order {order.id} completed")

            publish_event(self.broadcaster, OrderCompletedEvent(order))

            return service_ok(order)

    def _cancel(self, order: Order, reason: str) -> ServiceResult[Order]:
        with tracer.start_as_current_span("order_cancel") as span:
            span.set_attribute("order.id", str(order.id))
            span.set_attribute("order.paid", order.is_paid)

            if order.status != Order.STATUS_ACTIVE:
                return self._reject("cancel", order, f"Cannot cancel an order that is {order.status}")

            changes = {
                "status": Order.STATUS_CANCELLED,
                "cancellation_reason": reason or "",
                "refunded": False,
            }

            if order.is_paid:
                refund = self._refund(order)
                if not refund.ok:
                    return refund
                changes["refunded"] = True
                if not order.payment_intent_id:
                    changes["payment_intent_id"] = refund.value

            changes["cancelled_at"] = timezone.now()
            changed = Order.objects.transition(order.id, Order.STATUS_ACTIVE, **changes)
            if not changed:
                if changes["refunded"]:
                    self.logger.error(f"Order {order.id} was refunded but changed state before it could be cancelled")
                return self._reject("cancel", order, "Order is no longer active")

            order.refresh_from_db()
            order_transitions_total.labels(transition="cancel", outcome="success").inc()
            self.logger.info(f"Order {order.id} cancelled (refunded={order.refunded})")

            return service_ok(order)

    def _refund(self, order: Order) -> ServiceResult[str]:
        """Refund a paid order in full. Returns the refunded payment intent id."""
        payment_intent_id = None
        try:
            if order.checkout_session_id:
                session = self.payment_provider.retrieve_session(order.checkout_session_id)
                payment_intent_id = session.payment_intent_id
            payment_intent_id = payment_intent_id or order.payment_intent_id

            if not payment_intent_id:
                refunds_total.labels(outcome="failure").inc()
                self.logger.error(f"Order {order.id} has no payment intent to refund")
                return service_err(ErrorCodes.PAYMENT_PROVIDER_ERROR, "No payment found to refund for this order")

            accepted = self.payment_provider.create_refund(
                payment_intent_id,
                reason=REFUND_REASON,
                idempotency_key=f"order-{order.id}-refund-{order.refund_attempts}",
            )
        except RefundDeclinedError as e:
            self._refund_declined(order)
            refunds_total.labels(outcome="failure").inc()
            self.logger.error(f"Refund declined for order {order.id}: {e}")
            return service_err(ErrorCodes.PAYMENT_PROVIDER_ERROR, "Refund failed, the order was not cancelled")
        except PaymentException as e:
            refunds_total.labels(outcome="failure").inc()
            self.logger.error(f"Refund failed for order {order.id}: {e}")
            return service_err(ErrorCodes.PAYMENT_PROVIDER_ERROR, "Refund failed, the order was not cancelled")

        if not accepted:
            self._refund_declined(order)
            refunds_total.labels(outcome="failure").inc()
            self.logger.error(f"Refund for order {order.id} was not accepted by the provider")
            return service_err(ErrorCodes.PAYMENT_PROVIDER_ERROR, "Refund failed, the order was not cancelled")

        refunds_total.labels(outcome="success").inc()
        self.logger.info(f"Refunded {payment_intent_id} for order {order.id}")
        return service_ok(payment_intent_id)

    @staticmethod
    def _refund_declined(order: Order):
        # Only a declined refund gets a fresh key. Ambiguous failures reuse the current one.
        Order.objects.filter(pk=order.id).update(refund_attempts=F("refund_attempts") + 1)

    def _load(self, order_id: str, lock: bool = False) -> ServiceResult[Order]:
        queryset = Order.objects.select_related("gig", "buyer", "seller")
        if lock:
            queryset = queryset.select_for_update(of=("self",))
        try:
            return service_ok(queryset.get(id=order_id))
        except (Order.DoesNotExist, ValidationError, ValueError):
            return service_err(ErrorCodes.ORDER_NOT_FOUND, f"Order {order_id} not found")

    def _load_for_seller(self, order_id: str, user: User, lock: bool = False) -> ServiceResult[Order]:
        result = self._load(order_id, lock=lock)
        if not result.ok:
            return result

        if result.value.seller_id != user.pk:
            self.logger.warning(f"User {user.pk} attempted a seller action on order {order_id}")
            return service_err(ErrorCodes.NOT_ORDER_PARTY, "Only the seller can change this order")

        return result

    def _latest_for_gig(self, gig_id: str, user: User, lock: bool = False) -> ServiceResult[Order]:
        try:
            order = Order.objects.latest_active_for_gig(gig_id, user)
            if order is None and Order.objects.filter(gig_id=gig_id, buyer=user, status=Order.STATUS_ACTIVE).exists():
                return service_err(ErrorCodes.NOT_ORDER_PARTY, "Only the seller can change this order")
        except (ValidationError, ValueError):
            order = None

        if order is None:
            return service_err(ErrorCodes.ORDER_NOT_FOUND, f"No active order found for gig {gig_id}")

        return self._load_for_seller(order.id, user, lock=lock)

    def _reject(self, transition: str, order: Order, detail: str) -> ServiceResult:
        order_transitions_total.labels(transition=transition, outcome="invalid_state").inc()
        self.logger.info(f"Rejected {transition} on order {order.id} (status={order.status}, started={order.started})")
        return service_err(ErrorCodes.INVALID_ORDER_STATE, detail)


def parse_progress(value) -> Optional[int]:
    """
    Coerce a progress value to an int in [0, 100].

    Returns None for booleans, non-numeric input, fractions and out of range values.
    """
    if isinstance(value, bool) or value is None:
        return None

    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None

    if not number.is_finite() or number != number.to_integral_value():
        return None
    if number < 0 or number > 100:
        return None

    return int(number)
