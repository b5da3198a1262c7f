"""
CheckoutService - Checkout Initiation

Decides between the free and the paid flow for a gig purchase and produces
the redirect target for the client. Paid checkouts only open a hosted payment
session; the order is materialized later by ReconciliationService.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import transaction

from infrastructure.notifications import NotificationBroadcasterInterface
from infrastructure.payments import PaymentException, PaymentProviderInterface
from marketplace.catalog.domain.models.catalog import Gig
from marketplace.domain.events import OrderCreatedEvent, publish_event
from marketplace.infra.observability.metrics import checkouts_total
from marketplace.infra.observability.tracing import get_tracer
from marketplace.ordering.domain.models.order import Order
from marketplace.services.base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok

User = get_user_model()
tracer = get_tracer(__name__)


def client_url() -> str:
    """Front-end base URL, with a scheme and without a trailing slash."""
    url = getattr(settings, "CLIENT_URL", "http://localhost:5173").strip().rstrip("/")
    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"
    return url


@dataclass
class CheckoutResult:
    """
    Outcome of a checkout request.

    Attributes:
        url: Where the client should be redirected
        free: True when the order was created without payment
        order: The created order (free flow only)
        session_id: Hosted payment session id (paid flow only)
    """

    url: str
    free: bool
    order: Optional[Order] = None
    session_id: Optional[str] = None


class CheckoutService(BaseService):
    """
    Service for starting a gig purchase.
    """

    def __init__(
        self,
        payment_provider: PaymentProviderInterface = None,
        broadcaster: NotificationBroadcasterInterface = None,
    ):
        """
        Initialize CheckoutService.

        Args:
            payment_provider: Provider that hosts checkout sessions (injected)
            broadcaster: Real-time notification broadcaster (injected)
        """
        super().__init__()
        if payment_provider is None or broadcaster is None:
            from infrastructure.container import container

            payment_provider = payment_provider or container.payment()
            broadcaster = broadcaster or container.notifications()
        self.payment_provider = payment_provider
        self.broadcaster = broadcaster

    @BaseService.log_performance
    def checkout(self, user: User, gig_id: str) -> ServiceResult[CheckoutResult]:
        """
        Start checkout for a gig.

        Free gigs (no price, or price <= 0) become an active order right away.
        Paid gigs get a hosted payment session whose metadata links it back to
        the gig, the buyer and the seller.

        Args:
            user: Buying user
            gig_id: Gig UUID

        Returns:
            ServiceResult with CheckoutResult
        """
        with tracer.start_as_current_span("checkout") as span:
            span.set_attribute("user.id", str(user.pk))
            span.set_attribute("gig.id", str(gig_id))

            try:
                gig = Gig.objects.select_related("seller").get(id=gig_id)
            except (Gig.DoesNotExist, ValidationError, ValueError):
                return service_err(ErrorCodes.GIG_NOT_FOUND, f"Gig {gig_id} not found")

            if gig.is_free:
                return self._checkout_free(user, gig)

            return self._checkout_paid(user, gig)

    def _checkout_free(self, user: User, gig: Gig) -> ServiceResult[CheckoutResult]:
        with transaction.atomic():
            order = Order.objects.create(
                buyer=user,
                seller=gig.seller,
                gig=gig,
                price=Decimal("0"),
                status=Order.STATUS_ACTIVE,
            )

        checkouts_total.labels(flow="free", status="success").inc()
        self.logger.info(f"Created free order {order.id} for gig {gig.id} (buyer {user.pk})")

        publish_event(self.broadcaster, OrderCreatedEvent(order))

        url = f"{client_url()}/orders?success=true&free=true&order={order.id}"
        return service_ok(CheckoutResult(url=url, free=True, order=order))

    def _checkout_paid(self, user: User, gig: Gig) -> ServiceResult[CheckoutResult]:
        base_url = client_url()
        metadata = {
            "gigId": str(gig.id),
            "buyerId": str(user.pk),
            "sellerId": str(gig.seller_id),
            "amount": str(gig.price),
        }

        try:
            session = self.payment_provider.create_checkout_session(
                amount=gig.price,
                currency=getattr(settings, "PAYMENT_CURRENCY", "usd"),
                success_url=f"{base_url}/orders?success=true&session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base_url}/gigs/{gig.id}",
                metadata=metadata,
                product_name=gig.title,
                product_description=gig.description or None,
            )
        except PaymentException as e:
            checkouts_total.labels(flow="paid", status="failure").inc()
            self.logger.error(f"Checkout session creation failed for gig {gig.id}: {e}")
            return service_err(ErrorCodes.PAYMENT_PROVIDER_ERROR, "Payment provider is unavailable, try again later")

        checkouts_total.labels(flow="paid", status="success").inc()
        self.logger.info(f"Opened checkout session {session.session_id} for gig {gig.id} (buyer {user.pk})")

        return service_ok(CheckoutResult(url=session.url, free=False, session_id=session.session_id))
