import json
from decimal import Decimal
from unittest.mock import patch

import pytest

from infrastructure.notifications import MockBroadcaster
from infrastructure.payments import CheckoutSession, MockPaymentProvider, PaymentStatus
from marketplace.models import Order
from marketplace.ordering.domain.services import ReconciliationService
from marketplace.services.base import ErrorCodes
from marketplace.tests.factories import FreeOrderFactory, GigFactory, OrderFactory, UserFactory


def checkout_metadata(gig, buyer):
    return {
        "gigId": str(gig.id),
        "buyerId": str(buyer.pk),
        "sellerId": str(gig.seller_id),
        "amount": str(gig.price),
    }


@pytest.mark.unit
@pytest.mark.django_db
class TestHandleWebhook:
    @pytest.fixture(autouse=True)
    def setup(self, db):
        self.provider = MockPaymentProvider(webhook_secret="whsec_test_secret")
        self.broadcaster = MockBroadcaster()
        self.service = ReconciliationService(payment_provider=self.provider, broadcaster=self.broadcaster)
        self.buyer = UserFactory()
        self.gig = GigFactory(price=Decimal("25.00"))

    def paid_session(self, **kwargs):
        session = self.provider.create_checkout_session(
            amount=self.gig.price,
            currency="usd",
            success_url="http://testserver.local/orders",
            cancel_url="http://testserver.local/gigs",
            metadata=checkout_metadata(self.gig, self.buyer),
        )
        return self.provider.complete_session(session.session_id, **kwargs)

    def test_completed_session_creates_order(self):
        session = self.paid_session(payment_intent_id="pi_abc")
        payload, signature = self.provider.build_webhook(session)

        result = self.service.handle_webhook(payload, signature)

        assert result.ok
        outcome = result.value
        assert outcome.handled is True
        assert outcome.created is True

        order = Order.objects.get(checkout_session_id=session.session_id)
        assert outcome.order.id == order.id
        assert order.buyer == self.buyer
        assert order.seller == self.gig.seller
        assert order.gig == self.gig
        assert order.price == Decimal("25.00")
        assert order.status == Order.STATUS_ACTIVE
        assert order.payment_intent_id == "pi_abc"

        [notification] = self.broadcaster.events("order.created")
        assert notification.payload["payload"]["order_id"] == str(order.id)

    def test_duplicate_delivery_is_ignored(self):
        session = self.paid_session()
        payload, signature = self.provider.build_webhook(session)

        first = self.service.handle_webhook(payload, signature)
        second = self.service.handle_webhook(payload, signature)

        assert first.value.created is True
        assert second.ok
        assert second.value.handled is True
        assert second.value.created is False
        assert second.value.order.id == first.value.order.id
        assert Order.objects.count() == 1
        assert len(self.broadcaster.events("order.created")) == 1

    def test_async_payment_succeeded_is_handled(self):
        session = self.paid_session()
        payload, signature = self.provider.build_webhook(session, "checkout.session.async_payment_succeeded")

        result = self.service.handle_webhook(payload, signature)

        assert result.ok
        assert result.value.created is True

    def test_bad_signature(self):
        session = self.paid_session()
        payload, _ = self.provider.build_webhook(session)

        result = self.service.handle_webhook(payload, "deadbeef")

        assert not result.ok
        assert result.error == ErrorCodes.INVALID_SIGNATURE
        assert Order.objects.count() == 0

    def test_tampered_payload(self):
        session = self.paid_session()
        payload, signature = self.provider.build_webhook(session)
        event = json.loads(payload)
        event["data"]["object"]["amount_total"] = 1

        result = self.service.handle_webhook(json.dumps(event).encode("utf-8"), signature)

        assert result.error == ErrorCodes.INVALID_SIGNATURE

    def test_unrelated_event_is_acknowledged(self):
        session = self.paid_session()
        payload, signature = self.provider.build_webhook(session, "payment_intent.created")

        result = self.service.handle_webhook(payload, signature)

        assert result.ok
        assert result.value.handled is False
        assert result.value.event_type == "payment_intent.created"
        assert Order.objects.count() == 0

    def test_unsettled_session_waits(self):
        session = self.provider.create_checkout_session(
            amount=self.gig.price,
            currency="usd",
            success_url="http://testserver.local/orders",
            cancel_url="http://testserver.local/gigs",
            metadata=checkout_metadata(self.gig, self.buyer),
        )
        payload, signature = self.provider.build_webhook(session)

        result = self.service.handle_webhook(payload, signature)

        assert result.ok
        assert result.value.handled is False
        assert Order.objects.count() == 0

    def test_missing_metadata(self):
        session = self.provider.add_session("cs_no_meta", metadata={"gigId": str(self.gig.id)}, amount=2500)
        payload, signature = self.provider.build_webhook(session)

        result = self.service.handle_webhook(payload, signature)

        assert not result.ok
        assert result.error == ErrorCodes.MISSING_METADATA
        assert Order.objects.count() == 0

    def test_metadata_for_unknown_gig(self):
        metadata = checkout_metadata(self.gig, self.buyer)
        metadata["gigId"] = "00000000-0000-0000-0000-000000000000"
        session = self.provider.add_session("cs_ghost_gig", metadata=metadata, amount=2500)
        payload, signature = self.provider.build_webhook(session)

        result = self.service.handle_webhook(payload, signature)

        assert result.error == ErrorCodes.MISSING_METADATA

    def test_session_without_id_does_not_match_free_orders(self):
        FreeOrderFactory(gig=self.gig, buyer=self.buyer)
        session = CheckoutSession(
            session_id=None,
            url="",
            amount=2500,
            currency="usd",
            status=PaymentStatus.SUCCEEDED,
            metadata=checkout_metadata(self.gig, self.buyer),
        )
        payload, signature = self.provider.build_webhook(session)

        result = self.service.handle_webhook(payload, signature)

        assert not result.ok
        assert result.error == ErrorCodes.MISSING_METADATA
        assert Order.objects.count() == 1
        assert self.broadcaster.events("order.created") == []

    def test_price_falls_back_to_declared_amount(self):
        session = self.provider.add_session(
            "cs_no_amount", metadata=checkout_metadata(self.gig, self.buyer), amount=None
        )
        payload, signature = self.provider.build_webhook(session)

        result = self.service.handle_webhook(payload, signature)

        assert result.ok
        assert result.value.order.price == Decimal("25.00")

    def test_settled_amount_wins_over_declared_amount(self):
        session = self.provider.add_session(
            "cs_discounted", metadata=checkout_metadata(self.gig, self.buyer), amount=1999
        )
        payload, signature = self.provider.build_webhook(session)

        result = self.service.handle_webhook(payload, signature)

        assert result.value.order.price == Decimal("19.99")


@pytest.mark.unit
@pytest.mark.django_db
class TestConfirmSession:
    @pytest.fixture(autouse=True)
    def setup(self, db):
        self.provider = MockPaymentProvider(webhook_secret="whsec_test_secret")
        self.broadcaster = MockBroadcaster()
        self.service = ReconciliationService(payment_provider=self.provider, broadcaster=self.broadcaster)
        self.buyer = UserFactory()
        self.gig = GigFactory()

    def test_creates_order_for_paid_session(self):
        self.provider.add_session(
            "cs_paid", metadata=checkout_metadata(self.gig, self.buyer), amount=2500, payment_intent_id="pi_paid"
        )

        result = self.service.confirm_session(self.buyer, "cs_paid")

        assert result.ok
        assert result.value.created is True
        assert result.value.order.checkout_session_id == "cs_paid"
        assert result.value.order.payment_intent_id == "pi_paid"

    def test_confirm_then_webhook_yields_one_order(self):
        session = self.provider.add_session(
            "cs_paid", metadata=checkout_metadata(self.gig, self.buyer), amount=2500
        )
        confirmed = self.service.confirm_session(self.buyer, "cs_paid")
        payload, signature = self.provider.build_webhook(session)

        webhook = self.service.handle_webhook(payload, signature)

        assert webhook.ok
        assert webhook.value.created is False
        assert webhook.value.order.id == confirmed.value.order.id
        assert Order.objects.count() == 1

    def test_repeat_confirm_returns_existing(self):
        self.provider.add_session("cs_paid", metadata=checkout_metadata(self.gig, self.buyer), amount=2500)

        first = self.service.confirm_session(self.buyer, "cs_paid")
        second = self.service.confirm_session(self.buyer, "cs_paid")

        assert second.ok
        assert second.value.created is False
        assert second.value.order.id == first.value.order.id

    def test_unpaid_session(self):
        self.provider.add_session("cs_unpaid", metadata=checkout_metadata(self.gig, self.buyer), paid=False)

        result = self.service.confirm_session(self.buyer, "cs_unpaid")

        assert not result.ok
        assert result.error == ErrorCodes.PAYMENT_NOT_COMPLETED
        assert Order.objects.count() == 0

    def test_other_buyers_session(self):
        self.provider.add_session("cs_paid", metadata=checkout_metadata(self.gig, self.buyer), amount=2500)

        result = self.service.confirm_session(UserFactory(), "cs_paid")

        assert result.error == ErrorCodes.NOT_ORDER_PARTY
        assert Order.objects.count() == 0

    @pytest.mark.parametrize("session_id", ["", "   ", None])
    def test_blank_session_id(self, session_id):
        result = self.service.confirm_session(self.buyer, session_id)

        assert result.error == ErrorCodes.INVALID_INPUT

    def test_unknown_session(self):
        result = self.service.confirm_session(self.buyer, "cs_missing")

        assert result.error == ErrorCodes.PAYMENT_PROVIDER_ERROR


@pytest.mark.unit
@pytest.mark.django_db
class TestConcurrentMaterialization:
    @pytest.fixture(autouse=True)
    def setup(self, db):
        self.provider = MockPaymentProvider(webhook_secret="whsec_test_secret")
        self.service = ReconciliationService(payment_provider=self.provider, broadcaster=MockBroadcaster())
        self.buyer = UserFactory()
        self.gig = GigFactory()

    def test_lost_insert_race_returns_winner(self):
        winner = OrderFactory(gig=self.gig, buyer=self.buyer, checkout_session_id="cs_race", payment_intent_id=None)
        self.provider.add_session("cs_race", metadata=checkout_metadata(self.gig, self.buyer), amount=2500)

        # The first lookup misses, as if the other path inserted right after it
        with patch.object(Order.objects, "find_by_checkout_session", side_effect=[None, winner]):
            result = self.service.confirm_session(self.buyer, "cs_race")

        assert result.ok
        assert result.value.created is False
        assert result.value.order.id == winner.id
        assert Order.objects.filter(checkout_session_id="cs_race").count() == 1

    def test_integrity_error_without_existing_order(self):
        OrderFactory(gig=self.gig, buyer=self.buyer, checkout_session_id="cs_race", payment_intent_id=None)
        self.provider.add_session("cs_race", metadata=checkout_metadata(self.gig, self.buyer), amount=2500)

        with patch.object(Order.objects, "find_by_checkout_session", side_effect=[None, None]):
            result = self.service.confirm_session(self.buyer, "cs_race")

        assert not result.ok
        assert result.error == ErrorCodes.INTERNAL_ERROR
