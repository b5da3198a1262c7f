import uuid
from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from infrastructure.container import container
from marketplace.models import Order
from marketplace.tests.factories import (
    FreeGigFactory,
    FreeOrderFactory,
    GigFactory,
    OrderFactory,
    SellerFactory,
    UserFactory,
)


class OrderApiTestCase(TestCase):
    def setUp(self):
        container.configure_for_testing()
        self.provider = container.payment()
        self.broadcaster = container.notifications()

        self.client = APIClient()
        self.buyer = UserFactory(username="buyer", email="buyer@example.com")
        self.seller = SellerFactory(username="seller", email="seller@example.com")

    def tearDown(self):
        container.reset()

    def order_url(self, name, order):
        return reverse(f"marketplace:order-{name}", kwargs={"pk": str(order.id)})


class CheckoutViewTest(OrderApiTestCase):
    def test_free_checkout_creates_order(self):
        gig = FreeGigFactory(seller=self.seller)
        self.client.force_authenticate(user=self.buyer)

        response = self.client.post(reverse("marketplace:order-checkout", kwargs={"gig_id": str(gig.id)}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["free"])
        self.assertIn("free=true", response.data["url"])
        self.assertIsNone(response.data["session_id"])

        detail = self.client.get(reverse("marketplace:order-detail", kwargs={"pk": response.data["order_id"]}))
        self.assertEqual(detail.status_code, status.HTTP_200_OK)
        self.assertEqual(detail.data["status"], Order.STATUS_ACTIVE)
        self.assertEqual(detail.data["price"], "0.00")
        self.assertEqual(detail.data["buyer_id"], str(self.buyer.pk))

    def test_paid_checkout_returns_payment_url(self):
        gig = GigFactory(seller=self.seller, price=Decimal("25.00"))
        self.client.force_authenticate(user=self.buyer)

        response = self.client.post(reverse("marketplace:order-checkout", kwargs={"gig_id": str(gig.id)}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["free"])
        self.assertIsNone(response.data["order_id"])
        self.assertTrue(response.data["url"].startswith("https://checkout.mock.local/pay/"))
        self.assertEqual(Order.objects.count(), 0)

    def test_checkout_unknown_gig(self):
        self.client.force_authenticate(user=self.buyer)

        response = self.client.post(reverse("marketplace:order-checkout", kwargs={"gig_id": str(uuid.uuid4())}))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["code"], "gig_not_found")

    def test_checkout_provider_down(self):
        gig = GigFactory(seller=self.seller)
        self.provider.fail_requests = True
        self.client.force_authenticate(user=self.buyer)

        response = self.client.post(reverse("marketplace:order-checkout", kwargs={"gig_id": str(gig.id)}))

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(response.data["code"], "payment_provider_error")

    def test_checkout_requires_authentication(self):
        gig = FreeGigFactory(seller=self.seller)

        response = self.client.post(reverse("marketplace:order-checkout", kwargs={"gig_id": str(gig.id)}))

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(Order.objects.count(), 0)


class ConfirmSessionViewTest(OrderApiTestCase):
    def setUp(self):
        super().setUp()
        self.gig = GigFactory(seller=self.seller, price=Decimal("25.00"))
        self.url = reverse("marketplace:order-confirm-session")

    def paid_session(self):
        self.client.force_authenticate(user=self.buyer)
        response = self.client.post(reverse("marketplace:order-checkout", kwargs={"gig_id": str(self.gig.id)}))
        return response.data["session_id"]

    def test_confirm_paid_session(self):
        session_id = self.paid_session()
        self.provider.complete_session(session_id)

        response = self.client.get(self.url, {"session_id": session_id})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["ok"])
        self.assertTrue(response.data["created"])
        self.assertEqual(response.data["order"]["price"], "25.00")
        self.assertEqual(response.data["order"]["checkout_session_id"], session_id)

        again = self.client.get(self.url, {"session_id": session_id})
        self.assertFalse(again.data["created"])
        self.assertEqual(again.data["order"]["id"], response.data["order"]["id"])
        self.assertEqual(Order.objects.count(), 1)

    def test_confirm_unpaid_session(self):
        session_id = self.paid_session()

        response = self.client.get(self.url, {"session_id": session_id})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "payment_not_completed")

    def test_confirm_without_session_id(self):
        self.client.force_authenticate(user=self.buyer)

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_input")

    def test_confirm_someone_elses_session(self):
        session_id = self.paid_session()
        self.provider.complete_session(session_id)
        self.client.force_authenticate(user=UserFactory())

        response = self.client.get(self.url, {"session_id": session_id})

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(Order.objects.count(), 0)


class OrderLifecycleViewTest(OrderApiTestCase):
    def setUp(self):
        super().setUp()
        self.gig = GigFactory(seller=self.seller)
        self.order = OrderFactory(gig=self.gig, buyer=self.buyer)

    def test_full_seller_flow(self):
        self.client.force_authenticate(user=self.seller)

        started = self.client.patch(self.order_url("start-work", self.order))
        self.assertEqual(started.status_code, status.HTTP_200_OK)
        self.assertEqual(started.data["message"], "Work started")
        self.assertTrue(started.data["order"]["started"])

        progressed = self.client.patch(self.order_url("progress", self.order), {"progress": 50}, format="json")
        self.assertEqual(progressed.status_code, status.HTTP_200_OK)
        self.assertEqual(progressed.data["progress"], 50)

        completed = self.client.patch(self.order_url("complete", self.order))
        self.assertEqual(completed.status_code, status.HTTP_200_OK)
        self.assertEqual(completed.data["order"]["status"], Order.STATUS_COMPLETED)

        event_types = [n.event_type for n in self.broadcaster.sent]
        self.assertEqual(event_types, ["order.started", "order.progress_updated", "order.completed"])

    def test_start_twice(self):
        self.client.force_authenticate(user=self.seller)
        self.client.patch(self.order_url("start-work", self.order))

        response = self.client.patch(self.order_url("start-work", self.order))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_order_state")

    def test_invalid_progress_values(self):
        Order.objects.filter(pk=self.order.pk).update(started=True, started_at=timezone.now())
        self.client.force_authenticate(user=self.seller)

        for value in (-1, 101, "abc"):
            response = self.client.patch(self.order_url("progress", self.order), {"progress": value}, format="json")
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertEqual(response.data["code"], "invalid_input")

        self.order.refresh_from_db()
        self.assertEqual(self.order.progress, 0)

    def test_non_object_bodies_are_rejected(self):
        Order.objects.filter(pk=self.order.pk).update(started=True, started_at=timezone.now())
        self.client.force_authenticate(user=self.seller)

        for name in ("progress", "cancel"):
            response = self.client.patch(self.order_url(name, self.order), [50], format="json")
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
            self.assertEqual(response.data["code"], "invalid_input")

        response = self.client.patch(
            reverse("marketplace:order-cancel-by-gig", kwargs={"gig_id": str(self.gig.id)}), [], format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_ACTIVE)
        self.assertEqual(self.order.progress, 0)

    def test_buyer_cannot_complete(self):
        self.client.force_authenticate(user=self.buyer)

        response = self.client.patch(self.order_url("complete", self.order))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["code"], "not_order_party")

    def test_unknown_order(self):
        self.client.force_authenticate(user=self.seller)

        response = self.client.patch(
            reverse("marketplace:order-complete", kwargs={"pk": str(uuid.uuid4())})
        )

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_cancel_paid_order_refunds(self):
        self.provider.add_session(self.order.checkout_session_id, payment_intent_id="pi_refund_me")
        self.client.force_authenticate(user=self.seller)

        response = self.client.patch(self.order_url("cancel", self.order), {"reason": "Cannot deliver"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["refunded"])
        self.assertEqual(response.data["order"]["status"], Order.STATUS_CANCELLED)
        self.assertEqual(response.data["order"]["cancellation_reason"], "Cannot deliver")
        self.assertEqual(self.provider.refunds[0]["payment_intent_id"], "pi_refund_me")

    def test_cancel_refund_failure(self):
        self.provider.add_session(self.order.checkout_session_id, payment_intent_id="pi_refund_me")
        self.provider.fail_refunds = True
        self.client.force_authenticate(user=self.seller)

        response = self.client.post(self.order_url("cancel", self.order))

        self.assertEqual(response.status_code, status.HTTP_502_BAD_GATEWAY)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_ACTIVE)

    def test_cancel_free_order(self):
        order = FreeOrderFactory(gig=FreeGigFactory(seller=self.seller), buyer=self.buyer)
        self.client.force_authenticate(user=self.seller)

        response = self.client.patch(self.order_url("cancel", order))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(response.data["refunded"])
        self.assertEqual(self.provider.refunds, [])


class LegacyGigEndpointsTest(OrderApiTestCase):
    def setUp(self):
        super().setUp()
        self.gig = FreeGigFactory(seller=self.seller)
        self.older = FreeOrderFactory(gig=self.gig, buyer=self.buyer)
        self.newer = FreeOrderFactory(gig=self.gig, buyer=UserFactory())
        Order.objects.filter(pk=self.older.pk).update(created_at=timezone.now() - timedelta(days=1))

    def test_complete_by_gig_picks_newest(self):
        self.client.force_authenticate(user=self.seller)

        response = self.client.patch(reverse("marketplace:order-complete-by-gig", kwargs={"gig_id": str(self.gig.id)}))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["order"]["id"], str(self.newer.id))

    def test_cancel_by_gig(self):
        self.client.force_authenticate(user=self.seller)

        response = self.client.post(
            reverse("marketplace:order-cancel-by-gig", kwargs={"gig_id": str(self.gig.id)}),
            {"reason": "Closing shop"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["order"]["id"], str(self.newer.id))
        self.assertEqual(response.data["order"]["cancellation_reason"], "Closing shop")

    def test_buyer_cannot_complete_by_gig(self):
        self.client.force_authenticate(user=self.buyer)

        response = self.client.patch(reverse("marketplace:order-complete-by-gig", kwargs={"gig_id": str(self.gig.id)}))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_no_active_order_for_gig(self):
        self.client.force_authenticate(user=self.seller)

        response = self.client.patch(
            reverse("marketplace:order-complete-by-gig", kwargs={"gig_id": str(FreeGigFactory().id)})
        )

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class OrderQueryViewTest(OrderApiTestCase):
    def test_list_includes_purchases_and_sales(self):
        purchase = OrderFactory(buyer=self.buyer)
        sale = OrderFactory(gig=GigFactory(seller=self.buyer))
        OrderFactory()
        self.client.force_authenticate(user=self.buyer)

        response = self.client.get(reverse("marketplace:order-list"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["count"], 2)
        self.assertEqual({o["id"] for o in response.data["results"]}, {str(purchase.id), str(sale.id)})

    def test_list_rejects_bad_pagination(self):
        self.client.force_authenticate(user=self.buyer)

        response = self.client.get(reverse("marketplace:order-list"), {"page": "two"})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_rejects_unknown_status(self):
        self.client.force_authenticate(user=self.buyer)

        response = self.client.get(reverse("marketplace:order-list"), {"status": "shipped"})

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_stranger_cannot_view_order(self):
        order = OrderFactory()
        self.client.force_authenticate(user=self.buyer)

        response = self.client.get(self.order_url("detail", order))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_requires_authentication(self):
        response = self.client.get(reverse("marketplace:order-list"))

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)


class MetricsViewTest(TestCase):
    def test_metrics_are_exposed(self):
        response = self.client.get(reverse("marketplace:marketplace-metrics"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn(b"marketplace_order_transitions_total", response.content)
