from unittest.mock import Mock

import pytest

from marketplace.domain.events import OrderCancelledEvent, OrderCreatedEvent, publish_event
from marketplace.tests.factories import FreeOrderFactory, OrderFactory


@pytest.mark.unit
@pytest.mark.django_db
class TestOrderEvents:
    def test_created_event_targets_both_parties(self):
        order = OrderFactory()

        event = OrderCreatedEvent(order)

        assert event.event_type == "order.created"
        assert event.recipients == [str(order.buyer_id), str(order.seller_id)]
        assert event.payload["order_id"] == str(order.id)
        assert event.payload["price"] == str(order.price)

    def test_cancelled_event_carries_refund_flag(self):
        order = FreeOrderFactory(cancellation_reason="No time")

        data = OrderCancelledEvent(order).to_dict()

        assert data["event_type"] == "order.cancelled"
        assert data["payload"]["refunded"] is False
        assert data["payload"]["reason"] == "No time"
        assert "occurred_at" in data

    def test_publish_hands_event_to_broadcaster(self):
        order = OrderFactory()
        broadcaster = Mock()
        event = OrderCreatedEvent(order)

        publish_event(broadcaster, event)

        broadcaster.publish.assert_called_once_with("order.created", event.recipients, event.to_dict())

    def test_publish_swallows_broadcaster_errors(self):
        broadcaster = Mock()
        broadcaster.publish.side_effect = ConnectionError("redis unavailable")

        publish_event(broadcaster, OrderCreatedEvent(OrderFactory()))

        broadcaster.publish.assert_called_once()
