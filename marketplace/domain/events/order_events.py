from dataclasses import dataclass

from .base import DomainEvent


def _order_payload(order) -> dict:
    return {
        "order_id": str(order.id),
        "gig_id": str(order.gig_id),
        "buyer_id": str(order.buyer_id),
        "seller_id": str(order.seller_id),
        "status": order.status,
    }


def _parties(order) -> list:
    return [str(order.buyer_id), str(order.seller_id)]


@dataclass
class OrderCreatedEvent(DomainEvent):
    """Event: Order materialized (free checkout or confirmed payment)."""

    def __init__(self, order):
        super().__init__(
            event_type="order.created",
            payload={**_order_payload(order), "price": str(order.price)},
            recipients=_parties(order),
        )


@dataclass
class OrderStartedEvent(DomainEvent):
    """Event: Seller started work."""

    def __init__(self, order):
        super().__init__(event_type="order.started", payload=_order_payload(order), recipients=_parties(order))


@dataclass
class OrderProgressUpdatedEvent(DomainEvent):
    """Event: Seller reported progress."""

    def __init__(self, order, progress: int):
        super().__init__(
            event_type="order.progress_updated",
            payload={
                "order_id": str(order.id),
                "buyer_id": str(order.buyer_id),
                "seller_id": str(order.seller_id),
                "progress": progress,
            },
            recipients=_parties(order),
        )


@dataclass
class OrderCompletedEvent(DomainEvent):
    """Event: Order completed."""

    def __init__(self, order):
        super().__init__(event_type="order.completed", payload=_order_payload(order), recipients=_parties(order))


@dataclass
class OrderCancelledEvent(DomainEvent):
    """Event: Order cancelled, refunded when it was paid."""

    def __init__(self, order):
        super().__init__(
            event_type="order.cancelled",
            payload={
                **_order_payload(order),
                "refunded": order.refunded,
                "reason": order.cancellation_reason,
            },
            recipients=_parties(order),
        )
