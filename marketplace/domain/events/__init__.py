from .base import DomainEvent, publish_event
from .order_events import (
    OrderCancelledEvent,
    OrderCompletedEvent,
    OrderCreatedEvent,
    OrderProgressUpdatedEvent,
    OrderStartedEvent,
)


__all__ = [
    "DomainEvent",
    "publish_event",
    "OrderCreatedEvent",
    "OrderStartedEvent",
    "OrderProgressUpdatedEvent",
    "OrderCompletedEvent",
    "OrderCancelledEvent",
]
