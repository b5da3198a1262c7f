from .order import Order, OrderQuerySet


__all__ = [
    "Order",
    "OrderQuerySet",
]
