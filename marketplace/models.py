from marketplace.catalog.domain.models import Gig
from marketplace.ordering.domain.models import Order


__all__ = [
    "Gig",
    "Order",
]
