from .checkout_service import CheckoutResult, CheckoutService
from .order_service import OrderService
from .reconciliation_service import ReconciliationResult, ReconciliationService, WebhookOutcome


__all__ = [
    "CheckoutService",
    "CheckoutResult",
    "ReconciliationService",
    "ReconciliationResult",
    "WebhookOutcome",
    "OrderService",
]
