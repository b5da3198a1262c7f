"""
Marketplace Service Layer

Shared service-layer primitives. The ordering services themselves live in
marketplace.ordering.domain.services:

- CheckoutService: Free vs. paid checkout and redirect targets
- ReconciliationService: Webhook / confirm-session payment reconciliation
- OrderService: Order queries and lifecycle transitions

Usage:
    from infrastructure.container import container

    result = container.order_service().start_work(order_id, request.user)

    if result.ok:
        order = result.value
    else:
        error = result.error
"""

from .base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok

__all__ = [
    # Base classes
    "BaseService",
    "ServiceResult",
    # Helper functions
    "service_ok",
    "service_err",
    # Error codes
    "ErrorCodes",
]
