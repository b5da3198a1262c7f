# Marketplace API Serializers

# Import response serializers for API documentation
from .response_serializers import (
    CheckoutResponseSerializer,
    ConfirmSessionResponseSerializer,
    ErrorResponseSerializer,
    OrderActionResponseSerializer,
    OrderListResponseSerializer,
)


__all__ = [
    "CheckoutResponseSerializer",
    "ConfirmSessionResponseSerializer",
    "ErrorResponseSerializer",
    "OrderActionResponseSerializer",
    "OrderListResponseSerializer",
]
