"""
Response Serializers for Marketplace API Documentation

These serializers define the structure of API responses for OpenAPI schema generation.
They are NOT used for data validation, only for documentation in Swagger/ReDoc.
"""

from rest_framework import serializers

from marketplace.ordering.api.serializers.order_serializers import OrderSerializer

# ===== Common Response Serializers =====


class ErrorResponseSerializer(serializers.Serializer):
    """Standard error response"""

    detail = serializers.CharField(help_text="Human-readable error message")
    code = serializers.CharField(help_text="Error code identifier")


# ===== Checkout Response Serializers =====


class CheckoutResponseSerializer(serializers.Serializer):
    """Checkout redirect target"""

    url = serializers.CharField(help_text="Free-order success URL or hosted payment page URL")
    free = serializers.BooleanField(help_text="True when the order was created without payment")
    order_id = serializers.UUIDField(help_text="Created order (free checkouts only)", allow_null=True)
    session_id = serializers.CharField(help_text="Payment session id (paid checkouts only)", allow_null=True)


class ConfirmSessionResponseSerializer(serializers.Serializer):
    """Result of confirming a checkout session"""

    ok = serializers.BooleanField()
    created = serializers.BooleanField(help_text="False when the order already existed")
    order = OrderSerializer()


# ===== Order Response Serializers =====


class OrderListResponseSerializer(serializers.Serializer):
    """Paginated order list response"""

    count = serializers.IntegerField(help_text="Total number of orders")
    page = serializers.IntegerField(help_text="Current page number")
    page_size = serializers.IntegerField(help_text="Items per page")
    num_pages = serializers.IntegerField(help_text="Total number of pages")
    results = OrderSerializer(many=True)


class OrderActionResponseSerializer(serializers.Serializer):
    """Result of a lifecycle transition"""

    message = serializers.CharField(help_text="What happened")
    order = OrderSerializer()
    progress = serializers.IntegerField(required=False, help_text="New progress (progress updates only)")
    refunded = serializers.BooleanField(required=False, help_text="Whether a refund was issued (cancel only)")
