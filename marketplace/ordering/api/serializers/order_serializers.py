from rest_framework import serializers

from marketplace.ordering.domain.models.order import Order


class OrderSerializer(serializers.ModelSerializer):
    buyer_id = serializers.CharField(read_only=True)
    seller_id = serializers.CharField(read_only=True)
    gig_id = serializers.UUIDField(read_only=True)
    gig_title = serializers.CharField(source="gig.title", read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "buyer_id",
            "seller_id",
            "gig_id",
            "gig_title",
            "price",
            "status",
            "payment_intent_id",
            "checkout_session_id",
            "started",
            "started_at",
            "progress",
            "completed_at",
            "cancelled_at",
            "refunded",
            "cancellation_reason",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "id",
            "price",
            "status",
            "payment_intent_id",
            "checkout_session_id",
            "started",
            "started_at",
            "progress",
            "completed_at",
            "cancelled_at",
            "refunded",
            "cancellation_reason",
            "created_at",
            "updated_at",
        ]


class ProgressUpdateRequestSerializer(serializers.Serializer):
    """Request body for reporting progress. OrderService re-checks the range."""

    progress = serializers.IntegerField(min_value=0, max_value=100, help_text="Work progress, 0 to 100")


class CancelOrderRequestSerializer(serializers.Serializer):
    """Request body for cancelling an order"""

    reason = serializers.CharField(required=False, allow_blank=True, help_text="Why the order is cancelled")
