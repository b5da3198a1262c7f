import logging

from django.http import HttpResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from drf_spectacular.utils import OpenApiResponse, OpenApiTypes, extend_schema

from infrastructure.container import container
from marketplace.services.base import ErrorCodes

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name="dispatch")
class PaymentWebhookView(View):
    """Receive payment provider webhooks - thin router that delegates to ReconciliationService."""

    @extend_schema(
        operation_id="orders_payment_webhook",
        summary="Payment Webhook Endpoint",
        description="Receives payment provider events. Verifies the signature over the raw body and "
        "materializes orders for settled checkout sessions.",
        request=OpenApiTypes.OBJECT,
        responses={
            200: OpenApiResponse(description="Event accepted (including duplicates and ignored events)"),
            400: OpenApiResponse(description="Invalid signature or unusable session"),
            500: OpenApiResponse(description="Processing error, the provider should redeliver"),
        },
        tags=["Webhooks"],
        auth=[],
    )
    def post(self, request):
        # Raw bytes: the signature covers the exact body
        payload = request.body
        sig_header = request.headers.get("stripe-signature", "")

        if not sig_header:
            logger.warning("Webhook rejected: missing signature header")
            return HttpResponse(status=400, content=b"Missing signature header")

        result = container.reconciliation_service().handle_webhook(payload, sig_header)

        if not result.ok:
            if result.error == ErrorCodes.INVALID_SIGNATURE:
                return HttpResponse(status=400, content=b"Webhook verification failed")
            if result.error == ErrorCodes.MISSING_METADATA:
                return HttpResponse(status=400, content=result.error_detail.encode("utf-8"))
            logger.error(f"Webhook processing failed: {result.error} {result.error_detail}")
            return HttpResponse(status=500, content=b"Webhook processing error")

        outcome = result.value
        if outcome.handled and not outcome.created:
            return HttpResponse(status=200, content=b"Duplicate ignored")
        if outcome.handled:
            return HttpResponse(status=200, content=f"Order {outcome.order.id} created".encode("utf-8"))
        return HttpResponse(status=200, content=b"Webhook received")
