from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from infrastructure.container import container
from marketplace.api.serializers import (
    CheckoutResponseSerializer,
    ConfirmSessionResponseSerializer,
    ErrorResponseSerializer,
    OrderActionResponseSerializer,
    OrderListResponseSerializer,
)
from marketplace.ordering.api.serializers.order_serializers import (
    CancelOrderRequestSerializer,
    OrderSerializer,
    ProgressUpdateRequestSerializer,
)
from marketplace.ordering.domain.services import CheckoutService, OrderService, ReconciliationService
from marketplace.services.base import ErrorCodes, service_err

from .errors import error_response, invalid_body_response

UUID_REGEX = r"[0-9a-fA-F-]{36}"

ERROR_RESPONSES = {
    403: OpenApiResponse(response=ErrorResponseSerializer, description="Caller is not the seller of this order"),
    404: OpenApiResponse(response=ErrorResponseSerializer, description="Order not found"),
}


class OrderViewSet(viewsets.ViewSet):
    permission_classes = [IsAuthenticated]
    lookup_value_regex = UUID_REGEX

    def get_service(self) -> OrderService:
        return container.order_service()

    def get_checkout_service(self) -> CheckoutService:
        return container.checkout_service()

    def get_reconciliation_service(self) -> ReconciliationService:
        return container.reconciliation_service()

    @extend_schema(
        operation_id="orders_list",
        summary="List the caller's orders (as buyer or seller)",
        description="""
        **What it receives:**
        - Authentication token
        - Optional status filter (query param)
        - Pagination parameters (page, page_size)

        **What it returns:**
        - Paginated list of orders where the caller is buyer or seller, newest first
        """,
        parameters=[
            OpenApiParameter(name="status", type=str, description="Filter by order status"),
            OpenApiParameter(name="page", type=int, description="Page number (default: 1)"),
            OpenApiParameter(name="page_size", type=int, description="Items per page (default: 20)"),
        ],
        responses={
            200: OpenApiResponse(response=OrderListResponseSerializer, description="Orders retrieved successfully"),
            400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid filter or pagination"),
        },
        tags=["Orders"],
    )
    def list(self, request):
        service = self.get_service()

        status_filter = request.query_params.get("status")
        try:
            page = int(request.query_params.get("page", 1))
            page_size = min(int(request.query_params.get("page_size", 20)), 100)
        except ValueError:
            return error_response(service_err(ErrorCodes.INVALID_INPUT, "page and page_size must be integers"))

        result = service.list_orders(request.user, status_filter, page, page_size)

        if not result.ok:
            return error_response(result)

        response_data = dict(result.value)
        response_data["results"] = OrderSerializer(result.value["results"], many=True).data

        return Response(response_data, status=status.HTTP_200_OK)

    @extend_schema(
        operation_id="orders_retrieve",
        summary="Get order details",
        description="""
        **What it receives:**
        - `id` (UUID in URL): Order to retrieve
        - Authentication token (must be the order's buyer or seller)

        **What it returns:**
        - The order
        """,
        responses={
            200: OpenApiResponse(response=OrderSerializer, description="Order retrieved successfully"),
            403: OpenApiResponse(response=ErrorResponseSerializer, description="Not a party to this order"),
            404: OpenApiResponse(response=ErrorResponseSerializer, description="Order not found"),
        },
        tags=["Orders"],
    )
    def retrieve(self, request, pk=None):
        result = self.get_service().get_order(pk, request.user)

        if not result.ok:
            return error_response(result)

        return Response(OrderSerializer(result.value).data, status=status.HTTP_200_OK)

    @extend_schema(
        operation_id="orders_checkout",
        summary="Start checkout for a gig",
        description="""
        **What it receives:**
        - `gig_id` (UUID in URL): Gig to buy
        - Authentication token (the buyer)

        **What it returns:**
        - `url`: free-order success page, or the hosted payment page
        - Free gigs create an active order immediately; paid gigs create no
          order until the payment is confirmed
        """,
        request=None,
        responses={
            200: OpenApiResponse(response=CheckoutResponseSerializer, description="Redirect target"),
            404: OpenApiResponse(response=ErrorResponseSerializer, description="Gig not found"),
            502: OpenApiResponse(response=ErrorResponseSerializer, description="Payment provider unavailable"),
        },
        tags=["Orders"],
    )
    @action(detail=False, methods=["post"], url_path=rf"checkout/(?P<gig_id>{UUID_REGEX})", url_name="checkout")
    def checkout(self, request, gig_id=None):
        result = self.get_checkout_service().checkout(request.user, gig_id)

        if not result.ok:
            return error_response(result)

        checkout = result.value
        return Response(
            {
                "url": checkout.url,
                "free": checkout.free,
                "order_id": str(checkout.order.id) if checkout.order else None,
                "session_id": checkout.session_id,
            },
            status=status.HTTP_200_OK,
        )

    @extend_schema(
        operation_id="orders_confirm_session",
        summary="Confirm a checkout session (fallback for a late webhook)",
        description="""
        **What it receives:**
        - `session_id` (query param): Session id from the payment success redirect
        - Authentication token (must be the buyer who opened the session)

        **What it returns:**
        - The order for the session, created now if the webhook has not arrived yet
        """,
        parameters=[OpenApiParameter(name="session_id", type=str, required=True, description="Checkout session id")],
        responses={
            200: OpenApiResponse(response=ConfirmSessionResponseSerializer, description="Order for the session"),
            400: OpenApiResponse(response=ErrorResponseSerializer, description="Missing id or payment not completed"),
            403: OpenApiResponse(response=ErrorResponseSerializer, description="Session belongs to another buyer"),
            502: OpenApiResponse(response=ErrorResponseSerializer, description="Payment provider unavailable"),
        },
        tags=["Orders"],
    )
    @action(detail=False, methods=["get"], url_path="confirm-session", url_name="confirm-session")
    def confirm_session(self, request):
        session_id = request.query_params.get("session_id", "")

        result = self.get_reconciliation_service().confirm_session(request.user, session_id)

        if not result.ok:
            return error_response(result)

        return Response(
            {"ok": True, "created": result.value.created, "order": OrderSerializer(result.value.order).data},
            status=status.HTTP_200_OK,
        )

    @extend_schema(
        operation_id="orders_start_work",
        summary="Start work on an order (seller only)",
        request=None,
        responses={
            200: OpenApiResponse(response=OrderActionResponseSerializer, description="Work started"),
            400: OpenApiResponse(response=ErrorResponseSerializer, description="Order not active or already started"),
            **ERROR_RESPONSES,
        },
        tags=["Orders"],
    )
    @action(detail=True, methods=["patch"], url_path="start-work", url_name="start-work")
    def start_work(self, request, pk=None):
        result = self.get_service().start_work(pk, request.user)

        if not result.ok:
            return error_response(result)

        return Response({"message": "Work started", "order": OrderSerializer(result.value).data})

    @extend_schema(
        operation_id="orders_update_progress",
        summary="Report work progress (seller only)",
        request=ProgressUpdateRequestSerializer,
        responses={
            200: OpenApiResponse(response=OrderActionResponseSerializer, description="Progress updated"),
            400: OpenApiResponse(response=ErrorResponseSerializer, description="Invalid progress or order not started"),
            **ERROR_RESPONSES,
        },
        tags=["Orders"],
    )
    @action(detail=True, methods=["patch"], url_path="progress", url_name="progress")
    def progress(self, request, pk=None):
        serializer = ProgressUpdateRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_body_response(serializer)

        result = self.get_service().update_progress(pk, request.user, serializer.validated_data["progress"])

        if not result.ok:
            return error_response(result)

        order = result.value
        return Response(
            {"message": "Progress updated", "progress": order.progress, "order": OrderSerializer(order).data}
        )

    @extend_schema(
        operation_id="orders_complete",
        summary="Complete an order (seller only)",
        request=None,
        responses={
            200: OpenApiResponse(response=OrderActionResponseSerializer, description="Order completed"),
            400: OpenApiResponse(response=ErrorResponseSerializer, description="Order is not active"),
            **ERROR_RESPONSES,
        },
        tags=["Orders"],
    )
    @action(detail=True, methods=["patch"], url_path="complete", url_name="complete")
    def complete(self, request, pk=None):
        result = self.get_service().complete_order(pk, request.user)

        if not result.ok:
            return error_response(result)

        return Response({"message": "Order completed", "order": OrderSerializer(result.value).data})

    @extend_schema(
        operation_id="orders_cancel",
        summary="Cancel an order, refunding it when paid (seller only)",
        description="""
        **What it receives:**
        - `id` (UUID in URL): Order to cancel
        - Optional `reason`

        **What it returns:**
        - The cancelled order. If the refund fails the order stays active and
          502 is returned; the call can be retried safely.
        """,
        request=CancelOrderRequestSerializer,
        responses={
            200: OpenApiResponse(response=OrderActionResponseSerializer, description="Order cancelled"),
            400: OpenApiResponse(response=ErrorResponseSerializer, description="Order is not active"),
            502: OpenApiResponse(response=ErrorResponseSerializer, description="Refund failed"),
            **ERROR_RESPONSES,
        },
        tags=["Orders"],
    )
    @action(detail=True, methods=["patch", "post"], url_path="cancel", url_name="cancel")
    def cancel(self, request, pk=None):
        serializer = CancelOrderRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_body_response(serializer)

        result = self.get_service().cancel_order(pk, request.user, serializer.validated_data.get("reason", ""))

        return self._cancelled_response(result)

    @extend_schema(
        operation_id="orders_complete_by_gig",
        summary="Complete the newest active order for a gig (legacy, seller only)",
        description="Prefer completing by order id. With several active orders for the gig, the newest wins.",
        request=None,
        responses={
            200: OpenApiResponse(response=OrderActionResponseSerializer, description="Order completed"),
            **ERROR_RESPONSES,
        },
        tags=["Orders - Legacy"],
    )
    @action(
        detail=False,
        methods=["patch"],
        url_path=rf"gigs/(?P<gig_id>{UUID_REGEX})/complete",
        url_name="complete-by-gig",
    )
    def complete_by_gig(self, request, gig_id=None):
        result = self.get_service().complete_latest_for_gig(gig_id, request.user)

        if not result.ok:
            return error_response(result)

        return Response({"message": "Order completed", "order": OrderSerializer(result.value).data})

    @extend_schema(
        operation_id="orders_cancel_by_gig",
        summary="Cancel the newest active order for a gig (legacy, seller only)",
        description="Prefer cancelling by order id. With several active orders for the gig, the newest wins.",
        request=CancelOrderRequestSerializer,
        responses={
            200: OpenApiResponse(response=OrderActionResponseSerializer, description="Order cancelled"),
            502: OpenApiResponse(response=ErrorResponseSerializer, description="Refund failed"),
            **ERROR_RESPONSES,
        },
        tags=["Orders - Legacy"],
    )
    @action(
        detail=False,
        methods=["patch", "post"],
        url_path=rf"gigs/(?P<gig_id>{UUID_REGEX})/cancel",
        url_name="cancel-by-gig",
    )
    def cancel_by_gig(self, request, gig_id=None):
        serializer = CancelOrderRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_body_response(serializer)

        reason = serializer.validated_data.get("reason", "")
        result = self.get_service().cancel_latest_for_gig(gig_id, request.user, reason)

        return self._cancelled_response(result)

    def _cancelled_response(self, result):
        if not result.ok:
            return error_response(result)

        order = result.value
        return Response(
            {"message": "Order cancelled", "refunded": order.refunded, "order": OrderSerializer(order).data}
        )
