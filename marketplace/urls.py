from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .api.views import prometheus_metrics
from .ordering.api.views.order_views import OrderViewSet
from .ordering.api.views.webhook_views import PaymentWebhookView

router = DefaultRouter()
router.register(r"orders", OrderViewSet, basename="order")

app_name = "marketplace"

urlpatterns = [
    # Provider webhook, registered ahead of the router so it is never read as an order id
    path("orders/webhook/", PaymentWebhookView.as_view(), name="payment-webhook"),
    path("", include(router.urls)),
    # Prometheus metrics endpoint
    path("metrics/", prometheus_metrics.marketplace_prometheus_metrics, name="marketplace-metrics"),
]
