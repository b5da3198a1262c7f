import uuid

from django.contrib.auth import get_user_model
from django.db import models
from django.db.models import Q
from django.utils import timezone

from marketplace.catalog.domain.models.catalog import Gig

User = get_user_model()


class OrderQuerySet(models.QuerySet):
    def for_party(self, user):
        """Orders where the user is the buyer or the seller."""
        return self.filter(Q(buyer=user) | Q(seller=user))

    def find_by_checkout_session(self, session_id):
        if not session_id:
            return None
        return self.filter(checkout_session_id=session_id).first()

    def latest_active_for_gig(self, gig_id, seller):
        # Several active orders for one gig/seller pair resolve to the newest.
        return (
            self.filter(gig_id=gig_id, seller=seller, status=Order.STATUS_ACTIVE).order_by("-created_at").first()
        )

    def transition(self, order_id, expected_status, conditions=None, **changes):
        """
        Apply ``changes`` in a single conditional UPDATE.

        The row is only touched while it still has ``expected_status`` (and
        matches any extra ``conditions``). Returns True if a row changed.
        """
        changes.setdefault("updated_at", timezone.now())
        rows = self.filter(pk=order_id, status=expected_status, **(conditions or {})).update(**changes)
        return rows == 1


class Order(models.Model):
    STATUS_ACTIVE = "active"
    STATUS_DELIVERED = "delivered"  # modeled, no transition reaches it yet
    STATUS_COMPLETED = "completed"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_ACTIVE, "Active"),
        (STATUS_DELIVERED, "Delivered"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    buyer = models.ForeignKey(User, on_delete=models.PROTECT, related_name="purchases")
    seller = models.ForeignKey(User, on_delete=models.PROTECT, related_name="sales")
    gig = models.ForeignKey(Gig, on_delete=models.PROTECT, related_name="orders")

    # Captured at checkout, never re-read from the gig
    price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE)

    # Payment linkage, absent for free orders
    payment_intent_id = models.CharField(max_length=255, null=True, blank=True, unique=True)
    checkout_session_id = models.CharField(max_length=255, null=True, blank=True, unique=True)

    # Work tracking
    started = models.BooleanField(default=False)
    started_at = models.DateTimeField(null=True, blank=True)
    progress = models.PositiveSmallIntegerField(default=0)

    # Termination
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refunded = models.BooleanField(default=False)
    # Bumped after each refund the provider declined; part of the refund idempotency key
    refund_attempts = models.PositiveSmallIntegerField(default=0)
    cancellation_reason = models.TextField(blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = OrderQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        app_label = "marketplace"
        indexes = [
            models.Index(fields=["buyer", "-created_at"], name="order_buyer_created_idx"),
            models.Index(fields=["seller", "-created_at"], name="order_seller_created_idx"),
            models.Index(fields=["gig", "-created_at"], name="order_gig_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(price__gte=0), name="order_price_non_negative"),
            models.CheckConstraint(condition=Q(progress__lte=100), name="order_progress_max_100"),
            models.CheckConstraint(
                condition=Q(completed_at__isnull=True) | Q(cancelled_at__isnull=True),
                name="order_single_terminal_stamp",
            ),
        ]

    def __str__(self):
        return f"Order {str(self.id)[:8]} for {self.gig_id}"

    @property
    def is_paid(self):
        return bool(self.checkout_session_id or self.payment_intent_id)

    def is_party(self, user):
        return user.pk in (self.buyer_id, self.seller_id)
