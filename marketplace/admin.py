from django.contrib import admin

from .models import Gig, Order


@admin.register(Gig)
class GigAdmin(admin.ModelAdmin):
    list_display = ("title", "seller", "price", "created_at")
    search_fields = ("title", "description", "seller__username")
    readonly_fields = ("created_at", "updated_at")


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Orders are an audit trail: visible, never edited or deleted here."""

    list_display = ("id", "gig", "buyer", "seller", "price", "status", "progress", "refunded", "created_at")
    list_filter = ("status", "started", "refunded", "created_at")
    search_fields = ("id", "checkout_session_id", "payment_intent_id", "buyer__username", "seller__username")
    date_hierarchy = "created_at"

    fieldsets = (
        (None, {"fields": ("id", "gig", "buyer", "seller", "price", "status")}),
        ("Payment", {"fields": ("checkout_session_id", "payment_intent_id", "refunded")}),
        ("Work", {"fields": ("started", "started_at", "progress")}),
        ("Termination", {"fields": ("completed_at", "cancelled_at", "cancellation_reason")}),
        ("Timestamps", {"fields": ("created_at", "updated_at"), "classes": ("collapse",)}),
    )

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
