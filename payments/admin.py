"""Admin configuration for payments models."""

from django.contrib import admin, messages

from .models import Gateway, Transaction
from .services import capture_transaction, refund_transaction


@admin.register(Gateway)
class GatewayAdmin(admin.ModelAdmin):
    """Admin for configuring payment gateways."""

    list_display = ("id", "name", "handle", "payment_type", "is_enabled", "updated_at")
    list_filter = ("handle", "payment_type", "is_enabled")
    search_fields = ("name", "handle")
    readonly_fields = ("created_at", "updated_at")


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """Transactions are an audit trail: read-only, with capture/refund actions."""

    list_display = (
        "id",
        "order_id",
        "gateway",
        "type",
        "status",
        "amount",
        "currency",
        "reference",
        "created_at",
    )
    list_filter = ("type", "status", "gateway", "currency", "created_at")
    search_fields = ("hash", "reference", "order__id", "order__number")
    readonly_fields = [f.name for f in Transaction._meta.fields]
    ordering = ("-id",)
    actions = ("capture_selected", "refund_selected")

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def _follow_up(self, request, queryset, allowed, perform, label):
        done = skipped = 0
        for transaction in queryset:
            if not getattr(transaction, allowed)():
                skipped += 1
                continue
            child = perform(transaction)
            if child.status == Transaction.STATUS_SUCCESS:
                done += 1
            else:
                self.message_user(
                    request,
                    f"Transaction {transaction.id}: {child.message or 'gateway error'}",
                    level=messages.ERROR,
                )
        self.message_user(request, f"{label}: {done} succeeded, {skipped} skipped.")

    @admin.action(description="Capture selected authorizations")
    def capture_selected(self, request, queryset):
        self._follow_up(request, queryset, "can_capture", capture_transaction, "Capture")

    @admin.action(description="Refund selected payments")
    def refund_selected(self, request, queryset):
        self._follow_up(request, queryset, "can_refund", refund_transaction, "Refund")
