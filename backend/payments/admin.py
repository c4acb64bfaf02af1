from django.contrib import admin

from .models import ClickTransaction, Payment, PaymeTransaction


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ("id", "booking", "amount", "method", "paid_at", "actor_type", "created_by", "reference")
    list_filter = ("method", "actor_type")
    search_fields = ("reference", "booking__booking_number")

    # payments are written and removed through the ledger only
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PaymeTransaction)
class PaymeTransactionAdmin(admin.ModelAdmin):
    list_display = ("payme_id", "booking", "amount", "state", "reversal_required", "payment", "created_at")
    list_filter = ("state", "reversal_required")
    search_fields = ("payme_id", "booking__booking_number")
    readonly_fields = (
        "payme_id",
        "booking",
        "amount",
        "state",
        "create_time",
        "perform_time",
        "cancel_time",
        "reason",
        "payment",
        "created_at",
        "updated_at",
    )


@admin.register(ClickTransaction)
class ClickTransactionAdmin(admin.ModelAdmin):
    list_display = ("prepare_id", "click_trans_id", "booking", "amount", "completed", "cancelled", "payment")
    list_filter = ("completed", "cancelled")
    search_fields = ("click_trans_id", "booking__booking_number")
    readonly_fields = (
        "click_trans_id",
        "click_paydoc_id",
        "booking",
        "amount",
        "completed",
        "cancelled",
        "payment",
        "created_at",
        "updated_at",
    )
