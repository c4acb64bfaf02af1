from django.contrib import admin

from payments.models import Payment

from .models import Booking


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    can_delete = False
    fields = ("amount", "method", "reference", "paid_at", "actor_type", "created_by")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("booking_number", "property", "check_in", "check_out", "status", "total_amount", "paid_amount")
    list_filter = ("status", "property")
    search_fields = ("booking_number",)
    # paid_amount moves only through the payments ledger
    readonly_fields = ("paid_amount", "created_at", "updated_at")
    inlines = [PaymentInline]
