from django.db import models
from django.db.models import F, Q


class Booking(models.Model):
    """
    Room reservation at a property.

    Amounts are integer minor currency units (tiyin). ``paid_amount`` is only
    ever written by ``payments.services.reconciliation``.
    """

    NEW = "new"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    STATUSES = [
        (NEW, "New"),
        (CONFIRMED, "Confirmed"),
        (CHECKED_IN, "Checked in"),
        (CHECKED_OUT, "Checked out"),
        (CANCELLED, "Cancelled"),
        (NO_SHOW, "No show"),
    ]

    property = models.ForeignKey(
        "properties.Property",
        on_delete=models.CASCADE,
        related_name="bookings",
    )
    booking_number = models.CharField(max_length=20, unique=True)
    check_in = models.DateField()
    check_out = models.DateField()
    total_amount = models.BigIntegerField()
    paid_amount = models.BigIntegerField(default=0)
    status = models.CharField(max_length=20, choices=STATUSES, default=NEW)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["check_in", "id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(paid_amount__gte=0) & Q(paid_amount__lte=F("total_amount")),
                name="booking_paid_amount_within_total",
            ),
            models.CheckConstraint(
                condition=Q(check_out__gt=F("check_in")),
                name="booking_check_out_after_check_in",
            ),
        ]

    def __str__(self):
        return f"{self.booking_number} ({self.get_status_display()})"
