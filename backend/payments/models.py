from django.conf import settings
from django.db import models
from django.db.models import Q


class Payment(models.Model):
    """Money recorded against a booking. Immutable once written."""

    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"
    PAYME = "payme"
    CLICK = "click"
    OTHER = "other"
    METHODS = [
        (CASH, "Cash"),
        (CARD, "Card"),
        (TRANSFER, "Bank transfer"),
        (PAYME, "Payme"),
        (CLICK, "Click"),
        (OTHER, "Other"),
    ]

    ACTOR_USER = "user"
    ACTOR_SYSTEM = "system"
    ACTOR_TYPES = [
        (ACTOR_USER, "User"),
        (ACTOR_SYSTEM, "System"),
    ]

    booking = models.ForeignKey("bookings.Booking", on_delete=models.CASCADE, related_name="payments")
    amount = models.PositiveBigIntegerField()
    method = models.CharField(max_length=20, choices=METHODS)
    paid_at = models.DateTimeField()
    notes = models.CharField(max_length=255, blank=True)
    reference = models.CharField(max_length=100, blank=True, db_index=True)
    actor_type = models.CharField(max_length=10, choices=ACTOR_TYPES)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payments_created",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-paid_at", "-id"]
        constraints = [
            models.CheckConstraint(condition=Q(amount__gt=0), name="payment_amount_positive"),
            models.CheckConstraint(
                condition=(
                    Q(actor_type="user", created_by__isnull=False)
                    | Q(actor_type="system", created_by__isnull=True)
                ),
                name="payment_actor_matches_created_by",
            ),
        ]

    def __str__(self):
        return f"{self.amount} ({self.method}) for booking #{self.booking_id}"


class PaymeTransaction(models.Model):
    """Payme JSON-RPC transaction. Times are epoch milliseconds, 0 when unset."""

    STATE_CREATED = 1
    STATE_PERFORMED = 2
    STATE_CANCELLED = -1
    STATE_CANCELLED_AFTER_PERFORM = -2
    STATES = [
        (STATE_CREATED, "Created"),
        (STATE_PERFORMED, "Performed"),
        (STATE_CANCELLED, "Cancelled before perform"),
        (STATE_CANCELLED_AFTER_PERFORM, "Cancelled after perform"),
    ]

    payme_id = models.CharField(max_length=64, unique=True)
    booking = models.ForeignKey("bookings.Booking", on_delete=models.PROTECT, related_name="payme_transactions")
    amount = models.BigIntegerField()
    state = models.SmallIntegerField(choices=STATES, default=STATE_CREATED)
    create_time = models.BigIntegerField()
    perform_time = models.BigIntegerField(default=0)
    cancel_time = models.BigIntegerField(default=0)
    reason = models.SmallIntegerField(null=True, blank=True)
    payment = models.ForeignKey(
        "Payment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payme_transactions",
    )
    # set when a captured transaction is cancelled upstream; needs manual handling
    reversal_required = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["create_time", "id"]
        indexes = [models.Index(fields=["create_time"], name="payme_txn_create_time_idx")]

    def __str__(self):
        return f"Payme {self.payme_id} [{self.state}]"


class ClickTransaction(models.Model):
    """Click prepare record; ``prepare_id`` is the merchant_prepare_id we hand back."""

    prepare_id = models.BigAutoField(primary_key=True)
    click_trans_id = models.BigIntegerField(unique=True)
    click_paydoc_id = models.BigIntegerField(null=True, blank=True)
    booking = models.ForeignKey("bookings.Booking", on_delete=models.PROTECT, related_name="click_transactions")
    amount = models.BigIntegerField()
    completed = models.BooleanField(default=False)
    cancelled = models.BooleanField(default=False)
    payment = models.ForeignKey(
        "Payment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="click_transactions",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["prepare_id"]

    def __str__(self):
        return f"Click {self.click_trans_id} (prepare #{self.prepare_id})"
