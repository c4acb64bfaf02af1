"""
The single writer of ``Booking.paid_amount`` and ``Payment`` rows.

Staff payments, Payme and Click all end up in ``capture_payment``. Webhook
adapters branch on the returned ``Captured`` / ``Rejected`` value; the staff
API goes through ``create_payment`` which raises ``PaymentRejected`` instead.
"""
from __future__ import annotations

import logging

from django.db import transaction
from django.db.models import F, Value
from django.db.models.functions import Greatest
from django.utils import timezone

from bookings.models import Booking
from payments.events import PaymentCreatedEvent, publish
from payments.exceptions import PaymentNotFound, PaymentRejected
from payments.ledger import BLOCKED_STATUSES, evaluate_capture, remaining_balance
from payments.models import Payment
from payments.results import Actor, Captured, CaptureResult, Rejected, Rejection

logger = logging.getLogger(__name__)


def capture_payment(
    *,
    booking_id: int,
    amount: int,
    method: str,
    actor: Actor,
    reference: str = "",
    paid_at=None,
    notes: str = "",
) -> CaptureResult:
    """
    Record a payment and raise the booking's ``paid_amount`` by ``amount``.

    The booking row is locked for the duration and the increment itself is
    guarded (``paid_amount <= total_amount - amount``), so two writers racing
    on one booking can never push it past its total.
    """

    with transaction.atomic():
        booking = Booking.objects.select_for_update().filter(pk=booking_id).first()
        if booking is None:
            return Rejected(Rejection.NOT_FOUND, "Booking not found", {"resource": "booking", "id": booking_id})

        rejection = evaluate_capture(
            status=booking.status,
            total_amount=booking.total_amount,
            paid_amount=booking.paid_amount,
            amount=amount,
        )
        if rejection is not None:
            logger.info(
                "Payment refused for booking #%s: %s (%s)",
                booking.pk,
                rejection.reason,
                actor,
            )
            return rejection

        updated = (
            Booking.objects.filter(pk=booking.pk, paid_amount__lte=F("total_amount") - amount)
            .exclude(status__in=BLOCKED_STATUSES)
            .update(paid_amount=F("paid_amount") + amount, updated_at=timezone.now())
        )
        if not updated:
            booking.refresh_from_db(fields=["paid_amount", "status"])
            return evaluate_capture(
                status=booking.status,
                total_amount=booking.total_amount,
                paid_amount=booking.paid_amount,
                amount=amount,
            ) or Rejected(
                Rejection.OVERPAYMENT,
                "Booking balance changed concurrently",
                {"remaining": remaining_balance(booking.total_amount, booking.paid_amount)},
            )

        payment = Payment.objects.create(
            booking=booking,
            amount=amount,
            method=method,
            paid_at=paid_at or timezone.now(),
            notes=notes,
            reference=reference,
            actor_type=actor.kind,
            created_by=actor.user,
        )
        booking.refresh_from_db(fields=["paid_amount"])

        logger.info(
            "Payment #%s created: %s tiyin (%s) for booking #%s, ref=%s, by %s",
            payment.pk,
            amount,
            method,
            booking.pk,
            reference or "-",
            actor,
        )

        publish(
            PaymentCreatedEvent(
                payment_id=payment.pk,
                booking_id=booking.pk,
                property_id=booking.property_id,
                amount=amount,
                method=method,
                paid_amount=booking.paid_amount,
                total_amount=booking.total_amount,
                created_by=actor.user_id,
            )
        )
        return Captured(payment=payment, paid_amount=booking.paid_amount, total_amount=booking.total_amount)


def create_payment(
    *,
    booking: Booking,
    amount: int,
    method: str,
    actor: Actor,
    paid_at=None,
    notes: str = "",
    reference: str = "",
) -> Payment:
    """Staff-facing capture; raises ``PaymentRejected`` with diagnostics on refusal."""

    result = capture_payment(
        booking_id=booking.pk,
        amount=amount,
        method=method,
        actor=actor,
        reference=reference,
        paid_at=paid_at,
        notes=notes,
    )
    if isinstance(result, Rejected):
        raise PaymentRejected(result)
    return result.payment


def remove_payment(payment_id: int, actor: Actor) -> dict:
    """Delete a payment and take its amount back off the booking, never below zero."""

    with transaction.atomic():
        payment = Payment.objects.select_for_update().filter(pk=payment_id).first()
        if payment is None:
            raise PaymentNotFound(payment_id)

        Booking.objects.filter(pk=payment.booking_id).update(
            paid_amount=Greatest(F("paid_amount") - payment.amount, Value(0)),
            updated_at=timezone.now(),
        )
        booking_id = payment.booking_id
        payment.delete()

    logger.info("Payment #%s deleted by %s for booking #%s", payment_id, actor, booking_id)
    return {"deleted": True, "id": payment_id}


def booking_balance(booking: Booking) -> dict:
    return {
        "booking_id": booking.pk,
        "total": booking.total_amount,
        "paid": booking.paid_amount,
        "balance": remaining_balance(booking.total_amount, booking.paid_amount),
    }


def list_booking_payments(booking: Booking):
    return Payment.objects.filter(booking=booking).select_related("created_by").order_by("-paid_at", "-id")
