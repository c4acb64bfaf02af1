"""
Click merchant API: the two-phase prepare/complete callbacks.

Click signs each callback with an MD5 over the request fields and our secret
key, sends the amount in som (major units) and expects a flat response with a
small negative error vocabulary.
"""
from __future__ import annotations

import hashlib
import hmac
import logging

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from bookings.models import Booking
from payments.ledger import BLOCKED_STATUSES, major_to_minor, remaining_balance
from payments.models import ClickTransaction, Payment
from payments.results import Actor, Rejected
from payments.services.reconciliation import capture_payment
from payments.utils import as_int, positive_int

logger = logging.getLogger(__name__)

GATEWAY = "click"

ACTION_PREPARE = 0
ACTION_COMPLETE = 1


class ClickError:
    SUCCESS = 0
    SIGN_CHECK_FAILED = -1
    INVALID_AMOUNT = -2
    ACTION_NOT_FOUND = -3
    ALREADY_PAID = -4
    ORDER_NOT_FOUND = -5
    TRANSACTION_ERROR = -6
    INVALID_ACTION = -7
    CANCELLED = -9


def _field(data: dict, name: str) -> str:
    value = data.get(name)
    return "" if value is None else str(value)


def _md5(*parts: str) -> str:
    return hashlib.md5("".join(parts).encode("utf-8")).hexdigest()


def prepare_signature(data: dict) -> str:
    return _md5(
        _field(data, "click_trans_id"),
        _field(data, "service_id"),
        settings.CLICK_SECRET_KEY,
        _field(data, "merchant_trans_id"),
        _field(data, "amount"),
        _field(data, "action"),
        _field(data, "sign_time"),
    )


def complete_signature(data: dict) -> str:
    return _md5(
        _field(data, "click_trans_id"),
        _field(data, "service_id"),
        settings.CLICK_SECRET_KEY,
        _field(data, "merchant_trans_id"),
        _field(data, "merchant_prepare_id"),
        _field(data, "amount"),
        _field(data, "action"),
        _field(data, "sign_time"),
    )


def _signature_matches(data: dict, expected: str) -> bool:
    if not settings.CLICK_SECRET_KEY:
        logger.error("Click secret key is not configured.")
        return False
    provided = _field(data, "sign_string").strip().lower()
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def _response(data: dict, error: int, note: str, prepare_id=None) -> dict:
    raw_trans_id = data.get("click_trans_id")
    click_trans_id = as_int(raw_trans_id)
    return {
        "click_trans_id": raw_trans_id if click_trans_id is None else click_trans_id,
        "merchant_trans_id": data.get("merchant_trans_id"),
        "merchant_prepare_id": prepare_id,
        "error": error,
        "error_note": note,
    }


def handle_click_prepare(data: dict) -> dict:
    """Handle the prepare callback. Always returns a Click response."""

    try:
        return _prepare(data)
    except Exception:
        logger.exception("Click prepare failed for click_trans_id=%s", data.get("click_trans_id"))
        return _response(data, ClickError.TRANSACTION_ERROR, "Internal error, please retry", 0)


def handle_click_complete(data: dict) -> dict:
    """Handle the complete callback. Always returns a Click response."""

    try:
        return _complete(data)
    except Exception:
        logger.exception("Click complete failed for click_trans_id=%s", data.get("click_trans_id"))
        return _response(
            data,
            ClickError.TRANSACTION_ERROR,
            "Internal error, please retry",
            as_int(data.get("merchant_prepare_id")),
        )


def _check_action(data: dict, expected: int, prepare_id) -> dict | None:
    action = as_int(data.get("action"))
    if action is None:
        return _response(data, ClickError.ACTION_NOT_FOUND, "Action not found", prepare_id)
    if action != expected:
        return _response(data, ClickError.INVALID_ACTION, "Invalid action", prepare_id)
    return None


def _replay_prepare(data: dict, record: ClickTransaction, booking_id: int) -> dict:
    if record.booking_id != booking_id:
        return _response(data, ClickError.TRANSACTION_ERROR, "Transaction belongs to another order", 0)
    if record.completed:
        return _response(data, ClickError.ALREADY_PAID, "Already paid", record.prepare_id)
    if record.cancelled:
        return _response(data, ClickError.CANCELLED, "Transaction cancelled", record.prepare_id)
    return _response(data, ClickError.SUCCESS, "Success", record.prepare_id)


def _prepare(data: dict) -> dict:
    if not _signature_matches(data, prepare_signature(data)):
        logger.warning("Click prepare: signature mismatch for click_trans_id=%r", data.get("click_trans_id"))
        return _response(data, ClickError.SIGN_CHECK_FAILED, "SIGN CHECK FAILED!", 0)

    error = _check_action(data, ACTION_PREPARE, 0)
    if error is not None:
        return error

    click_trans_id = as_int(data.get("click_trans_id"))
    if click_trans_id is None:
        return _response(data, ClickError.TRANSACTION_ERROR, "Invalid click_trans_id", 0)

    upstream_error = as_int(data.get("error")) or 0
    if upstream_error < 0:
        return _response(data, ClickError.TRANSACTION_ERROR, f"Click reported error: {upstream_error}", 0)

    booking_id = positive_int(data.get("merchant_trans_id"))
    if booking_id is None:
        return _response(data, ClickError.ORDER_NOT_FOUND, "Invalid booking ID", 0)

    booking = Booking.objects.filter(pk=booking_id).first()
    if booking is None:
        return _response(data, ClickError.ORDER_NOT_FOUND, "Booking not found", 0)

    if booking.status in BLOCKED_STATUSES:
        return _response(data, ClickError.CANCELLED, f"Booking has status '{booking.status}'", 0)

    existing = ClickTransaction.objects.filter(click_trans_id=click_trans_id).first()
    if existing is not None:
        return _replay_prepare(data, existing, booking_id)

    remaining = remaining_balance(booking.total_amount, booking.paid_amount)
    if remaining <= 0:
        return _response(data, ClickError.ALREADY_PAID, "Order already fully paid", 0)

    amount = major_to_minor(data.get("amount"))
    if amount is None or amount <= 0 or amount > remaining:
        return _response(data, ClickError.INVALID_AMOUNT, "Incorrect parameter amount", 0)

    try:
        with transaction.atomic():
            record = ClickTransaction.objects.create(
                click_trans_id=click_trans_id,
                click_paydoc_id=as_int(data.get("click_paydoc_id")),
                booking=booking,
                amount=amount,
            )
    except IntegrityError:
        # duplicate delivery raced us to the insert
        return _replay_prepare(data, ClickTransaction.objects.get(click_trans_id=click_trans_id), booking_id)

    logger.info(
        "Click prepare: click_trans_id=%s, booking=#%s, amount=%s tiyin, prepare_id=%s",
        click_trans_id,
        booking.pk,
        amount,
        record.prepare_id,
    )
    return _response(data, ClickError.SUCCESS, "Success", record.prepare_id)


def _find_record(prepare_id: int | None) -> ClickTransaction | None:
    if prepare_id is None:
        return None
    return ClickTransaction.objects.select_for_update().filter(prepare_id=prepare_id).first()


def _complete(data: dict) -> dict:
    if not _signature_matches(data, complete_signature(data)):
        logger.warning("Click complete: signature mismatch for click_trans_id=%r", data.get("click_trans_id"))
        return _response(data, ClickError.SIGN_CHECK_FAILED, "SIGN CHECK FAILED!", data.get("merchant_prepare_id"))

    prepare_id = as_int(data.get("merchant_prepare_id"))

    error = _check_action(data, ACTION_COMPLETE, prepare_id)
    if error is not None:
        return error

    upstream_error = as_int(data.get("error")) or 0

    with transaction.atomic():
        record = _find_record(prepare_id)
        if record is None:
            return _response(data, ClickError.TRANSACTION_ERROR, "Transaction does not exist", prepare_id)
        if record.click_trans_id != as_int(data.get("click_trans_id")):
            return _response(data, ClickError.TRANSACTION_ERROR, "Transaction mismatch", prepare_id)
        if record.completed:
            return _response(data, ClickError.ALREADY_PAID, "Already paid", prepare_id)
        if record.cancelled:
            return _response(data, ClickError.CANCELLED, "Transaction cancelled", prepare_id)

        pending = ClickTransaction.objects.filter(pk=record.pk, completed=False, cancelled=False)

        if upstream_error < 0:
            pending.update(cancelled=True, updated_at=timezone.now())
            logger.info(
                "Click complete cancelled upstream: click_trans_id=%s, error=%s",
                record.click_trans_id,
                upstream_error,
            )
            return _response(data, ClickError.TRANSACTION_ERROR, f"Click reported error: {upstream_error}", prepare_id)

        if not pending.update(completed=True, updated_at=timezone.now()):
            record.refresh_from_db()
            if record.completed:
                return _response(data, ClickError.ALREADY_PAID, "Already paid", prepare_id)
            return _response(data, ClickError.CANCELLED, "Transaction cancelled", prepare_id)

        result = capture_payment(
            booking_id=record.booking_id,
            amount=record.amount,
            method=Payment.CLICK,
            actor=Actor.system(GATEWAY),
            reference=f"click:{record.click_trans_id}",
            notes="Auto-created via click webhook",
        )
        if isinstance(result, Rejected):
            transaction.set_rollback(True)
            logger.error(
                "Click complete: failed to create payment for booking #%s: %s",
                record.booking_id,
                result.reason,
            )
            return _response(data, ClickError.TRANSACTION_ERROR, "Failed to create payment", prepare_id)

        ClickTransaction.objects.filter(pk=record.pk).update(payment=result.payment)

    logger.info(
        "Click complete: click_trans_id=%s, payment=#%s, booking=#%s",
        record.click_trans_id,
        result.payment.pk,
        record.booking_id,
    )
    return _response(data, ClickError.SUCCESS, "Success", prepare_id)
