"""
Payme merchant API: JSON-RPC 2.0 webhook calls.

Payme authenticates every call with ``Authorization: Basic
base64(merchant_id:secret_key)`` and expects a JSON-RPC envelope back for every
outcome, including business-rule refusals. Amounts are tiyin, times are epoch
milliseconds.
"""
from __future__ import annotations

import base64
import binascii
import hmac
import logging

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from bookings.models import Booking
from payments.events import PaymentReversalRequiredEvent, publish
from payments.ledger import BLOCKED_STATUSES, remaining_balance
from payments.models import Payment, PaymeTransaction
from payments.results import Actor, Rejected
from payments.services.reconciliation import capture_payment
from payments.utils import as_int, positive_int

logger = logging.getLogger(__name__)

GATEWAY = "payme"


class PaymeError:
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    SYSTEM_ERROR = -32400
    AUTHORIZATION_FAILED = -32504
    INVALID_AMOUNT = -31001
    TRANSACTION_NOT_FOUND = -31003
    UNABLE_TO_PERFORM = -31008
    ORDER_NOT_FOUND = -31050
    ORDER_ALREADY_PAID = -31051


def _now_ms() -> int:
    return int(timezone.now().timestamp() * 1000)


def _success(request_id, result: dict) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _error(request_id, code: int, message: str, data=None) -> dict:
    error = {
        "code": code,
        "message": {"ru": message, "uz": message, "en": message},
    }
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": request_id, "error": error}


def verify_authorization(auth_header: str | None) -> bool:
    merchant_id = getattr(settings, "PAYME_MERCHANT_ID", "")
    secret_key = getattr(settings, "PAYME_SECRET_KEY", "")
    if not merchant_id or not secret_key:
        logger.error("Payme merchant credentials are not configured.")
        return False
    if not auth_header or not auth_header.startswith("Basic "):
        return False

    try:
        decoded = base64.b64decode(auth_header[6:].strip(), validate=True)
    except (binascii.Error, ValueError):
        return False

    expected = f"{merchant_id}:{secret_key}".encode("utf-8")
    return hmac.compare_digest(decoded, expected)


def handle_payme_request(body, auth_header: str | None) -> dict:
    """Dispatch one JSON-RPC call. Always returns a response envelope."""

    request_id = body.get("id") if isinstance(body, dict) else None

    if not verify_authorization(auth_header):
        logger.warning("Payme request %s rejected: authorization failed.", request_id)
        return _error(request_id, PaymeError.AUTHORIZATION_FAILED, "Authorization failed")

    if not isinstance(body, dict):
        return _error(None, PaymeError.PARSE_ERROR, "Could not parse request body")

    method = body.get("method")
    params = body.get("params")
    if params is None:
        params = {}
    if not isinstance(method, str) or not isinstance(params, dict):
        return _error(request_id, PaymeError.INVALID_REQUEST, "Invalid JSON-RPC request")

    handler = _METHODS.get(method)
    if handler is None:
        return _error(request_id, PaymeError.METHOD_NOT_FOUND, f"Method '{method}' not found")

    try:
        return handler(request_id, params)
    except Exception:
        logger.exception("Payme %s failed for request %s", method, request_id)
        return _error(request_id, PaymeError.SYSTEM_ERROR, "Internal error, please retry")


def _extract_booking_id(params: dict) -> int | None:
    account = params.get("account")
    if not isinstance(account, dict):
        return None
    return positive_int(account.get("booking_id", account.get("order_id")))


def _check_order(request_id, params: dict) -> tuple[Booking | None, int | None, dict | None]:
    """Validate the booking and amount of a would-be payment."""

    booking_id = _extract_booking_id(params)
    if booking_id is None:
        return None, None, _error(request_id, PaymeError.ORDER_NOT_FOUND, "Order not found", "booking_id")

    booking = Booking.objects.filter(pk=booking_id).first()
    if booking is None:
        return None, None, _error(request_id, PaymeError.ORDER_NOT_FOUND, "Order (booking) not found", "booking_id")

    if booking.status in BLOCKED_STATUSES:
        return None, None, _error(
            request_id,
            PaymeError.UNABLE_TO_PERFORM,
            f"Booking has status '{booking.status}'",
        )

    remaining = remaining_balance(booking.total_amount, booking.paid_amount)
    if remaining <= 0:
        return None, None, _error(
            request_id, PaymeError.ORDER_ALREADY_PAID, "Order is already fully paid", "booking_id"
        )

    amount = as_int(params.get("amount"))
    if amount is None or amount <= 0 or amount > remaining:
        return None, None, _error(request_id, PaymeError.INVALID_AMOUNT, "Invalid amount")

    return booking, amount, None


def _find_transaction(params: dict, *, for_update: bool = False) -> PaymeTransaction | None:
    payme_id = params.get("id")
    if payme_id is None:
        return None
    queryset = PaymeTransaction.objects.all()
    if for_update:
        queryset = queryset.select_for_update()
    return queryset.filter(payme_id=str(payme_id)).first()


def _not_found(request_id) -> dict:
    return _error(request_id, PaymeError.TRANSACTION_NOT_FOUND, "Transaction not found")


def _check_perform_transaction(request_id, params: dict) -> dict:
    _, _, error = _check_order(request_id, params)
    if error is not None:
        return error
    return _success(request_id, {"allow": True})


def _created_result(request_id, txn: PaymeTransaction) -> dict:
    if txn.state != PaymeTransaction.STATE_CREATED:
        return _error(request_id, PaymeError.UNABLE_TO_PERFORM, "Transaction has already been processed")
    return _success(
        request_id,
        {"create_time": txn.create_time, "transaction": str(txn.pk), "state": txn.state},
    )


def _create_transaction(request_id, params: dict) -> dict:
    payme_id = params.get("id")
    if not isinstance(payme_id, str) or not payme_id or len(payme_id) > 64:
        return _error(request_id, PaymeError.INVALID_REQUEST, "Transaction id is required")

    existing = _find_transaction(params)
    if existing is not None:
        return _created_result(request_id, existing)

    booking, amount, error = _check_order(request_id, params)
    if error is not None:
        return error

    create_time = positive_int(params.get("time")) or _now_ms()
    try:
        with transaction.atomic():
            txn = PaymeTransaction.objects.create(
                payme_id=payme_id,
                booking=booking,
                amount=amount,
                state=PaymeTransaction.STATE_CREATED,
                create_time=create_time,
            )
    except IntegrityError:
        # the same id was registered by a concurrent delivery
        return _created_result(request_id, PaymeTransaction.objects.get(payme_id=payme_id))

    logger.info(
        "Payme CreateTransaction: txn=%s, booking=#%s, amount=%s",
        payme_id,
        booking.pk,
        amount,
    )
    return _created_result(request_id, txn)


def _performed_result(request_id, txn: PaymeTransaction) -> dict:
    return _success(
        request_id,
        {"transaction": str(txn.pk), "perform_time": txn.perform_time, "state": txn.state},
    )


def _perform_transaction(request_id, params: dict) -> dict:
    with transaction.atomic():
        txn = _find_transaction(params, for_update=True)
        if txn is None:
            return _not_found(request_id)
        if txn.state == PaymeTransaction.STATE_PERFORMED:
            return _performed_result(request_id, txn)
        if txn.state != PaymeTransaction.STATE_CREATED:
            return _error(
                request_id,
                PaymeError.UNABLE_TO_PERFORM,
                "Transaction cannot be performed (cancelled or invalid state)",
            )

        # only the caller that moves the row out of CREATED may capture money
        claimed = PaymeTransaction.objects.filter(
            pk=txn.pk, state=PaymeTransaction.STATE_CREATED
        ).update(
            state=PaymeTransaction.STATE_PERFORMED,
            perform_time=_now_ms(),
            updated_at=timezone.now(),
        )
        if not claimed:
            txn.refresh_from_db()
            if txn.state == PaymeTransaction.STATE_PERFORMED:
                return _performed_result(request_id, txn)
            return _error(request_id, PaymeError.UNABLE_TO_PERFORM, "Transaction cannot be performed")

        result = capture_payment(
            booking_id=txn.booking_id,
            amount=txn.amount,
            method=Payment.PAYME,
            actor=Actor.system(GATEWAY),
            reference=f"payme:{txn.payme_id}",
            notes="Auto-created via payme webhook",
        )
        if isinstance(result, Rejected):
            transaction.set_rollback(True)
            logger.warning(
                "Payme PerformTransaction refused: txn=%s, booking=#%s, reason=%s",
                txn.payme_id,
                txn.booking_id,
                result.reason,
            )
            return _error(request_id, PaymeError.UNABLE_TO_PERFORM, result.message)

        PaymeTransaction.objects.filter(pk=txn.pk).update(payment=result.payment)
        txn.refresh_from_db()

    logger.info("Payme PerformTransaction: txn=%s, payment=#%s", txn.payme_id, result.payment.pk)
    return _performed_result(request_id, txn)


def _cancelled_result(request_id, txn: PaymeTransaction) -> dict:
    return _success(
        request_id,
        {"transaction": str(txn.pk), "cancel_time": txn.cancel_time, "state": txn.state},
    )


def _cancel_transaction(request_id, params: dict) -> dict:
    reason = as_int(params.get("reason"))

    with transaction.atomic():
        txn = _find_transaction(params, for_update=True)
        if txn is None:
            return _not_found(request_id)
        if txn.state in (PaymeTransaction.STATE_CANCELLED, PaymeTransaction.STATE_CANCELLED_AFTER_PERFORM):
            return _cancelled_result(request_id, txn)

        previous_state = txn.state
        changes = {"cancel_time": _now_ms(), "reason": reason, "updated_at": timezone.now()}
        if previous_state == PaymeTransaction.STATE_CREATED:
            changes["state"] = PaymeTransaction.STATE_CANCELLED
        else:
            changes["state"] = PaymeTransaction.STATE_CANCELLED_AFTER_PERFORM
            changes["reversal_required"] = True

        updated = PaymeTransaction.objects.filter(pk=txn.pk, state=previous_state).update(**changes)
        if not updated:
            # state moved since we read it; decide again on the fresh row
            return _cancel_transaction(request_id, params)
        txn.refresh_from_db()

        if txn.reversal_required:
            logger.warning(
                "Payme CancelTransaction after perform: txn=%s, booking=#%s, payment=#%s. "
                "Captured amount %s needs manual reversal.",
                txn.payme_id,
                txn.booking_id,
                txn.payment_id,
                txn.amount,
            )
            publish(
                PaymentReversalRequiredEvent(
                    gateway=GATEWAY,
                    transaction_id=txn.payme_id,
                    booking_id=txn.booking_id,
                    payment_id=txn.payment_id,
                    amount=txn.amount,
                    reason=reason,
                )
            )

    logger.info(
        "Payme CancelTransaction: txn=%s, state=%s, reason=%s",
        txn.payme_id,
        txn.state,
        reason,
    )
    return _cancelled_result(request_id, txn)


def _check_transaction(request_id, params: dict) -> dict:
    txn = _find_transaction(params)
    if txn is None:
        return _not_found(request_id)
    return _success(
        request_id,
        {
            "create_time": txn.create_time,
            "perform_time": txn.perform_time,
            "cancel_time": txn.cancel_time,
            "transaction": str(txn.pk),
            "state": txn.state,
            "reason": txn.reason,
        },
    )


def _get_statement(request_id, params: dict) -> dict:
    start = as_int(params.get("from"))
    end = as_int(params.get("to"))
    if start is None or end is None:
        return _error(request_id, PaymeError.INVALID_REQUEST, "Both 'from' and 'to' are required")

    transactions = PaymeTransaction.objects.filter(
        create_time__gte=start, create_time__lte=end
    ).order_by("create_time", "id")
    return _success(
        request_id,
        {
            "transactions": [
                {
                    "id": txn.payme_id,
                    "time": txn.create_time,
                    "amount": txn.amount,
                    "account": {"booking_id": txn.booking_id},
                    "create_time": txn.create_time,
                    "perform_time": txn.perform_time,
                    "cancel_time": txn.cancel_time,
                    "transaction": str(txn.pk),
                    "state": txn.state,
                    "reason": txn.reason,
                }
                for txn in transactions
            ]
        },
    )


_METHODS = {
    "CheckPerformTransaction": _check_perform_transaction,
    "CreateTransaction": _create_transaction,
    "PerformTransaction": _perform_transaction,
    "CancelTransaction": _cancel_transaction,
    "CheckTransaction": _check_transaction,
    "GetStatement": _get_statement,
}
