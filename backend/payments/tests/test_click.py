import hashlib

import pytest

from bookings.models import Booking
from payments.models import ClickTransaction, Payment
from payments.services import click
from payments.services.click import ClickError, handle_click_complete, handle_click_prepare

SECRET = "click-secret"
SERVICE_ID = "2002"


def sign(*parts):
    return hashlib.md5("".join(str(p) for p in parts).encode()).hexdigest()


def prepare_payload(booking_id, amount="50000", click_trans_id="9001", **overrides):
    data = {
        "click_trans_id": click_trans_id,
        "service_id": SERVICE_ID,
        "click_paydoc_id": "555",
        "merchant_trans_id": str(booking_id),
        "amount": amount,
        "action": "0",
        "error": "0",
        "error_note": "Success",
        "sign_time": "2026-05-01 10:00:00",
    }
    data.update(overrides)
    data["sign_string"] = sign(
        data["click_trans_id"],
        data["service_id"],
        SECRET,
        data["merchant_trans_id"],
        data["amount"],
        data["action"],
        data["sign_time"],
    )
    return data


def complete_payload(booking_id, prepare_id, amount="50000", click_trans_id="9001", **overrides):
    data = {
        "click_trans_id": click_trans_id,
        "service_id": SERVICE_ID,
        "click_paydoc_id": "555",
        "merchant_trans_id": str(booking_id),
        "merchant_prepare_id": str(prepare_id),
        "amount": amount,
        "action": "1",
        "error": "0",
        "error_note": "Success",
        "sign_time": "2026-05-01 10:01:00",
    }
    data.update(overrides)
    data["sign_string"] = sign(
        data["click_trans_id"],
        data["service_id"],
        SECRET,
        data["merchant_trans_id"],
        data["merchant_prepare_id"],
        data["amount"],
        data["action"],
        data["sign_time"],
    )
    return data


@pytest.fixture
def large_booking(make_booking):
    return make_booking(total_amount=20_000_000)


@pytest.mark.django_db
def test_prepare_then_complete_creates_payment(large_booking):
    prepared = handle_click_prepare(prepare_payload(large_booking.pk))

    assert prepared["error"] == ClickError.SUCCESS
    assert prepared["click_trans_id"] == 9001
    prepare_id = prepared["merchant_prepare_id"]
    record = ClickTransaction.objects.get(prepare_id=prepare_id)
    assert record.amount == 5_000_000
    assert record.click_paydoc_id == 555

    completed = handle_click_complete(complete_payload(large_booking.pk, prepare_id))

    assert completed["error"] == ClickError.SUCCESS
    assert completed["merchant_prepare_id"] == prepare_id
    payment = Payment.objects.get()
    assert payment.amount == 5_000_000
    assert payment.method == Payment.CLICK
    assert payment.reference == "click:9001"
    record.refresh_from_db()
    assert record.completed
    assert record.payment == payment
    large_booking.refresh_from_db()
    assert large_booking.paid_amount == 5_000_000


@pytest.mark.django_db
def test_second_complete_is_already_paid(large_booking):
    prepare_id = handle_click_prepare(prepare_payload(large_booking.pk))["merchant_prepare_id"]
    handle_click_complete(complete_payload(large_booking.pk, prepare_id))

    replay = handle_click_complete(complete_payload(large_booking.pk, prepare_id))

    assert replay["error"] == ClickError.ALREADY_PAID
    assert replay["merchant_prepare_id"] == prepare_id
    assert Payment.objects.count() == 1


@pytest.mark.django_db
def test_fresh_prepare_ids_are_monotonic(large_booking):
    first = handle_click_prepare(prepare_payload(large_booking.pk, amount="1000", click_trans_id="1"))
    second = handle_click_prepare(prepare_payload(large_booking.pk, amount="1000", click_trans_id="2"))

    assert second["merchant_prepare_id"] > first["merchant_prepare_id"]


@pytest.mark.django_db
def test_retried_prepare_replays_prepare_id(large_booking):
    first = handle_click_prepare(prepare_payload(large_booking.pk))
    second = handle_click_prepare(prepare_payload(large_booking.pk))

    assert second == first
    assert ClickTransaction.objects.count() == 1


@pytest.mark.django_db
def test_prepare_signature_mismatch_mutates_nothing(large_booking):
    data = prepare_payload(large_booking.pk)
    data["amount"] = "60000"

    response = handle_click_prepare(data)

    assert response["error"] == ClickError.SIGN_CHECK_FAILED
    assert not ClickTransaction.objects.exists()


@pytest.mark.django_db
def test_complete_signature_mismatch_mutates_nothing(large_booking):
    prepare_id = handle_click_prepare(prepare_payload(large_booking.pk))["merchant_prepare_id"]
    data = complete_payload(large_booking.pk, prepare_id)
    data["sign_string"] = "0" * 32

    response = handle_click_complete(data)

    assert response["error"] == ClickError.SIGN_CHECK_FAILED
    record = ClickTransaction.objects.get(prepare_id=prepare_id)
    assert not record.completed and not record.cancelled
    assert not Payment.objects.exists()
    large_booking.refresh_from_db()
    assert large_booking.paid_amount == 0


@pytest.mark.django_db
def test_prepare_signature_checked_before_everything(db):
    data = prepare_payload(999_999, action="5")
    data["sign_string"] = "bad"

    assert handle_click_prepare(data)["error"] == ClickError.SIGN_CHECK_FAILED


@pytest.mark.django_db
def test_prepare_rejects_wrong_action(large_booking):
    assert handle_click_prepare(prepare_payload(large_booking.pk, action="1"))["error"] == ClickError.INVALID_ACTION
    assert handle_click_prepare(prepare_payload(large_booking.pk, action="x"))["error"] == ClickError.ACTION_NOT_FOUND


@pytest.mark.django_db
@pytest.mark.parametrize("merchant_trans_id", ["0", "-4", "abc", "999999"])
def test_prepare_unknown_order(db, merchant_trans_id):
    data = prepare_payload(merchant_trans_id)

    assert handle_click_prepare(data)["error"] == ClickError.ORDER_NOT_FOUND


@pytest.mark.django_db
def test_prepare_cancelled_booking(make_booking):
    booking = make_booking(status=Booking.NO_SHOW)

    response = handle_click_prepare(prepare_payload(booking.pk, amount="1"))

    assert response["error"] == ClickError.CANCELLED
    assert "no_show" in response["error_note"]


@pytest.mark.django_db
def test_prepare_amount_rules(make_booking):
    booking = make_booking(total_amount=10_000_000, paid_amount=8_000_000)
    paid = make_booking(total_amount=100, paid_amount=100)

    assert handle_click_prepare(prepare_payload(booking.pk, amount="50000"))["error"] == ClickError.INVALID_AMOUNT
    assert handle_click_prepare(prepare_payload(booking.pk, amount="0"))["error"] == ClickError.INVALID_AMOUNT
    assert handle_click_prepare(prepare_payload(paid.pk, amount="1"))["error"] == ClickError.ALREADY_PAID

    exact = handle_click_prepare(prepare_payload(booking.pk, amount="20000.00", click_trans_id="77"))
    assert exact["error"] == ClickError.SUCCESS


@pytest.mark.django_db
def test_prepare_with_upstream_error(large_booking):
    response = handle_click_prepare(prepare_payload(large_booking.pk, error="-5017"))

    assert response["error"] == ClickError.TRANSACTION_ERROR
    assert not ClickTransaction.objects.exists()


@pytest.mark.django_db
def test_complete_with_upstream_error_cancels_record(large_booking):
    prepare_id = handle_click_prepare(prepare_payload(large_booking.pk))["merchant_prepare_id"]

    response = handle_click_complete(complete_payload(large_booking.pk, prepare_id, error="-5017"))

    assert response["error"] == ClickError.TRANSACTION_ERROR
    assert ClickTransaction.objects.get(prepare_id=prepare_id).cancelled
    assert not Payment.objects.exists()

    retry = handle_click_complete(complete_payload(large_booking.pk, prepare_id))
    assert retry["error"] == ClickError.CANCELLED


@pytest.mark.django_db
def test_complete_unknown_prepare_id(large_booking):
    response = handle_click_complete(complete_payload(large_booking.pk, 424242))

    assert response["error"] == ClickError.TRANSACTION_ERROR


@pytest.mark.django_db
def test_complete_with_foreign_click_trans_id(large_booking):
    prepare_id = handle_click_prepare(prepare_payload(large_booking.pk))["merchant_prepare_id"]

    response = handle_click_complete(complete_payload(large_booking.pk, prepare_id, click_trans_id="1234"))

    assert response["error"] == ClickError.TRANSACTION_ERROR
    assert not Payment.objects.exists()


@pytest.mark.django_db
def test_complete_rolls_back_when_ledger_refuses(large_booking):
    prepare_id = handle_click_prepare(prepare_payload(large_booking.pk))["merchant_prepare_id"]
    Booking.objects.filter(pk=large_booking.pk).update(status=Booking.CANCELLED)

    response = handle_click_complete(complete_payload(large_booking.pk, prepare_id))

    assert response["error"] == ClickError.TRANSACTION_ERROR
    record = ClickTransaction.objects.get(prepare_id=prepare_id)
    assert not record.completed
    assert not Payment.objects.exists()


@pytest.mark.django_db
def test_missing_secret_fails_signature(settings, large_booking):
    settings.CLICK_SECRET_KEY = ""

    response = handle_click_prepare(prepare_payload(large_booking.pk))

    assert response["error"] == ClickError.SIGN_CHECK_FAILED


@pytest.mark.django_db
def test_exponent_ids_fail_signature_without_being_expanded(large_booking):
    data = {
        "click_trans_id": "1e30000000",
        "merchant_prepare_id": "1e30000000",
        "merchant_trans_id": str(large_booking.pk),
        "action": "1",
        "sign_string": "bad",
    }

    response = handle_click_complete(data)

    assert response["error"] == ClickError.SIGN_CHECK_FAILED
    assert response["click_trans_id"] == "1e30000000"
    assert response["merchant_prepare_id"] == "1e30000000"


@pytest.mark.django_db
def test_exponent_ids_are_rejected_even_when_signed(large_booking):
    prepared = handle_click_prepare(prepare_payload(large_booking.pk, click_trans_id="1e30000000"))
    assert prepared["error"] == ClickError.TRANSACTION_ERROR

    completed = handle_click_complete(complete_payload(large_booking.pk, "1e30000000"))
    assert completed["error"] == ClickError.TRANSACTION_ERROR
    assert not ClickTransaction.objects.exists()


@pytest.mark.django_db
def test_exponent_amount_is_invalid(large_booking):
    response = handle_click_prepare(prepare_payload(large_booking.pk, amount="5e4"))

    assert response["error"] == ClickError.INVALID_AMOUNT


@pytest.mark.django_db
def test_complete_losing_the_claim_is_already_paid(large_booking, monkeypatch):
    prepare_id = handle_click_prepare(prepare_payload(large_booking.pk))["merchant_prepare_id"]
    stale = ClickTransaction.objects.get(prepare_id=prepare_id)
    assert handle_click_complete(complete_payload(large_booking.pk, prepare_id))["error"] == ClickError.SUCCESS

    # this caller read the record before the winner marked it completed
    monkeypatch.setattr(click, "_find_record", lambda prepare_id: stale)
    loser = handle_click_complete(complete_payload(large_booking.pk, prepare_id))

    assert loser["error"] == ClickError.ALREADY_PAID
    assert loser["merchant_prepare_id"] == prepare_id
    assert Payment.objects.count() == 1
    large_booking.refresh_from_db()
    assert large_booking.paid_amount == 5_000_000


@pytest.mark.django_db
def test_complete_losing_the_claim_to_a_cancel(large_booking, monkeypatch):
    prepare_id = handle_click_prepare(prepare_payload(large_booking.pk))["merchant_prepare_id"]
    stale = ClickTransaction.objects.get(prepare_id=prepare_id)
    ClickTransaction.objects.filter(prepare_id=prepare_id).update(cancelled=True)

    monkeypatch.setattr(click, "_find_record", lambda prepare_id: stale)
    response = handle_click_complete(complete_payload(large_booking.pk, prepare_id))

    assert response["error"] == ClickError.CANCELLED
    assert not Payment.objects.exists()
