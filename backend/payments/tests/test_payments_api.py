import hashlib

import pytest

from bookings.models import Booking
from payments.models import ClickTransaction, Payment, PaymeTransaction
from payments.results import Actor
from payments.services.reconciliation import create_payment


@pytest.mark.django_db
def test_list_payments_requires_authentication(api_client, booking):
    response = api_client.get(f"/api/bookings/{booking.pk}/payments/")

    assert response.status_code == 401


@pytest.mark.django_db
def test_outsider_cannot_see_payments(api_client, booking, django_user_model):
    stranger = django_user_model.objects.create_user(username="stranger", password="examplepass")
    api_client.force_authenticate(stranger)

    response = api_client.get(f"/api/bookings/{booking.pk}/payments/")

    assert response.status_code == 403


@pytest.mark.django_db
def test_member_lists_payments_with_balance(api_client, make_booking, viewer, owner):
    booking = make_booking(total_amount=20_000_000)
    create_payment(booking=booking, amount=5_000_000, method=Payment.CASH, actor=Actor.for_user(owner))
    api_client.force_authenticate(viewer)

    response = api_client.get(f"/api/bookings/{booking.pk}/payments/")

    assert response.status_code == 200
    body = response.json()
    assert body["booking_id"] == booking.pk
    assert body["total_amount"] == 20_000_000
    assert body["paid_amount"] == 5_000_000
    assert body["balance"] == 15_000_000
    assert len(body["data"]) == 1
    assert body["data"][0]["amount"] == 5_000_000
    assert body["data"][0]["created_by"] == owner.pk
    assert body["data"][0]["actor_type"] == Payment.ACTOR_USER


@pytest.mark.django_db
def test_unknown_booking_is_404(api_client, owner):
    api_client.force_authenticate(owner)

    response = api_client.get("/api/bookings/999999/payments/")

    assert response.status_code == 404


@pytest.mark.django_db
def test_create_payment(api_client, booking, owner):
    api_client.force_authenticate(owner)

    response = api_client.post(
        f"/api/bookings/{booking.pk}/payments/",
        {"amount": 1_500_000, "method": Payment.CARD, "notes": "front desk"},
        format="json",
    )

    assert response.status_code == 201
    body = response.json()
    assert body["amount"] == 1_500_000
    assert body["created_by"] == owner.pk
    booking.refresh_from_db()
    assert booking.paid_amount == 1_500_000


@pytest.mark.django_db
def test_overpayment_returns_422_with_diagnostics(api_client, make_booking, owner):
    booking = make_booking(total_amount=10_000_000, paid_amount=8_000_000)
    api_client.force_authenticate(owner)

    response = api_client.post(
        f"/api/bookings/{booking.pk}/payments/",
        {"amount": 5_000_000, "method": Payment.CASH},
        format="json",
    )

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "OVERPAYMENT"
    assert body["meta"]["remaining"] == 2_000_000
    booking.refresh_from_db()
    assert booking.paid_amount == 8_000_000


@pytest.mark.django_db
def test_cancelled_booking_returns_422(api_client, make_booking, owner):
    booking = make_booking(status=Booking.CANCELLED)
    api_client.force_authenticate(owner)

    response = api_client.post(
        f"/api/bookings/{booking.pk}/payments/",
        {"amount": 100, "method": Payment.CASH},
        format="json",
    )

    assert response.status_code == 422
    assert response.json()["code"] == "BOOKING_CANCELLED"


@pytest.mark.django_db
@pytest.mark.parametrize(
    "payload",
    [
        {"amount": 0, "method": Payment.CASH},
        {"amount": 100, "method": "bitcoin"},
        {"amount": 100, "method": Payment.CASH, "notes": "x" * 256},
    ],
)
def test_create_payment_validation(api_client, booking, owner, payload):
    api_client.force_authenticate(owner)

    response = api_client.post(f"/api/bookings/{booking.pk}/payments/", payload, format="json")

    assert response.status_code == 400


@pytest.mark.django_db
def test_balance_endpoint(api_client, make_booking, viewer):
    booking = make_booking(total_amount=3_000, paid_amount=1_000)
    api_client.force_authenticate(viewer)

    response = api_client.get(f"/api/bookings/{booking.pk}/balance/")

    assert response.status_code == 200
    assert response.json() == {"booking_id": booking.pk, "total": 3_000, "paid": 1_000, "balance": 2_000}


@pytest.mark.django_db
def test_owner_deletes_payment(api_client, booking, owner):
    payment = create_payment(booking=booking, amount=700, method=Payment.CASH, actor=Actor.for_user(owner))
    api_client.force_authenticate(owner)

    response = api_client.delete(f"/api/payments/{payment.pk}/")

    assert response.status_code == 200
    assert response.json() == {"deleted": True, "id": payment.pk}
    booking.refresh_from_db()
    assert booking.paid_amount == 0


@pytest.mark.django_db
def test_viewer_cannot_delete_payment(api_client, booking, owner, viewer):
    payment = create_payment(booking=booking, amount=700, method=Payment.CASH, actor=Actor.for_user(owner))
    api_client.force_authenticate(viewer)

    response = api_client.delete(f"/api/payments/{payment.pk}/")

    assert response.status_code == 403
    assert Payment.objects.filter(pk=payment.pk).exists()


@pytest.mark.django_db
def test_delete_unknown_payment(api_client, owner):
    api_client.force_authenticate(owner)

    assert api_client.delete("/api/payments/424242/").status_code == 404


@pytest.mark.django_db
def test_token_endpoint_issues_jwt(api_client, owner):
    response = api_client.post(
        "/api/auth/token/",
        {"username": "owner@silkroad.test", "password": "examplepass"},
        format="json",
    )

    assert response.status_code == 200
    assert "access" in response.json()


@pytest.mark.django_db
def test_payme_webhook_roundtrip(api_client, booking, payme_auth):
    payload = {
        "jsonrpc": "2.0",
        "id": 7,
        "method": "CreateTransaction",
        "params": {"id": "w1", "time": 1_000, "amount": 100, "account": {"booking_id": booking.pk}},
    }

    response = api_client.post("/api/webhooks/payme/", payload, format="json", HTTP_AUTHORIZATION=payme_auth)

    assert response.status_code == 200
    assert response.json()["result"]["state"] == PaymeTransaction.STATE_CREATED


@pytest.mark.django_db
def test_payme_webhook_bad_auth_still_200(api_client, booking):
    response = api_client.post(
        "/api/webhooks/payme/",
        {"jsonrpc": "2.0", "id": 1, "method": "CheckTransaction", "params": {"id": "x"}},
        format="json",
    )

    assert response.status_code == 200
    assert response.json()["error"]["code"] == -32504


@pytest.mark.django_db
def test_payme_webhook_malformed_json(api_client, payme_auth):
    response = api_client.generic(
        "POST",
        "/api/webhooks/payme/",
        "{not json",
        content_type="application/json",
        HTTP_AUTHORIZATION=payme_auth,
    )

    assert response.status_code == 200
    assert response.json()["error"]["code"] == -32700


@pytest.mark.django_db
def test_click_webhooks_accept_form_posts(api_client, make_booking):
    booking = make_booking(total_amount=20_000_000)
    data = {
        "click_trans_id": "31337",
        "service_id": "2002",
        "click_paydoc_id": "1",
        "merchant_trans_id": str(booking.pk),
        "amount": "1000",
        "action": "0",
        "error": "0",
        "sign_time": "2026-05-01 10:00:00",
    }
    data["sign_string"] = hashlib.md5(
        f"313372002click-secret{booking.pk}10000{data['sign_time']}".encode()
    ).hexdigest()

    response = api_client.post("/api/webhooks/click/prepare/", data)

    assert response.status_code == 200
    body = response.json()
    assert body["error"] == 0
    assert ClickTransaction.objects.filter(prepare_id=body["merchant_prepare_id"]).exists()


@pytest.mark.django_db
def test_click_complete_with_empty_body(api_client):
    response = api_client.post("/api/webhooks/click/complete/", {})

    assert response.status_code == 200
    assert response.json()["error"] == -1


@pytest.mark.django_db
def test_reversal_queue_lists_flagged_transactions(api_client, make_booking, owner, django_user_model):
    booking = make_booking()
    flagged = PaymeTransaction.objects.create(
        payme_id="r1",
        booking=booking,
        amount=100,
        state=PaymeTransaction.STATE_CANCELLED_AFTER_PERFORM,
        create_time=1_000,
        cancel_time=2_000,
        reversal_required=True,
    )
    PaymeTransaction.objects.create(payme_id="r2", booking=booking, amount=200, create_time=1_500)
    outsider = django_user_model.objects.create_user(username="outsider", password="examplepass")

    api_client.force_authenticate(owner)
    response = api_client.get("/api/gateways/payme/transactions/", {"reversal_required": "true"})

    assert response.status_code == 200
    assert [row["payme_id"] for row in response.json()] == [flagged.payme_id]

    api_client.force_authenticate(outsider)
    assert api_client.get("/api/gateways/payme/transactions/").json() == []
