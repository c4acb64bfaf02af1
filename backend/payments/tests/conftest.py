import base64
from datetime import date

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from accounts.models import PropertyMembership
from bookings.models import Booking
from properties.models import Property

User = get_user_model()


@pytest.fixture
def hotel(db):
    return Property.objects.create(
        name="Silk Road Inn",
        slug="silk-road-inn",
        contact_email="desk@silkroad.test",
    )


@pytest.fixture
def make_booking(hotel):
    counter = {"n": 0}

    def _make(total_amount=10_000_000, paid_amount=0, status=Booking.CONFIRMED):
        counter["n"] += 1
        return Booking.objects.create(
            property=hotel,
            booking_number=f"BK-{counter['n']:05d}",
            check_in=date(2026, 5, 1),
            check_out=date(2026, 5, 4),
            total_amount=total_amount,
            paid_amount=paid_amount,
            status=status,
        )

    return _make


@pytest.fixture
def booking(make_booking):
    return make_booking()


@pytest.fixture
def owner(hotel):
    user = User.objects.create_user(username="owner@silkroad.test", password="examplepass")
    PropertyMembership.objects.create(user=user, property=hotel, role=PropertyMembership.OWNER)
    return user


@pytest.fixture
def viewer(hotel):
    user = User.objects.create_user(username="viewer@silkroad.test", password="examplepass")
    PropertyMembership.objects.create(user=user, property=hotel, role=PropertyMembership.VIEWER)
    return user


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def payme_auth(settings):
    token = base64.b64encode(
        f"{settings.PAYME_MERCHANT_ID}:{settings.PAYME_SECRET_KEY}".encode()
    ).decode()
    return f"Basic {token}"
