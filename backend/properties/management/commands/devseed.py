from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone

from accounts.models import PropertyMembership, User
from bookings.models import Booking
from payments.models import Payment
from payments.results import Actor
from payments.services.reconciliation import capture_payment
from properties.models import Property


SEED_PASSWORD = "Sardoba123!"
SUPERUSER_USERNAME = "admin@silkroad.test"
SUPERUSER_PASSWORD = "AdminSardoba123!"


class Command(BaseCommand):
    help = "Populate the local development database with a property, staff and bookings."

    def handle(self, *args, **options):
        if not settings.DEBUG:
            raise CommandError("Refusing to seed data while DEBUG is False.")

        with transaction.atomic():
            self.stdout.write(self.style.MIGRATE_HEADING("Creating property"))
            hotel = self._ensure_property(
                slug="silk-road-inn",
                name="Silk Road Inn",
                email="desk@silkroad.test",
                phone="+998 71 200 0000",
            )

            self.stdout.write(self.style.MIGRATE_HEADING("Creating users & memberships"))
            owner = self._ensure_user("owner@silkroad.test", "Oybek Owner")
            desk = self._ensure_user("desk@silkroad.test", "Dilnoza Desk")
            self._ensure_membership(owner, hotel, PropertyMembership.OWNER)
            self._ensure_membership(desk, hotel, PropertyMembership.VIEWER)

            self.stdout.write(self.style.MIGRATE_HEADING("Ensuring admin superuser"))
            self._ensure_superuser()

            self.stdout.write(self.style.MIGRATE_HEADING("Creating bookings"))
            today = timezone.localdate()
            unpaid = self._ensure_booking(hotel, "SR-0001", today + timedelta(days=3), 3, 20_000_000)
            partial = self._ensure_booking(hotel, "SR-0002", today + timedelta(days=10), 2, 10_000_000)
            self._ensure_booking(hotel, "SR-0003", today - timedelta(days=5), 1, 4_000_000, Booking.CANCELLED)

            if not partial.payments.exists():
                capture_payment(
                    booking_id=partial.pk,
                    amount=8_000_000,
                    method=Payment.CASH,
                    actor=Actor.for_user(owner),
                    notes="Deposit at check-in desk",
                )

        self.stdout.write(self.style.SUCCESS("Development seed data created."))
        self.stdout.write(self.style.NOTICE(f"Sample login accounts use password: {SEED_PASSWORD}"))
        self.stdout.write(self.style.NOTICE(f"Admin superuser {SUPERUSER_USERNAME} password: {SUPERUSER_PASSWORD}"))
        self.stdout.write(self.style.NOTICE(f"Unpaid booking for gateway testing: #{unpaid.pk}"))

    def _ensure_property(self, slug: str, name: str, email: str, phone: str) -> Property:
        hotel, _ = Property.objects.update_or_create(
            slug=slug,
            defaults={"name": name, "contact_email": email, "phone": phone},
        )
        return hotel

    def _ensure_user(self, username: str, display_name: str) -> User:
        user, created = User.objects.get_or_create(
            username=username,
            defaults={"email": username, "display_name": display_name},
        )
        if created or not user.has_usable_password():
            user.set_password(SEED_PASSWORD)
            user.save(update_fields=["password"])
        return user

    def _ensure_membership(self, user: User, hotel: Property, role: str) -> PropertyMembership:
        membership, created = PropertyMembership.objects.get_or_create(
            user=user,
            property=hotel,
            role=role,
            defaults={"is_active": True},
        )
        if not membership.is_active:
            membership.is_active = True
            membership.save(update_fields=["is_active", "updated_at"])
        if created:
            self.stdout.write(f"  {user.username} -> {role} @ {hotel.name}")
        return membership

    def _ensure_booking(
        self,
        hotel: Property,
        number: str,
        check_in,
        nights: int,
        total_amount: int,
        status: str = Booking.CONFIRMED,
    ) -> Booking:
        booking, _ = Booking.objects.get_or_create(
            booking_number=number,
            defaults={
                "property": hotel,
                "check_in": check_in,
                "check_out": check_in + timedelta(days=nights),
                "total_amount": total_amount,
                "status": status,
            },
        )
        return booking

    def _ensure_superuser(self) -> User:
        user, created = User.objects.get_or_create(
            username=SUPERUSER_USERNAME,
            defaults={"email": SUPERUSER_USERNAME, "is_staff": True, "is_superuser": True},
        )
        if not created and not (user.is_staff and user.is_superuser):
            user.is_staff = True
            user.is_superuser = True
            user.save(update_fields=["is_staff", "is_superuser"])
        if created:
            user.set_password(SUPERUSER_PASSWORD)
            user.save(update_fields=["password"])
        return user
