import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("bookings", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("amount", models.PositiveBigIntegerField()),
                (
                    "method",
                    models.CharField(
                        choices=[
                            ("cash", "Cash"),
                            ("card", "Card"),
                            ("transfer", "Bank transfer"),
                            ("payme", "Payme"),
                            ("click", "Click"),
                            ("other", "Other"),
                        ],
                        max_length=20,
                    ),
                ),
                ("paid_at", models.DateTimeField()),
                ("notes", models.CharField(blank=True, max_length=255)),
                ("reference", models.CharField(blank=True, db_index=True, max_length=100)),
                ("actor_type", models.CharField(choices=[("user", "User"), ("system", "System")], max_length=10)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payments",
                        to="bookings.booking",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments_created",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-paid_at", "-id"],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="payment_amount_positive"),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("actor_type", "user"), ("created_by__isnull", False)),
                            models.Q(("actor_type", "system"), ("created_by__isnull", True)),
                            _connector="OR",
                        ),
                        name="payment_actor_matches_created_by",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymeTransaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("payme_id", models.CharField(max_length=64, unique=True)),
                ("amount", models.BigIntegerField()),
                (
                    "state",
                    models.SmallIntegerField(
                        choices=[
                            (1, "Created"),
                            (2, "Performed"),
                            (-1, "Cancelled before perform"),
                            (-2, "Cancelled after perform"),
                        ],
                        default=1,
                    ),
                ),
                ("create_time", models.BigIntegerField()),
                ("perform_time", models.BigIntegerField(default=0)),
                ("cancel_time", models.BigIntegerField(default=0)),
                ("reason", models.SmallIntegerField(blank=True, null=True)),
                ("reversal_required", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payme_transactions",
                        to="bookings.booking",
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payme_transactions",
                        to="payments.payment",
                    ),
                ),
            ],
            options={
                "ordering": ["create_time", "id"],
                "indexes": [models.Index(fields=["create_time"], name="payme_txn_create_time_idx")],
            },
        ),
        migrations.CreateModel(
            name="ClickTransaction",
            fields=[
                ("prepare_id", models.BigAutoField(primary_key=True, serialize=False)),
                ("click_trans_id", models.BigIntegerField(unique=True)),
                ("click_paydoc_id", models.BigIntegerField(blank=True, null=True)),
                ("amount", models.BigIntegerField()),
                ("completed", models.BooleanField(default=False)),
                ("cancelled", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="click_transactions",
                        to="bookings.booking",
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="click_transactions",
                        to="payments.payment",
                    ),
                ),
            ],
            options={
                "ordering": ["prepare_id"],
            },
        ),
    ]
