from rest_framework import serializers

from .models import Payment, PaymeTransaction


class PaymentSerializer(serializers.ModelSerializer):
    booking_id = serializers.IntegerField(read_only=True)
    created_by = serializers.IntegerField(source="created_by_id", read_only=True, allow_null=True)

    class Meta:
        model = Payment
        fields = [
            "id",
            "booking_id",
            "amount",
            "method",
            "paid_at",
            "notes",
            "reference",
            "actor_type",
            "created_by",
            "created_at",
        ]
        read_only_fields = fields


class PaymentCreateSerializer(serializers.Serializer):
    amount = serializers.IntegerField(min_value=1, help_text="Amount in tiyin (1 som = 100 tiyin)")
    method = serializers.ChoiceField(choices=Payment.METHODS)
    paid_at = serializers.DateTimeField(required=False)
    notes = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")


class BookingBalanceSerializer(serializers.Serializer):
    booking_id = serializers.IntegerField()
    total = serializers.IntegerField()
    paid = serializers.IntegerField()
    balance = serializers.IntegerField()


class PaymeTransactionSerializer(serializers.ModelSerializer):
    booking_id = serializers.IntegerField(read_only=True)
    payment_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = PaymeTransaction
        fields = [
            "id",
            "payme_id",
            "booking_id",
            "payment_id",
            "amount",
            "state",
            "create_time",
            "perform_time",
            "cancel_time",
            "reason",
            "reversal_required",
        ]
        read_only_fields = fields
