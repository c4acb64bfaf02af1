import logging

from django.shortcuts import get_object_or_404
from rest_framework import generics, status
from rest_framework.exceptions import ParseError
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.models import PropertyMembership
from bookings.models import Booking
from properties.permissions import IsPropertyMember, IsPropertyOwnerOrAdmin

from .exceptions import PaymentRejected
from .models import Payment, PaymeTransaction
from .results import Actor, Rejection
from .serializers import (
    BookingBalanceSerializer,
    PaymentCreateSerializer,
    PaymentSerializer,
    PaymeTransactionSerializer,
)
from .services.click import handle_click_complete, handle_click_prepare
from .services.payme import handle_payme_request
from .services.reconciliation import (
    booking_balance,
    create_payment,
    list_booking_payments,
    remove_payment,
)

logger = logging.getLogger(__name__)

REJECTION_STATUS = {
    Rejection.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    Rejection.BOOKING_CANCELLED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    Rejection.OVERPAYMENT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    Rejection.INVALID_AMOUNT: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def rejection_response(exc: PaymentRejected) -> Response:
    return Response(
        {"code": exc.code, "detail": str(exc), "meta": exc.meta},
        status=REJECTION_STATUS.get(exc.code, status.HTTP_400_BAD_REQUEST),
    )


class BookingBaseView(APIView):
    permission_classes = [IsAuthenticated, IsPropertyMember]
    booking: Booking | None = None
    property = None

    def dispatch(self, request, *args, **kwargs):
        booking_id = kwargs.get("booking_id")
        self.booking = get_object_or_404(Booking.objects.select_related("property"), pk=booking_id)
        self.property = self.booking.property
        return super().dispatch(request, *args, **kwargs)


class BookingPaymentsView(BookingBaseView):
    """List or record payments for a booking."""

    def get(self, request, booking_id, *args, **kwargs):
        payments = list_booking_payments(self.booking)
        balance = booking_balance(self.booking)
        return Response(
            {
                "data": PaymentSerializer(payments, many=True).data,
                "booking_id": self.booking.id,
                "total_amount": balance["total"],
                "paid_amount": balance["paid"],
                "balance": balance["balance"],
            }
        )

    def post(self, request, booking_id, *args, **kwargs):
        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            payment = create_payment(
                booking=self.booking,
                amount=data["amount"],
                method=data["method"],
                actor=Actor.for_user(request.user),
                paid_at=data.get("paid_at"),
                notes=data.get("notes", ""),
                reference=data.get("reference", ""),
            )
        except PaymentRejected as exc:
            return rejection_response(exc)

        return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


class BookingBalanceView(BookingBaseView):
    def get(self, request, booking_id, *args, **kwargs):
        return Response(BookingBalanceSerializer(booking_balance(self.booking)).data)


class PaymentDetailView(APIView):
    """Delete a payment (property owners and admins only)."""

    permission_classes = [IsAuthenticated, IsPropertyOwnerOrAdmin]
    property = None

    def dispatch(self, request, *args, **kwargs):
        payment = get_object_or_404(
            Payment.objects.select_related("booking__property"),
            pk=kwargs.get("payment_id"),
        )
        self.property = payment.booking.property
        return super().dispatch(request, *args, **kwargs)

    def delete(self, request, payment_id, *args, **kwargs):
        try:
            result = remove_payment(payment_id, Actor.for_user(request.user))
        except PaymentRejected as exc:
            return rejection_response(exc)
        return Response(result, status=status.HTTP_200_OK)


class PaymeTransactionListView(generics.ListAPIView):
    """Payme transactions on the caller's properties, filterable for reconciliation review."""

    serializer_class = PaymeTransactionSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ["state", "reversal_required", "booking"]
    ordering_fields = ["create_time", "amount"]

    def get_queryset(self):
        user = self.request.user
        queryset = PaymeTransaction.objects.all().order_by("create_time", "id")
        if user.is_superuser:
            return queryset

        property_ids = PropertyMembership.objects.filter(
            user=user,
            is_active=True,
            role__in=[PropertyMembership.OWNER, PropertyMembership.ADMIN],
        ).values_list("property_id", flat=True)
        return queryset.filter(booking__property_id__in=property_ids)


class GatewayWebhookView(APIView):
    """Base for gateway callbacks: no JWT, always HTTP 200 with a protocol body."""

    permission_classes: list = []
    authentication_classes: list = []
    parser_classes = [JSONParser, FormParser, MultiPartParser]

    def get_payload(self, request):
        try:
            data = request.data
        except ParseError:
            logger.warning("Unparseable body received on %s.", request.path)
            return None
        if hasattr(data, "dict"):
            return data.dict()
        return data


class PaymeWebhookView(GatewayWebhookView):
    def post(self, request, *args, **kwargs):
        payload = handle_payme_request(
            self.get_payload(request),
            request.META.get("HTTP_AUTHORIZATION"),
        )
        return Response(payload, status=status.HTTP_200_OK)


class ClickPrepareView(GatewayWebhookView):
    def post(self, request, *args, **kwargs):
        payload = self.get_payload(request)
        if not isinstance(payload, dict):
            payload = {}
        return Response(handle_click_prepare(payload), status=status.HTTP_200_OK)


class ClickCompleteView(GatewayWebhookView):
    def post(self, request, *args, **kwargs):
        payload = self.get_payload(request)
        if not isinstance(payload, dict):
            payload = {}
        return Response(handle_click_complete(payload), status=status.HTTP_200_OK)
