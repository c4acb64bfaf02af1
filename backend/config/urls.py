from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from payments.api import (
    BookingBalanceView,
    BookingPaymentsView,
    ClickCompleteView,
    ClickPrepareView,
    PaymentDetailView,
    PaymeTransactionListView,
    PaymeWebhookView,
)

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/auth/token/", TokenObtainPairView.as_view(), name="auth-token"),
    path("api/auth/token/refresh/", TokenRefreshView.as_view(), name="auth-refresh"),
    path(
        "api/bookings/<int:booking_id>/payments/",
        BookingPaymentsView.as_view(),
        name="booking-payments",
    ),
    path(
        "api/bookings/<int:booking_id>/balance/",
        BookingBalanceView.as_view(),
        name="booking-balance",
    ),
    path(
        "api/payments/<int:payment_id>/",
        PaymentDetailView.as_view(),
        name="payment-detail",
    ),
    path(
        "api/gateways/payme/transactions/",
        PaymeTransactionListView.as_view(),
        name="payme-transactions",
    ),
    path("api/webhooks/payme/", PaymeWebhookView.as_view(), name="payme-webhook"),
    path(
        "api/webhooks/click/prepare/",
        ClickPrepareView.as_view(),
        name="click-prepare",
    ),
    path(
        "api/webhooks/click/complete/",
        ClickCompleteView.as_view(),
        name="click-complete",
    ),
]
