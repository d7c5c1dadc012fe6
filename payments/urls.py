"""URL routes for the payments app (v1)."""

from django.urls import path

from .views import (
    AcceptNotificationView,
    CaptureTransactionView,
    CompletePaymentView,
    OrderTransactionsView,
    PaymentsHealthView,
    PaystackWebhookView,
    ProcessPaymentView,
    RefundTransactionView,
    TransactionDetailView,
)

app_name = "payments"

urlpatterns = [
    path("health/", PaymentsHealthView.as_view(), name="payments-health"),
    path("orders/<int:order_id>/pay/", ProcessPaymentView.as_view(), name="order-pay"),
    path("orders/<int:order_id>/transactions/", OrderTransactionsView.as_view(), name="order-transactions"),
    path("transactions/<str:transaction_hash>/", TransactionDetailView.as_view(), name="transaction-detail"),
    path(
        "transactions/<str:transaction_hash>/capture/",
        CaptureTransactionView.as_view(),
        name="transaction-capture",
    ),
    path(
        "transactions/<str:transaction_hash>/refund/",
        RefundTransactionView.as_view(),
        name="transaction-refund",
    ),
    # Gateway callbacks; both carry ?transaction_id=&hash=
    path("complete/", CompletePaymentView.as_view(), name="complete-payment"),
    path("notify/", AcceptNotificationView.as_view(), name="accept-notification"),
    path("webhooks/paystack/", PaystackWebhookView.as_view(), name="paystack-webhook"),
]
