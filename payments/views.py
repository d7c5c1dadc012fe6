"""Payments API endpoints.

Checkout payment, operator capture/refund, the customer return URL after an
off-site payment, and the provider notification/webhook endpoints. Views only
translate `PaymentResult`s into responses; all decisions live in
`payments.services`.
"""

import json
import logging

from django.conf import settings
from django.http import HttpResponse, HttpResponseRedirect
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from drf_spectacular.utils import OpenApiParameter, extend_schema, inline_serializer
from orders.models import Order
from rest_framework import serializers as rf_serializers
from rest_framework import status
from rest_framework.exceptions import ParseError, UnsupportedMediaType
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from payments.builders import absolute_url
from payments.gateways.paystack import PaystackGatewayAdapter
from payments.models import Transaction
from payments.results import FAILED, REDIRECT, RENDER, PaymentResult
from payments.selectors import (
    get_total_authorized_for_order,
    get_total_paid_for_order,
    get_transaction_by_hash,
    get_transaction_for_callback,
    list_transactions_for_order,
)
from payments.serializers import PaymentFormSerializer, TransactionSerializer
from payments.services import (
    GatewayCapabilityError,
    TransactionNotFound,
    accept_notification,
    capture_transaction,
    complete_payment,
    process_payment,
    refund_transaction,
)

logger = logging.getLogger("shopfront.payments")

CALLBACK_PARAMETERS = [
    OpenApiParameter(name="transaction_id", location=OpenApiParameter.QUERY, required=True, type=int),
    OpenApiParameter(name="hash", location=OpenApiParameter.QUERY, required=True, type=str),
]


def _client_ip(request) -> str:
    return request.META.get("REMOTE_ADDR") or ""


def _rendered(result: PaymentResult) -> HttpResponse:
    return HttpResponse(result.body, status=result.status_code, content_type=result.content_type)


def _api_response(result: PaymentResult) -> HttpResponse:
    if result.kind == RENDER:
        return _rendered(result)
    if result.kind == FAILED:
        return Response({"detail": result.message or "Payment failed"}, status=status.HTTP_400_BAD_REQUEST)
    body = {"status": result.kind}
    if result.kind == REDIRECT:
        body["redirect_url"] = result.redirect_url
    if result.transaction is not None:
        body["transaction"] = TransactionSerializer(result.transaction).data
    return Response(body)


def _notification_data(request) -> dict:
    try:
        data = request.data
    except (ParseError, UnsupportedMediaType):
        return {}
    if hasattr(data, "dict"):
        return data.dict()
    return dict(data) if isinstance(data, dict) else {}


class PaymentsHealthView(APIView):
    """Basic health endpoint for the payments app."""

    permission_classes = [AllowAny]
    throttle_scope = "payments"

    @extend_schema(tags=["Payments Endpoints"], summary="Payments health")
    def get(self, request, *args, **kwargs):
        return Response({"status": "ok"})


class ProcessPaymentView(APIView):
    """Pay the outstanding balance of an order with its selected gateway.

    Returns `success`, or `redirect` with the off-site URL the client must
    send the customer to. Some gateways need a POST redirect; the response is
    then an auto-submitting HTML page.
    """

    permission_classes = [IsAuthenticated]
    throttle_scope = "payments_write"
    throttle_classes = [ScopedRateThrottle]

    @extend_schema(
        tags=["Payments Endpoints"],
        summary="Process payment for an order",
        request=PaymentFormSerializer,
        responses={
            200: inline_serializer(
                name="PaymentProcessed",
                fields={
                    "status": rf_serializers.CharField(),
                    "redirect_url": rf_serializers.URLField(required=False),
                    "transaction": TransactionSerializer(required=False),
                },
            ),
            400: inline_serializer(name="PaymentsError", fields={"detail": rf_serializers.CharField()}),
            404: inline_serializer(name="PaymentsNotFound", fields={"detail": rf_serializers.CharField()}),
        },
    )
    def post(self, request, order_id: int, *args, **kwargs):
        serializer = PaymentFormSerializer(data=request.data)
        if not serializer.is_valid():
            logger.warning(
                "payments_process_invalid_payload",
                extra={"user_id": getattr(request.user, "id", None), "errors": serializer.errors},
            )
            return Response({"detail": "Invalid payload"}, status=status.HTTP_400_BAD_REQUEST)

        try:
            order = Order.objects.select_related("gateway", "billing_address", "shipping_address").get(
                id=order_id, user=request.user
            )
        except Order.DoesNotExist:
            return Response({"detail": "Order not found"}, status=status.HTTP_404_NOT_FOUND)

        result = process_payment(order=order, form=serializer.validated_data, client_ip=_client_ip(request))
        logger.info(
            "payments_process_result",
            extra={"user_id": request.user.id, "order_id": order.id, "result": result.kind},
        )
        return _api_response(result)


class OrderTransactionsView(APIView):
    """List an order's transactions together with its ledger totals."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "payments"
    throttle_classes = [ScopedRateThrottle]

    @extend_schema(
        tags=["Payments Endpoints"],
        summary="List transactions for an order",
        responses={
            200: inline_serializer(
                name="OrderTransactions",
                fields={
                    "total_paid": rf_serializers.DecimalField(max_digits=14, decimal_places=2),
                    "total_authorized": rf_serializers.DecimalField(max_digits=14, decimal_places=2),
                    "transactions": TransactionSerializer(many=True),
                },
            ),
        },
    )
    def get(self, request, order_id: int, *args, **kwargs):
        order = Order.objects.filter(id=order_id).first()
        if order is None or (order.user_id != request.user.id and not request.user.is_staff):
            return Response({"detail": "Order not found"}, status=status.HTTP_404_NOT_FOUND)
        transactions = list_transactions_for_order(order.id, status=request.query_params.get("status"))
        return Response(
            {
                "total_paid": str(get_total_paid_for_order(order)),
                "total_authorized": str(get_total_authorized_for_order(order)),
                "transactions": TransactionSerializer(transactions, many=True).data,
            }
        )


class TransactionDetailView(APIView):
    """Fetch a transaction by hash for its owner or staff."""

    permission_classes = [IsAuthenticated]
    throttle_scope = "payments"
    throttle_classes = [ScopedRateThrottle]

    @extend_schema(tags=["Payments Endpoints"], summary="Get transaction by hash", responses={200: TransactionSerializer})
    def get(self, request, transaction_hash: str, *args, **kwargs):
        transaction = get_transaction_by_hash(transaction_hash)
        if transaction is None or (transaction.order.user_id != request.user.id and not request.user.is_staff):
            return Response({"detail": "Transaction not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response(TransactionSerializer(transaction).data)


class _FollowUpView(APIView):
    permission_classes = [IsAdminUser]
    throttle_scope = "payments_write"
    throttle_classes = [ScopedRateThrottle]

    action_name = ""
    action_past = ""

    def allowed(self, transaction: Transaction) -> bool:
        raise NotImplementedError

    def perform(self, transaction: Transaction) -> Transaction:
        raise NotImplementedError

    def post(self, request, transaction_hash: str, *args, **kwargs):
        transaction = get_transaction_by_hash(transaction_hash)
        if transaction is None:
            return Response({"detail": "Transaction not found"}, status=status.HTTP_404_NOT_FOUND)
        if not self.allowed(transaction):
            return Response(
                {"detail": f"Transaction cannot be {self.action_past}"}, status=status.HTTP_400_BAD_REQUEST
            )

        child = self.perform(transaction)
        data = TransactionSerializer(child).data
        logger.info(
            "payments_follow_up_result",
            extra={
                "user_id": request.user.id,
                "action": self.action_name,
                "parent_id": transaction.id,
                "transaction_id": child.id,
                "status": child.status,
            },
        )
        if child.status != Transaction.STATUS_SUCCESS:
            return Response({"detail": child.message or "Gateway error", "transaction": data}, status=400)
        return Response(data)


class CaptureTransactionView(_FollowUpView):
    """Capture a successful authorization."""

    action_name = "capture"
    action_past = "captured"

    def allowed(self, transaction):
        return transaction.can_capture()

    def perform(self, transaction):
        return capture_transaction(transaction)

    @extend_schema(tags=["Payments Endpoints"], summary="Capture transaction", request=None, responses=TransactionSerializer)
    def post(self, request, *args, **kwargs):
        return super().post(request, *args, **kwargs)


class RefundTransactionView(_FollowUpView):
    """Refund a successful purchase or capture."""

    action_name = "refund"
    action_past = "refunded"

    def allowed(self, transaction):
        return transaction.can_refund()

    def perform(self, transaction):
        return refund_transaction(transaction)

    @extend_schema(tags=["Payments Endpoints"], summary="Refund transaction", request=None, responses=TransactionSerializer)
    def post(self, request, *args, **kwargs):
        return super().post(request, *args, **kwargs)


@method_decorator(csrf_exempt, name="dispatch")
class CompletePaymentView(APIView):
    """Where the customer lands after paying off-site.

    Providers either redirect (GET) or post the customer back (POST). The
    transaction id and hash in the query string identify the transaction.
    """

    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_scope = "payments"
    throttle_classes = [ScopedRateThrottle]

    @extend_schema(tags=["Payments Endpoints"], summary="Complete off-site payment", parameters=CALLBACK_PARAMETERS)
    def get(self, request, *args, **kwargs):
        return self._complete(request)

    @extend_schema(tags=["Payments Endpoints"], summary="Complete off-site payment", parameters=CALLBACK_PARAMETERS)
    def post(self, request, *args, **kwargs):
        return self._complete(request)

    def _complete(self, request):
        transaction = get_transaction_for_callback(
            request.query_params.get("transaction_id"), request.query_params.get("hash")
        )
        if transaction is None:
            logger.warning("payments_complete_transaction_not_found", extra={"path": request.path})
            return Response({"detail": "Transaction not found"}, status=status.HTTP_404_NOT_FOUND)

        try:
            result = complete_payment(transaction, client_ip=_client_ip(request))
        except GatewayCapabilityError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        order = transaction.order
        logger.info(
            "payments_complete_result",
            extra={"order_id": order.id, "transaction_id": transaction.id, "result": result.kind},
        )

        if result.kind == RENDER:
            return _rendered(result)
        if result.kind == REDIRECT:
            return HttpResponseRedirect(result.redirect_url)
        if result.kind == FAILED:
            if order.cancel_url:
                return HttpResponseRedirect(absolute_url(order.cancel_url))
            return Response({"detail": result.message or "Payment failed"}, status=status.HTTP_400_BAD_REQUEST)
        if order.return_url:
            return HttpResponseRedirect(absolute_url(order.return_url))
        return Response({"status": result.kind, "order_id": order.id})


@method_decorator(csrf_exempt, name="dispatch")
class AcceptNotificationView(APIView):
    """Server-to-server notification endpoint for gateways that use a notify URL."""

    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_scope = "payments_webhook"
    throttle_classes = [ScopedRateThrottle]

    @extend_schema(tags=["Payments Endpoints"], summary="Gateway notification", parameters=CALLBACK_PARAMETERS)
    def post(self, request, *args, **kwargs):
        raw = request.body or b""
        transaction = get_transaction_for_callback(
            request.query_params.get("transaction_id"), request.query_params.get("hash")
        )
        if transaction is None:
            logger.warning("payments_notify_transaction_not_found", extra={"path": request.path})
            return Response({"detail": "Transaction not found"}, status=status.HTTP_404_NOT_FOUND)

        try:
            result = accept_notification(
                transaction.hash,
                data=_notification_data(request),
                raw_body=raw,
                headers=request.headers,
            )
        except GatewayCapabilityError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return _rendered(result)


@method_decorator(csrf_exempt, name="dispatch")
class PaystackWebhookView(APIView):
    """Handle Paystack webhook events.

    The event's `reference` is the transaction hash we sent at initialize
    time. Only transactions on a Paystack gateway are accepted; the event is
    then handed to the notification handler, which validates the signature
    and checks the charged amount through the Paystack adapter.
    """

    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_scope = "payments_webhook"
    throttle_classes = [ScopedRateThrottle]

    @extend_schema(
        tags=["Payments Endpoints"],
        summary="Paystack webhook handler",
        request=inline_serializer(
            name="PaystackWebhookPayload",
            fields={
                "event": rf_serializers.CharField(),
                "data": rf_serializers.JSONField(),
            },
        ),
        responses={
            200: inline_serializer(name="WebhookProcessed", fields={"status": rf_serializers.CharField()}),
            401: inline_serializer(name="WebhookAuthError", fields={"detail": rf_serializers.CharField()}),
            404: inline_serializer(name="WebhookNotFound", fields={"detail": rf_serializers.CharField()}),
        },
    )
    def post(self, request, *args, **kwargs):
        raw = request.body or b""
        try:
            event = json.loads(raw.decode("utf-8"))
        except ValueError:
            logger.warning(
                "payments_webhook_invalid_payload",
                extra={"remote_addr": request.META.get("REMOTE_ADDR"), "path": request.path},
            )
            return Response({"detail": "Invalid payload"}, status=status.HTTP_400_BAD_REQUEST)

        # Optional: IP whitelist for production hardening
        ips = getattr(settings, "PAYSTACK_WEBHOOK_IPS", [])
        remote_ip = request.META.get("REMOTE_ADDR")
        if ips and remote_ip not in ips:
            logger.warning("payments_webhook_forbidden_ip", extra={"remote_addr": remote_ip, "allowed": ips})
            return Response({"detail": "Forbidden"}, status=status.HTTP_403_FORBIDDEN)

        ref = (event.get("data") or {}).get("reference") or ""
        if not ref:
            logger.warning("payments_webhook_missing_reference", extra={"remote_addr": remote_ip})
            return Response({"detail": "Missing reference"}, status=status.HTTP_400_BAD_REQUEST)

        # Only transactions settled through Paystack are addressable here.
        transaction = get_transaction_by_hash(ref)
        if transaction is None or transaction.gateway.handle != PaystackGatewayAdapter.handle:
            logger.warning(
                "payments_webhook_transaction_not_found",
                extra={"remote_addr": remote_ip, "gateway": transaction.gateway.handle if transaction else None},
            )
            return Response({"detail": "Transaction not found"}, status=status.HTTP_404_NOT_FOUND)

        try:
            result = accept_notification(transaction.hash, data=event, raw_body=raw, headers=request.headers)
        except TransactionNotFound:
            return Response({"detail": "Transaction not found"}, status=status.HTTP_404_NOT_FOUND)
        except GatewayCapabilityError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return _rendered(result)
