"""Paystack adapter.

Purchases are off-site: `/transaction/initialize` returns an authorization
URL the customer is redirected to (GET). The customer comes back to the
complete-payment URL, where `/transaction/verify/<reference>` settles the
transaction. Paystack also posts signed `charge.*` webhooks, which are routed
into the notification handler.
"""

import hashlib
import hmac
import json
import logging
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

import httpx
from common.choices import Currency, GatewayAction, NotificationStatus
from django.conf import settings

from payments.gateways.base import (
    BaseGatewayAdapter,
    GatewayError,
    GatewayRequest,
    GatewayResponse,
    NotificationReply,
    NotificationRequest,
    NotificationResponse,
)
from payments.gateways.registry import register_adapter

logger = logging.getLogger("shopfront.payments")


def _to_minor_units(amount: Decimal, currency: str) -> int:
    """Convert a decimal amount in major units to minor units (integer).

    Every currency Paystack settles in uses 100 subunits; adjust here if a
    zero-decimal currency is ever added.
    """

    if amount is None:
        return 0
    code = (currency or Currency.NGN).upper()
    multipliers = {Currency.NGN: 100, Currency.GHS: 100, Currency.USD: 100, Currency.ZAR: 100, Currency.KES: 100}
    m = multipliers.get(code, 100)
    return int(Decimal(amount) * Decimal(m))


class PaystackNotificationResponse(NotificationResponse):
    def confirm(self, url: str, detail: str = "") -> NotificationReply:
        return NotificationReply(
            json.dumps({"status": "processed", "redirect_url": url}),
            content_type="application/json",
        )

    def invalid(self, url: str, detail: str = "") -> NotificationReply:
        return NotificationReply(
            json.dumps({"detail": detail or "Invalid signature", "redirect_url": url}),
            status_code=401,
            content_type="application/json",
        )


class PaystackNotification(NotificationRequest):
    """A `charge.*` webhook event, authenticated by HMAC-SHA512."""

    STATUS_MAP = {
        "charge.success": NotificationStatus.COMPLETED,
        "charge.failed": NotificationStatus.FAILED,
    }

    def is_valid(self) -> bool:
        signature = self.headers.get("x-paystack-signature") or self.headers.get("X-Paystack-Signature") or ""
        return validate_paystack_signature(self.raw_body, signature, self.adapter.secret_key)

    @property
    def event(self) -> Dict[str, Any]:
        return self.data.get("data") or {}

    @property
    def expected_kobo(self) -> Optional[int]:
        if self.expected_amount is None:
            return None
        return _to_minor_units(self.expected_amount, self.expected_currency)

    def amount_mismatch(self) -> bool:
        """True when a `charge.success` settles a different non-zero amount than expected."""

        if self.data.get("event") != "charge.success":
            return False
        amount = self.event.get("amount")
        expected = self.expected_kobo
        return bool(amount) and expected is not None and int(amount) != expected

    @property
    def transaction_status(self) -> str:
        if self.amount_mismatch():
            logger.error(
                "paystack_amount_mismatch",
                extra={
                    "reference": self.event.get("reference"),
                    "expected_kobo": self.expected_kobo,
                    "actual_kobo": self.event.get("amount"),
                },
            )
            return NotificationStatus.FAILED
        return self.STATUS_MAP.get(self.data.get("event"), NotificationStatus.PENDING)

    @property
    def message(self) -> str:
        if self.amount_mismatch():
            return "Amount mismatch"
        return self.event.get("gateway_response") or self.data.get("event") or ""

    def send(self) -> NotificationResponse:
        return PaystackNotificationResponse(data=self.data, code=self.data.get("event") or "")


def validate_paystack_signature(raw_body: bytes, signature: str, secret_key: str) -> bool:
    """Validate webhook signature using the Paystack secret key (HMAC SHA512)."""

    if not signature or not secret_key:
        return False
    digest = hmac.new(secret_key.encode("utf-8"), msg=raw_body, digestmod=hashlib.sha512).hexdigest()
    return hmac.compare_digest(signature, digest)


@register_adapter
class PaystackGatewayAdapter(BaseGatewayAdapter):
    handle = "paystack"
    name = "Paystack"

    def supports_purchase(self) -> bool:
        return True

    def supports_complete_purchase(self) -> bool:
        return True

    def supports_refund(self) -> bool:
        return True

    def supports_accept_notification(self) -> bool:
        return True

    @property
    def secret_key(self) -> str:
        return self.config.get("secret_key") or getattr(settings, "PAYSTACK_SECRET_KEY", "")

    @property
    def base_url(self) -> str:
        return (self.config.get("base_url") or getattr(settings, "PAYSTACK_BASE_URL", "https://api.paystack.co")).rstrip(
            "/"
        )

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.secret_key}", "Content-Type": "application/json"}

    def build_data(self, request: GatewayRequest):
        params = request.params
        currency = (params.get("currency") or Currency.NGN).upper()
        if request.action == GatewayAction.PURCHASE:
            return {
                "email": params.get("receipt_email") or "",
                "amount": _to_minor_units(params.get("amount"), currency),
                "currency": currency,
                "reference": request.transaction_reference,
                "callback_url": params.get("return_url") or params.get("notify_url") or "",
                "metadata": {
                    "order_id": params.get("order_id"),
                    "transaction_id": params.get("transaction_id"),
                },
            }
        if request.action == GatewayAction.COMPLETE_PURCHASE:
            return {
                "reference": request.transaction_reference,
                "expected_amount": _to_minor_units(params.get("amount"), currency),
            }
        if request.action == GatewayAction.REFUND:
            return {
                "transaction": request.transaction_reference,
                "amount": _to_minor_units(params.get("amount"), currency),
            }
        raise GatewayError(f"Paystack cannot build {request.action.value}")

    def send_data(self, request: GatewayRequest, data) -> GatewayResponse:
        try:
            if request.action == GatewayAction.PURCHASE:
                r = httpx.post(
                    f"{self.base_url}/transaction/initialize", headers=self._headers(), json=data, timeout=self.timeout
                )
                return self._initialize_response(r, data)
            if request.action == GatewayAction.COMPLETE_PURCHASE:
                r = httpx.get(
                    f"{self.base_url}/transaction/verify/{data['reference']}",
                    headers=self._headers(),
                    timeout=self.timeout,
                )
                return self._verify_response(r, data)
            r = httpx.post(f"{self.base_url}/refund", headers=self._headers(), json=data, timeout=self.timeout)
            return self._refund_response(r)
        except httpx.HTTPError as exc:
            raise GatewayError(f"Paystack request failed: {exc}") from exc

    def _initialize_response(self, r, data) -> GatewayResponse:
        body = r.json()
        payload = body.get("data") or {}
        if r.status_code != 200 or not body.get("status"):
            logger.error(
                "paystack_initialize_failed",
                extra={"code": r.status_code, "reference": data.get("reference"), "currency": data.get("currency")},
            )
            return GatewayResponse(code=str(r.status_code), message=body.get("message") or "", data=body)
        return GatewayResponse(
            redirect=True,
            code=payload.get("access_code") or "",
            message=body.get("message") or "",
            transaction_reference=payload.get("reference") or data.get("reference") or "",
            data=body,
            redirect_url=payload.get("authorization_url") or "",
        )

    def _verify_response(self, r, data) -> GatewayResponse:
        body = r.json()
        payload = body.get("data") or {}
        status = payload.get("status") or ""
        successful = r.status_code == 200 and bool(body.get("status")) and status == "success"
        message = payload.get("gateway_response") or body.get("message") or ""
        amount = payload.get("amount")
        expected = data.get("expected_amount")
        if successful and amount and expected and int(amount) != int(expected):
            logger.error(
                "paystack_amount_mismatch",
                extra={"reference": data.get("reference"), "expected_kobo": expected, "actual_kobo": amount},
            )
            successful = False
            message = "Amount mismatch"
        return GatewayResponse(
            successful=successful,
            code=status or str(r.status_code),
            message=message,
            transaction_reference=payload.get("reference") or data.get("reference") or "",
            data=body,
        )

    def _refund_response(self, r) -> GatewayResponse:
        body = r.json()
        payload = body.get("data") or {}
        successful = r.status_code in (200, 201) and bool(body.get("status"))
        return GatewayResponse(
            successful=successful,
            code=str(payload.get("status") or r.status_code),
            message=body.get("message") or "",
            transaction_reference=str(payload.get("id") or ""),
            data=body,
        )

    def accept_notification(
        self,
        data: Mapping[str, Any],
        raw_body: bytes = b"",
        headers: Optional[Mapping[str, str]] = None,
    ) -> NotificationRequest:
        return PaystackNotification(self, data, raw_body=raw_body, headers=headers)
