"""Gateway-agnostic payment request parameters.

`build_payment_request` is the single place that decides what a gateway
adapter is told about a transaction: amounts, the correlation hash, and where
the customer (or the provider) should come back to.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from django.conf import settings
from django.urls import reverse

from payments import signals
from payments.gateways import CreditCard, Item
from payments.models import Transaction

IPV6_LOOPBACK = "::1"
IPV4_LOOPBACK = "127.0.0.1"


def absolute_url(path: str) -> str:
    if path.startswith(("http://", "https://")):
        return path
    base = getattr(settings, "PAYMENTS_SITE_URL", "").rstrip("/")
    return f"{base}/{path.lstrip('/')}"


def _callback_url(name: str, transaction: Transaction) -> str:
    query = urlencode({"transaction_id": transaction.id, "hash": transaction.hash})
    return f"{absolute_url(reverse(name))}?{query}"


def complete_payment_url(transaction: Transaction) -> str:
    return _callback_url("payments:complete-payment", transaction)


def accept_notification_url(transaction: Transaction) -> str:
    return _callback_url("payments:accept-notification", transaction)


def build_payment_request(
    transaction: Transaction,
    card: Optional[CreditCard] = None,
    item_bag: Optional[List[Item]] = None,
    *,
    client_ip: Optional[str] = None,
) -> Dict[str, Any]:
    """Assemble request params for `transaction`.

    Gateways that take server-to-server notifications get a `notify_url`
    pointing at the notification handler instead of a `return_url`; every
    other gateway gets the return URL in both keys. Receivers of the
    `build_payment_request` signal see the finished mapping and may change
    or replace it.
    """

    order = transaction.order
    adapter = transaction.gateway.get_adapter()

    params: Dict[str, Any] = {
        "amount": transaction.payment_amount,
        "currency": transaction.payment_currency,
        "transaction_id": transaction.id,
        "description": f"Order #{transaction.order_id}",
        "client_ip": client_ip or "",
        "transaction_reference": transaction.hash,
        "return_url": complete_payment_url(transaction),
        "cancel_url": absolute_url(order.cancel_url),
    }

    if adapter.uses_notify_url():
        params["notify_url"] = accept_notification_url(transaction)
        del params["return_url"]
    else:
        params["notify_url"] = params["return_url"]

    if params["client_ip"] == IPV6_LOOPBACK:
        params["client_ip"] = IPV4_LOOPBACK

    # Custom adapters may want the order itself.
    params["order"] = order
    params["order_id"] = order.id
    params["receipt_email"] = order.email

    if card:
        params["card"] = card
    if item_bag:
        params["items"] = item_bag

    for _receiver, replacement in signals.build_payment_request.send(
        sender=Transaction, params=params, transaction=transaction
    ):
        if replacement is not None:
            params = replacement
    return params
