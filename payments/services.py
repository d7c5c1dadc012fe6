"""Business logic for payments.

Drives the transaction lifecycle against the order's gateway adapter:
purchase/authorize, capture and refund, completion after an off-site
redirect, and asynchronous provider notifications. Every operation records
its outcome on a `Transaction` before reporting back, and returns a
`PaymentResult` rather than writing to the HTTP response.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, List, Mapping, Optional

import sentry_sdk
from common.choices import (
    GatewayAction,
    NotificationStatus,
    PaymentType,
    RedirectMethod,
    TransactionStatus,
    TransactionType,
)
from django.conf import settings
from django.core.exceptions import ValidationError
from django.urls import reverse
from orders.models import Order
from orders.services import mark_as_complete, save_with_return_url, stamp_date_paid, update_order_paid_total

from payments import signals
from payments.builders import absolute_url, build_payment_request, complete_payment_url
from payments.gateways import CreditCard, GatewayRequest, GatewayResponse, Item
from payments.models import Transaction
from payments.rendering import render_post_redirect, render_return_page
from payments.results import PaymentResult
from payments.selectors import get_transaction_by_hash

# Use a dedicated payments logger to align with production logging config
logger = logging.getLogger("shopfront.payments")

COMPLETE_ACTIONS = {
    TransactionType.AUTHORIZE: TransactionType.COMPLETE_AUTHORIZE,
    TransactionType.PURCHASE: TransactionType.COMPLETE_PURCHASE,
}

VETOED_MESSAGE = "Gateway request was cancelled."


class TransactionSaveError(Exception):
    """A transaction failed validation. The payment flow must stop."""


class GatewayCapabilityError(Exception):
    """The gateway cannot perform an action the flow has already committed to."""


class TransactionNotFound(Exception):
    """No transaction matches the hash a provider called back with."""


def save_transaction(transaction: Transaction) -> bool:
    """Validate and persist `transaction`.

    Updates to an existing row are conditional on the status it was loaded
    with, so two requests settling the same transaction cannot both write.
    Returns False when the other request won; the instance then holds the
    stored state.
    """

    try:
        transaction.full_clean()
    except ValidationError as exc:
        raise TransactionSaveError("Error saving transaction: " + ", ".join(exc.messages)) from exc

    previous = transaction.persisted_status
    if transaction.pk is None or previous is None:
        transaction.save()
        return True
    if transaction.save_if_status(previous):
        return True
    logger.info(
        "payments_transaction_already_settled",
        extra={"transaction_id": transaction.id, "status": transaction.status},
    )
    return False


def _payment_rate(currency: str, payment_currency: str) -> Decimal:
    if currency == payment_currency:
        return Decimal("1")
    rates = getattr(settings, "PAYMENTS_CURRENCY_RATES", {}) or {}
    base = Decimal(str(rates.get(currency, 1)))
    target = Decimal(str(rates.get(payment_currency, 1)))
    return (target / base).quantize(Decimal("0.000001"), rounding=ROUND_HALF_UP)


def create_transaction(*, order: Order, transaction_type: str, parent: Optional[Transaction] = None) -> Transaction:
    """Create and persist a `pending` transaction.

    Root transactions take the order's outstanding balance; children copy the
    gateway and every financial figure from their parent.
    """

    if parent is not None:
        transaction = Transaction(
            order=order,
            parent=parent,
            gateway_id=parent.gateway_id,
            type=transaction_type,
            amount=parent.amount,
            currency=parent.currency,
            payment_amount=parent.payment_amount,
            payment_currency=parent.payment_currency,
            payment_rate=parent.payment_rate,
        )
    else:
        amount = order.outstanding_balance
        payment_currency = order.get_payment_currency()
        rate = _payment_rate(order.currency.upper(), payment_currency)
        transaction = Transaction(
            order=order,
            gateway=order.gateway,
            type=transaction_type,
            amount=amount,
            currency=order.currency,
            payment_amount=(amount * rate).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
            payment_currency=payment_currency,
            payment_rate=rate,
        )
    save_transaction(transaction)
    return transaction


def create_card(order: Order, form: Mapping[str, Any], adapter=None) -> CreditCard:
    """Card data for the gateway: form fields plus billing/shipping address."""

    card = CreditCard()
    adapter = adapter or order.gateway.get_adapter()
    adapter.populate_card(card, form)

    billing = order.billing_address
    if billing is not None:
        # Top level names follow the billing names.
        card.first_name = billing.first_name
        card.last_name = billing.last_name
        card.billing_first_name = billing.first_name
        card.billing_last_name = billing.last_name
        card.billing_address1 = billing.address1
        card.billing_address2 = billing.address2
        card.billing_city = billing.city
        card.billing_postcode = billing.zip_code
        card.billing_country = billing.country_iso
        card.billing_state = billing.state_value
        card.billing_phone = billing.phone
        card.billing_company = billing.business_name
        card.company = billing.business_name

    shipping = order.shipping_address
    if shipping is not None:
        card.shipping_first_name = shipping.first_name
        card.shipping_last_name = shipping.last_name
        card.shipping_address1 = shipping.address1
        card.shipping_address2 = shipping.address2
        card.shipping_city = shipping.city
        card.shipping_postcode = shipping.zip_code
        card.shipping_country = shipping.country_iso
        card.shipping_state = shipping.state_value
        card.shipping_phone = shipping.phone
        card.shipping_company = shipping.business_name

    card.email = order.email
    return card


def create_item_bag(adapter, order: Order) -> List[Item]:
    items = adapter.create_item_bag(order)
    for _receiver, replacement in signals.after_create_item_bag.send(sender=Transaction, items=items, order=order):
        if replacement is not None:
            items = replacement
    return items


def process_payment(*, order: Order, form: Mapping[str, Any], client_ip: Optional[str] = None) -> PaymentResult:
    """Take payment for the order's outstanding balance.

    Already-paid orders (including zero totals) complete immediately without
    contacting the gateway.
    """

    if order.is_paid:
        stamp_date_paid(order)
        mark_as_complete(order)
        logger.info("payments_order_already_paid", extra={"order_id": order.id})
        return PaymentResult.success()

    gateway = order.gateway
    if gateway is None:
        logger.warning("payments_order_without_gateway", extra={"order_id": order.id})
        return PaymentResult.failed("No payment gateway selected")

    adapter = gateway.get_adapter()
    if gateway.payment_type == PaymentType.PURCHASE:
        action = TransactionType.PURCHASE
    else:
        action = TransactionType.AUTHORIZE

    if not adapter.supports(action):
        logger.warning(
            "payments_gateway_capability_missing",
            extra={"order_id": order.id, "gateway": adapter.handle, "action": action.value},
        )
        return PaymentResult.failed(f"Gateway doesn't support {action.value}")

    transaction = create_transaction(order=order, transaction_type=action)

    card = create_card(order, form, adapter)
    item_bag = create_item_bag(adapter, order)

    request = adapter.create_request(action, build_payment_request(transaction, card, item_bag, client_ip=client_ip))

    # Let the adapter add anything else from the form, e.g. a token.
    adapter.populate_request(request, form)

    try:
        result = send_payment_request(order=order, request=request, transaction=transaction)
        if result.ok:
            update_order_paid_total(order)
    except Exception as e:
        logger.exception("payments_process_failed", extra={"order_id": order.id, "transaction_id": transaction.id})
        return PaymentResult.failed(str(e), transaction=transaction)
    return result


def _vetoed(request: GatewayRequest, transaction: Transaction) -> bool:
    """Ask `before_gateway_request_send` receivers; on a veto fail and save `transaction`.

    The failure message is the one a vetoing receiver left on the transaction,
    otherwise `VETOED_MESSAGE`.
    """

    message = transaction.message
    responses = signals.before_gateway_request_send.send(
        sender=Transaction, type=transaction.type, request=request, transaction=transaction
    )
    if not any(value is False for _receiver, value in responses):
        return False

    logger.info(
        "payments_request_vetoed",
        extra={"order_id": transaction.order_id, "transaction_id": transaction.id, "type": transaction.type},
    )
    transaction.status = TransactionStatus.FAILED
    if transaction.message == message:
        transaction.message = VETOED_MESSAGE
    save_transaction(transaction)
    return True


def send_request(request: GatewayRequest, transaction: Transaction) -> GatewayResponse:
    """One round trip to the provider.

    `before_send_payment_request` receivers may substitute the wire data.
    """

    data = request.get_data()
    modified = None
    for _receiver, value in signals.before_send_payment_request.send(
        sender=Transaction, request_data=data, request=request, transaction=transaction
    ):
        if value is not None:
            modified = value
    if modified is not None:
        return request.send_data(modified)
    return request.send_data(data)


def update_transaction(transaction: Transaction, response: GatewayResponse) -> None:
    if response.successful:
        transaction.status = TransactionStatus.SUCCESS
    elif response.redirect:
        transaction.status = TransactionStatus.REDIRECT
    else:
        transaction.status = TransactionStatus.FAILED

    transaction.response = response.data
    transaction.code = str(response.code or "")
    transaction.reference = response.transaction_reference or transaction.reference
    transaction.message = response.message or ""
    save_transaction(transaction)


def _redirect_result(response: GatewayResponse, transaction: Transaction) -> PaymentResult:
    if (response.redirect_method or RedirectMethod.GET).upper() == RedirectMethod.GET:
        return PaymentResult.redirect(response.redirect_url, transaction=transaction)
    template_name = getattr(settings, "PAYMENTS_GATEWAY_POST_REDIRECT_TEMPLATE", "")
    body = render_post_redirect(response, template_name=template_name, debug=False)
    return PaymentResult.render(body, transaction=transaction)


def send_payment_request(*, order: Order, request: GatewayRequest, transaction: Transaction) -> PaymentResult:
    """Send `request` and record the outcome on `transaction`.

    Redirect responses are reported as success-like results without waiting
    for settlement; that arrives later through completion or notification.
    """

    if not _vetoed(request, transaction):
        try:
            response = send_request(request, transaction)
            update_transaction(transaction, response)
            if response.redirect and transaction.status == TransactionStatus.REDIRECT:
                return _redirect_result(response, transaction)
        except TransactionSaveError:
            raise
        except Exception as e:
            logger.error(
                "payments_gateway_communication_error",
                extra={"order_id": order.id, "transaction_id": transaction.id, "error": str(e)},
            )
            sentry_sdk.capture_exception(e)
            transaction.status = TransactionStatus.FAILED
            transaction.message = str(e)
            save_transaction(transaction)

    if transaction.status == TransactionStatus.SUCCESS:
        return PaymentResult.success(transaction=transaction)
    return PaymentResult.failed(transaction.message, transaction=transaction)


def process_capture_or_refund(parent: Transaction, action: str) -> Transaction:
    """Follow up `parent` with a capture or refund child transaction.

    Always returns the child, whatever happened to it.
    """

    if action not in (TransactionType.CAPTURE, TransactionType.REFUND):
        raise ValueError(f"Wrong action: {action}")
    action = TransactionType(action)

    order = parent.order
    child = create_transaction(order=order, transaction_type=action, parent=parent)
    adapter = parent.gateway.get_adapter()

    # Capture and refund are run by operators; send them back to the admin.
    save_with_return_url(order, absolute_url(reverse("admin:orders_order_change", args=[order.pk])))

    try:
        if not adapter.supports(action):
            raise GatewayCapabilityError(f"Gateway doesn't support {action.value}")
        request = adapter.create_request(action, build_payment_request(child))
        request.transaction_reference = parent.reference

        if not _vetoed(request, child):
            response = send_request(request, child)
            update_transaction(child, response)
    except TransactionSaveError:
        raise
    except Exception as e:
        logger.error(
            "payments_follow_up_failed",
            extra={"order_id": order.id, "transaction_id": child.id, "action": action.value, "error": str(e)},
        )
        sentry_sdk.capture_exception(e)
        child.status = TransactionStatus.FAILED
        child.message = str(e)
        save_transaction(child)

    if action == TransactionType.CAPTURE and child.status == TransactionStatus.SUCCESS:
        update_order_paid_total(order)
    return child


def capture_transaction(transaction: Transaction) -> Transaction:
    signals.before_capture_transaction.send(sender=Transaction, transaction=transaction)
    child = process_capture_or_refund(transaction, TransactionType.CAPTURE)
    signals.after_capture_transaction.send(sender=Transaction, transaction=child)
    return child


def refund_transaction(transaction: Transaction) -> Transaction:
    signals.before_refund_transaction.send(sender=Transaction, transaction=transaction)
    child = process_capture_or_refund(transaction, TransactionType.REFUND)
    signals.after_refund_transaction.send(sender=Transaction, transaction=child)
    return child


def complete_payment(transaction: Transaction, *, client_ip: Optional[str] = None) -> PaymentResult:
    """Settle a redirect transaction once the customer is back from the provider.

    Transactions that are no longer `redirect` report their recorded outcome
    without contacting the gateway.
    """

    if transaction.status != TransactionStatus.REDIRECT:
        if transaction.status == TransactionStatus.SUCCESS:
            return PaymentResult.success(transaction=transaction)
        return PaymentResult.failed(transaction.message, transaction=transaction)

    order = transaction.order
    adapter = transaction.gateway.get_adapter()

    action = COMPLETE_ACTIONS.get(transaction.type)
    if action is None or not adapter.supports(action):
        message = f"Payment Gateway does not support: complete-{transaction.type}"
        logger.error("payments_complete_unsupported", extra={"transaction_id": transaction.id, "gateway": adapter.handle})
        raise GatewayCapabilityError(message)

    # Some gateways need the cart data again on completion.
    item_bag = create_item_bag(adapter, order)
    params = build_payment_request(transaction, None, item_bag, client_ip=client_ip)

    if adapter.forces_original_reference_on_complete():
        params["transaction_reference"] = transaction.reference

    # Completion is synchronous; no notifications for it.
    params.pop("notify_url", None)

    request = adapter.create_request(action, params)

    result = send_payment_request(order=order, request=request, transaction=transaction)

    if result.ok and transaction.status == TransactionStatus.SUCCESS:
        update_order_paid_total(order)

    if adapter.requires_self_submit_redirect():
        # The provider posted the customer here; hand back a page that returns
        # to this endpoint, which short-circuits now the transaction is settled.
        body = render_return_page(complete_payment_url(transaction), debug=False)
        return PaymentResult.render(body, transaction=transaction)

    return result


def accept_notification(
    transaction_hash: str,
    *,
    data: Optional[Mapping[str, Any]] = None,
    raw_body: bytes = b"",
    headers: Optional[Mapping[str, str]] = None,
) -> PaymentResult:
    """Handle a server-to-server notification for the transaction with `transaction_hash`.

    Always answers with the body the provider expects: a rejection for
    invalid notifications, otherwise a confirmation so it stops retrying.
    """

    transaction = get_transaction_by_hash(transaction_hash)
    if transaction is None:
        logger.warning("payments_notification_transaction_not_found", extra={"hash": (transaction_hash or "")[:8]})
        raise TransactionNotFound("Transaction not found")

    order = transaction.order
    adapter = transaction.gateway.get_adapter()
    if not adapter.supports(GatewayAction.ACCEPT_NOTIFICATION):
        logger.warning(
            "payments_notification_unsupported",
            extra={"transaction_id": transaction.id, "gateway": adapter.handle},
        )
        raise GatewayCapabilityError(f"Gateway {adapter.handle} does not accept notifications")

    request = adapter.accept_notification(data or {}, raw_body=raw_body, headers=headers or {})
    request.transaction_reference = transaction.reference
    request.expected_amount = transaction.payment_amount
    request.expected_currency = transaction.payment_currency
    response = request.send()

    if not request.is_valid():
        logger.error(
            "payments_notification_invalid",
            extra={"transaction_id": transaction.id, "gateway": adapter.handle, "data": request.get_data()},
        )
        sentry_sdk.capture_message("payments_notification_invalid", level="warning")
        reply = response.invalid(absolute_url(order.cancel_url), "Signature not valid - goodbye")
        return PaymentResult.render(
            reply.body, status_code=reply.status_code, content_type=reply.content_type, transaction=transaction
        )

    if transaction.is_terminal:
        logger.info(
            "payments_notification_already_settled",
            extra={"transaction_id": transaction.id, "status": transaction.status},
        )
    else:
        status = request.transaction_status
        if status == NotificationStatus.COMPLETED:
            transaction.status = TransactionStatus.SUCCESS
        elif status == NotificationStatus.FAILED:
            transaction.status = TransactionStatus.FAILED
        # Pending is recorded below but leaves the status alone.

        transaction.response = response.data
        transaction.code = str(response.code or "")
        transaction.reference = request.transaction_reference or transaction.reference
        transaction.message = request.message or ""
        if save_transaction(transaction) and transaction.status == TransactionStatus.SUCCESS:
            update_order_paid_total(order)

    logger.info(
        "payments_notification_confirmed",
        extra={"transaction_id": transaction.id, "status": transaction.status},
    )
    reply = response.confirm(complete_payment_url(transaction))
    return PaymentResult.render(
        reply.body, status_code=reply.status_code, content_type=reply.content_type, transaction=transaction
    )
