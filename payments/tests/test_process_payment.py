from decimal import Decimal

import pytest
from common.choices import GatewayAction
from orders.tests.factories import AddressFactory, OrderFactory, OrderItemFactory, StateFactory

from payments import signals
from payments.gateways import GatewayError, GatewayResponse, Item
from payments.models import Transaction
from payments.services import VETOED_MESSAGE, process_payment
from payments.tests.factories import GatewayFactory

pytestmark = pytest.mark.django_db


def make_order(**kwargs):
    kwargs.setdefault("gateway", GatewayFactory())
    return OrderFactory(**kwargs)


def test_zero_total_order_completes_without_gateway_call(fake_adapter):
    order = make_order(total_price=Decimal("0.00"))

    result = process_payment(order=order, form={})

    assert result.kind == "success"
    order.refresh_from_db()
    assert order.is_completed is True
    assert order.date_paid is not None
    assert order.date_ordered is not None
    assert Transaction.objects.count() == 0
    assert fake_adapter.calls == []


def test_order_without_gateway_fails():
    order = OrderFactory(gateway=None)

    result = process_payment(order=order, form={})

    assert result.kind == "failed"
    assert result.message == "No payment gateway selected"
    assert Transaction.objects.count() == 0


def test_unsupported_authorize_fails_before_creating_transaction(fake_adapter):
    fake_adapter.capabilities.discard(GatewayAction.AUTHORIZE)
    order = make_order(gateway=GatewayFactory(payment_type="authorize"))

    result = process_payment(order=order, form={})

    assert result.kind == "failed"
    assert result.message == "Gateway doesn't support authorize"
    assert Transaction.objects.count() == 0
    assert fake_adapter.calls == []


def test_successful_purchase_settles_order(fake_adapter):
    order = make_order()

    result = process_payment(order=order, form={})

    assert result.ok and result.kind == "success"
    tx = Transaction.objects.get(order=order)
    assert tx.type == "purchase"
    assert tx.status == "success"
    assert tx.reference == "gw-ok"
    assert tx.code == "00"
    assert tx.amount == Decimal("100.00")
    assert tx.payment_rate == Decimal("1")
    order.refresh_from_db()
    assert order.total_paid == Decimal("100.00")
    assert order.is_completed is True
    assert fake_adapter.calls[0]["action"] == "purchase"
    assert fake_adapter.calls[0]["params"]["amount"] == Decimal("100.00")


def test_authorize_gateway_records_authorization_but_not_payment(fake_adapter):
    order = make_order(gateway=GatewayFactory(payment_type="authorize"))

    result = process_payment(order=order, form={})

    assert result.kind == "success"
    tx = Transaction.objects.get(order=order)
    assert tx.type == "authorize"
    order.refresh_from_db()
    assert order.total_paid == Decimal("0.00")
    assert order.total_authorized == Decimal("100.00")
    assert order.is_completed is False


def test_only_outstanding_balance_is_charged(fake_adapter):
    order = make_order(total_price=Decimal("100.00"), total_paid=Decimal("40.00"))

    process_payment(order=order, form={})

    tx = Transaction.objects.get(order=order)
    assert tx.amount == Decimal("60.00")


def test_payment_currency_conversion(fake_adapter, settings):
    settings.PAYMENTS_CURRENCY_RATES = {"NGN": Decimal("1"), "USD": Decimal("0.000650")}
    order = make_order(payment_currency="USD", total_price=Decimal("10000.00"))

    process_payment(order=order, form={})

    tx = Transaction.objects.get(order=order)
    assert tx.currency == "NGN"
    assert tx.payment_currency == "USD"
    assert tx.payment_rate == Decimal("0.000650")
    assert tx.payment_amount == Decimal("6.50")
    assert fake_adapter.calls[0]["params"]["currency"] == "USD"


def test_gateway_exception_marks_transaction_failed(fake_adapter):
    fake_adapter.responses = [GatewayError("Connection timed out")]
    order = make_order()

    result = process_payment(order=order, form={})

    assert result.kind == "failed"
    assert result.message == "Connection timed out"
    tx = Transaction.objects.get(order=order)
    assert tx.status == "failed"
    assert tx.message == "Connection timed out"
    order.refresh_from_db()
    assert order.is_completed is False


def test_declined_purchase_reports_gateway_message(fake_adapter):
    fake_adapter.responses = [GatewayResponse(successful=False, code="05", message="Do not honour")]
    order = make_order()

    result = process_payment(order=order, form={})

    assert result.kind == "failed"
    assert result.message == "Do not honour"
    tx = Transaction.objects.get(order=order)
    assert (tx.status, tx.code) == ("failed", "05")


def test_get_redirect_returns_offsite_url(fake_adapter):
    fake_adapter.responses = [
        GatewayResponse(redirect=True, redirect_url="https://pay.example/checkout/abc", transaction_reference="r-1")
    ]
    order = make_order()

    result = process_payment(order=order, form={})

    assert result.kind == "redirect"
    assert result.redirect_url == "https://pay.example/checkout/abc"
    tx = Transaction.objects.get(order=order)
    assert tx.status == "redirect"
    assert tx.reference == "r-1"
    order.refresh_from_db()
    assert order.is_completed is False


def test_post_redirect_renders_self_submitting_form(fake_adapter):
    fake_adapter.responses = [
        GatewayResponse(
            redirect=True,
            redirect_url="https://pay.example/post",
            redirect_method="POST",
            redirect_data={"PaReq": "a<b"},
        )
    ]
    order = make_order()

    result = process_payment(order=order, form={})

    assert result.kind == "render"
    assert 'action="https://pay.example/post"' in result.body
    assert 'name="PaReq" value="a&lt;b"' in result.body
    assert "<pre>" not in result.body


def test_post_redirect_uses_operator_template(fake_adapter, settings):
    settings.PAYMENTS_GATEWAY_POST_REDIRECT_TEMPLATE = "payments/post_redirect.html"
    fake_adapter.responses = [
        GatewayResponse(
            redirect=True,
            redirect_url="https://pay.example/post",
            redirect_method="POST",
            redirect_data={"MD": "123"},
        )
    ]
    order = make_order()

    result = process_payment(order=order, form={})

    assert result.kind == "render"
    assert "https://pay.example/post" in result.body
    assert 'name="MD" value="123"' in result.body
    # Provider-facing bodies never include debug output.
    assert "<pre>" not in result.body


def test_veto_cancels_send_and_fails_transaction(fake_adapter, connect):
    seen = []

    def veto(sender, **kwargs):
        seen.append(kwargs["type"])
        return False

    connect(signals.before_gateway_request_send, veto)
    order = make_order()

    result = process_payment(order=order, form={})

    assert result.kind == "failed"
    assert result.message == VETOED_MESSAGE
    assert seen == ["purchase"]
    assert fake_adapter.calls == []
    tx = Transaction.objects.get(order=order)
    assert tx.status == "failed"


def test_receiver_returning_none_does_not_veto(fake_adapter, connect):
    connect(signals.before_gateway_request_send, lambda sender, **kwargs: None)
    order = make_order()

    result = process_payment(order=order, form={})

    assert result.kind == "success"
    assert len(fake_adapter.calls) == 1


def test_request_data_can_be_replaced(fake_adapter, connect):
    connect(signals.before_send_payment_request, lambda sender, **kwargs: {"replaced": True})
    order = make_order()

    process_payment(order=order, form={})

    assert fake_adapter.calls[0]["data"] == {"replaced": True}


def test_card_and_token_are_passed_to_adapter(fake_adapter):
    state = StateFactory()
    billing = AddressFactory(country=state.country, state=state, business_name="AV Thrift")
    shipping = AddressFactory(first_name="Chi", state=None, state_text="Somewhere")
    order = make_order(billing_address=billing, shipping_address=shipping)

    process_payment(
        order=order,
        form={"number": "4242424242424242", "expiry_month": 12, "expiry_year": 2099, "cvv": "123", "token": "tok_1"},
    )

    params = fake_adapter.calls[0]["params"]
    card = params["card"]
    assert card.number == "4242424242424242"
    assert card.first_name == "Ada"
    assert card.billing_state == "LA"
    assert card.billing_country == "NG"
    assert card.billing_company == "AV Thrift"
    assert card.shipping_first_name == "Chi"
    assert card.shipping_state == "Somewhere"
    assert card.email == order.email
    assert params["token"] == "tok_1"


def test_item_bag_built_from_order_items_and_replaceable(fake_adapter, connect):
    order = make_order()
    OrderItemFactory(order=order, sku="JKT-1", quantity=2, unit_price=Decimal("50.00"))

    process_payment(order=order, form={})
    items = fake_adapter.calls[0]["params"]["items"]
    assert [(i.name, i.quantity, i.price) for i in items] == [("JKT-1", 2, Decimal("50.00"))]

    connect(signals.after_create_item_bag, lambda sender, **kwargs: [Item(name="bundle")])
    other = make_order()
    OrderItemFactory(order=other)
    process_payment(order=other, form={})
    assert [i.name for i in fake_adapter.calls[1]["params"]["items"]] == ["bundle"]
