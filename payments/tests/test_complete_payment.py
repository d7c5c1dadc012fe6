from decimal import Decimal

import pytest
from common.choices import GatewayAction
from orders.tests.factories import OrderFactory

from payments import signals
from payments.gateways import GatewayResponse
from payments.services import VETOED_MESSAGE, GatewayCapabilityError, complete_payment
from payments.tests.factories import GatewayFactory, TransactionFactory

pytestmark = pytest.mark.django_db


def make_redirect(**kwargs):
    order = OrderFactory(gateway=GatewayFactory(), total_price=Decimal("100.00"))
    kwargs.setdefault("status", "redirect")
    kwargs.setdefault("reference", "offsite-1")
    return TransactionFactory(order=order, **kwargs)


def test_completes_redirect_transaction(fake_adapter):
    tx = make_redirect()

    result = complete_payment(tx)

    assert result.kind == "success"
    tx.refresh_from_db()
    assert tx.status == "success"
    assert tx.reference == "gw-ok"
    call = fake_adapter.calls[0]
    assert call["action"] == "complete-purchase"
    assert "notify_url" not in call["params"]
    assert call["params"]["transaction_reference"] == tx.hash
    tx.order.refresh_from_db()
    assert tx.order.total_paid == Decimal("100.00")
    assert tx.order.is_completed is True


def test_second_completion_is_a_no_op(fake_adapter):
    tx = make_redirect()

    first = complete_payment(tx)
    second = complete_payment(tx)

    assert first.kind == second.kind == "success"
    assert len(fake_adapter.calls) == 1


def test_settled_failed_transaction_reports_failure(fake_adapter):
    tx = make_redirect(status="failed", message="Declined")

    result = complete_payment(tx)

    assert result.kind == "failed"
    assert result.message == "Declined"
    assert fake_adapter.calls == []


def test_complete_authorize_does_not_mark_paid(fake_adapter):
    tx = make_redirect(type="authorize")

    complete_payment(tx)

    assert fake_adapter.calls[0]["action"] == "complete-authorize"
    tx.order.refresh_from_db()
    assert tx.order.total_paid == Decimal("0.00")
    assert tx.order.total_authorized == Decimal("100.00")


def test_unsupported_completion_raises(fake_adapter):
    fake_adapter.capabilities.discard(GatewayAction.COMPLETE_PURCHASE)
    tx = make_redirect()

    with pytest.raises(GatewayCapabilityError, match="Payment Gateway does not support: complete-purchase"):
        complete_payment(tx)
    assert fake_adapter.calls == []


def test_original_reference_is_replayed_when_required(fake_adapter):
    fake_adapter.force_reference = True
    tx = make_redirect(reference="orig-ref")

    complete_payment(tx)

    assert fake_adapter.calls[0]["params"]["transaction_reference"] == "orig-ref"


def test_failed_completion_keeps_existing_reference(fake_adapter):
    fake_adapter.responses = [GatewayResponse(successful=False, message="Cancelled by customer")]
    tx = make_redirect(reference="offsite-9")

    result = complete_payment(tx)

    assert result.kind == "failed"
    tx.refresh_from_db()
    assert tx.status == "failed"
    assert tx.reference == "offsite-9"


def test_self_submit_gateway_gets_return_page(fake_adapter, settings):
    settings.PAYMENTS_SITE_URL = "https://shop.example"
    fake_adapter.self_submit = True
    tx = make_redirect()

    result = complete_payment(tx)

    assert result.kind == "render"
    assert "https://shop.example/api/v1/payments/complete/" in result.body
    assert tx.hash in result.body


def test_vetoed_completion_replaces_stale_message(fake_adapter, connect):
    connect(signals.before_gateway_request_send, lambda sender, **kwargs: False)
    tx = make_redirect(message="Authorization URL created")

    result = complete_payment(tx)

    assert result.kind == "failed"
    assert result.message == VETOED_MESSAGE
    assert fake_adapter.calls == []
    tx.refresh_from_db()
    assert (tx.status, tx.message) == ("failed", VETOED_MESSAGE)


def test_vetoing_receiver_can_set_the_message(fake_adapter, connect):
    def veto(sender, transaction, **kwargs):
        transaction.message = "Blocked by fraud screening"
        return False

    connect(signals.before_gateway_request_send, veto)
    tx = make_redirect(message="Authorization URL created")

    result = complete_payment(tx)

    assert result.message == "Blocked by fraud screening"
    tx.refresh_from_db()
    assert tx.message == "Blocked by fraud screening"
