from decimal import Decimal

import pytest
from common.choices import GatewayAction
from orders.tests.factories import OrderFactory, UserFactory
from rest_framework.test import APIClient

from payments.gateways import GatewayResponse
from payments.models import Transaction
from payments.tests.factories import GatewayFactory, TransactionFactory

pytestmark = pytest.mark.django_db

BASE = "/api/v1/payments"


def client_for(user=None):
    client = APIClient()
    if user is not None:
        client.force_authenticate(user=user)
    return client


def test_health_endpoint():
    r = APIClient().get(f"{BASE}/health/")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_pay_requires_authentication():
    order = OrderFactory(gateway=GatewayFactory())
    r = APIClient().post(f"{BASE}/orders/{order.id}/pay/", {}, format="json")
    assert r.status_code in (401, 403)


def test_pay_other_users_order_is_not_found():
    order = OrderFactory(gateway=GatewayFactory())
    r = client_for(UserFactory()).post(f"{BASE}/orders/{order.id}/pay/", {}, format="json")
    assert r.status_code == 404
    assert r.json()["detail"] == "Order not found"


def test_pay_invalid_payload():
    order = OrderFactory(gateway=GatewayFactory())
    r = client_for(order.user).post(f"{BASE}/orders/{order.id}/pay/", {"number": "abcd"}, format="json")
    assert r.status_code == 400
    assert r.json()["detail"] == "Invalid payload"


def test_pay_expired_card_is_invalid():
    order = OrderFactory(gateway=GatewayFactory())
    r = client_for(order.user).post(
        f"{BASE}/orders/{order.id}/pay/", {"expiry_month": 1, "expiry_year": 2001}, format="json"
    )
    assert r.status_code == 400


def test_pay_success(fake_adapter):
    order = OrderFactory(gateway=GatewayFactory())

    r = client_for(order.user).post(f"{BASE}/orders/{order.id}/pay/", {"token": "tok_1"}, format="json")

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "success"
    assert body["transaction"]["status"] == "success"
    assert body["transaction"]["gateway"] == "fake"
    assert body["transaction"]["parent_hash"] is None
    assert fake_adapter.calls[0]["params"]["client_ip"] == "127.0.0.1"


def test_pay_redirect(fake_adapter):
    fake_adapter.responses = [GatewayResponse(redirect=True, redirect_url="https://pay.example/go")]
    order = OrderFactory(gateway=GatewayFactory())

    r = client_for(order.user).post(f"{BASE}/orders/{order.id}/pay/", {}, format="json")

    assert r.status_code == 200
    assert r.json()["status"] == "redirect"
    assert r.json()["redirect_url"] == "https://pay.example/go"


def test_pay_post_redirect_returns_html(fake_adapter):
    fake_adapter.responses = [
        GatewayResponse(redirect=True, redirect_url="https://pay.example/post", redirect_method="POST")
    ]
    order = OrderFactory(gateway=GatewayFactory())

    r = client_for(order.user).post(f"{BASE}/orders/{order.id}/pay/", {}, format="json")

    assert r.status_code == 200
    assert r["Content-Type"].startswith("text/html")
    assert b"https://pay.example/post" in r.content


def test_pay_failure_returns_400(fake_adapter):
    fake_adapter.responses = [GatewayResponse(successful=False, message="Insufficient funds")]
    order = OrderFactory(gateway=GatewayFactory())

    r = client_for(order.user).post(f"{BASE}/orders/{order.id}/pay/", {}, format="json")

    assert r.status_code == 400
    assert r.json()["detail"] == "Insufficient funds"


def test_order_transactions_lists_ledger():
    order = OrderFactory()
    TransactionFactory(order=order, type="purchase", status="success", amount=Decimal("40.00"))
    TransactionFactory(order=order, type="purchase", status="failed", amount=Decimal("60.00"))

    r = client_for(order.user).get(f"{BASE}/orders/{order.id}/transactions/")

    assert r.status_code == 200
    body = r.json()
    assert Decimal(body["total_paid"]) == Decimal("40.00")
    assert Decimal(body["total_authorized"]) == Decimal("40.00")
    assert [t["status"] for t in body["transactions"]] == ["success", "failed"]

    r = client_for(order.user).get(f"{BASE}/orders/{order.id}/transactions/?status=failed")
    assert [t["status"] for t in r.json()["transactions"]] == ["failed"]


def test_order_transactions_hidden_from_other_users():
    order = OrderFactory()
    r = client_for(UserFactory()).get(f"{BASE}/orders/{order.id}/transactions/")
    assert r.status_code == 404


def test_transaction_detail_owner_staff_and_stranger():
    tx = TransactionFactory()
    url = f"{BASE}/transactions/{tx.hash}/"

    assert client_for(tx.order.user).get(url).json()["hash"] == tx.hash
    assert client_for(UserFactory(is_staff=True)).get(url).status_code == 200
    assert client_for(UserFactory()).get(url).status_code == 404


def test_capture_requires_staff():
    tx = TransactionFactory(type="authorize")
    r = client_for(tx.order.user).post(f"{BASE}/transactions/{tx.hash}/capture/")
    assert r.status_code == 403


def test_capture_by_staff(fake_adapter):
    tx = TransactionFactory(type="authorize")

    r = client_for(UserFactory(is_staff=True)).post(f"{BASE}/transactions/{tx.hash}/capture/")

    assert r.status_code == 200
    assert r.json()["type"] == "capture"
    assert r.json()["parent_hash"] == tx.hash
    assert fake_adapter.calls[0]["action"] == "capture"


def test_capture_rejects_non_authorizations(fake_adapter):
    tx = TransactionFactory(type="purchase")

    r = client_for(UserFactory(is_staff=True)).post(f"{BASE}/transactions/{tx.hash}/capture/")

    assert r.status_code == 400
    assert r.json()["detail"] == "Transaction cannot be captured"
    assert fake_adapter.calls == []


def test_refund_failure_returns_child(fake_adapter):
    fake_adapter.responses = [GatewayResponse(successful=False, message="Refund declined")]
    tx = TransactionFactory(type="purchase")

    r = client_for(UserFactory(is_staff=True)).post(f"{BASE}/transactions/{tx.hash}/refund/")

    assert r.status_code == 400
    assert r.json()["detail"] == "Refund declined"
    assert r.json()["transaction"]["status"] == "failed"


def test_follow_up_unknown_transaction():
    r = client_for(UserFactory(is_staff=True)).post(f"{BASE}/transactions/{'0' * 32}/refund/")
    assert r.status_code == 404


def complete_url(tx):
    return f"{BASE}/complete/?transaction_id={tx.id}&hash={tx.hash}"


def test_complete_redirects_to_return_url(settings):
    settings.PAYMENTS_SITE_URL = "https://shop.example"
    tx = TransactionFactory(order=OrderFactory(gateway=GatewayFactory()), status="redirect")

    r = APIClient().get(complete_url(tx))

    assert r.status_code == 302
    assert r["Location"] == "https://shop.example/checkout/thanks/"
    tx.refresh_from_db()
    assert tx.status == "success"


def test_complete_accepts_provider_post(settings):
    tx = TransactionFactory(order=OrderFactory(gateway=GatewayFactory(), return_url=""), status="redirect")

    r = APIClient().post(complete_url(tx), {"PaRes": "x"})

    assert r.status_code == 200
    assert r.json() == {"status": "success", "order_id": tx.order_id}


def test_complete_failure_redirects_to_cancel_url(fake_adapter, settings):
    settings.PAYMENTS_SITE_URL = "https://shop.example"
    fake_adapter.responses = [GatewayResponse(successful=False, message="Cancelled")]
    tx = TransactionFactory(order=OrderFactory(gateway=GatewayFactory()), status="redirect")

    r = APIClient().get(complete_url(tx))

    assert r.status_code == 302
    assert r["Location"] == "https://shop.example/checkout/cancelled/"


def test_complete_with_wrong_hash_is_not_found():
    tx = TransactionFactory(status="redirect")
    r = APIClient().get(f"{BASE}/complete/?transaction_id={tx.id}&hash=wrong")
    assert r.status_code == 404


def test_notify_endpoint_acknowledges_valid_notification():
    tx = TransactionFactory(order=OrderFactory(gateway=GatewayFactory()), status="redirect")

    r = APIClient().post(
        f"{BASE}/notify/?transaction_id={tx.id}&hash={tx.hash}",
        {"status": "completed", "message": "Paid"},
        format="json",
        HTTP_X_FAKE_SIGNATURE="good",
    )

    assert r.status_code == 200
    assert r.content.startswith(b"Status=OK")
    tx.refresh_from_db()
    assert tx.status == "success"
    assert Transaction.objects.get(pk=tx.pk).message == "Paid"


def test_notify_endpoint_rejects_invalid_notification():
    tx = TransactionFactory(order=OrderFactory(gateway=GatewayFactory()), status="redirect")

    r = APIClient().post(
        f"{BASE}/notify/?transaction_id={tx.id}&hash={tx.hash}",
        {"status": "completed"},
        format="json",
    )

    assert r.status_code == 400
    assert r.content.startswith(b"Status=INVALID")


def test_notify_endpoint_unknown_transaction():
    r = APIClient().post(f"{BASE}/notify/?transaction_id=999&hash=nope", {}, format="json")
    assert r.status_code == 404


def test_notify_endpoint_gateway_without_notifications(fake_adapter):
    fake_adapter.capabilities.discard(GatewayAction.ACCEPT_NOTIFICATION)
    tx = TransactionFactory(order=OrderFactory(gateway=GatewayFactory()), status="redirect")

    r = APIClient().post(
        f"{BASE}/notify/?transaction_id={tx.id}&hash={tx.hash}",
        {"status": "completed"},
        format="json",
        HTTP_X_FAKE_SIGNATURE="good",
    )

    assert r.status_code == 400
    assert r.json()["detail"] == "Gateway fake does not accept notifications"
    tx.refresh_from_db()
    assert tx.status == "redirect"


def test_notify_endpoint_dummy_gateway_is_rejected():
    tx = TransactionFactory(order=OrderFactory(gateway=GatewayFactory(handle="dummy", name="Dummy")), status="redirect")

    r = APIClient().post(f"{BASE}/notify/?transaction_id={tx.id}&hash={tx.hash}", {}, format="json")

    assert r.status_code == 400
    assert "does not accept notifications" in r.json()["detail"]
