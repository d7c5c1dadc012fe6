import pytest
from common.choices import GatewayAction
from django.dispatch import Signal

from payments.gateways import (
    BaseGatewayAdapter,
    GatewayResponse,
    NotificationRequest,
    register_adapter,
)


class FakeNotification(NotificationRequest):
    def is_valid(self) -> bool:
        return self.headers.get("x-fake-signature") == "good"

    @property
    def transaction_status(self) -> str:
        return self.data.get("status", "pending")

    @property
    def message(self) -> str:
        return self.data.get("message", "")


@register_adapter
class FakeGatewayAdapter(BaseGatewayAdapter):
    """Scriptable adapter; configure through the class attributes and inspect `calls`."""

    handle = "fake"
    name = "Fake"

    capabilities = set()
    notify = False
    force_reference = False
    self_submit = False
    responses = []
    calls = []

    @classmethod
    def reset(cls):
        cls.capabilities = {
            GatewayAction.AUTHORIZE,
            GatewayAction.PURCHASE,
            GatewayAction.CAPTURE,
            GatewayAction.REFUND,
            GatewayAction.COMPLETE_AUTHORIZE,
            GatewayAction.COMPLETE_PURCHASE,
            GatewayAction.ACCEPT_NOTIFICATION,
        }
        cls.notify = False
        cls.force_reference = False
        cls.self_submit = False
        cls.responses = []
        cls.calls = []

    def supports_authorize(self):
        return GatewayAction.AUTHORIZE in self.capabilities

    def supports_purchase(self):
        return GatewayAction.PURCHASE in self.capabilities

    def supports_capture(self):
        return GatewayAction.CAPTURE in self.capabilities

    def supports_refund(self):
        return GatewayAction.REFUND in self.capabilities

    def supports_complete_authorize(self):
        return GatewayAction.COMPLETE_AUTHORIZE in self.capabilities

    def supports_complete_purchase(self):
        return GatewayAction.COMPLETE_PURCHASE in self.capabilities

    def supports_accept_notification(self):
        return GatewayAction.ACCEPT_NOTIFICATION in self.capabilities

    def uses_notify_url(self):
        return self.notify

    def forces_original_reference_on_complete(self):
        return self.force_reference

    def requires_self_submit_redirect(self):
        return self.self_submit

    def build_data(self, request):
        return {
            "action": request.action.value,
            "amount": str(request.params.get("amount")),
            "reference": request.transaction_reference,
        }

    def send_data(self, request, data):
        type(self).calls.append({"action": request.action.value, "data": data, "params": request.params})
        if not self.responses:
            return GatewayResponse(successful=True, code="00", message="Approved", transaction_reference="gw-ok")
        response = type(self).responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def accept_notification(self, data, raw_body=b"", headers=None):
        return FakeNotification(self, data, raw_body=raw_body, headers=headers)


@pytest.fixture(autouse=True)
def fake_adapter():
    FakeGatewayAdapter.reset()
    yield FakeGatewayAdapter
    FakeGatewayAdapter.reset()


@pytest.fixture
def connect():
    """Connect signal receivers for the duration of a test."""

    connected = []

    def _connect(signal: Signal, receiver):
        signal.connect(receiver, weak=False)
        connected.append((signal, receiver))
        return receiver

    yield _connect
    for signal, receiver in connected:
        signal.disconnect(receiver)
