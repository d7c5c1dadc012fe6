"""Offline adapter for development and tests.

Authorize and purchase succeed when the card number is all digits and ends in
an even digit; anything else is declined. Capture and refund succeed whenever
the original gateway reference is present.
"""

import uuid

from common.choices import GatewayAction

from payments.gateways.base import BaseGatewayAdapter, GatewayRequest, GatewayResponse
from payments.gateways.registry import register_adapter


@register_adapter
class DummyGatewayAdapter(BaseGatewayAdapter):
    handle = "dummy"
    name = "Dummy"

    def supports_authorize(self) -> bool:
        return True

    def supports_purchase(self) -> bool:
        return True

    def supports_capture(self) -> bool:
        return True

    def supports_refund(self) -> bool:
        return True

    def build_data(self, request: GatewayRequest):
        params = request.params
        data = {
            "amount": str(params.get("amount")),
            "currency": params.get("currency"),
            "transaction_id": params.get("transaction_id"),
        }
        if request.action in (GatewayAction.AUTHORIZE, GatewayAction.PURCHASE):
            card = params.get("card")
            data["card_number"] = card.number if card is not None else ""
        else:
            data["transaction_reference"] = request.transaction_reference
        return data

    def send_data(self, request: GatewayRequest, data) -> GatewayResponse:
        if request.action in (GatewayAction.AUTHORIZE, GatewayAction.PURCHASE):
            number = str(data.get("card_number") or "")
            approved = number.isdigit() and int(number[-1]) % 2 == 0
        else:
            approved = bool(data.get("transaction_reference"))
        return GatewayResponse(
            successful=approved,
            code="00" if approved else "05",
            message="Success" if approved else "Failure",
            transaction_reference=uuid.uuid4().hex if approved else "",
            data={"approved": approved, **{k: v for k, v in data.items() if k != "card_number"}},
        )
