"""Gateway adapter contract.

An adapter translates the generic request parameters built by
`payments.builders` into one provider's protocol. The payment services only
ever talk to the classes below; capability questions are answered by the
predicate methods and requests are created through `create_request`, never by
looking up methods by name.
"""

import json
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from common.choices import GatewayAction, RedirectMethod
from django.utils.html import format_html, format_html_join


class GatewayError(Exception):
    """The provider could not be reached or answered with something unusable."""


@dataclass
class CreditCard:
    number: str = ""
    expiry_month: Optional[int] = None
    expiry_year: Optional[int] = None
    cvv: str = ""
    first_name: str = ""
    last_name: str = ""
    company: str = ""
    email: str = ""
    billing_first_name: str = ""
    billing_last_name: str = ""
    billing_address1: str = ""
    billing_address2: str = ""
    billing_city: str = ""
    billing_postcode: str = ""
    billing_state: str = ""
    billing_country: str = ""
    billing_phone: str = ""
    billing_company: str = ""
    shipping_first_name: str = ""
    shipping_last_name: str = ""
    shipping_address1: str = ""
    shipping_address2: str = ""
    shipping_city: str = ""
    shipping_postcode: str = ""
    shipping_state: str = ""
    shipping_country: str = ""
    shipping_phone: str = ""
    shipping_company: str = ""

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Item:
    name: str
    description: str = ""
    quantity: int = 1
    price: Decimal = Decimal("0.00")


def hidden_inputs(data: Mapping[str, Any]):
    """Escaped `<input type="hidden">` markup for every key/value pair."""

    return format_html_join(
        "\n",
        '<input type="hidden" name="{}" value="{}" />',
        ((key, value) for key, value in data.items()),
    )


@dataclass
class GatewayResponse:
    """Normalised answer from one round trip to the provider."""

    successful: bool = False
    redirect: bool = False
    code: str = ""
    message: str = ""
    transaction_reference: str = ""
    data: Any = None
    redirect_url: str = ""
    redirect_method: str = RedirectMethod.GET
    redirect_data: Dict[str, Any] = field(default_factory=dict)

    def redirect_form(self) -> str:
        """Auto-submitting POST form used when no operator template is set."""

        return format_html(
            "<!DOCTYPE html>\n<html>\n<head>\n<title>Redirecting...</title>\n</head>\n"
            '<body onload="document.forms[0].submit();">\n'
            '<form action="{}" method="post">\n'
            "<p>Redirecting to payment page...</p>\n"
            "<p>{}\n"
            '<input type="submit" value="Continue" />\n</p>\n</form>\n</body>\n</html>',
            self.redirect_url,
            hidden_inputs(self.redirect_data),
        )


class GatewayRequest:
    """A request for one action, built by an adapter from generic params."""

    def __init__(self, adapter: "BaseGatewayAdapter", action: str, params: Mapping[str, Any]):
        self.adapter = adapter
        self.action = GatewayAction(action)
        self.params = dict(params)

    @property
    def transaction_reference(self) -> str:
        return self.params.get("transaction_reference") or ""

    @transaction_reference.setter
    def transaction_reference(self, value: str) -> None:
        self.params["transaction_reference"] = value

    def get_data(self) -> Any:
        return self.adapter.build_data(self)

    def send(self) -> GatewayResponse:
        return self.send_data(self.get_data())

    def send_data(self, data: Any) -> GatewayResponse:
        return self.adapter.send_data(self, data)


@dataclass
class NotificationReply:
    body: str
    status_code: int = 200
    content_type: str = "text/plain"


@dataclass
class NotificationResponse:
    """What the provider expects back after it has notified us.

    The default wire format is the `Status=...` key/value body used by
    server-to-server notification protocols; adapters override it as needed.
    """

    data: Any = None
    code: str = ""

    def confirm(self, url: str, detail: str = "") -> NotificationReply:
        return NotificationReply(f"Status=OK\r\nRedirectURL={url}\r\nStatusDetail={detail}")

    def invalid(self, url: str, detail: str = "") -> NotificationReply:
        return NotificationReply(f"Status=INVALID\r\nRedirectURL={url}\r\nStatusDetail={detail}", status_code=400)


class NotificationRequest:
    """An inbound server-to-server notification, parsed by the adapter."""

    def __init__(
        self,
        adapter: "BaseGatewayAdapter",
        data: Mapping[str, Any],
        raw_body: bytes = b"",
        headers: Optional[Mapping[str, str]] = None,
    ):
        self.adapter = adapter
        self.data = dict(data or {})
        self.raw_body = raw_body or b""
        self.headers = headers or {}
        self.transaction_reference = ""
        # What the notified transaction is expected to settle for.
        self.expected_amount: Optional[Decimal] = None
        self.expected_currency = ""

    def get_data(self) -> Dict[str, Any]:
        return self.data

    def is_valid(self) -> bool:
        raise NotImplementedError

    @property
    def transaction_status(self) -> str:
        raise NotImplementedError

    @property
    def message(self) -> str:
        return ""

    def send(self) -> NotificationResponse:
        return NotificationResponse(data=self.data)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<{self.__class__.__name__} {json.dumps(self.data, default=str)[:200]}>"


class BaseGatewayAdapter:
    """Base class every gateway adapter extends.

    Capabilities default to "not supported"; adapters switch on what their
    provider can do. The two quirk flags cover providers that need the
    original reference replayed on completion, and providers that post the
    customer back and must receive a self-submitting page rather than a
    redirect.
    """

    handle = ""
    name = ""

    def __init__(self, gateway=None, config: Optional[Mapping[str, Any]] = None, timeout: Optional[float] = None):
        self.gateway = gateway
        self.config = dict(config or {})
        self.timeout = timeout

    def supports_authorize(self) -> bool:
        return False

    def supports_purchase(self) -> bool:
        return False

    def supports_capture(self) -> bool:
        return False

    def supports_refund(self) -> bool:
        return False

    def supports_complete_authorize(self) -> bool:
        return False

    def supports_complete_purchase(self) -> bool:
        return False

    def supports_accept_notification(self) -> bool:
        return False

    def uses_notify_url(self) -> bool:
        return False

    def forces_original_reference_on_complete(self) -> bool:
        return False

    def requires_self_submit_redirect(self) -> bool:
        return False

    def supports(self, action: str) -> bool:
        predicates = {
            GatewayAction.AUTHORIZE: self.supports_authorize,
            GatewayAction.PURCHASE: self.supports_purchase,
            GatewayAction.CAPTURE: self.supports_capture,
            GatewayAction.REFUND: self.supports_refund,
            GatewayAction.COMPLETE_AUTHORIZE: self.supports_complete_authorize,
            GatewayAction.COMPLETE_PURCHASE: self.supports_complete_purchase,
            GatewayAction.ACCEPT_NOTIFICATION: self.supports_accept_notification,
        }
        try:
            return predicates[GatewayAction(action)]()
        except ValueError:
            return False

    def create_request(self, action: str, params: Mapping[str, Any]) -> GatewayRequest:
        action = GatewayAction(action)
        if action == GatewayAction.ACCEPT_NOTIFICATION:
            raise ValueError("Notifications are built with accept_notification()")
        if not self.supports(action):
            raise GatewayError(f"Gateway doesn't support {action.value}")
        return GatewayRequest(self, action, params)

    def authorize(self, params: Mapping[str, Any]) -> GatewayRequest:
        return self.create_request(GatewayAction.AUTHORIZE, params)

    def purchase(self, params: Mapping[str, Any]) -> GatewayRequest:
        return self.create_request(GatewayAction.PURCHASE, params)

    def capture(self, params: Mapping[str, Any]) -> GatewayRequest:
        return self.create_request(GatewayAction.CAPTURE, params)

    def refund(self, params: Mapping[str, Any]) -> GatewayRequest:
        return self.create_request(GatewayAction.REFUND, params)

    def complete_authorize(self, params: Mapping[str, Any]) -> GatewayRequest:
        return self.create_request(GatewayAction.COMPLETE_AUTHORIZE, params)

    def complete_purchase(self, params: Mapping[str, Any]) -> GatewayRequest:
        return self.create_request(GatewayAction.COMPLETE_PURCHASE, params)

    def accept_notification(
        self,
        data: Mapping[str, Any],
        raw_body: bytes = b"",
        headers: Optional[Mapping[str, str]] = None,
    ) -> NotificationRequest:
        raise GatewayError(f"Gateway {self.handle or self.__class__.__name__} does not accept notifications")

    def build_data(self, request: GatewayRequest) -> Any:
        raise NotImplementedError

    def send_data(self, request: GatewayRequest, data: Any) -> GatewayResponse:
        raise NotImplementedError

    def populate_card(self, card: CreditCard, form: Mapping[str, Any]) -> None:
        """Copy raw card fields from the submitted payment form."""

        form = form or {}
        card.first_name = form.get("first_name") or card.first_name
        card.last_name = form.get("last_name") or card.last_name
        card.number = form.get("number") or ""
        card.expiry_month = form.get("expiry_month")
        card.expiry_year = form.get("expiry_year")
        card.cvv = form.get("cvv") or ""

    def populate_request(self, request: GatewayRequest, form: Mapping[str, Any]) -> None:
        """Attach anything other than card data, e.g. a client-side token."""

        token = (form or {}).get("token")
        if token:
            request.params["token"] = token

    def create_item_bag(self, order) -> List[Item]:
        return [
            Item(
                name=item.sku or item.description,
                description=item.description,
                quantity=int(item.quantity),
                price=item.unit_price,
            )
            for item in order.items.all()
        ]
