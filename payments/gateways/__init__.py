"""Payment gateway adapters.

Importing this package registers the built-in adapters.
"""

from payments.gateways.base import (
    BaseGatewayAdapter,
    CreditCard,
    GatewayError,
    GatewayRequest,
    GatewayResponse,
    Item,
    NotificationReply,
    NotificationRequest,
    NotificationResponse,
    hidden_inputs,
)
from payments.gateways.registry import (
    get_adapter_class,
    list_available_adapters,
    register_adapter,
    unregister_adapter,
)

from payments.gateways import dummy, paystack  # noqa: E402,F401  isort:skip

__all__ = [
    "BaseGatewayAdapter",
    "CreditCard",
    "GatewayError",
    "GatewayRequest",
    "GatewayResponse",
    "Item",
    "NotificationReply",
    "NotificationRequest",
    "NotificationResponse",
    "get_adapter_class",
    "hidden_inputs",
    "list_available_adapters",
    "register_adapter",
    "unregister_adapter",
]
