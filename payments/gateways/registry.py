"""Adapter registry keyed by handle.

`Gateway.handle` stores one of these handles; third-party adapters register
themselves with `@register_adapter` at import time.
"""

from typing import Dict, List, Type

from payments.gateways.base import BaseGatewayAdapter, GatewayError

_ADAPTERS: Dict[str, Type[BaseGatewayAdapter]] = {}


def register_adapter(cls: Type[BaseGatewayAdapter]) -> Type[BaseGatewayAdapter]:
    if not cls.handle:
        raise ValueError(f"{cls.__name__} must define a handle")
    _ADAPTERS[cls.handle] = cls
    return cls


def unregister_adapter(handle: str) -> None:
    _ADAPTERS.pop(handle, None)


def get_adapter_class(handle: str) -> Type[BaseGatewayAdapter]:
    try:
        return _ADAPTERS[handle]
    except KeyError:
        raise GatewayError(f"Unknown gateway adapter: {handle}") from None


def list_available_adapters() -> List[str]:
    return sorted(_ADAPTERS)
