"""Outcome of a payment operation.

Services never touch the HTTP response; they return a `PaymentResult` and the
view decides how to deliver it (JSON, a redirect, or a rendered body).
"""

from dataclasses import dataclass
from typing import Any

SUCCESS = "success"
REDIRECT = "redirect"
FAILED = "failed"
RENDER = "render"


@dataclass(frozen=True)
class PaymentResult:
    kind: str
    message: str = ""
    redirect_url: str = ""
    body: str = ""
    status_code: int = 200
    content_type: str = "text/html; charset=utf-8"
    transaction: Any = None

    @classmethod
    def success(cls, transaction=None) -> "PaymentResult":
        return cls(SUCCESS, transaction=transaction)

    @classmethod
    def redirect(cls, url: str, transaction=None) -> "PaymentResult":
        return cls(REDIRECT, redirect_url=url, transaction=transaction)

    @classmethod
    def failed(cls, message: str, transaction=None) -> "PaymentResult":
        return cls(FAILED, message=message or "", transaction=transaction)

    @classmethod
    def render(
        cls,
        body: str,
        *,
        status_code: int = 200,
        content_type: str = "text/html; charset=utf-8",
        transaction=None,
    ) -> "PaymentResult":
        return cls(RENDER, body=body, status_code=status_code, content_type=content_type, transaction=transaction)

    @property
    def ok(self) -> bool:
        """True for everything except a failure (redirects are not failures)."""

        return self.kind != FAILED

    @property
    def is_redirect(self) -> bool:
        return self.kind == REDIRECT

    @property
    def is_render(self) -> bool:
        return self.kind == RENDER
