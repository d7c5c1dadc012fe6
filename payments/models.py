"""Payment domain models.

`Gateway` is the operator-configured connection to a provider; `Transaction`
is one interaction with it. Transactions form a tree per order (captures and
refunds point at the authorize/purchase they follow up) and are the audit
trail for everything that happened to an order's money.
"""

import secrets
from decimal import Decimal

from common.choices import PaymentType, TransactionStatus, TransactionType
from common.models import TimeStampedModel
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models.base import DEFERRED
from django.utils import timezone

from payments.gateways import get_adapter_class, list_available_adapters


def generate_transaction_hash() -> str:
    return secrets.token_hex(16)


class Gateway(TimeStampedModel):
    """A configured payment gateway backed by a registered adapter."""

    name = models.CharField(max_length=100)
    handle = models.CharField(max_length=64, db_index=True)
    payment_type = models.CharField(max_length=16, choices=PaymentType.choices, default=PaymentType.PURCHASE)
    config = models.JSONField(default=dict, blank=True)
    is_enabled = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.name} ({self.handle})"

    def clean(self):
        super().clean()
        if self.handle not in list_available_adapters():
            raise ValidationError({"handle": f"Unknown gateway adapter: {self.handle}"})

    def get_adapter(self):
        config = self.config or {}
        timeout = config.get("timeout", getattr(settings, "PAYMENTS_GATEWAY_TIMEOUT", None))
        return get_adapter_class(self.handle)(gateway=self, config=config, timeout=timeout)


class Transaction(TimeStampedModel):
    """One gateway interaction attempt for an order.

    Created `pending` before any network call. Status only moves forward and
    the financial figures are frozen once the row exists; both rules are
    enforced in `clean()`, so always save through `full_clean()`.
    """

    TYPE_AUTHORIZE = TransactionType.AUTHORIZE
    TYPE_PURCHASE = TransactionType.PURCHASE
    TYPE_CAPTURE = TransactionType.CAPTURE
    TYPE_REFUND = TransactionType.REFUND
    STATUS_PENDING = TransactionStatus.PENDING
    STATUS_REDIRECT = TransactionStatus.REDIRECT
    STATUS_SUCCESS = TransactionStatus.SUCCESS
    STATUS_FAILED = TransactionStatus.FAILED

    FINANCIAL_FIELDS = ("amount", "currency", "payment_amount", "payment_currency", "payment_rate")
    SETTLEMENT_FIELDS = ("status", "response", "code", "reference", "message")
    ALLOWED_TRANSITIONS = {
        TransactionStatus.PENDING: {
            TransactionStatus.PENDING,
            TransactionStatus.REDIRECT,
            TransactionStatus.SUCCESS,
            TransactionStatus.FAILED,
        },
        TransactionStatus.REDIRECT: {
            TransactionStatus.REDIRECT,
            TransactionStatus.SUCCESS,
            TransactionStatus.FAILED,
        },
        TransactionStatus.SUCCESS: {TransactionStatus.SUCCESS},
        TransactionStatus.FAILED: {TransactionStatus.FAILED},
    }

    order = models.ForeignKey(
        "orders.Order",
        related_name="transactions",
        on_delete=models.CASCADE,
        db_index=True,
    )
    parent = models.ForeignKey(
        "self",
        related_name="children",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
    )
    gateway = models.ForeignKey(Gateway, related_name="transactions", on_delete=models.PROTECT)
    hash = models.CharField(max_length=32, unique=True, default=generate_transaction_hash, editable=False)
    type = models.CharField(max_length=32, choices=TransactionType.choices)
    status = models.CharField(
        max_length=16,
        choices=TransactionStatus.choices,
        default=TransactionStatus.PENDING,
        db_index=True,
    )
    amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    currency = models.CharField(max_length=8)
    payment_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    payment_currency = models.CharField(max_length=8)
    payment_rate = models.DecimalField(max_digits=16, decimal_places=6, default=Decimal("1"))
    reference = models.CharField(max_length=255, blank=True)
    code = models.CharField(max_length=64, blank=True)
    message = models.TextField(blank=True)
    response = models.JSONField(null=True, blank=True)

    class Meta:
        ordering = ["id"]
        indexes = [
            models.Index(fields=["order", "status", "type"], name="payments_tr_order_i_3f1a9c_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=models.Q(amount__gte=0), name="transaction_amount_non_negative"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Transaction#{self.id} order={self.order_id} type={self.type} status={self.status}"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._persisted = {name: value for name, value in zip(field_names, values) if value is not DEFERRED}
        return instance

    def refresh_from_db(self, *args, **kwargs):
        super().refresh_from_db(*args, **kwargs)
        self._remember_persisted()

    def save(self, *args, **kwargs):
        if self.currency:
            self.currency = self.currency.upper()
        if self.payment_currency:
            self.payment_currency = self.payment_currency.upper()
        super().save(*args, **kwargs)
        self._remember_persisted()

    def _remember_persisted(self) -> None:
        self._persisted = {f.attname: getattr(self, f.attname) for f in self._meta.concrete_fields}

    @property
    def persisted_status(self):
        return getattr(self, "_persisted", {}).get("status")

    @property
    def is_terminal(self) -> bool:
        return self.status in (TransactionStatus.SUCCESS, TransactionStatus.FAILED)

    def _has_successful_child(self, transaction_type) -> bool:
        return self.children.filter(type=transaction_type, status=TransactionStatus.SUCCESS).exists()

    def can_capture(self) -> bool:
        return (
            self.type == TransactionType.AUTHORIZE
            and self.status == TransactionStatus.SUCCESS
            and not self._has_successful_child(TransactionType.CAPTURE)
        )

    def can_refund(self) -> bool:
        return (
            self.type in (TransactionType.PURCHASE, TransactionType.CAPTURE)
            and self.status == TransactionStatus.SUCCESS
            and not self._has_successful_child(TransactionType.REFUND)
        )

    def clean(self):
        super().clean()
        persisted = getattr(self, "_persisted", None)
        if not persisted:
            return
        errors = {}
        for name in self.FINANCIAL_FIELDS:
            if name in persisted and persisted[name] != getattr(self, name):
                errors[name] = "Cannot be changed once the transaction is recorded."
        previous = persisted.get("status")
        if previous and self.status not in self.ALLOWED_TRANSITIONS.get(previous, set()):
            errors["status"] = f"Cannot move a {previous} transaction to {self.status}."
        if errors:
            raise ValidationError(errors)

    def save_if_status(self, expected_status) -> bool:
        """Write the settlement fields only if the stored status is unchanged.

        Returns False, and reloads the row, when another request changed the
        status first.
        """

        now = timezone.now()
        values = {name: getattr(self, name) for name in self.SETTLEMENT_FIELDS}
        updated = Transaction.objects.filter(pk=self.pk, status=expected_status).update(updated_at=now, **values)
        if not updated:
            self.refresh_from_db()
            return False
        self.updated_at = now
        self._remember_persisted()
        return True
