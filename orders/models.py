"""Order domain models.

Only the fields the payment core reads or mutates live here: totals,
completion state, the selected gateway and the billing/shipping addresses.
"""

from decimal import Decimal

from common.choices import Currency
from common.models import TimeStampedModel
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class Country(models.Model):
    iso = models.CharField(max_length=2, unique=True)
    name = models.CharField(max_length=100)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "countries"

    def __str__(self) -> str:  # pragma: no cover
        return self.name


class State(models.Model):
    country = models.ForeignKey(Country, related_name="states", on_delete=models.CASCADE)
    name = models.CharField(max_length=100)
    abbreviation = models.CharField(max_length=10, blank=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:  # pragma: no cover
        return self.name


class Address(TimeStampedModel):
    first_name = models.CharField(max_length=100, blank=True)
    last_name = models.CharField(max_length=100, blank=True)
    address1 = models.CharField(max_length=255, blank=True)
    address2 = models.CharField(max_length=255, blank=True)
    city = models.CharField(max_length=100, blank=True)
    zip_code = models.CharField(max_length=20, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    business_name = models.CharField(max_length=255, blank=True)
    country = models.ForeignKey(Country, null=True, blank=True, on_delete=models.SET_NULL)
    state = models.ForeignKey(State, null=True, blank=True, on_delete=models.SET_NULL)
    state_text = models.CharField(max_length=100, blank=True)

    class Meta:
        verbose_name_plural = "addresses"

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.first_name} {self.last_name}, {self.city}"

    @property
    def country_iso(self) -> str:
        return self.country.iso if self.country_id else ""

    @property
    def state_value(self) -> str:
        """State as gateways expect it: abbreviation, then name, then free text."""

        if self.state_id:
            return self.state.abbreviation or self.state.name
        return self.state_text


class Order(TimeStampedModel):
    """Aggregate root the payment core settles against.

    `total_paid` and `total_authorized` cache the transaction ledger and are
    only written by `orders.services.update_order_paid_total`.
    """

    number = models.CharField(max_length=32, blank=True, db_index=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="orders",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
    )
    email = models.EmailField(blank=True)
    currency = models.CharField(max_length=8, choices=Currency.choices, default=Currency.NGN)
    payment_currency = models.CharField(max_length=8, choices=Currency.choices, blank=True)
    total_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    total_paid = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total_authorized = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    is_completed = models.BooleanField(default=False)
    date_ordered = models.DateTimeField(null=True, blank=True)
    date_paid = models.DateTimeField(null=True, blank=True)
    gateway = models.ForeignKey(
        "payments.Gateway",
        related_name="orders",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
    )
    billing_address = models.ForeignKey(Address, related_name="+", null=True, blank=True, on_delete=models.SET_NULL)
    shipping_address = models.ForeignKey(Address, related_name="+", null=True, blank=True, on_delete=models.SET_NULL)
    return_url = models.CharField(max_length=255, blank=True)
    cancel_url = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["-id"]
        indexes = [
            models.Index(fields=["is_completed", "created_at"], name="orders_orde_is_comp_6d0c2a_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Order#{self.id} number={self.number} completed={self.is_completed}"

    @property
    def outstanding_balance(self) -> Decimal:
        return max(self.total_price - self.total_paid, Decimal("0.00"))

    @property
    def is_paid(self) -> bool:
        # Zero-total orders count as paid.
        return self.total_paid >= self.total_price

    def get_payment_currency(self) -> str:
        return (self.payment_currency or self.currency or Currency.NGN).upper()


class OrderItem(TimeStampedModel):
    order = models.ForeignKey(Order, related_name="items", on_delete=models.CASCADE)
    sku = models.CharField(max_length=64, blank=True)
    description = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.quantity} x {self.description}"

    @property
    def subtotal(self) -> Decimal:
        return (self.unit_price or Decimal("0.00")) * Decimal(int(self.quantity))
