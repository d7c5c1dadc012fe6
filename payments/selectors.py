"""Read-only query helpers for payments.

Selectors return data without side effects. The two totals are the ledger
view of an order: what has actually been paid, and what has been authorized
(paid plus still-uncaptured authorizations).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional

from common.choices import TransactionStatus, TransactionType
from django.db.models import QuerySet, Sum

from payments.models import Transaction

PAID_TYPES = (TransactionType.PURCHASE, TransactionType.CAPTURE)
AUTHORIZED_TYPES = (TransactionType.AUTHORIZE, TransactionType.PURCHASE, TransactionType.CAPTURE)


def _sum_successful(order_id: int, types: Iterable[str]) -> Decimal:
    total = Transaction.objects.filter(
        order_id=order_id,
        status=TransactionStatus.SUCCESS,
        type__in=list(types),
    ).aggregate(total=Sum("amount"))["total"]
    return total if total is not None else Decimal("0.00")


def get_total_paid_for_order(order) -> Decimal:
    """Sum of successful purchase and capture amounts; zero when none."""

    return _sum_successful(order.id, PAID_TYPES)


def get_total_authorized_for_order(order) -> Decimal:
    """Sum of successful authorize, purchase and capture amounts; zero when none."""

    return _sum_successful(order.id, AUTHORIZED_TYPES)


def get_transaction_by_hash(transaction_hash: str) -> Optional[Transaction]:
    """Return a single `Transaction` by its correlation hash, or None.

    Uses `select_related` because every caller needs the order and gateway.
    """

    if not transaction_hash:
        return None
    return Transaction.objects.select_related("order", "gateway").filter(hash=transaction_hash).first()


def get_transaction_for_callback(transaction_id, transaction_hash: str) -> Optional[Transaction]:
    """Resolve a transaction from an unauthenticated callback.

    Both the id and the hash must match.
    """

    if not transaction_id or not transaction_hash:
        return None
    try:
        transaction_id = int(transaction_id)
    except (TypeError, ValueError):
        return None
    return (
        Transaction.objects.select_related("order", "gateway")
        .filter(pk=transaction_id, hash=transaction_hash)
        .first()
    )


def list_transactions_for_order(order_id: int, status: Optional[str] = None) -> QuerySet[Transaction]:
    qs = Transaction.objects.select_related("gateway", "parent").filter(order_id=order_id)
    if status:
        qs = qs.filter(status=status)
    return qs


def get_children(transaction: Transaction) -> QuerySet[Transaction]:
    return transaction.children.all()


def list_recent_failed_transactions(limit: int = 20) -> QuerySet[Transaction]:
    """Return recent failed transactions, most recent first."""

    qs = (
        Transaction.objects.select_related("order")
        .filter(status=TransactionStatus.FAILED)
        .order_by("-created_at")
    )
    return qs[:limit]
