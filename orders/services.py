"""Order mutations used by the payment core.

The payment services never write order totals or the completion flag
directly; they go through the functions below.
"""

import logging

from django.utils import timezone
from payments.selectors import get_total_authorized_for_order, get_total_paid_for_order

from orders.models import Order

logger = logging.getLogger("shopfront.orders")


def mark_as_complete(order: Order) -> bool:
    """Complete the order once. Returns False if it was already completed.

    The conditional update keeps completion monotonic even when two requests
    settle the same order at the same time.
    """

    if order.is_completed:
        return False
    now = timezone.now()
    updated = Order.objects.filter(pk=order.pk, is_completed=False).update(
        is_completed=True,
        date_ordered=now,
        updated_at=now,
    )
    order.refresh_from_db(fields=["is_completed", "date_ordered", "updated_at"])
    if updated:
        logger.info("order_completed", extra={"order_id": order.id, "number": order.number})
    return bool(updated)


def stamp_date_paid(order: Order) -> None:
    if order.date_paid:
        return
    order.date_paid = timezone.now()
    order.save(update_fields=["date_paid", "updated_at"])


def update_order_paid_total(order: Order) -> Order:
    """Recompute paid/authorized totals from the ledger and settle the order."""

    order.total_paid = get_total_paid_for_order(order)
    order.total_authorized = get_total_authorized_for_order(order)
    fields = ["total_paid", "total_authorized", "updated_at"]
    if order.is_paid and not order.date_paid:
        order.date_paid = timezone.now()
        fields.append("date_paid")
    order.save(update_fields=fields)
    logger.info(
        "order_paid_total_updated",
        extra={"order_id": order.id, "total_paid": str(order.total_paid), "total_price": str(order.total_price)},
    )

    if order.is_paid:
        mark_as_complete(order)
    return order


def save_with_return_url(order: Order, return_url: str) -> Order:
    """Re-save the order with its return URL pointed somewhere else."""

    order.return_url = return_url
    order.save(update_fields=["return_url", "updated_at"])
    return order
