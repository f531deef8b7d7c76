import logging
from collections import defaultdict
from datetime import timedelta

from django.db import transaction
from django.db.models import Count
from django.db.models.functions import TruncDate
from django.utils import timezone

from common.exceptions import (
    InsufficientStock,
    InvalidStatusTransition,
    OrderNotFound,
    RequestNotFound,
)
from inventory.models import StockHistory
from inventory.services import apply_stock_change, lock_items
from orders.models import Order, OrderLine, Request

logger = logging.getLogger(__name__)

ANALYTICS_TREND_DAYS = 7


def merge_order_lines(lines):
    """Sum quantities per item id, keeping first-seen order."""
    quantities = defaultdict(int)
    for line in lines:
        quantities[str(line["id"])] += line["quantity"]
    return dict(quantities)


@transaction.atomic
def place_order(*, requester, lines, actor):
    """Create an order and take its quantities out of stock, all or nothing.

    ``lines`` are dicts with ``id`` (item id) and ``quantity``. Raises ItemsNotFound
    or InsufficientStock before anything is written.
    """
    quantities = merge_order_lines(lines)
    items = lock_items(quantities.keys())

    shortages = [
        {
            "id": item_id,
            "name": items[item_id].name,
            "requested": quantity,
            "available": items[item_id].stock_level,
        }
        for item_id, quantity in quantities.items()
        if quantity > items[item_id].stock_level
    ]
    if shortages:
        names = ", ".join(shortage["name"] for shortage in shortages)
        raise InsufficientStock(f"Insufficient stock for items: {names}", errors={"items": shortages})

    order = Order.objects.create(user=requester)
    OrderLine.objects.bulk_create(
        [OrderLine(order=order, item=items[item_id], quantity=quantity) for item_id, quantity in quantities.items()]
    )

    note = f"Order {order.id}"
    for item_id in sorted(quantities):
        item = items[item_id]
        apply_stock_change(
            item,
            item.stock_level - quantities[item_id],
            reason=StockHistory.Reason.SALE,
            actor=actor,
            notes=note,
        )

    logger.info(
        "order_placed",
        extra={"order_id": str(order.id), "user_id": str(actor.id), "line_count": len(quantities)},
    )
    return order


@transaction.atomic
def transition_order(*, order_id, status, actor):
    order = Order.objects.select_for_update().filter(pk=order_id).first()
    if order is None:
        raise OrderNotFound()

    if not order.can_transition_to(status):
        raise InvalidStatusTransition(f"Cannot change order status from {order.status} to {status}")

    old_status = order.status
    order.status = status
    order.save(update_fields=["status", "updated_at"])
    logger.info(
        "order_status_changed",
        extra={"order_id": str(order.id), "user_id": str(actor.id), "old_status": old_status, "new_status": status},
    )
    return order


def delete_order(order, *, actor):
    order_id = str(order.id)
    order.delete()
    logger.info("order_deleted", extra={"order_id": order_id, "user_id": str(actor.id)})


def order_analytics(*, today=None):
    """Order counts per status plus daily order counts for the last seven days."""
    counts = dict(Order.objects.values("status").annotate(total=Count("id")).values_list("status", "total"))
    stats = {"total": sum(counts.values())}
    for choice in Order.Status:
        stats[choice.value.lower()] = counts.get(choice.value, 0)

    today = today or timezone.localdate()
    start = today - timedelta(days=ANALYTICS_TREND_DAYS - 1)
    per_day = dict(
        Order.objects.filter(created_at__date__gte=start, created_at__date__lte=today)
        .annotate(day=TruncDate("created_at"))
        .values("day")
        .annotate(total=Count("id"))
        .values_list("day", "total")
    )
    trends = []
    for offset in range(ANALYTICS_TREND_DAYS):
        day = start + timedelta(days=offset)
        trends.append({"date": day.isoformat(), "count": per_day.get(day, 0)})

    return {"stats": stats, "trends": trends}


@transaction.atomic
def review_request(*, request_id, status, actor):
    item_request = Request.objects.select_for_update().filter(pk=request_id).first()
    if item_request is None:
        raise RequestNotFound()

    if not item_request.can_transition_to(status):
        raise InvalidStatusTransition(f"Cannot change request status from {item_request.status} to {status}")

    item_request.status = status
    item_request.save(update_fields=["status", "updated_at"])
    logger.info(
        "request_reviewed",
        extra={"user_id": str(actor.id), "item_id": str(item_request.item_id), "new_status": status},
    )
    return item_request
