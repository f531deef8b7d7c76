import logging
from collections import defaultdict
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction
from django.db.models import Count, ProtectedError, Sum
from django.utils import timezone
from django.utils.crypto import get_random_string

from common.exceptions import (
    GoodsReceiptNotFound,
    InvalidOperation,
    InvalidStatusTransition,
    InvalidStatusUpdate,
    ItemInUse,
    ItemNotFound,
    ItemsNotFound,
    PurchaseOrderNotFound,
    SupplierNotFound,
    ValueOutOfRange,
)
from inventory.models import (
    MAX_AMOUNT,
    MAX_QUANTITY,
    GoodsReceipt,
    GoodsReceiptLine,
    Item,
    ItemCatalogSupplier,
    ItemStatus,
    PurchaseOrder,
    PurchaseOrderLine,
    QRCode,
    StockHistory,
    Supplier,
    SupplierCommunication,
    SupplierQualification,
)

logger = logging.getLogger(__name__)

MONEY_QUANT = Decimal("0.01")
STICKY_STATUSES = frozenset({ItemStatus.EXPIRED, ItemStatus.DAMAGED})


def _to_money(value):
    return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def derive_stock_status(stock_level, minimum_stock_level, requested_status=None):
    """Status an item should carry for a stock level.

    A requested EXPIRED or DAMAGED status is returned as is.
    """
    if requested_status in STICKY_STATUSES:
        return requested_status
    if stock_level <= 0:
        return ItemStatus.OUT_OF_STOCK
    if stock_level <= minimum_stock_level:
        return ItemStatus.LOW_STOCK
    return ItemStatus.AVAILABLE


def record_stock_history(*, item, old_level, new_level, reason, actor, notes=""):
    return StockHistory.objects.create(
        item=item,
        old_level=old_level,
        new_level=new_level,
        reason=reason,
        actor=actor,
        notes=notes or "",
    )


def lock_items(item_ids):
    """Lock the given items for the rest of the transaction.

    Rows are locked in primary-key order so concurrent workflows touching the same
    items cannot deadlock. Raises ItemsNotFound listing any id that does not exist.
    """
    wanted = {str(item_id) for item_id in item_ids}
    items = {
        str(item.id): item
        for item in Item.objects.select_for_update().filter(id__in=wanted).order_by("id")
    }
    missing = sorted(wanted - set(items))
    if missing:
        raise ItemsNotFound(errors={"items": missing})
    return items


def apply_stock_change(item, new_level, *, reason, actor, notes="", requested_status=None, update_fields=()):
    """Set a new stock level on a locked item, derive its status and append history."""
    old_level = item.stock_level
    item.stock_level = new_level
    item.status = derive_stock_status(new_level, item.minimum_stock_level, requested_status)
    item.save(update_fields=["stock_level", "status", "updated_at", *update_fields])
    return record_stock_history(
        item=item,
        old_level=old_level,
        new_level=new_level,
        reason=reason,
        actor=actor,
        notes=notes,
    )


def create_item(*, data, actor):
    item = Item(**data, created_by=actor)
    item.status = derive_stock_status(item.stock_level, item.minimum_stock_level, data.get("status"))
    item.save()
    logger.info("item_created", extra={"item_id": str(item.id), "user_id": str(actor.id)})
    return item


@transaction.atomic
def update_item(*, item_id, changes, actor, reason=None, notes=None):
    """Apply field edits to an item; a stock-level change is recorded in its history.

    ``reason`` defaults to RESTOCK when the level rose and ADJUSTMENT otherwise.
    """
    try:
        item = Item.objects.select_for_update().get(pk=item_id)
    except Item.DoesNotExist as exc:
        raise ItemNotFound() from exc

    changes = dict(changes)
    requested_status = changes.pop("status", item.status)
    old_level = item.stock_level
    new_level = changes.pop("stock_level", old_level)

    for field_name, value in changes.items():
        setattr(item, field_name, value)

    item.stock_level = new_level
    item.status = derive_stock_status(new_level, item.minimum_stock_level, requested_status)
    item.save()

    if new_level != old_level:
        if reason is None:
            reason = StockHistory.Reason.RESTOCK if new_level > old_level else StockHistory.Reason.ADJUSTMENT
        record_stock_history(
            item=item,
            old_level=old_level,
            new_level=new_level,
            reason=reason,
            actor=actor,
            notes=notes or "Stock level updated",
        )
        logger.info(
            "item_stock_adjusted",
            extra={"item_id": str(item.id), "user_id": str(actor.id), "old_level": old_level, "new_level": new_level},
        )
    return item


@transaction.atomic
def delete_item(item):
    """Delete an item together with its QR codes and stock history."""
    item_id = str(item.id)
    try:
        item.delete()
    except ProtectedError as exc:
        raise ItemInUse() from exc
    logger.info("item_deleted", extra={"item_id": item_id})


def stock_history_stats(item):
    rows = (
        StockHistory.objects.filter(item=item)
        .values("reason")
        .annotate(count=Count("id"), old_level_sum=Sum("old_level"), new_level_sum=Sum("new_level"))
        .order_by("reason")
    )
    return [
        {
            "reason": row["reason"],
            "count": row["count"],
            "sum": {"old_level": row["old_level_sum"] or 0, "new_level": row["new_level_sum"] or 0},
        }
        for row in rows
    ]


def build_qr_code_url(item):
    timestamp = int(timezone.now().timestamp() * 1000)
    nonce = get_random_string(7, allowed_chars="abcdefghijklmnopqrstuvwxyz0123456789")
    return f"{settings.PUBLIC_APP_URL}/i/{item.id}?t={timestamp}&u={nonce}"


def generate_qr_code(item):
    qr_code = QRCode.objects.create(item=item, url=build_qr_code_url(item))
    logger.info("qr_code_generated", extra={"item_id": str(item.id)})
    return qr_code


@transaction.atomic
def create_purchase_order(*, supplier_id, lines, notes="", user):
    """Create a PENDING purchase order; ``lines`` are dicts of item_id, quantity and unit_price."""
    supplier = Supplier.objects.filter(pk=supplier_id).first()
    if supplier is None:
        raise SupplierNotFound()

    items = _existing_items([line["item_id"] for line in lines])

    priced_lines = []
    total_amount = Decimal("0")
    for line in lines:
        line_total = _to_money(Decimal(line["quantity"]) * Decimal(line["unit_price"]))
        total_amount += line_total
        priced_lines.append((line, line_total))

    too_large = [str(line["item_id"]) for line, line_total in priced_lines if line_total > MAX_AMOUNT]
    if too_large or total_amount > MAX_AMOUNT:
        raise ValueOutOfRange(
            f"Purchase order amounts cannot exceed {MAX_AMOUNT}",
            errors={"items": too_large, "total_amount": str(_to_money(total_amount))},
        )

    purchase_order = PurchaseOrder.objects.create(
        supplier=supplier,
        notes=notes or "",
        created_by=user,
        total_amount=_to_money(total_amount),
    )
    PurchaseOrderLine.objects.bulk_create(
        [
            PurchaseOrderLine(
                purchase_order=purchase_order,
                item=items[str(line["item_id"])],
                quantity=line["quantity"],
                unit_price=_to_money(line["unit_price"]),
                total_price=line_total,
            )
            for line, line_total in priced_lines
        ]
    )
    logger.info(
        "purchase_order_created",
        extra={
            "purchase_order_id": str(purchase_order.id),
            "supplier_id": str(supplier.id),
            "user_id": str(user.id),
            "line_count": len(priced_lines),
            "total_amount": str(purchase_order.total_amount),
        },
    )
    return purchase_order


@transaction.atomic
def update_purchase_order_status(*, purchase_order_id, status, user):
    purchase_order = PurchaseOrder.objects.select_for_update().filter(pk=purchase_order_id).first()
    if purchase_order is None:
        raise PurchaseOrderNotFound()

    if purchase_order.status in PurchaseOrder.TERMINAL_STATUSES:
        raise InvalidStatusTransition(
            f"Cannot change status of a {purchase_order.get_status_display().lower()} purchase order"
        )

    old_status = purchase_order.status
    purchase_order.status = status
    purchase_order.save(update_fields=["status", "updated_at"])
    logger.info(
        "purchase_order_status_changed",
        extra={
            "purchase_order_id": str(purchase_order.id),
            "user_id": str(user.id),
            "old_status": old_status,
            "new_status": status,
        },
    )
    return purchase_order


@transaction.atomic
def create_goods_receipt(*, purchase_order_id, lines, user, notes=""):
    purchase_order = PurchaseOrder.objects.filter(pk=purchase_order_id).first()
    if purchase_order is None:
        raise PurchaseOrderNotFound()

    items = _existing_items([line["item_id"] for line in lines])

    receipt = GoodsReceipt.objects.create(purchase_order=purchase_order, received_by=user, notes=notes or "")
    GoodsReceiptLine.objects.bulk_create(
        [
            GoodsReceiptLine(
                goods_receipt=receipt,
                item=items[str(line["item_id"])],
                quantity=line["quantity"],
                batch_number=line.get("batch_number") or "",
                expiry_date=line.get("expiry_date"),
            )
            for line in lines
        ]
    )
    logger.info(
        "goods_receipt_created",
        extra={
            "receipt_id": str(receipt.id),
            "purchase_order_id": str(purchase_order.id),
            "user_id": str(user.id),
            "line_count": len(lines),
        },
    )
    return receipt


@transaction.atomic
def update_goods_receipt(*, receipt_id, user, status=None, notes=None):
    """Change a receipt's status and/or notes.

    Completing a receipt adds every line's quantity to its item's stock; the receipt
    status is written once, after all stock changes, inside the same transaction.
    """
    receipt = GoodsReceipt.objects.select_for_update().filter(pk=receipt_id).first()
    if receipt is None:
        raise GoodsReceiptNotFound()

    update_fields = ["updated_at"]
    if notes is not None:
        receipt.notes = notes
        update_fields.append("notes")

    if status is not None and receipt.status in GoodsReceipt.TERMINAL_STATUSES:
        raise InvalidStatusUpdate()

    if status is not None and status != receipt.status:
        if status == GoodsReceipt.Status.COMPLETED:
            _receive_stock(receipt, user)
        old_status = receipt.status
        receipt.status = status
        update_fields.append("status")
        logger.info(
            "goods_receipt_status_changed",
            extra={"receipt_id": str(receipt.id), "user_id": str(user.id), "old_status": old_status, "new_status": status},
        )
    receipt.save(update_fields=update_fields)
    return receipt


def _receive_stock(receipt, user):
    lines = list(receipt.lines.all())
    quantities = defaultdict(int)
    for line in lines:
        quantities[str(line.item_id)] += line.quantity

    items = lock_items(quantities.keys())
    overflows = [
        {
            "id": item_id,
            "name": items[item_id].name,
            "stock_level": items[item_id].stock_level,
            "received": quantity,
        }
        for item_id, quantity in quantities.items()
        if items[item_id].stock_level + quantity > MAX_QUANTITY
    ]
    if overflows:
        names = ", ".join(overflow["name"] for overflow in overflows)
        raise ValueOutOfRange(f"Stock level would exceed {MAX_QUANTITY} for items: {names}", errors={"items": overflows})

    received_at = timezone.now()
    note = f"Goods Receipt {receipt.id}"
    for item_id in sorted(quantities):
        item = items[item_id]
        item.last_purchase_date = received_at
        apply_stock_change(
            item,
            item.stock_level + quantities[item_id],
            reason=StockHistory.Reason.RESTOCK,
            actor=user,
            notes=note,
            update_fields=["last_purchase_date"],
        )


@transaction.atomic
def delete_goods_receipt(*, receipt_id):
    receipt = GoodsReceipt.objects.select_for_update().filter(pk=receipt_id).first()
    if receipt is None:
        raise GoodsReceiptNotFound()
    if receipt.status == GoodsReceipt.Status.COMPLETED:
        raise InvalidOperation("Cannot delete a completed goods receipt")
    receipt.delete()
    logger.info("goods_receipt_deleted", extra={"receipt_id": str(receipt_id)})


def _existing_items(item_ids):
    wanted = {str(item_id) for item_id in item_ids}
    items = {str(item.id): item for item in Item.objects.filter(id__in=wanted)}
    missing = sorted(wanted - set(items))
    if missing:
        raise ItemsNotFound(errors={"items": missing})
    return items


@transaction.atomic
def replace_catalog_supplier_offers(item_catalog, offers):
    """Make ``offers`` the full set of supplier offers for a catalog entry.

    Offers for suppliers not listed are removed; listed suppliers are upserted.
    """
    supplier_ids = [offer["supplier"].id for offer in offers]
    item_catalog.supplier_offers.exclude(supplier_id__in=supplier_ids).delete()
    for offer in offers:
        defaults = {key: value for key, value in offer.items() if key != "supplier"}
        ItemCatalogSupplier.objects.update_or_create(
            item_catalog=item_catalog,
            supplier=offer["supplier"],
            defaults=defaults,
        )


def upsert_supplier_qualification(supplier, data):
    qualification, created = SupplierQualification.objects.update_or_create(
        supplier=supplier,
        type=data["type"],
        defaults={key: value for key, value in data.items() if key != "type"},
    )
    return qualification, created


def supplier_metrics(supplier):
    """Delivery, quality, responsiveness and spend figures for one supplier."""
    purchase_orders = PurchaseOrder.objects.filter(supplier=supplier)
    total_orders = purchase_orders.count()
    received_orders = purchase_orders.filter(status=PurchaseOrder.Status.RECEIVED)
    received_count = received_orders.count()

    rejected_receipts = GoodsReceipt.objects.filter(
        purchase_order__supplier=supplier,
        status=GoodsReceipt.Status.REJECTED,
    )
    returned_quantity = (
        GoodsReceiptLine.objects.filter(goods_receipt__in=rejected_receipts).aggregate(total=Sum("quantity"))["total"] or 0
    )

    email_times = list(
        SupplierCommunication.objects.filter(supplier=supplier, type=SupplierCommunication.Type.EMAIL)
        .order_by("created_at")
        .values_list("created_at", flat=True)
    )
    average_response_hours = 0.0
    if len(email_times) > 1:
        gaps = [(later - earlier).total_seconds() for earlier, later in zip(email_times, email_times[1:])]
        average_response_hours = round(sum(gaps) / len(gaps) / 3600, 1)

    total_spend = received_orders.aggregate(total=Sum("total_amount"))["total"] or Decimal("0")

    return {
        "total_orders": total_orders,
        "on_time_delivery_rate": round(received_count / total_orders * 100, 2) if total_orders else 0,
        "quality_issues": rejected_receipts.count(),
        "returns": returned_quantity,
        "average_response_time": average_response_hours,
        "total_spend": _to_money(total_spend),
    }
