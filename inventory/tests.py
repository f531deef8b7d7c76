import uuid
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from inventory.models import (
    MAX_QUANTITY,
    Category,
    GoodsReceipt,
    GoodsReceiptLine,
    Item,
    ItemCatalog,
    ItemStatus,
    PurchaseOrder,
    PurchaseOrderLine,
    QRCode,
    StockHistory,
    Supplier,
    SupplierCommunication,
    SupplierQualification,
)
from inventory.services import derive_stock_status


class InventoryTestMixin:
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(username="admin-inv", password="pass1234", role="ADMIN")
        self.worker1 = self.user_model.objects.create_user(username="worker1-inv", password="pass1234", role="WORKER1")
        self.worker2 = self.user_model.objects.create_user(username="worker2-inv", password="pass1234", role="WORKER2")
        self.plain_user = self.user_model.objects.create_user(username="user-inv", password="pass1234", role="USER")

        self.category = Category.objects.create(name="Tools")
        self.supplier = Supplier.objects.create(name="Acme Supplies", email="sales@acme.example")
        self.item = Item.objects.create(
            name="Hammer",
            supplier=self.supplier,
            category=self.category,
            stock_level=2,
            minimum_stock_level=3,
            status=ItemStatus.LOW_STOCK,
        )


class StockStatusDerivationTests(SimpleTestCase):
    def test_levels_map_to_status(self):
        self.assertEqual(derive_stock_status(0, 5), ItemStatus.OUT_OF_STOCK)
        self.assertEqual(derive_stock_status(5, 5), ItemStatus.LOW_STOCK)
        self.assertEqual(derive_stock_status(6, 5), ItemStatus.AVAILABLE)

    def test_expired_and_damaged_are_kept(self):
        self.assertEqual(derive_stock_status(50, 5, ItemStatus.EXPIRED), ItemStatus.EXPIRED)
        self.assertEqual(derive_stock_status(0, 5, ItemStatus.DAMAGED), ItemStatus.DAMAGED)

    def test_other_requested_status_is_recomputed(self):
        self.assertEqual(derive_stock_status(0, 5, ItemStatus.AVAILABLE), ItemStatus.OUT_OF_STOCK)


class ItemApiTests(InventoryTestMixin, TestCase):
    def test_worker1_creates_item_with_derived_status(self):
        self.client.force_authenticate(user=self.worker1)

        response = self.client.post(
            "/api/v1/items/",
            {
                "name": "Screwdriver",
                "supplier": str(self.supplier.id),
                "category": str(self.category.id),
                "stock_level": 0,
                "minimum_stock_level": 4,
                "status": "AVAILABLE",
                "warehouse": "Main",
                "aisle": "A1",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["status"], "OUT_OF_STOCK")
        self.assertEqual(payload["location"], "Main / A1")
        self.assertEqual(payload["created_by"]["id"], str(self.worker1.id))
        self.assertFalse(StockHistory.objects.filter(item_id=payload["id"]).exists())

    def test_item_without_supplier_fails_validation(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post("/api/v1/items/", {"name": "Orphan"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")
        self.assertIn("supplier", response.json()["errors"])

    def test_worker2_cannot_create_or_view_item_detail(self):
        self.client.force_authenticate(user=self.worker2)

        with self.assertLogs("security.authorization", level="WARNING"):
            create_response = self.client.post(
                "/api/v1/items/",
                {"name": "Blocked", "supplier": str(self.supplier.id)},
                format="json",
            )
            detail_response = self.client.get(f"/api/v1/items/{self.item.id}/")

        self.assertEqual(create_response.status_code, 403)
        self.assertEqual(create_response.json()["code"], "FORBIDDEN")
        self.assertEqual(detail_response.status_code, 403)

    def test_every_role_can_browse_items(self):
        self.client.force_authenticate(user=self.plain_user)

        response = self.client.get("/api/v1/items/", {"search": "hamm"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["id"] for row in response.json()["results"]], [str(self.item.id)])

    def test_invalid_uuid_filter_returns_empty_page(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/items/", {"supplier": "not-a-uuid"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 0)

    def test_unknown_item_uses_item_not_found_code(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get(f"/api/v1/items/{uuid.uuid4()}/")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Item not found", "code": "ITEM_NOT_FOUND"})

    def test_stock_update_records_history_and_status(self):
        self.client.force_authenticate(user=self.worker1)

        response = self.client.patch(f"/api/v1/items/{self.item.id}/", {"stock_level": 10}, format="json")

        self.assertEqual(response.status_code, 200)
        self.item.refresh_from_db()
        self.assertEqual(self.item.stock_level, 10)
        self.assertEqual(self.item.status, ItemStatus.AVAILABLE)
        history = StockHistory.objects.get(item=self.item)
        self.assertEqual((history.old_level, history.new_level), (2, 10))
        self.assertEqual(history.reason, StockHistory.Reason.RESTOCK)
        self.assertEqual(history.notes, "Stock level updated")
        self.assertEqual(history.actor, self.worker1)

    def test_stock_update_above_column_limit_fails_validation(self):
        self.client.force_authenticate(user=self.worker1)

        response = self.client.patch(f"/api/v1/items/{self.item.id}/", {"stock_level": 10**19}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")
        self.assertIn("stock_level", response.json()["errors"])
        self.item.refresh_from_db()
        self.assertEqual(self.item.stock_level, 2)

    def test_stock_update_with_explicit_reason(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(
            f"/api/v1/items/{self.item.id}/",
            {"stock_level": 0, "reason": "DAMAGE", "notes": "Dropped pallet"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "OUT_OF_STOCK")
        history = StockHistory.objects.get(item=self.item)
        self.assertEqual(history.reason, StockHistory.Reason.DAMAGE)
        self.assertEqual(history.notes, "Dropped pallet")

    def test_non_stock_edit_records_no_history(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f"/api/v1/items/{self.item.id}/", {"shelf": "S4"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertFalse(StockHistory.objects.filter(item=self.item).exists())

    def test_stock_history_list_and_stats(self):
        StockHistory.objects.create(item=self.item, old_level=2, new_level=7, reason="RESTOCK", actor=self.admin)
        StockHistory.objects.create(item=self.item, old_level=7, new_level=4, reason="SALE", actor=self.admin)
        StockHistory.objects.create(item=self.item, old_level=4, new_level=2, reason="SALE", actor=self.admin)
        self.client.force_authenticate(user=self.worker1)

        list_response = self.client.get(f"/api/v1/items/{self.item.id}/stock-history/")
        stats_response = self.client.get(f"/api/v1/items/{self.item.id}/stock-history/", {"type": "stats"})

        self.assertEqual(list_response.status_code, 200)
        self.assertEqual(list_response.json()["count"], 3)
        self.assertEqual(stats_response.status_code, 200)
        stats = {row["reason"]: row for row in stats_response.json()}
        self.assertEqual(stats["SALE"]["count"], 2)
        self.assertEqual(stats["SALE"]["sum"], {"old_level": 11, "new_level": 6})
        self.assertEqual(stats["RESTOCK"]["count"], 1)

    def test_admin_delete_removes_history_and_qr_codes(self):
        QRCode.objects.create(item=self.item, url="http://localhost:3000/i/x")
        StockHistory.objects.create(item=self.item, old_level=0, new_level=2, reason="RESTOCK", actor=self.admin)
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f"/api/v1/items/{self.item.id}/")

        self.assertEqual(response.status_code, 204)
        self.assertFalse(Item.objects.filter(id=self.item.id).exists())
        self.assertFalse(QRCode.objects.exists())
        self.assertFalse(StockHistory.objects.exists())

    def test_delete_item_referenced_by_purchase_order_is_rejected(self):
        purchase_order = PurchaseOrder.objects.create(supplier=self.supplier, created_by=self.admin)
        PurchaseOrderLine.objects.create(
            purchase_order=purchase_order,
            item=self.item,
            quantity=1,
            unit_price=Decimal("1.00"),
            total_price=Decimal("1.00"),
        )
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f"/api/v1/items/{self.item.id}/")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "ITEM_IN_USE")
        self.assertTrue(Item.objects.filter(id=self.item.id).exists())

    def test_worker1_cannot_delete_item(self):
        self.client.force_authenticate(user=self.worker1)

        with self.assertLogs("security.authorization", level="WARNING"):
            response = self.client.delete(f"/api/v1/items/{self.item.id}/")

        self.assertEqual(response.status_code, 403)


class PublicItemTests(InventoryTestMixin, TestCase):
    def test_public_item_is_readable_without_authentication(self):
        response = self.client.get(f"/api/v1/public/items/{self.item.id}/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["name"], "Hammer")
        self.assertNotIn("supplier", payload)
        self.assertNotIn("created_by", payload)

    def test_public_item_ignores_invalid_bearer_token(self):
        self.client.credentials(HTTP_AUTHORIZATION="Bearer not-a-token")

        response = self.client.get(f"/api/v1/public/items/{self.item.id}/")

        self.assertEqual(response.status_code, 200)

    def test_public_item_unknown_or_malformed_id(self):
        for item_id in (uuid.uuid4(), "garbage"):
            response = self.client.get(f"/api/v1/public/items/{item_id}/")
            self.assertEqual(response.status_code, 404)
            self.assertEqual(response.json()["code"], "ITEM_NOT_FOUND")


class QRCodeApiTests(InventoryTestMixin, TestCase):
    def test_generate_list_and_delete_qr_code(self):
        self.client.force_authenticate(user=self.worker1)

        create_response = self.client.post(f"/api/v1/items/{self.item.id}/qr-code/")

        self.assertEqual(create_response.status_code, 201)
        url = create_response.json()["url"]
        self.assertTrue(url.startswith(f"http://localhost:3000/i/{self.item.id}?t="))
        self.assertIn("&u=", url)

        list_response = self.client.get(f"/api/v1/items/{self.item.id}/qr-code/")
        self.assertEqual(len(list_response.json()), 1)

        self.client.force_authenticate(user=self.admin)
        qr_code_id = create_response.json()["id"]
        delete_response = self.client.delete(f"/api/v1/items/{self.item.id}/qr-code/?qr_code_id={qr_code_id}")

        self.assertEqual(delete_response.status_code, 204)
        self.assertFalse(QRCode.objects.exists())

    def test_delete_unknown_qr_code(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f"/api/v1/items/{self.item.id}/qr-code/?qr_code_id=bogus")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "QR_CODE_NOT_FOUND")

    def test_only_admin_lists_all_qr_codes(self):
        QRCode.objects.create(item=self.item, url="http://localhost:3000/i/a")

        self.client.force_authenticate(user=self.worker1)
        with self.assertLogs("security.authorization", level="WARNING"):
            self.assertEqual(self.client.get("/api/v1/qr-codes/").status_code, 403)

        self.client.force_authenticate(user=self.admin)
        response = self.client.get("/api/v1/qr-codes/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 1)


class CatalogApiTests(InventoryTestMixin, TestCase):
    def test_create_catalog_with_supplier_offers(self):
        self.client.force_authenticate(user=self.worker1)

        response = self.client.post(
            "/api/v1/item-catalogs/",
            {
                "name": "Claw Hammer",
                "reorder_point": 5,
                "suppliers": [{"supplier": str(self.supplier.id), "unit_price": "9.99", "is_preferred": True}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(len(payload["suppliers"]), 1)
        self.assertEqual(payload["suppliers"][0]["supplier_name"], "Acme Supplies")
        self.assertEqual(payload["created_by"]["id"], str(self.worker1.id))

    def test_catalog_requires_a_supplier(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post("/api/v1/item-catalogs/", {"name": "No Supplier"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIn("suppliers", response.json()["errors"])

    def test_catalog_in_use_cannot_be_deleted(self):
        catalog = ItemCatalog.objects.create(name="Hammer Catalog")
        self.item.item_catalog = catalog
        self.item.save(update_fields=["item_catalog"])
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f"/api/v1/item-catalogs/{catalog.id}/")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_OPERATION")


class SupplierApiTests(InventoryTestMixin, TestCase):
    def test_admin_creates_supplier_with_contacts(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(
            "/api/v1/suppliers/",
            {
                "name": "Bolt Co",
                "email": "hello@bolt.example",
                "categories": [str(self.category.id)],
                "contacts": [{"name": "Dana", "email": "dana@bolt.example", "is_primary": True}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        supplier = Supplier.objects.get(name="Bolt Co")
        self.assertEqual(supplier.contacts.count(), 1)
        self.assertEqual(list(supplier.categories.all()), [self.category])

    def test_filter_suppliers_by_category(self):
        self.supplier.categories.add(self.category)
        Supplier.objects.create(name="Unrelated Ltd")
        self.client.force_authenticate(user=self.worker1)

        response = self.client.get("/api/v1/suppliers/", {"category": str(self.category.id)})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["name"] for row in response.json()["results"]], ["Acme Supplies"])

    def test_qualification_put_is_an_upsert(self):
        self.client.force_authenticate(user=self.admin)
        url = f"/api/v1/suppliers/{self.supplier.id}/qualifications/"

        first = self.client.put(
            url,
            {"type": "ISO9001", "status": "PENDING", "valid_from": "2026-01-01T00:00:00Z"},
            format="json",
        )
        second = self.client.put(
            url,
            {"type": "ISO9001", "status": "APPROVED", "valid_from": "2026-01-01T00:00:00Z"},
            format="json",
        )

        self.assertEqual(first.status_code, 201)
        self.assertEqual(second.status_code, 200)
        qualification = SupplierQualification.objects.get(supplier=self.supplier)
        self.assertEqual(qualification.status, "APPROVED")

    def test_worker1_logs_communication(self):
        self.client.force_authenticate(user=self.worker1)

        response = self.client.post(
            f"/api/v1/suppliers/{self.supplier.id}/communications/",
            {
                "type": "EMAIL",
                "subject": "Late delivery",
                "content": "Where is our order?",
                "sender": "ops@warehouse.example",
                "recipient": "sales@acme.example",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(SupplierCommunication.objects.filter(supplier=self.supplier).count(), 1)

    def test_supplier_metrics(self):
        PurchaseOrder.objects.create(
            supplier=self.supplier,
            created_by=self.admin,
            status=PurchaseOrder.Status.RECEIVED,
            total_amount=Decimal("25.00"),
        )
        pending = PurchaseOrder.objects.create(supplier=self.supplier, created_by=self.admin)
        rejected = GoodsReceipt.objects.create(
            purchase_order=pending,
            received_by=self.admin,
            status=GoodsReceipt.Status.REJECTED,
        )
        GoodsReceiptLine.objects.create(goods_receipt=rejected, item=self.item, quantity=3)
        self.client.force_authenticate(user=self.plain_user)

        response = self.client.get(f"/api/v1/suppliers/{self.supplier.id}/metrics/")

        self.assertEqual(response.status_code, 200)
        metrics = response.json()
        self.assertEqual(metrics["total_orders"], 2)
        self.assertEqual(metrics["on_time_delivery_rate"], 50.0)
        self.assertEqual(metrics["quality_issues"], 1)
        self.assertEqual(metrics["returns"], 3)
        self.assertEqual(metrics["average_response_time"], 0.0)
        self.assertEqual(Decimal(str(metrics["total_spend"])), Decimal("25.00"))


class ProcurementFlowTests(InventoryTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.second_item = Item.objects.create(name="Nails", supplier=self.supplier, stock_level=100)

    def _create_receipt(self, quantity=4):
        purchase_order = PurchaseOrder.objects.create(supplier=self.supplier, created_by=self.worker1)
        receipt = GoodsReceipt.objects.create(purchase_order=purchase_order, received_by=self.worker1)
        GoodsReceiptLine.objects.create(goods_receipt=receipt, item=self.item, quantity=quantity)
        return receipt

    def test_create_purchase_order_computes_totals(self):
        self.client.force_authenticate(user=self.worker1)

        response = self.client.post(
            "/api/v1/purchase-orders/",
            {
                "supplier_id": str(self.supplier.id),
                "items": [
                    {"item_id": str(self.item.id), "quantity": 3, "unit_price": "2.50"},
                    {"item_id": str(self.second_item.id), "quantity": 1, "unit_price": "1.25"},
                ],
                "notes": "Monthly restock",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["status"], "PENDING")
        self.assertEqual(payload["total_amount"], "8.75")
        self.assertEqual(sorted(line["total_price"] for line in payload["lines"]), ["1.25", "7.50"])

    def test_purchase_order_for_unknown_supplier(self):
        self.client.force_authenticate(user=self.worker1)

        response = self.client.post(
            "/api/v1/purchase-orders/",
            {
                "supplier_id": str(uuid.uuid4()),
                "items": [{"item_id": str(self.item.id), "quantity": 1, "unit_price": "1.00"}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "SUPPLIER_NOT_FOUND")
        self.assertFalse(PurchaseOrder.objects.exists())

    def test_purchase_order_with_unknown_item(self):
        self.client.force_authenticate(user=self.worker1)
        missing_id = str(uuid.uuid4())

        response = self.client.post(
            "/api/v1/purchase-orders/",
            {
                "supplier_id": str(self.supplier.id),
                "items": [{"item_id": missing_id, "quantity": 1, "unit_price": "1.00"}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "ITEMS_NOT_FOUND")
        self.assertEqual(response.json()["errors"], {"items": [missing_id]})

    def test_terminal_purchase_order_status_is_locked(self):
        purchase_order = PurchaseOrder.objects.create(
            supplier=self.supplier,
            created_by=self.worker1,
            status=PurchaseOrder.Status.RECEIVED,
        )
        self.client.force_authenticate(user=self.worker1)

        response = self.client.put(
            f"/api/v1/purchase-orders/{purchase_order.id}/",
            {"status": "APPROVED"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_STATUS_TRANSITION")

    def test_purchase_order_status_update(self):
        purchase_order = PurchaseOrder.objects.create(supplier=self.supplier, created_by=self.worker1)
        self.client.force_authenticate(user=self.worker1)

        response = self.client.put(
            f"/api/v1/purchase-orders/{purchase_order.id}/",
            {"status": "APPROVED"},
            format="json",
        )
        missing = self.client.put(f"/api/v1/purchase-orders/{uuid.uuid4()}/", {"status": "APPROVED"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "APPROVED")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["code"], "PO_NOT_FOUND")

    def test_purchase_order_date_filter_requires_both_bounds(self):
        self.client.force_authenticate(user=self.worker1)

        response = self.client.get("/api/v1/purchase-orders/", {"from_date": "2026-01-01"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")

    def test_create_goods_receipt(self):
        purchase_order = PurchaseOrder.objects.create(supplier=self.supplier, created_by=self.worker1)
        self.client.force_authenticate(user=self.worker1)

        response = self.client.post(
            "/api/v1/goods-receipts/",
            {
                "purchase_order_id": str(purchase_order.id),
                "items": [{"item_id": str(self.item.id), "quantity": 4, "batch_number": "B-77"}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["status"], "PENDING")
        self.assertEqual(response.json()["lines"][0]["batch_number"], "B-77")
        self.item.refresh_from_db()
        self.assertEqual(self.item.stock_level, 2)

    def test_completing_receipt_restocks_items(self):
        receipt = self._create_receipt(quantity=4)
        self.client.force_authenticate(user=self.worker1)

        response = self.client.put(f"/api/v1/goods-receipts/{receipt.id}/", {"status": "COMPLETED"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "COMPLETED")
        self.item.refresh_from_db()
        self.assertEqual(self.item.stock_level, 6)
        self.assertEqual(self.item.status, ItemStatus.AVAILABLE)
        self.assertIsNotNone(self.item.last_purchase_date)
        history = StockHistory.objects.get(item=self.item)
        self.assertEqual((history.old_level, history.new_level), (2, 6))
        self.assertEqual(history.reason, StockHistory.Reason.RESTOCK)
        self.assertEqual(history.notes, f"Goods Receipt {receipt.id}")

    def test_rejecting_receipt_leaves_stock_untouched(self):
        receipt = self._create_receipt()
        self.client.force_authenticate(user=self.worker1)

        response = self.client.put(f"/api/v1/goods-receipts/{receipt.id}/", {"status": "REJECTED"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.item.refresh_from_db()
        self.assertEqual(self.item.stock_level, 2)
        self.assertFalse(StockHistory.objects.exists())

    def test_terminal_receipt_status_cannot_change(self):
        receipt = self._create_receipt()
        receipt.status = GoodsReceipt.Status.COMPLETED
        receipt.save(update_fields=["status"])
        self.client.force_authenticate(user=self.worker1)

        response = self.client.put(f"/api/v1/goods-receipts/{receipt.id}/", {"status": "REJECTED"}, format="json")
        notes_response = self.client.put(
            f"/api/v1/goods-receipts/{receipt.id}/",
            {"notes": "Checked by QA"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_STATUS_UPDATE")
        self.assertEqual(notes_response.status_code, 200)
        self.assertEqual(notes_response.json()["notes"], "Checked by QA")

    def test_receipt_update_requires_a_field(self):
        receipt = self._create_receipt()
        self.client.force_authenticate(user=self.worker1)

        response = self.client.put(f"/api/v1/goods-receipts/{receipt.id}/", {}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "At least one field must be provided for update")

    def test_purchase_order_quantity_above_column_limit(self):
        self.client.force_authenticate(user=self.worker1)

        response = self.client.post(
            "/api/v1/purchase-orders/",
            {
                "supplier_id": str(self.supplier.id),
                "items": [{"item_id": str(self.item.id), "quantity": 10**13, "unit_price": "1.00"}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")
        self.assertIn("items", response.json()["errors"])
        self.assertFalse(PurchaseOrder.objects.exists())

    def test_purchase_order_total_above_maximum_amount(self):
        self.client.force_authenticate(user=self.worker1)

        response = self.client.post(
            "/api/v1/purchase-orders/",
            {
                "supplier_id": str(self.supplier.id),
                "items": [{"item_id": str(self.item.id), "quantity": MAX_QUANTITY, "unit_price": "9999999999.99"}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "VALIDATION_ERROR")
        self.assertEqual(payload["errors"]["items"], [str(self.item.id)])
        self.assertFalse(PurchaseOrder.objects.exists())

    def test_goods_receipt_quantity_above_column_limit(self):
        purchase_order = PurchaseOrder.objects.create(supplier=self.supplier, created_by=self.worker1)
        self.client.force_authenticate(user=self.worker1)

        response = self.client.post(
            "/api/v1/goods-receipts/",
            {
                "purchase_order_id": str(purchase_order.id),
                "items": [{"item_id": str(self.item.id), "quantity": 10**19}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")
        self.assertFalse(GoodsReceipt.objects.exists())

    def test_completing_receipt_cannot_push_stock_past_ceiling(self):
        self.item.stock_level = MAX_QUANTITY - 1
        self.item.save(update_fields=["stock_level"])
        receipt = self._create_receipt(quantity=2)
        self.client.force_authenticate(user=self.worker1)

        response = self.client.put(f"/api/v1/goods-receipts/{receipt.id}/", {"status": "COMPLETED"}, format="json")

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "VALIDATION_ERROR")
        self.assertEqual(payload["errors"]["items"][0]["id"], str(self.item.id))
        receipt.refresh_from_db()
        self.item.refresh_from_db()
        self.assertEqual(receipt.status, GoodsReceipt.Status.PENDING)
        self.assertEqual(self.item.stock_level, MAX_QUANTITY - 1)
        self.assertFalse(StockHistory.objects.exists())

    def test_failed_completion_rolls_back_stock_and_status(self):
        receipt = self._create_receipt(quantity=4)
        GoodsReceiptLine.objects.create(goods_receipt=receipt, item=self.second_item, quantity=5)
        self.client.force_authenticate(user=self.worker1)

        with patch("inventory.services.record_stock_history", side_effect=RuntimeError("history down")):
            with self.assertLogs("common.exceptions", level="ERROR"):
                response = self.client.put(
                    f"/api/v1/goods-receipts/{receipt.id}/",
                    {"status": "COMPLETED"},
                    format="json",
                )

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["code"], "INTERNAL_SERVER_ERROR")
        receipt.refresh_from_db()
        self.item.refresh_from_db()
        self.second_item.refresh_from_db()
        self.assertEqual(receipt.status, GoodsReceipt.Status.PENDING)
        self.assertEqual((self.item.stock_level, self.second_item.stock_level), (2, 100))
        self.assertIsNone(self.item.last_purchase_date)
        self.assertFalse(StockHistory.objects.exists())

    def test_completed_receipt_cannot_be_deleted(self):
        receipt = self._create_receipt()
        receipt.status = GoodsReceipt.Status.COMPLETED
        receipt.save(update_fields=["status"])
        self.client.force_authenticate(user=self.admin)

        response = self.client.delete(f"/api/v1/goods-receipts/{receipt.id}/")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_OPERATION")

    def test_pending_receipt_is_deleted_by_admin_only(self):
        receipt = self._create_receipt()

        self.client.force_authenticate(user=self.worker1)
        with self.assertLogs("security.authorization", level="WARNING"):
            self.assertEqual(self.client.delete(f"/api/v1/goods-receipts/{receipt.id}/").status_code, 403)

        self.client.force_authenticate(user=self.admin)
        self.assertEqual(self.client.delete(f"/api/v1/goods-receipts/{receipt.id}/").status_code, 204)
        self.assertFalse(GoodsReceipt.objects.exists())


class RateLimitTests(InventoryTestMixin, TestCase):
    @override_settings(RATE_LIMIT_DEFAULT_MAX=2)
    def test_requests_over_limit_are_throttled(self):
        self.client.force_authenticate(user=self.admin)

        statuses = [self.client.get("/api/v1/categories/").status_code for _ in range(3)]

        self.assertEqual(statuses, [200, 200, 429])
        response = self.client.get("/api/v1/categories/")
        self.assertEqual(response.json()["code"], "RATE_LIMIT_EXCEEDED")
        self.assertEqual(response.json()["error"], "Too many requests, please try again later")
        self.assertIn("Retry-After", response)

    @override_settings(RATE_LIMIT_DEFAULT_MAX=1)
    def test_limit_is_applied_before_authentication(self):
        self.client.get("/api/v1/categories/")

        response = self.client.get("/api/v1/categories/")

        self.assertEqual(response.status_code, 429)

    @override_settings(RATE_LIMIT_ENABLED=False, RATE_LIMIT_DEFAULT_MAX=1)
    def test_limit_can_be_disabled(self):
        self.client.force_authenticate(user=self.admin)

        statuses = {self.client.get("/api/v1/categories/").status_code for _ in range(3)}

        self.assertEqual(statuses, {200})


class SeedDemoDataCommandTests(TestCase):
    def test_seed_is_idempotent(self):
        call_command("seed_demo_data", verbosity=0)
        call_command("seed_demo_data", verbosity=0)

        self.assertEqual(get_user_model().objects.filter(username="admin@example.com").count(), 1)
        self.assertTrue(Item.objects.exists())
        self.assertEqual(Supplier.objects.filter(name="Demo Supplies").count(), 1)
