import uuid
from datetime import timedelta
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from inventory.models import Item, ItemStatus, StockHistory, Supplier
from orders.models import Order, OrderLine, Request
from orders.services import merge_order_lines, order_analytics


class OrdersTestMixin:
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(username="admin-orders", password="pass1234", role="ADMIN")
        self.worker1 = self.user_model.objects.create_user(username="worker1-orders", password="pass1234", role="WORKER1")
        self.worker2 = self.user_model.objects.create_user(
            username="worker2-orders",
            password="pass1234",
            name="Order Desk",
            role="WORKER2",
        )
        self.customer = self.user_model.objects.create_user(username="customer", password="pass1234", role="USER")

        self.supplier = Supplier.objects.create(name="Orders Supplier")
        self.item = Item.objects.create(name="Widget", supplier=self.supplier, stock_level=5, minimum_stock_level=3)
        self.other_item = Item.objects.create(name="Gadget", supplier=self.supplier, stock_level=1)


class OrderPlacementTests(OrdersTestMixin, TestCase):
    def test_order_decrements_stock_and_records_sale(self):
        self.client.force_authenticate(user=self.worker2)

        response = self.client.post(
            "/api/v1/orders/",
            {"items": [{"id": str(self.item.id), "quantity": 2}]},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "PENDING")
        self.assertEqual(payload["user"]["id"], str(self.worker2.id))
        self.assertEqual(payload["lines"][0]["quantity"], 2)

        self.item.refresh_from_db()
        self.assertEqual(self.item.stock_level, 3)
        self.assertEqual(self.item.status, ItemStatus.LOW_STOCK)
        history = StockHistory.objects.get(item=self.item)
        self.assertEqual((history.old_level, history.new_level), (5, 3))
        self.assertEqual(history.reason, StockHistory.Reason.SALE)
        self.assertEqual(history.notes, f"Order {payload['id']}")

    def test_order_on_behalf_of_another_user(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.post(
            "/api/v1/orders/",
            {"user_id": str(self.customer.id), "items": [{"id": str(self.item.id), "quantity": 1}]},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        order = Order.objects.get(id=response.json()["id"])
        self.assertEqual(order.user, self.customer)
        self.assertEqual(StockHistory.objects.get(item=self.item).actor, self.admin)

    def test_insufficient_stock_rejects_whole_order(self):
        self.client.force_authenticate(user=self.worker2)

        response = self.client.post(
            "/api/v1/orders/",
            {
                "items": [
                    {"id": str(self.item.id), "quantity": 2},
                    {"id": str(self.other_item.id), "quantity": 4},
                ]
            },
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "INSUFFICIENT_STOCK")
        self.assertEqual(payload["error"], "Insufficient stock for items: Gadget")
        self.assertEqual(
            payload["errors"]["items"],
            [{"id": str(self.other_item.id), "name": "Gadget", "requested": 4, "available": 1}],
        )
        self.item.refresh_from_db()
        self.other_item.refresh_from_db()
        self.assertEqual((self.item.stock_level, self.other_item.stock_level), (5, 1))
        self.assertFalse(Order.objects.exists())
        self.assertFalse(StockHistory.objects.exists())

    def test_unknown_item_rejects_order(self):
        self.client.force_authenticate(user=self.worker2)
        missing_id = str(uuid.uuid4())

        response = self.client.post(
            "/api/v1/orders/",
            {"items": [{"id": str(self.item.id), "quantity": 1}, {"id": missing_id, "quantity": 1}]},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "ITEMS_NOT_FOUND")
        self.assertEqual(response.json()["errors"], {"items": [missing_id]})
        self.item.refresh_from_db()
        self.assertEqual(self.item.stock_level, 5)

    def test_failure_after_writes_rolls_back_order(self):
        self.client.force_authenticate(user=self.worker2)

        with patch("inventory.services.record_stock_history", side_effect=RuntimeError("history down")):
            with self.assertLogs("common.exceptions", level="ERROR"):
                response = self.client.post(
                    "/api/v1/orders/",
                    {
                        "items": [
                            {"id": str(self.item.id), "quantity": 2},
                            {"id": str(self.other_item.id), "quantity": 1},
                        ]
                    },
                    format="json",
                )

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["code"], "INTERNAL_SERVER_ERROR")
        self.item.refresh_from_db()
        self.other_item.refresh_from_db()
        self.assertEqual((self.item.stock_level, self.other_item.stock_level), (5, 1))
        self.assertEqual(self.item.status, ItemStatus.AVAILABLE)
        self.assertFalse(Order.objects.exists())
        self.assertFalse(OrderLine.objects.exists())
        self.assertFalse(StockHistory.objects.exists())

    def test_quantity_above_column_limit_fails_validation(self):
        self.client.force_authenticate(user=self.worker2)

        response = self.client.post(
            "/api/v1/orders/",
            {"items": [{"id": str(self.item.id), "quantity": 10**19}]},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")
        self.assertFalse(Order.objects.exists())

    def test_empty_order_fails_validation(self):
        self.client.force_authenticate(user=self.worker2)

        response = self.client.post("/api/v1/orders/", {"items": []}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")
        self.assertEqual(response.json()["error"], "items: Order must contain at least one item")

    def test_duplicate_lines_are_summed(self):
        self.client.force_authenticate(user=self.worker2)

        response = self.client.post(
            "/api/v1/orders/",
            {
                "items": [
                    {"id": str(self.item.id), "quantity": 1},
                    {"id": str(self.item.id), "quantity": 2},
                ]
            },
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(OrderLine.objects.get().quantity, 3)
        self.item.refresh_from_db()
        self.assertEqual(self.item.stock_level, 2)

    def test_worker1_cannot_place_orders(self):
        self.client.force_authenticate(user=self.worker1)

        with self.assertLogs("security.authorization", level="WARNING"):
            response = self.client.post(
                "/api/v1/orders/",
                {"items": [{"id": str(self.item.id), "quantity": 1}]},
                format="json",
            )

        self.assertEqual(response.status_code, 403)

    def test_order_creation_is_rate_limited(self):
        self.item.stock_level = 100
        self.item.save(update_fields=["stock_level"])
        self.client.force_authenticate(user=self.worker2)
        body = {"items": [{"id": str(self.item.id), "quantity": 1}]}

        statuses = [self.client.post("/api/v1/orders/", body, format="json").status_code for _ in range(11)]

        self.assertEqual(statuses[:10], [200] * 10)
        self.assertEqual(statuses[10], 429)
        self.assertEqual(Order.objects.count(), 10)


class MergeOrderLinesTests(SimpleTestCase):
    def test_quantities_are_summed_per_item(self):
        first, second = uuid.uuid4(), uuid.uuid4()

        merged = merge_order_lines(
            [{"id": first, "quantity": 1}, {"id": second, "quantity": 4}, {"id": first, "quantity": 2}]
        )

        self.assertEqual(merged, {str(first): 3, str(second): 4})


class OrderLifecycleTests(OrdersTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.order = Order.objects.create(user=self.customer)
        OrderLine.objects.create(order=self.order, item=self.item, quantity=1)
        self.client.force_authenticate(user=self.worker2)

    def _set_status(self, status, order_id=None):
        return self.client.put(f"/api/v1/orders/{order_id or self.order.id}/", {"status": status}, format="json")

    def test_pending_to_approved_to_completed(self):
        self.assertEqual(self._set_status("APPROVED").status_code, 200)
        response = self._set_status("COMPLETED")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "COMPLETED")

    def test_completed_order_is_terminal(self):
        self._set_status("APPROVED")
        self._set_status("COMPLETED")

        response = self._set_status("CANCELLED")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_STATUS_TRANSITION")
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.COMPLETED)

    def test_pending_cannot_skip_to_completed(self):
        response = self._set_status("COMPLETED")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "INVALID_STATUS_TRANSITION")

    def test_deny_only_from_pending(self):
        self._set_status("APPROVED")

        response = self._set_status("DENIED")

        self.assertEqual(response.status_code, 400)

    def test_cancel_does_not_restock(self):
        response = self._set_status("CANCELLED")

        self.assertEqual(response.status_code, 200)
        self.item.refresh_from_db()
        self.assertEqual(self.item.stock_level, 5)

    def test_unknown_order(self):
        for order_id in (uuid.uuid4(), "not-a-uuid"):
            response = self._set_status("APPROVED", order_id=order_id)
            self.assertEqual(response.status_code, 404)
            self.assertEqual(response.json()["code"], "ORDER_NOT_FOUND")

        detail = self.client.get(f"/api/v1/orders/{uuid.uuid4()}/")
        self.assertEqual(detail.status_code, 404)
        self.assertEqual(detail.json()["code"], "ORDER_NOT_FOUND")

    def test_invalid_status_value(self):
        response = self._set_status("SHIPPED")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")

    def test_delete_order(self):
        response = self.client.delete(f"/api/v1/orders/{self.order.id}/")

        self.assertEqual(response.status_code, 204)
        self.assertFalse(Order.objects.exists())
        self.assertFalse(OrderLine.objects.exists())

    def test_list_filters_by_status(self):
        Order.objects.create(user=self.customer, status=Order.Status.APPROVED)

        response = self.client.get("/api/v1/orders/", {"status": "APPROVED"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["count"], 1)


class OrderAnalyticsTests(OrdersTestMixin, TestCase):
    def test_stats_and_seven_day_trend(self):
        Order.objects.create(user=self.customer)
        Order.objects.create(user=self.customer, status=Order.Status.APPROVED)
        old_order = Order.objects.create(user=self.customer, status=Order.Status.COMPLETED)
        Order.objects.filter(pk=old_order.pk).update(created_at=timezone.now() - timedelta(days=30))

        analytics = order_analytics()

        self.assertEqual(
            analytics["stats"],
            {"total": 3, "pending": 1, "approved": 1, "completed": 1, "cancelled": 0, "denied": 0},
        )
        self.assertEqual(len(analytics["trends"]), 7)
        self.assertEqual(analytics["trends"][-1], {"date": timezone.localdate().isoformat(), "count": 2})
        self.assertEqual(sum(day["count"] for day in analytics["trends"]), 2)

    def test_analytics_endpoint(self):
        self.client.force_authenticate(user=self.worker2)

        response = self.client.get("/api/v1/orders/analytics/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["stats"]["total"], 0)
        self.assertEqual(len(response.json()["trends"]), 7)


class RequestApiTests(OrdersTestMixin, TestCase):
    def test_any_role_creates_request_for_itself(self):
        self.client.force_authenticate(user=self.customer)

        response = self.client.post(
            "/api/v1/requests/",
            {"item": str(self.item.id), "type": "CHECKOUT", "quantity": 2, "status": "APPROVED"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["status"], "PENDING")
        self.assertEqual(payload["user"]["id"], str(self.customer.id))
        self.assertEqual(payload["item_name"], "Widget")

    def test_plain_user_cannot_list_requests(self):
        self.client.force_authenticate(user=self.customer)

        with self.assertLogs("security.authorization", level="WARNING"):
            response = self.client.get("/api/v1/requests/")

        self.assertEqual(response.status_code, 403)

    def test_review_request(self):
        item_request = Request.objects.create(user=self.customer, item=self.item, type=Request.Type.RETURN)
        self.client.force_authenticate(user=self.worker2)

        approve = self.client.patch(f"/api/v1/requests/{item_request.id}/", {"status": "APPROVED"}, format="json")
        deny = self.client.patch(f"/api/v1/requests/{item_request.id}/", {"status": "DENIED"}, format="json")

        self.assertEqual(approve.status_code, 200)
        self.assertEqual(approve.json()["status"], "APPROVED")
        self.assertEqual(deny.status_code, 400)
        self.assertEqual(deny.json()["code"], "INVALID_STATUS_TRANSITION")
        self.item.refresh_from_db()
        self.assertEqual(self.item.stock_level, 5)

    def test_review_unknown_request(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.put(f"/api/v1/requests/{uuid.uuid4()}/", {"status": "APPROVED"}, format="json")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "REQUEST_NOT_FOUND")
