import uuid

from django.conf import settings
from django.db import models

from inventory.models import Item


class Order(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        APPROVED = "APPROVED", "Approved"
        COMPLETED = "COMPLETED", "Completed"
        CANCELLED = "CANCELLED", "Cancelled"
        DENIED = "DENIED", "Denied"

    ALLOWED_TRANSITIONS = {
        Status.PENDING: frozenset({Status.APPROVED, Status.DENIED, Status.CANCELLED}),
        Status.APPROVED: frozenset({Status.COMPLETED, Status.CANCELLED}),
        Status.COMPLETED: frozenset(),
        Status.CANCELLED: frozenset(),
        Status.DENIED: frozenset(),
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="orders")
    status = models.CharField(max_length=16, choices=Status, default=Status.PENDING)
    items = models.ManyToManyField(Item, through="OrderLine", related_name="orders")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=["status", "created_at"], name="orders_status_created_idx")]

    def can_transition_to(self, status):
        return status in self.ALLOWED_TRANSITIONS.get(self.status, frozenset())


class OrderLine(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="lines")
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name="order_lines")
    quantity = models.PositiveIntegerField()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["order", "item"], name="uniq_order_line_item"),
        ]


class Request(models.Model):
    """A user's ask to check an item out of, or back into, the warehouse."""

    class Type(models.TextChoices):
        CHECKOUT = "CHECKOUT", "Checkout"
        RETURN = "RETURN", "Return"

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        APPROVED = "APPROVED", "Approved"
        DENIED = "DENIED", "Denied"
        COMPLETED = "COMPLETED", "Completed"

    ALLOWED_TRANSITIONS = {
        Status.PENDING: frozenset({Status.APPROVED, Status.DENIED}),
        Status.APPROVED: frozenset({Status.COMPLETED}),
        Status.DENIED: frozenset(),
        Status.COMPLETED: frozenset(),
    }

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="item_requests")
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name="requests")
    type = models.CharField(max_length=16, choices=Type)
    quantity = models.PositiveIntegerField(default=1)
    notes = models.TextField(blank=True, default="")
    status = models.CharField(max_length=16, choices=Status, default=Status.PENDING)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=["status", "created_at"], name="orders_request_status_idx")]

    def can_transition_to(self, status):
        return status in self.ALLOWED_TRANSITIONS.get(self.status, frozenset())
