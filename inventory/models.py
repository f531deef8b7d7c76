import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone

# Largest value a PositiveIntegerField column holds on every supported backend.
MAX_QUANTITY = 2147483647
# Largest amount a max_digits=14, decimal_places=2 column holds.
MAX_AMOUNT = Decimal("999999999999.99")


class ItemStatus(models.TextChoices):
    AVAILABLE = "AVAILABLE", "Available"
    LOW_STOCK = "LOW_STOCK", "Low stock"
    OUT_OF_STOCK = "OUT_OF_STOCK", "Out of stock"
    EXPIRED = "EXPIRED", "Expired"
    DAMAGED = "DAMAGED", "Damaged"


class Category(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Supplier(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        INACTIVE = "INACTIVE", "Inactive"
        PENDING = "PENDING", "Pending"
        SUSPENDED = "SUSPENDED", "Suspended"
        BLACKLISTED = "BLACKLISTED", "Blacklisted"

    class RiskLevel(models.TextChoices):
        LOW = "LOW", "Low"
        MEDIUM = "MEDIUM", "Medium"
        HIGH = "HIGH", "High"
        CRITICAL = "CRITICAL", "Critical"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    email = models.EmailField(blank=True, default="")
    phone = models.CharField(max_length=64, blank=True, default="")
    address = models.TextField(blank=True, default="")
    notes = models.TextField(blank=True, default="")
    tax_id = models.CharField(max_length=64, blank=True, default="")
    website = models.URLField(blank=True, default="")
    payment_terms = models.CharField(max_length=128, blank=True, default="")
    currency = models.CharField(max_length=8, blank=True, default="USD")
    diversity_status = models.CharField(max_length=128, blank=True, default="")
    status = models.CharField(max_length=16, choices=Status, default=Status.ACTIVE)
    risk_level = models.CharField(max_length=16, choices=RiskLevel, default=RiskLevel.LOW)
    rating = models.DecimalField(
        max_digits=3,
        decimal_places=2,
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(5)],
    )
    categories = models.ManyToManyField(Category, blank=True, related_name="suppliers")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "risk_level"], name="inv_supplier_status_risk_idx"),
            models.Index(fields=["name"], name="inv_supplier_name_idx"),
        ]

    def __str__(self):
        return self.name


class SupplierContact(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    supplier = models.ForeignKey(Supplier, on_delete=models.CASCADE, related_name="contacts")
    name = models.CharField(max_length=255)
    title = models.CharField(max_length=128, blank=True, default="")
    email = models.EmailField()
    phone = models.CharField(max_length=64, blank=True, default="")
    department = models.CharField(max_length=128, blank=True, default="")
    is_primary = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=["supplier", "is_primary"], name="inv_contact_primary_idx")]


class SupplierDocument(models.Model):
    class Type(models.TextChoices):
        CONTRACT = "CONTRACT", "Contract"
        CERTIFICATION = "CERTIFICATION", "Certification"
        INSURANCE = "INSURANCE", "Insurance"
        LICENSE = "LICENSE", "License"
        FINANCIAL = "FINANCIAL", "Financial"
        COMPLIANCE = "COMPLIANCE", "Compliance"
        OTHER = "OTHER", "Other"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    supplier = models.ForeignKey(Supplier, on_delete=models.CASCADE, related_name="documents")
    type = models.CharField(max_length=16, choices=Type)
    name = models.CharField(max_length=255)
    url = models.URLField(max_length=500)
    expiry_date = models.DateTimeField(null=True, blank=True)
    uploaded_at = models.DateTimeField(auto_now_add=True)


class SupplierQualification(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        APPROVED = "APPROVED", "Approved"
        REJECTED = "REJECTED", "Rejected"
        EXPIRED = "EXPIRED", "Expired"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    supplier = models.ForeignKey(Supplier, on_delete=models.CASCADE, related_name="qualifications")
    type = models.CharField(max_length=128)
    status = models.CharField(max_length=16, choices=Status, default=Status.PENDING)
    valid_from = models.DateTimeField()
    valid_until = models.DateTimeField(null=True, blank=True)
    attachments = models.JSONField(default=list, blank=True)
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["supplier", "type"], name="uniq_supplier_qualification_type"),
        ]


class SupplierCommunication(models.Model):
    class Type(models.TextChoices):
        EMAIL = "EMAIL", "Email"
        MEETING = "MEETING", "Meeting"
        PHONE = "PHONE", "Phone"
        AUDIT = "AUDIT", "Audit"
        OTHER = "OTHER", "Other"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    supplier = models.ForeignKey(Supplier, on_delete=models.CASCADE, related_name="communications")
    type = models.CharField(max_length=16, choices=Type)
    subject = models.CharField(max_length=255)
    content = models.TextField()
    attachments = models.JSONField(default=list, blank=True)
    sender = models.EmailField()
    recipient = models.EmailField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=["supplier", "type", "created_at"], name="inv_comm_supplier_type_idx")]


class ItemCatalog(models.Model):
    """Template an item is stocked from; carries the reorder point and supplier offers."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    dimensions = models.CharField(max_length=255, blank=True, default="")
    weight = models.DecimalField(max_digits=10, decimal_places=3, null=True, blank=True)
    storage_conditions = models.TextField(blank=True, default="")
    handling_instructions = models.TextField(blank=True, default="")
    minimum_stock_level = models.PositiveIntegerField(default=0)
    reorder_point = models.PositiveIntegerField(default=0)
    category = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True, related_name="item_catalogs")
    status = models.CharField(max_length=16, choices=ItemStatus, default=ItemStatus.AVAILABLE)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="item_catalogs",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=["status", "updated_at"], name="inv_catalog_status_idx")]


class ItemCatalogSupplier(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    item_catalog = models.ForeignKey(ItemCatalog, on_delete=models.CASCADE, related_name="supplier_offers")
    supplier = models.ForeignKey(Supplier, on_delete=models.CASCADE, related_name="catalog_offers")
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    lead_time = models.PositiveIntegerField(null=True, blank=True)
    minimum_order_qty = models.PositiveIntegerField(default=1)
    pack_size = models.PositiveIntegerField(default=1)
    is_preferred = models.BooleanField(default=False)
    supplier_sku = models.CharField(max_length=128, blank=True, default="")

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["supplier", "item_catalog"], name="uniq_catalog_supplier_offer"),
        ]


class Item(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    dimensions = models.CharField(max_length=255, blank=True, default="")
    weight = models.DecimalField(max_digits=10, decimal_places=3, null=True, blank=True)
    storage_conditions = models.TextField(blank=True, default="")
    handling_instructions = models.TextField(blank=True, default="")
    stock_level = models.PositiveIntegerField(default=0)
    minimum_stock_level = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=16, choices=ItemStatus, default=ItemStatus.AVAILABLE)
    warehouse = models.CharField(max_length=128, blank=True, default="")
    aisle = models.CharField(max_length=64, blank=True, default="")
    shelf = models.CharField(max_length=64, blank=True, default="")
    expiry_date = models.DateField(null=True, blank=True)
    last_purchase_date = models.DateTimeField(null=True, blank=True)
    category = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True, related_name="items")
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name="items")
    item_catalog = models.ForeignKey(ItemCatalog, on_delete=models.SET_NULL, null=True, blank=True, related_name="items")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_items",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status"], name="inv_item_status_idx"),
            models.Index(fields=["supplier", "status"], name="inv_item_supplier_status_idx"),
            models.Index(fields=["name"], name="inv_item_name_idx"),
        ]

    def __str__(self):
        return self.name

    @property
    def location(self):
        return " / ".join(part for part in (self.warehouse, self.aisle, self.shelf) if part)


class StockHistory(models.Model):
    class Reason(models.TextChoices):
        RESTOCK = "RESTOCK", "Restock"
        SALE = "SALE", "Sale"
        RETURN = "RETURN", "Return"
        DAMAGE = "DAMAGE", "Damage"
        ADJUSTMENT = "ADJUSTMENT", "Adjustment"
        EXPIRED = "EXPIRED", "Expired"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    item = models.ForeignKey(Item, on_delete=models.CASCADE, related_name="stock_history")
    old_level = models.IntegerField()
    new_level = models.IntegerField()
    reason = models.CharField(max_length=16, choices=Reason)
    actor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="stock_changes")
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["item", "created_at"], name="inv_history_item_created_idx")]


class QRCode(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    item = models.ForeignKey(Item, on_delete=models.CASCADE, related_name="qr_codes")
    url = models.URLField(max_length=500)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]


class PurchaseOrder(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        APPROVED = "APPROVED", "Approved"
        RECEIVED = "RECEIVED", "Received"
        CANCELLED = "CANCELLED", "Cancelled"

    TERMINAL_STATUSES = frozenset({Status.RECEIVED, Status.CANCELLED})

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    supplier = models.ForeignKey(Supplier, on_delete=models.PROTECT, related_name="purchase_orders")
    status = models.CharField(max_length=16, choices=Status, default=Status.PENDING)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="purchase_orders")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "created_at"], name="inv_po_status_created_idx"),
            models.Index(fields=["supplier", "status"], name="inv_po_supplier_status_idx"),
        ]


class PurchaseOrderLine(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.CASCADE, related_name="lines")
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name="purchase_order_lines")
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    total_price = models.DecimalField(max_digits=14, decimal_places=2)


class GoodsReceipt(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        COMPLETED = "COMPLETED", "Completed"
        REJECTED = "REJECTED", "Rejected"

    TERMINAL_STATUSES = frozenset({Status.COMPLETED, Status.REJECTED})

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    purchase_order = models.ForeignKey(PurchaseOrder, on_delete=models.PROTECT, related_name="goods_receipts")
    received_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="goods_receipts")
    status = models.CharField(max_length=16, choices=Status, default=Status.PENDING)
    notes = models.TextField(blank=True, default="")
    received_date = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [models.Index(fields=["purchase_order", "status"], name="inv_receipt_po_status_idx")]


class GoodsReceiptLine(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    goods_receipt = models.ForeignKey(GoodsReceipt, on_delete=models.CASCADE, related_name="lines")
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name="goods_receipt_lines")
    quantity = models.PositiveIntegerField()
    batch_number = models.CharField(max_length=128, blank=True, default="")
    expiry_date = models.DateField(null=True, blank=True)
