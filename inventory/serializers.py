from django.db import transaction
from rest_framework import serializers

from core.serializers import UserSummarySerializer
from inventory.models import (
    MAX_QUANTITY,
    Category,
    GoodsReceipt,
    GoodsReceiptLine,
    Item,
    ItemCatalog,
    ItemCatalogSupplier,
    PurchaseOrder,
    PurchaseOrderLine,
    QRCode,
    StockHistory,
    Supplier,
    SupplierCommunication,
    SupplierContact,
    SupplierDocument,
    SupplierQualification,
)
from inventory.services import create_item, replace_catalog_supplier_offers, update_item


class CategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = Category
        fields = ["id", "name", "description", "created_at", "updated_at"]
        read_only_fields = ["id", "created_at", "updated_at"]


class SupplierContactSerializer(serializers.ModelSerializer):
    name = serializers.CharField(min_length=2, max_length=255)

    class Meta:
        model = SupplierContact
        fields = ["id", "name", "title", "email", "phone", "department", "is_primary", "created_at", "updated_at"]
        read_only_fields = ["id", "created_at", "updated_at"]


class SupplierDocumentSerializer(serializers.ModelSerializer):
    name = serializers.CharField(min_length=2, max_length=255)

    class Meta:
        model = SupplierDocument
        fields = ["id", "supplier", "type", "name", "url", "expiry_date", "uploaded_at"]
        read_only_fields = ["id", "supplier", "uploaded_at"]


class SupplierQualificationSerializer(serializers.ModelSerializer):
    type = serializers.CharField(min_length=2, max_length=128)
    attachments = serializers.ListField(child=serializers.URLField(), required=False)

    class Meta:
        model = SupplierQualification
        fields = [
            "id",
            "supplier",
            "type",
            "status",
            "valid_from",
            "valid_until",
            "attachments",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "supplier", "created_at", "updated_at"]
        # Upserts by (supplier, type) replace the model-level unique-together check.
        validators = []


class SupplierCommunicationSerializer(serializers.ModelSerializer):
    subject = serializers.CharField(min_length=2, max_length=255)
    attachments = serializers.ListField(child=serializers.URLField(), required=False)

    class Meta:
        model = SupplierCommunication
        fields = ["id", "supplier", "type", "subject", "content", "attachments", "sender", "recipient", "created_at"]
        read_only_fields = ["id", "supplier", "created_at"]


class SupplierSerializer(serializers.ModelSerializer):
    name = serializers.CharField(min_length=2, max_length=255)
    categories = serializers.PrimaryKeyRelatedField(queryset=Category.objects.all(), many=True, required=False)
    contacts = SupplierContactSerializer(many=True, required=False)
    documents = SupplierDocumentSerializer(many=True, read_only=True)
    qualifications = SupplierQualificationSerializer(many=True, read_only=True)

    class Meta:
        model = Supplier
        fields = [
            "id",
            "name",
            "email",
            "phone",
            "address",
            "notes",
            "tax_id",
            "website",
            "payment_terms",
            "currency",
            "diversity_status",
            "status",
            "risk_level",
            "rating",
            "categories",
            "contacts",
            "documents",
            "qualifications",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]

    @transaction.atomic
    def create(self, validated_data):
        contacts = validated_data.pop("contacts", [])
        categories = validated_data.pop("categories", [])
        supplier = Supplier.objects.create(**validated_data)
        supplier.categories.set(categories)
        SupplierContact.objects.bulk_create(SupplierContact(supplier=supplier, **contact) for contact in contacts)
        return supplier

    @transaction.atomic
    def update(self, instance, validated_data):
        contacts = validated_data.pop("contacts", None)
        categories = validated_data.pop("categories", None)
        supplier = super().update(instance, validated_data)
        if categories is not None:
            supplier.categories.set(categories)
        if contacts is not None:
            supplier.contacts.all().delete()
            SupplierContact.objects.bulk_create(SupplierContact(supplier=supplier, **contact) for contact in contacts)
        return supplier


class ItemCatalogSupplierSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source="supplier.name", read_only=True)
    minimum_order_qty = serializers.IntegerField(min_value=1, default=1)
    pack_size = serializers.IntegerField(min_value=1, default=1)

    class Meta:
        model = ItemCatalogSupplier
        fields = [
            "id",
            "supplier",
            "supplier_name",
            "unit_price",
            "lead_time",
            "minimum_order_qty",
            "pack_size",
            "is_preferred",
            "supplier_sku",
        ]
        read_only_fields = ["id"]
        validators = []


class ItemCatalogSerializer(serializers.ModelSerializer):
    name = serializers.CharField(min_length=2, max_length=255)
    suppliers = ItemCatalogSupplierSerializer(source="supplier_offers", many=True, required=False)
    created_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = ItemCatalog
        fields = [
            "id",
            "name",
            "description",
            "dimensions",
            "weight",
            "storage_conditions",
            "handling_instructions",
            "minimum_stock_level",
            "reorder_point",
            "category",
            "status",
            "suppliers",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_by", "created_at", "updated_at"]

    def validate(self, attrs):
        if self.instance is None and not attrs.get("supplier_offers"):
            raise serializers.ValidationError({"suppliers": "At least one supplier is required"})
        offers = attrs.get("supplier_offers") or []
        supplier_ids = [offer["supplier"].id for offer in offers]
        if len(supplier_ids) != len(set(supplier_ids)):
            raise serializers.ValidationError({"suppliers": "Each supplier may be listed only once"})
        return attrs

    @transaction.atomic
    def create(self, validated_data):
        offers = validated_data.pop("supplier_offers")
        item_catalog = ItemCatalog.objects.create(**validated_data)
        replace_catalog_supplier_offers(item_catalog, offers)
        return item_catalog

    @transaction.atomic
    def update(self, instance, validated_data):
        offers = validated_data.pop("supplier_offers", None)
        item_catalog = super().update(instance, validated_data)
        if offers is not None:
            replace_catalog_supplier_offers(item_catalog, offers)
        return item_catalog


class ItemSerializer(serializers.ModelSerializer):
    name = serializers.CharField(min_length=2, max_length=255)
    category_name = serializers.CharField(source="category.name", read_only=True, default=None)
    supplier_name = serializers.CharField(source="supplier.name", read_only=True)
    created_by = UserSummarySerializer(read_only=True)
    location = serializers.CharField(read_only=True)
    reason = serializers.ChoiceField(choices=StockHistory.Reason.choices, write_only=True, required=False)
    notes = serializers.CharField(write_only=True, required=False, allow_blank=True)

    class Meta:
        model = Item
        fields = [
            "id",
            "name",
            "description",
            "dimensions",
            "weight",
            "storage_conditions",
            "handling_instructions",
            "stock_level",
            "minimum_stock_level",
            "status",
            "warehouse",
            "aisle",
            "shelf",
            "location",
            "expiry_date",
            "last_purchase_date",
            "category",
            "category_name",
            "supplier",
            "supplier_name",
            "item_catalog",
            "created_by",
            "created_at",
            "updated_at",
            "reason",
            "notes",
        ]
        read_only_fields = ["id", "last_purchase_date", "created_by", "created_at", "updated_at"]
        extra_kwargs = {
            "stock_level": {"max_value": MAX_QUANTITY},
            "minimum_stock_level": {"max_value": MAX_QUANTITY},
        }

    def create(self, validated_data):
        validated_data.pop("reason", None)
        validated_data.pop("notes", None)
        return create_item(data=validated_data, actor=self.context["request"].user)

    def update(self, instance, validated_data):
        reason = validated_data.pop("reason", None)
        notes = validated_data.pop("notes", None)
        return update_item(
            item_id=instance.id,
            changes=validated_data,
            actor=self.context["request"].user,
            reason=reason,
            notes=notes,
        )


class PublicItemSerializer(serializers.ModelSerializer):
    location = serializers.CharField(read_only=True)

    class Meta:
        model = Item
        fields = [
            "id",
            "name",
            "description",
            "dimensions",
            "weight",
            "storage_conditions",
            "handling_instructions",
            "stock_level",
            "location",
            "status",
            "created_at",
        ]
        read_only_fields = fields


class StockHistorySerializer(serializers.ModelSerializer):
    actor = UserSummarySerializer(read_only=True)

    class Meta:
        model = StockHistory
        fields = ["id", "item", "old_level", "new_level", "reason", "notes", "actor", "created_at"]
        read_only_fields = fields


class QRCodeSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source="item.name", read_only=True)

    class Meta:
        model = QRCode
        fields = ["id", "item", "item_name", "url", "created_at"]
        read_only_fields = fields


class PurchaseOrderLineSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source="item.name", read_only=True)

    class Meta:
        model = PurchaseOrderLine
        fields = ["id", "item", "item_name", "quantity", "unit_price", "total_price"]
        read_only_fields = fields


class PurchaseOrderSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source="supplier.name", read_only=True)
    created_by = UserSummarySerializer(read_only=True)
    lines = PurchaseOrderLineSerializer(many=True, read_only=True)

    class Meta:
        model = PurchaseOrder
        fields = [
            "id",
            "supplier",
            "supplier_name",
            "status",
            "total_amount",
            "notes",
            "lines",
            "created_by",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PurchaseOrderLineInputSerializer(serializers.Serializer):
    item_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_QUANTITY)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)


class PurchaseOrderCreateSerializer(serializers.Serializer):
    supplier_id = serializers.UUIDField()
    items = PurchaseOrderLineInputSerializer(many=True, allow_empty=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class PurchaseOrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=PurchaseOrder.Status.choices)


class GoodsReceiptLineSerializer(serializers.ModelSerializer):
    item_name = serializers.CharField(source="item.name", read_only=True)

    class Meta:
        model = GoodsReceiptLine
        fields = ["id", "item", "item_name", "quantity", "batch_number", "expiry_date"]
        read_only_fields = fields


class GoodsReceiptSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source="purchase_order.supplier.name", read_only=True)
    received_by = UserSummarySerializer(read_only=True)
    lines = GoodsReceiptLineSerializer(many=True, read_only=True)

    class Meta:
        model = GoodsReceipt
        fields = [
            "id",
            "purchase_order",
            "supplier_name",
            "status",
            "notes",
            "received_by",
            "received_date",
            "lines",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class GoodsReceiptLineInputSerializer(serializers.Serializer):
    item_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_QUANTITY)
    batch_number = serializers.CharField(required=False, allow_blank=True, max_length=128)
    expiry_date = serializers.DateField(required=False, allow_null=True)


class GoodsReceiptCreateSerializer(serializers.Serializer):
    purchase_order_id = serializers.UUIDField()
    items = GoodsReceiptLineInputSerializer(many=True, allow_empty=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class GoodsReceiptUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=GoodsReceipt.Status.choices, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("At least one field must be provided for update")
        return attrs
