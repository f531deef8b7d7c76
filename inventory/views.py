from datetime import datetime, time

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Q
from django.utils import timezone
from django.utils.dateparse import parse_date
from rest_framework import generics, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from common.exceptions import InvalidOperation, QRCodeNotFound
from common.permissions import RoleCapabilityPermission
from common.views import RateLimitedViewMixin, filter_by_uuid, parse_uuid
from inventory.models import Category, GoodsReceipt, Item, ItemCatalog, PurchaseOrder, QRCode, Supplier
from inventory.serializers import (
    CategorySerializer,
    GoodsReceiptCreateSerializer,
    GoodsReceiptSerializer,
    GoodsReceiptUpdateSerializer,
    ItemCatalogSerializer,
    ItemSerializer,
    PublicItemSerializer,
    PurchaseOrderCreateSerializer,
    PurchaseOrderSerializer,
    PurchaseOrderStatusSerializer,
    QRCodeSerializer,
    StockHistorySerializer,
    SupplierCommunicationSerializer,
    SupplierDocumentSerializer,
    SupplierQualificationSerializer,
    SupplierSerializer,
)
from inventory.services import (
    create_goods_receipt,
    create_purchase_order,
    delete_goods_receipt,
    delete_item,
    generate_qr_code,
    stock_history_stats,
    supplier_metrics,
    update_goods_receipt,
    update_purchase_order_status,
    upsert_supplier_qualification,
)


def _date_range_bounds(from_value, to_value):
    from_date = parse_date(from_value or "")
    to_date = parse_date(to_value or "")
    if from_date is None or to_date is None:
        raise ValidationError({"from_date": "from_date and to_date must both be valid YYYY-MM-DD dates."})
    if from_date > to_date:
        raise ValidationError({"from_date": "from_date must not be after to_date."})
    tz = timezone.get_current_timezone()
    return (
        timezone.make_aware(datetime.combine(from_date, time.min), tz),
        timezone.make_aware(datetime.combine(to_date, time.max), tz),
    )


class ItemViewSet(RateLimitedViewMixin, viewsets.ModelViewSet):
    queryset = Item.objects.select_related("category", "supplier", "created_by").order_by("-updated_at")
    serializer_class = ItemSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "inventory.browse",
        "retrieve": "inventory.view",
        "create": "inventory.manage",
        "update": "inventory.manage",
        "partial_update": "inventory.manage",
        "destroy": "inventory.delete",
        "stock_history": "inventory.view",
        "qr_code": "qr_code.manage",
        "create_qr_code": "qr_code.manage",
        "delete_qr_code": "qr_code.delete",
    }
    not_found_code = "ITEM_NOT_FOUND"
    not_found_message = "Item not found"

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params
        if params.get("status"):
            queryset = queryset.filter(status=params["status"])
        if params.get("category"):
            queryset = filter_by_uuid(queryset, "category_id", params["category"])
        if params.get("supplier"):
            queryset = filter_by_uuid(queryset, "supplier_id", params["supplier"])
        if params.get("search"):
            term = params["search"]
            queryset = queryset.filter(Q(name__icontains=term) | Q(description__icontains=term))
        return queryset

    def perform_destroy(self, instance):
        delete_item(instance)

    @action(detail=True, methods=["get"], url_path="stock-history")
    def stock_history(self, request, pk=None):
        item = self.get_object()
        if request.query_params.get("type") == "stats":
            return Response(stock_history_stats(item))

        queryset = item.stock_history.select_related("actor").order_by("-created_at")
        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = StockHistorySerializer(page, many=True, context=self.get_serializer_context())
            return self.get_paginated_response(serializer.data)
        return Response(StockHistorySerializer(queryset, many=True, context=self.get_serializer_context()).data)

    @action(detail=True, methods=["get"], url_path="qr-code")
    def qr_code(self, request, pk=None):
        item = self.get_object()
        return Response(QRCodeSerializer(item.qr_codes.all(), many=True).data)

    @qr_code.mapping.post
    def create_qr_code(self, request, pk=None):
        item = self.get_object()
        return Response(QRCodeSerializer(generate_qr_code(item)).data, status=status.HTTP_201_CREATED)

    @qr_code.mapping.delete
    def delete_qr_code(self, request, pk=None):
        item = self.get_object()
        qr_code_id = request.query_params.get("qr_code_id")
        if not qr_code_id:
            raise ValidationError({"qr_code_id": "This query parameter is required."})
        try:
            qr_code = item.qr_codes.get(pk=qr_code_id)
        except (QRCode.DoesNotExist, DjangoValidationError) as exc:
            raise QRCodeNotFound() from exc
        qr_code.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


class PublicItemView(RateLimitedViewMixin, generics.RetrieveAPIView):
    """QR landing lookup: anonymous, read-only, reduced field set."""

    queryset = Item.objects.all()
    serializer_class = PublicItemSerializer
    authentication_classes = []
    permission_classes = [AllowAny]
    not_found_code = "ITEM_NOT_FOUND"
    not_found_message = "Item not found"


class QRCodeViewSet(RateLimitedViewMixin, viewsets.ReadOnlyModelViewSet):
    queryset = QRCode.objects.select_related("item").order_by("-created_at")
    serializer_class = QRCodeSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {"list": "qr_code.list_all", "retrieve": "qr_code.list_all"}
    not_found_code = "QR_CODE_NOT_FOUND"
    not_found_message = "QR code not found"


class CategoryViewSet(RateLimitedViewMixin, viewsets.ModelViewSet):
    queryset = Category.objects.order_by("name")
    serializer_class = CategorySerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "category.view",
        "retrieve": "category.view",
        "create": "category.manage",
        "update": "category.manage",
        "partial_update": "category.manage",
        "destroy": "category.manage",
    }
    not_found_code = "CATEGORY_NOT_FOUND"
    not_found_message = "Category not found"


class ItemCatalogViewSet(RateLimitedViewMixin, viewsets.ModelViewSet):
    queryset = (
        ItemCatalog.objects.select_related("category", "created_by")
        .prefetch_related("supplier_offers__supplier")
        .order_by("-updated_at")
    )
    serializer_class = ItemCatalogSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "catalog.view",
        "retrieve": "catalog.view",
        "create": "catalog.manage",
        "update": "catalog.manage",
        "partial_update": "catalog.manage",
        "destroy": "catalog.delete",
    }
    not_found_code = "ITEM_CATALOG_NOT_FOUND"
    not_found_message = "Item catalog not found"

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params
        if params.get("search"):
            term = params["search"]
            queryset = queryset.filter(Q(name__icontains=term) | Q(description__icontains=term))
        if params.get("category"):
            queryset = filter_by_uuid(queryset, "category_id", params["category"])
        if params.get("status"):
            queryset = queryset.filter(status=params["status"])
        return queryset

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)

    def perform_destroy(self, instance):
        if instance.items.exists():
            raise InvalidOperation("Cannot delete item catalog that is in use")
        instance.delete()


class SupplierViewSet(
    RateLimitedViewMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Supplier.objects.prefetch_related("categories", "contacts", "documents", "qualifications").order_by("name")
    serializer_class = SupplierSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "supplier.view",
        "retrieve": "supplier.view",
        "create": "supplier.manage",
        "update": "supplier.manage",
        "partial_update": "supplier.manage",
        "documents": "supplier.manage",
        "qualifications": "supplier.manage",
        "communications": "supplier.communicate",
        "metrics": "supplier.metrics",
    }
    not_found_code = "SUPPLIER_NOT_FOUND"
    not_found_message = "Supplier not found"

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params
        if params.get("search"):
            term = params["search"]
            queryset = queryset.filter(Q(name__icontains=term) | Q(email__icontains=term))
        if params.get("status"):
            queryset = queryset.filter(status=params["status"])
        if params.get("risk_level"):
            queryset = queryset.filter(risk_level=params["risk_level"])
        if params.get("category"):
            queryset = filter_by_uuid(queryset, "categories__id", params["category"]).distinct()
        return queryset

    @action(detail=True, methods=["post"], url_path="documents")
    def documents(self, request, pk=None):
        supplier = self.get_object()
        serializer = SupplierDocumentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        serializer.save(supplier=supplier)
        return Response(serializer.data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["put"], url_path="qualifications")
    def qualifications(self, request, pk=None):
        supplier = self.get_object()
        serializer = SupplierQualificationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        qualification, created = upsert_supplier_qualification(supplier, serializer.validated_data)
        return Response(
            SupplierQualificationSerializer(qualification).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    @action(detail=True, methods=["post"], url_path="communications")
    def communications(self, request, pk=None):
        supplier = self.get_object()
        serializer = SupplierCommunicationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        serializer.save(supplier=supplier)
        return Response(serializer.data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"], url_path="metrics")
    def metrics(self, request, pk=None):
        return Response(supplier_metrics(self.get_object()))


class PurchaseOrderViewSet(
    RateLimitedViewMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    queryset = (
        PurchaseOrder.objects.select_related("supplier", "created_by")
        .prefetch_related("lines__item")
        .order_by("-created_at")
    )
    serializer_class = PurchaseOrderSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "procurement.manage",
        "retrieve": "procurement.manage",
        "create": "procurement.manage",
        "update": "procurement.manage",
    }
    not_found_code = "PO_NOT_FOUND"
    not_found_message = "Purchase order not found"

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params
        if params.get("status"):
            queryset = queryset.filter(status=params["status"])
        if params.get("supplier"):
            queryset = filter_by_uuid(queryset, "supplier_id", params["supplier"])
        if params.get("from_date") or params.get("to_date"):
            start, end = _date_range_bounds(params.get("from_date"), params.get("to_date"))
            queryset = queryset.filter(created_at__range=(start, end))
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = PurchaseOrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        purchase_order = create_purchase_order(
            supplier_id=serializer.validated_data["supplier_id"],
            lines=serializer.validated_data["items"],
            notes=serializer.validated_data["notes"],
            user=request.user,
        )
        return Response(self.get_serializer(self._reload(purchase_order.id)).data, status=status.HTTP_201_CREATED)

    def update(self, request, pk=None):
        serializer = PurchaseOrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        purchase_order = update_purchase_order_status(
            purchase_order_id=parse_uuid(pk),
            status=serializer.validated_data["status"],
            user=request.user,
        )
        return Response(self.get_serializer(self._reload(purchase_order.id)).data)

    def _reload(self, purchase_order_id):
        return self.get_queryset().get(pk=purchase_order_id)


class GoodsReceiptViewSet(
    RateLimitedViewMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    queryset = (
        GoodsReceipt.objects.select_related("purchase_order__supplier", "received_by")
        .prefetch_related("lines__item")
        .order_by("-received_date")
    )
    serializer_class = GoodsReceiptSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "procurement.manage",
        "retrieve": "procurement.manage",
        "create": "procurement.manage",
        "update": "procurement.manage",
        "destroy": "goods_receipt.delete",
    }
    not_found_code = "RECEIPT_NOT_FOUND"
    not_found_message = "Goods receipt not found"

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params
        if params.get("status"):
            queryset = queryset.filter(status=params["status"])
        if params.get("purchase_order"):
            queryset = filter_by_uuid(queryset, "purchase_order_id", params["purchase_order"])
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = GoodsReceiptCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        receipt = create_goods_receipt(
            purchase_order_id=serializer.validated_data["purchase_order_id"],
            lines=serializer.validated_data["items"],
            notes=serializer.validated_data["notes"],
            user=request.user,
        )
        return Response(self.get_serializer(self._reload(receipt.id)).data, status=status.HTTP_201_CREATED)

    def update(self, request, pk=None):
        serializer = GoodsReceiptUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        receipt = update_goods_receipt(
            receipt_id=parse_uuid(pk),
            user=request.user,
            status=serializer.validated_data.get("status"),
            notes=serializer.validated_data.get("notes"),
        )
        return Response(self.get_serializer(self._reload(receipt.id)).data)

    def destroy(self, request, pk=None):
        delete_goods_receipt(receipt_id=parse_uuid(pk))
        return Response(status=status.HTTP_204_NO_CONTENT)

    def _reload(self, receipt_id):
        return self.get_queryset().get(pk=receipt_id)
