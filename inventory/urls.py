from django.urls import path
from rest_framework.routers import SimpleRouter

from inventory.views import (
    CategoryViewSet,
    GoodsReceiptViewSet,
    ItemCatalogViewSet,
    ItemViewSet,
    PublicItemView,
    PurchaseOrderViewSet,
    QRCodeViewSet,
    SupplierViewSet,
)

router = SimpleRouter()
router.register(r"items", ItemViewSet, basename="item")
router.register(r"qr-codes", QRCodeViewSet, basename="qr-code")
router.register(r"categories", CategoryViewSet, basename="category")
router.register(r"item-catalogs", ItemCatalogViewSet, basename="item-catalog")
router.register(r"suppliers", SupplierViewSet, basename="supplier")
router.register(r"purchase-orders", PurchaseOrderViewSet, basename="purchase-order")
router.register(r"goods-receipts", GoodsReceiptViewSet, basename="goods-receipt")

urlpatterns = router.urls + [
    path("public/items/<str:pk>/", PublicItemView.as_view(), name="public-item-detail"),
]
