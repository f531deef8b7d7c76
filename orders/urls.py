from rest_framework.routers import SimpleRouter

from orders.views import OrderViewSet, RequestViewSet

router = SimpleRouter()
router.register(r"orders", OrderViewSet, basename="order")
router.register(r"requests", RequestViewSet, basename="request")

urlpatterns = router.urls
