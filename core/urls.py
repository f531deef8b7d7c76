from django.urls import path
from rest_framework.routers import DefaultRouter

from core.views import RegisterView, UserViewSet, healthz, readyz

router = DefaultRouter()
router.register(r"users", UserViewSet, basename="user")

urlpatterns = router.urls + [
    path("register/", RegisterView.as_view(), name="register"),
    path("healthz/", healthz, name="healthz"),
    path("readyz/", readyz, name="readyz"),
]
