import logging

from django.contrib.auth import get_user_model
from django.db import connections
from rest_framework import generics, mixins, status, viewsets
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.views import TokenObtainPairView

from common.permissions import RoleCapabilityPermission
from common.views import RateLimitedViewMixin
from core.serializers import (
    EmailOrUsernameTokenObtainPairSerializer,
    UserRegistrationSerializer,
    UserSerializer,
)

User = get_user_model()
logger = logging.getLogger(__name__)


class RegisterView(RateLimitedViewMixin, generics.CreateAPIView):
    serializer_class = UserRegistrationSerializer
    permission_classes = [AllowAny]
    rate_limit_action_map = {"post": (10, 60)}

    def perform_create(self, serializer):
        user = serializer.save()
        logger.info("user_registered", extra={"user_id": str(user.id), "role": user.role})

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self.perform_create(serializer)
        return Response(
            {"message": "User registered successfully", "user": serializer.data},
            status=status.HTTP_201_CREATED,
        )


class EmailOrUsernameTokenObtainPairView(RateLimitedViewMixin, TokenObtainPairView):
    serializer_class = EmailOrUsernameTokenObtainPairSerializer
    rate_limit_action_map = {"post": (30, 60)}


class UserViewSet(
    RateLimitedViewMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    """Administrators list accounts and change their role; nothing else is editable here."""

    queryset = User.objects.order_by("email")
    serializer_class = UserSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "user.manage",
        "retrieve": "user.manage",
        "update": "user.manage",
        "partial_update": "user.manage",
    }
    not_found_code = "USER_NOT_FOUND"

    def perform_update(self, serializer):
        before_role = serializer.instance.role
        user = serializer.save()
        logger.info(
            "user_role_changed",
            extra={"user_id": str(user.id), "old_role": before_role, "new_role": user.role},
        )


@api_view(["GET"])
@permission_classes([AllowAny])
def healthz(request):
    return Response({"status": "ok", "request_id": getattr(request, "request_id", None)})


@api_view(["GET"])
@permission_classes([AllowAny])
def readyz(request):
    try:
        with connections["default"].cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except Exception as exc:
        logger.exception("readiness_check_failed")
        return Response(
            {"status": "error", "request_id": getattr(request, "request_id", None), "detail": str(exc)},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    return Response({"status": "ready", "request_id": getattr(request, "request_id", None)})
