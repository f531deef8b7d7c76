from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.permissions import RoleCapabilityPermission
from common.views import RateLimitedViewMixin, parse_uuid
from orders.models import Order, Request
from orders.serializers import (
    OrderCreateSerializer,
    OrderSerializer,
    OrderStatusSerializer,
    RequestSerializer,
    RequestStatusSerializer,
)
from orders.services import delete_order, order_analytics, place_order, review_request, transition_order


class OrderViewSet(
    RateLimitedViewMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.DestroyModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Order.objects.select_related("user").prefetch_related("lines__item").order_by("-created_at")
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "order.manage",
        "retrieve": "order.manage",
        "create": "order.manage",
        "update": "order.manage",
        "destroy": "order.manage",
        "analytics": "order.manage",
    }
    rate_limit_action_map = {"list": (30, 60), "create": (10, 60)}
    not_found_code = "ORDER_NOT_FOUND"
    not_found_message = "Order not found"

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.request.query_params.get("status"):
            queryset = queryset.filter(status=self.request.query_params["status"])
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = place_order(
            requester=serializer.validated_data.get("user_id") or request.user,
            lines=serializer.validated_data["items"],
            actor=request.user,
        )
        return Response(self.get_serializer(self.get_queryset().get(pk=order.id)).data)

    def update(self, request, pk=None):
        serializer = OrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = transition_order(
            order_id=parse_uuid(pk),
            status=serializer.validated_data["status"],
            actor=request.user,
        )
        return Response(self.get_serializer(self.get_queryset().get(pk=order.id)).data)

    def perform_destroy(self, instance):
        delete_order(instance, actor=self.request.user)

    @action(detail=False, methods=["get"], url_path="analytics")
    def analytics(self, request):
        return Response(order_analytics())


class RequestViewSet(
    RateLimitedViewMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Request.objects.select_related("user", "item").order_by("-created_at")
    serializer_class = RequestSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "request.view",
        "retrieve": "request.view",
        "create": "request.create",
        "update": "request.review",
        "partial_update": "request.review",
    }
    not_found_code = "REQUEST_NOT_FOUND"
    not_found_message = "Request not found"

    def get_queryset(self):
        queryset = super().get_queryset()
        params = self.request.query_params
        if params.get("status"):
            queryset = queryset.filter(status=params["status"])
        if params.get("type"):
            queryset = queryset.filter(type=params["type"])
        return queryset

    def perform_create(self, serializer):
        serializer.save(user=self.request.user)

    def update(self, request, pk=None, partial=False):
        serializer = RequestStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        item_request = review_request(
            request_id=parse_uuid(pk),
            status=serializer.validated_data["status"],
            actor=request.user,
        )
        return Response(self.get_serializer(item_request).data, status=status.HTTP_200_OK)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk, partial=True)
