"""Order API views.

Exposes the ``OrderService`` via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into appropriate
HTTP status codes; the view never swallows generic exceptions.
"""

from __future__ import annotations

from uuid import UUID

from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.assignment.container import get_assignment_system
from modules.assignment.exceptions import HierarchyInvalid, ServiceSaturated
from modules.orders.dtos import PlaceOrderDTO, UpdateStatusDTO
from modules.orders.exceptions import InvalidOrderStatus, OrderNotFound
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    CancelOrderSerializer,
    OrderListSerializer,
    OrderSerializer,
    PlaceOrderSerializer,
    UpdateStatusSerializer,
)
from modules.orders.services import OrderService


def _not_found() -> Response:
    return Response({"detail": "Order not found."}, status=status.HTTP_404_NOT_FOUND)


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Uses ``OrderService`` with injected repository and engine (DIP).
    Does **not** extend ``ModelViewSet``; all writes go through the
    service layer.
    """

    queryset = Order.objects.all()
    filterset_class = OrderFilter
    search_fields = ["order_number", "customer_name", "table_number"]
    ordering_fields = ["created_at", "status", "queue_position", "priority"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderService(
            order_repository=OrderDjangoRepository(),
            assignment_engine=get_assignment_system().engine,
        )

    def get_throttles(self) -> list[BaseThrottle]:
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_placement"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Places the order and schedules it.  Returns 201 whether the order
        was assigned or queued; the body tells which.
        """
        serializer = PlaceOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = PlaceOrderDTO(**serializer.validated_data)

        try:
            order = self._service.place_order(dto)
        except HierarchyInvalid as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except ServiceSaturated as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
            )

        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def get_queryset(self):
        return OrderDjangoRepository().queryset()

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/"""
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = OrderListSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._service.get_order(str(pk))
        except OrderNotFound:
            return _not_found()
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Status Update
    # ------------------------------------------------------------------

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/

        Updates order status.  Cancellations are **not** allowed via
        this endpoint; use ``POST /orders/{id}/cancel/`` instead.
        """
        serializer = UpdateStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            dto = UpdateStatusDTO(**serializer.validated_data)
        except ValidationError as exc:
            return Response(
                {"detail": exc.errors()[0]["msg"]},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            order = self._service.update_status(
                order_id=UUID(str(pk)),
                dto=dto,
                user=request.user if request.user.is_authenticated else None,
            )
        except OrderNotFound:
            return _not_found()
        except InvalidOrderStatus as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except ValueError:
            return Response(
                {"detail": "Invalid order ID format."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Cancel (dedicated action)
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/"""
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = self._service.cancel_order(
                order_id=UUID(str(pk)),
                notes=serializer.validated_data["notes"],
                user=request.user if request.user.is_authenticated else None,
            )
        except OrderNotFound:
            return _not_found()
        except InvalidOrderStatus as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except ValueError:
            return Response(
                {"detail": "Invalid order ID format."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response(OrderSerializer(order).data)
