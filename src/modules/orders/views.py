"""Order API views.

Exposes the order services via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into appropriate
HTTP status codes; generic exceptions propagate.
"""

from __future__ import annotations

from typing import Any, Optional

from django.db.models import Q
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.orders.actors import actor_for_user
from modules.orders.cancellation import OrderCancellationService, cancellation_guard
from modules.orders.dtos import CreateOrderDTO
from modules.orders.engine import StatusTransitionEngine
from modules.orders.exceptions import (
    CancellationWindowExpired,
    ConcurrentModification,
    EmptyBatch,
    IllegalTransition,
    InactiveTenant,
    MixedDeliveryMethodBatch,
    MixedStatusBatch,
    NotRetriable,
    OrderError,
    OrderNotFound,
    OverrideNotPermitted,
    RetryAttemptsExhausted,
    RetryWindowExpired,
    TenantNotFound,
)
from modules.orders.filters import OrderFilter
from modules.orders.mass_update import MassTransitionCoordinator
from modules.orders.models import Order
from modules.orders.payment_retry import PaymentRetryTimer
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    CancelOrderSerializer,
    CreateOrderSerializer,
    MassUpdateStatusSerializer,
    OrderListSerializer,
    OrderSerializer,
    RetryPaymentSerializer,
    StatusUpdateSerializer,
)
from modules.orders.services import OrderService
from modules.orders.transitions import transition_validator
from modules.tenants.models import Tenant

# Most specific first: the first matching class wins.
ERROR_STATUS_CODES: list[tuple[type[OrderError], int]] = [
    (OrderNotFound, status.HTTP_404_NOT_FOUND),
    (TenantNotFound, status.HTTP_404_NOT_FOUND),
    (IllegalTransition, status.HTTP_409_CONFLICT),
    (ConcurrentModification, status.HTTP_409_CONFLICT),
    (NotRetriable, status.HTTP_409_CONFLICT),
    (OverrideNotPermitted, status.HTTP_403_FORBIDDEN),
    (EmptyBatch, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (MixedStatusBatch, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (MixedDeliveryMethodBatch, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (CancellationWindowExpired, status.HTTP_400_BAD_REQUEST),
    (RetryAttemptsExhausted, status.HTTP_400_BAD_REQUEST),
    (RetryWindowExpired, status.HTTP_400_BAD_REQUEST),
    (InactiveTenant, status.HTTP_400_BAD_REQUEST),
]


def error_response(exc: OrderError) -> Response:
    """Translate a domain exception into an HTTP response."""
    http_status = status.HTTP_400_BAD_REQUEST
    for exc_class, code in ERROR_STATUS_CODES:
        if isinstance(exc, exc_class):
            http_status = code
            break
    body: dict[str, Any] = {"detail": str(exc), "code": exc.code}
    if exc.retryable:
        body["retryable"] = True
    if isinstance(exc, IllegalTransition):
        body["current_status"] = exc.current_status
        body["next_valid_status"] = exc.next_valid_status
    return Response(body, status=http_status)


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Does **not** extend ``ModelViewSet``: all ORM writes go through
    the engine and the services built on it.  Non-staff users only see
    orders they placed or cook.
    """

    queryset = Order.objects.all()
    lookup_value_regex = r"\d+"
    filterset_class = OrderFilter
    ordering_fields = ["created_at", "grand_total", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        repository = OrderDjangoRepository()
        engine = StatusTransitionEngine(order_repository=repository)
        self._retry_timer = PaymentRetryTimer(
            order_repository=repository, engine=engine
        )
        self._service = OrderService(
            order_repository=repository, retry_timer=self._retry_timer
        )
        self._engine = engine
        self._cancellation = OrderCancellationService(
            order_repository=repository, engine=engine
        )
        self._coordinator = MassTransitionCoordinator(
            order_repository=repository, engine=engine
        )

    def get_throttles(self) -> list[BaseThrottle]:
        """Per-action throttling scopes."""
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action == "mass_update_status":
            throttle_scope = "order_mass_update"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return Order.objects.none()
        queryset = self._service.list_orders()
        user = self.request.user
        if user.is_staff:
            return queryset
        return queryset.filter(
            Q(client=user) | Q(cook=user) | Q(tenant__cook=user)
        )

    def _get_visible_order(self, pk: Optional[str]) -> Order:
        order = None
        if pk:
            order = (
                self.get_queryset()
                .prefetch_related("transitions__triggered_by")
                .filter(pk=pk)
                .first()
            )
        if order is None:
            raise OrderNotFound(f"Order {pk} not found.")
        return order

    def _can_manage(self, order: Order) -> bool:
        user = self.request.user
        return (
            user.is_staff
            or order.cook_id == user.pk
            or order.tenant.cook_id == user.pk
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/"""
        create_serializer = CreateOrderSerializer(data=request.data)
        create_serializer.is_valid(raise_exception=True)

        dto = CreateOrderDTO(**create_serializer.validated_data)
        try:
            order = self._service.create_order(dto, client=request.user)
        except OrderError as exc:
            return error_response(exc)

        out = OrderSerializer(order)
        return Response(out.data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Filtering (status, delivery method, tenant, date range) is handled
        by ``OrderFilter``; ordering by ``OrderingFilter``.  Paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = OrderListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._get_visible_order(pk)
        except OrderError as exc:
            return error_response(exc)
        data = OrderSerializer(order).data
        data["valid_next_statuses"] = transition_validator.valid_next_statuses(
            order, is_admin=request.user.is_staff
        )
        data["cancellation_seconds_remaining"] = (
            cancellation_guard.seconds_remaining(order)
        )
        return Response(data)

    @action(detail=True, methods=["get"])
    def timeline(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/timeline/"""
        try:
            order = self._get_visible_order(pk)
        except OrderError as exc:
            return error_response(exc)
        entries = self._service.get_transition_timeline(order)
        return Response([entry.model_dump(mode="json") for entry in entries])

    # ------------------------------------------------------------------
    # Status Update
    # ------------------------------------------------------------------

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/

        Moves the order to ``status``.  Only the order's cook and staff may
        do this; ``override`` is reserved for staff and needs a ``reason``.
        Clients cancel through ``POST /orders/{id}/cancel/``.
        """
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            order = self._get_visible_order(pk)
            if not self._can_manage(order):
                return Response(
                    {"detail": "You cannot change the status of this order."},
                    status=status.HTTP_403_FORBIDDEN,
                )
            self._engine.transition(
                order.pk,
                data["status"],
                actor_for_user(request.user),
                is_override=data["override"],
                reason=data["reason"],
            )
        except OrderError as exc:
            return error_response(exc)

        order = self._service.get_order(order.pk)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Cancel (dedicated action)
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Client cancellation, allowed only within the order's window.
        """
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = self._get_visible_order(pk)
            self._cancellation.cancel_by_client(
                order.pk,
                actor_for_user(request.user),
                reason=serializer.validated_data["reason"],
            )
        except OrderError as exc:
            return error_response(exc)

        order = self._service.get_order(order.pk)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Payment retry
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"], url_path="retry-payment")
    def retry_payment(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/retry-payment/"""
        serializer = RetryPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            order = self._get_visible_order(pk)
            result = self._retry_timer.retry_payment(
                order.pk,
                actor_for_user(request.user),
                payment_provider=data["payment_provider"] or None,
                payment_phone=data["payment_phone"] or None,
            )
        except OrderError as exc:
            return error_response(exc)

        http_status = (
            status.HTTP_200_OK if result.success else status.HTTP_402_PAYMENT_REQUIRED
        )
        return Response(result.model_dump(mode="json"), status=http_status)

    @action(detail=True, methods=["get"], url_path="retry-status")
    def retry_status(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/retry-status/"""
        try:
            order = self._get_visible_order(pk)
        except OrderError as exc:
            return error_response(exc)
        return Response(self._retry_timer.retry_status(order).model_dump(mode="json"))

    # ------------------------------------------------------------------
    # Bulk
    # ------------------------------------------------------------------

    @action(detail=False, methods=["post"], url_path="mass-update-status")
    def mass_update_status(self, request: Request) -> Response:
        """POST /api/v1/orders/mass-update-status/

        Staff may act across tenants; a cook must name their own tenant.
        """
        serializer = MassUpdateStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        tenant_id = data["tenant_id"]
        if not request.user.is_staff:
            if tenant_id is None or not Tenant.objects.filter(
                pk=tenant_id, cook=request.user
            ).exists():
                return Response(
                    {"detail": "You cannot update orders of this tenant."},
                    status=status.HTTP_403_FORBIDDEN,
                )

        order_ids = data["order_ids"]
        try:
            check = self._coordinator.validate_same_status(order_ids, tenant_id)
            target_status = data.get("target_status") or check.next_status
            result = self._coordinator.mass_update_status(
                order_ids,
                target_status,
                actor_for_user(request.user),
                tenant_id=tenant_id,
            )
        except OrderError as exc:
            return error_response(exc)

        body = result.model_dump(mode="json")
        body["label"] = MassTransitionCoordinator.bulk_action_label(
            target_status, result.total
        )
        return Response(body)
