from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from bookings import services
from bookings.models import Booking
from bookings.serializers import (
    BookingCancelSerializer,
    BookingCreateSerializer,
    BookingSerializer,
    BookingStatusSerializer,
    BookingUpdateSerializer,
    ServiceReorderSerializer,
    ServiceSerializer,
    ServiceStatsSerializer,
    ServiceWriteSerializer,
)
from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission, get_request_studio_id
from common.utils import UUID_PATTERN

TRUTHY = {"1", "true", "yes"}


class AuditedViewSetMixin:
    audit_entity = None

    def _audit(self, *, action, entity_id, before_snapshot=None, after_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=f"{self.audit_entity}.{action}",
            entity=self.audit_entity,
            entity_id=entity_id,
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
        )


class ServiceViewSet(AuditedViewSetMixin, viewsets.GenericViewSet):
    serializer_class = ServiceSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    lookup_value_regex = UUID_PATTERN
    pagination_class = None
    audit_entity = "service"
    permission_action_map = {
        "list": "services.view",
        "retrieve": "services.view",
        "stats": "services.view",
        "create": "services.manage",
        "partial_update": "services.manage",
        "destroy": "services.manage",
        "toggle_active": "services.manage",
        "reorder": "services.manage",
    }

    def list(self, request):
        include_inactive = request.query_params.get("include_inactive", "").lower() in TRUTHY
        services_list = services.studio_services(get_request_studio_id(request), include_inactive=include_inactive)
        return Response(ServiceSerializer(services_list, many=True).data)

    def retrieve(self, request, pk=None):
        return Response(ServiceSerializer(services.get_service(get_request_studio_id(request), pk)).data)

    def create(self, request):
        studio_id = get_request_studio_id(request)
        serializer = ServiceWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        service = services.create_service(studio_id, serializer.validated_data)
        data = ServiceSerializer(service).data
        self._audit(action="create", entity_id=service.id, after_snapshot=data)
        return Response(data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        studio_id = get_request_studio_id(request)
        before_snapshot = ServiceSerializer(services.get_service(studio_id, pk)).data
        serializer = ServiceWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        service = services.update_service(studio_id, pk, serializer.validated_data)
        data = ServiceSerializer(service).data
        self._audit(action="update", entity_id=service.id, before_snapshot=before_snapshot, after_snapshot=data)
        return Response(data)

    def destroy(self, request, pk=None):
        studio_id = get_request_studio_id(request)
        before_snapshot = ServiceSerializer(services.get_service(studio_id, pk)).data
        services.delete_service(studio_id, pk)
        self._audit(action="delete", entity_id=before_snapshot["id"], before_snapshot=before_snapshot)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"], url_path="toggle-active")
    def toggle_active(self, request, pk=None):
        service = services.toggle_service_active(get_request_studio_id(request), pk)
        data = ServiceSerializer(service).data
        self._audit(action="toggle_active", entity_id=service.id, after_snapshot=data)
        return Response(data)

    @action(detail=False, methods=["post"])
    def reorder(self, request):
        serializer = ServiceReorderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ordered = services.reorder_services(get_request_studio_id(request), serializer.validated_data["service_ids"])
        return Response(ServiceSerializer(ordered, many=True).data)

    @action(detail=True, methods=["get"])
    def stats(self, request, pk=None):
        stats = services.service_stats(get_request_studio_id(request), pk)
        return Response(ServiceStatsSerializer(stats).data)


class BookingViewSet(AuditedViewSetMixin, mixins.ListModelMixin, viewsets.GenericViewSet):
    serializer_class = BookingSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    lookup_value_regex = UUID_PATTERN
    audit_entity = "booking"
    permission_action_map = {
        "list": "bookings.view",
        "retrieve": "bookings.view",
        "upcoming": "bookings.view",
        "create": "bookings.manage",
        "partial_update": "bookings.manage",
        "update_status": "bookings.manage",
        "cancel": "bookings.manage",
    }

    def get_queryset(self):
        booking_status = self.request.query_params.get("status")
        if booking_status and booking_status not in Booking.Status.values:
            raise ValidationError({"status": f"Unknown booking status '{booking_status}'."})
        return services.studio_bookings(get_request_studio_id(self.request), status=booking_status)

    def retrieve(self, request, pk=None):
        return Response(BookingSerializer(services.get_booking(get_request_studio_id(request), pk)).data)

    def create(self, request):
        studio_id = get_request_studio_id(request)
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = services.create_booking(studio_id, **serializer.validated_data)
        data = BookingSerializer(booking).data
        self._audit(action="create", entity_id=booking.id, after_snapshot=data)
        return Response(data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        studio_id = get_request_studio_id(request)
        before_snapshot = BookingSerializer(services.get_booking(studio_id, pk)).data
        serializer = BookingUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        booking = services.update_booking(studio_id, pk, serializer.validated_data)
        data = BookingSerializer(booking).data
        self._audit(action="update", entity_id=booking.id, before_snapshot=before_snapshot, after_snapshot=data)
        return Response(data)

    @action(detail=True, methods=["patch"], url_path="status")
    def update_status(self, request, pk=None):
        studio_id = get_request_studio_id(request)
        serializer = BookingStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = services.update_booking_status(studio_id, pk, serializer.validated_data["status"])
        data = BookingSerializer(booking).data
        self._audit(action="status", entity_id=booking.id, after_snapshot=data)
        return Response(data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        studio_id = get_request_studio_id(request)
        serializer = BookingCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = services.cancel_booking(studio_id, pk, notes=serializer.validated_data.get("notes"))
        data = BookingSerializer(booking).data
        self._audit(action="cancel", entity_id=booking.id, after_snapshot=data)
        return Response(data)

    @action(detail=False, methods=["get"])
    def upcoming(self, request):
        bookings = services.upcoming_bookings(get_request_studio_id(request))
        return Response(BookingSerializer(bookings, many=True).data)
