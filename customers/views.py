from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission, get_request_studio_id
from common.utils import UUID_PATTERN
from customers import services
from customers.serializers import (
    CustomerDetailSerializer,
    CustomerSerializer,
    CustomerStatsSerializer,
    CustomerWriteSerializer,
)


class CustomerViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    serializer_class = CustomerSerializer
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    lookup_value_regex = UUID_PATTERN
    permission_action_map = {
        "list": "customers.view",
        "retrieve": "customers.view",
        "stats": "customers.view",
        "create": "customers.manage",
        "partial_update": "customers.manage",
        "destroy": "customers.delete",
    }

    audit_entity = "customer"

    def get_queryset(self):
        studio_id = get_request_studio_id(self.request)
        return services.studio_customers(studio_id, search=self.request.query_params.get("search"))

    def _audit(self, *, action, entity_id, before_snapshot=None, after_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=f"{self.audit_entity}.{action}",
            entity=self.audit_entity,
            entity_id=entity_id,
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
        )

    def retrieve(self, request, pk=None):
        customer = services.get_customer(get_request_studio_id(request), pk)
        customer.recent_bookings = services.recent_bookings(customer)
        customer.recent_invoices = services.recent_invoices(customer)
        return Response(CustomerDetailSerializer(customer).data)

    def create(self, request):
        studio_id = get_request_studio_id(request)
        serializer = CustomerWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        customer = services.create_customer(studio_id, serializer.validated_data)
        data = CustomerSerializer(customer).data
        self._audit(action="create", entity_id=customer.id, after_snapshot=data)
        return Response(data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        studio_id = get_request_studio_id(request)
        before_snapshot = CustomerSerializer(services.get_customer(studio_id, pk)).data
        serializer = CustomerWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        customer = services.update_customer(studio_id, pk, serializer.validated_data)
        data = CustomerSerializer(customer).data
        self._audit(action="update", entity_id=customer.id, before_snapshot=before_snapshot, after_snapshot=data)
        return Response(data)

    def destroy(self, request, pk=None):
        studio_id = get_request_studio_id(request)
        before_snapshot = CustomerSerializer(services.get_customer(studio_id, pk)).data
        services.delete_customer(studio_id, pk)
        self._audit(action="delete", entity_id=before_snapshot["id"], before_snapshot=before_snapshot)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["get"])
    def stats(self, request, pk=None):
        stats = services.customer_stats(get_request_studio_id(request), pk)
        return Response(CustomerStatsSerializer(stats).data)
