from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle

from billing import services
from billing.models import Invoice, Payment
from billing.serializers import (
    InvoiceCreateSerializer,
    InvoiceSerializer,
    InvoiceStatsSerializer,
    InvoiceUpdateSerializer,
    PaymentCreateSerializer,
    PaymentSerializer,
    PaymentStatsSerializer,
)
from common.audit import create_audit_log_from_request
from common.permissions import RoleCapabilityPermission, get_request_studio_id
from common.utils import UUID_PATTERN


class PaymentViewSet(viewsets.GenericViewSet):
    serializer_class = PaymentSerializer
    lookup_value_regex = UUID_PATTERN
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    pagination_class = None
    permission_action_map = {
        "list": "payments.view",
        "retrieve": "payments.view",
        "invoice_payments": "payments.view",
        "stats": "payments.view",
        "create": "payments.manage",
        "destroy": "payments.manage",
    }

    def get_throttles(self):
        throttles = super().get_throttles()
        if self.action == "create":
            self.throttle_scope = "payment_create"
            throttles.append(ScopedRateThrottle())
        return throttles

    def _limit(self):
        raw = self.request.query_params.get("limit")
        if raw in (None, ""):
            return services.DEFAULT_PAYMENT_LIST_LIMIT
        try:
            limit = int(raw)
        except ValueError:
            raise ValidationError({"limit": "Must be a positive integer."})
        if limit < 1:
            raise ValidationError({"limit": "Must be a positive integer."})
        return min(limit, services.DEFAULT_PAYMENT_LIST_LIMIT)

    def list(self, request):
        studio_id = get_request_studio_id(request)
        payment_method = request.query_params.get("payment_method")
        if payment_method and payment_method not in Payment.Method.values:
            raise ValidationError({"payment_method": f"Unknown payment method '{payment_method}'."})

        payments = services.list_payments(studio_id, limit=self._limit(), payment_method=payment_method)
        return Response(PaymentSerializer(payments, many=True).data)

    def retrieve(self, request, pk=None):
        studio_id = get_request_studio_id(request)
        payment = services.get_payment(studio_id, pk)
        return Response(PaymentSerializer(payment).data)

    def create(self, request):
        studio_id = get_request_studio_id(request)
        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        payment = services.create_payment(studio_id, **serializer.validated_data)
        payment = services.get_payment(studio_id, payment.id)
        data = PaymentSerializer(payment).data
        create_audit_log_from_request(
            request,
            action="payment.create",
            entity="payment",
            entity_id=payment.id,
            after_snapshot=data,
        )
        return Response(data, status=status.HTTP_201_CREATED)

    def destroy(self, request, pk=None):
        studio_id = get_request_studio_id(request)
        before_snapshot = PaymentSerializer(services.get_payment(studio_id, pk)).data
        invoice = services.remove_payment(studio_id, pk)
        create_audit_log_from_request(
            request,
            action="payment.delete",
            entity="payment",
            entity_id=before_snapshot["id"],
            before_snapshot=before_snapshot,
        )
        return Response(
            {
                "message": "Payment deleted successfully.",
                "invoice": {"id": str(invoice.id), "status": invoice.status},
            }
        )

    @action(detail=False, methods=["get"], url_path=rf"invoice/(?P<invoice_id>{UUID_PATTERN})")
    def invoice_payments(self, request, invoice_id=None):
        studio_id = get_request_studio_id(request)
        payments = services.list_invoice_payments(studio_id, invoice_id)
        return Response(PaymentSerializer(payments, many=True).data)

    @action(detail=False, methods=["get"])
    def stats(self, request):
        studio_id = get_request_studio_id(request)
        return Response(PaymentStatsSerializer(services.payment_stats(studio_id)).data)


class InvoiceViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    serializer_class = InvoiceSerializer
    lookup_value_regex = UUID_PATTERN
    permission_classes = [IsAuthenticated, RoleCapabilityPermission]
    permission_action_map = {
        "list": "invoices.view",
        "retrieve": "invoices.view",
        "stats": "invoices.view",
        "create": "invoices.manage",
        "partial_update": "invoices.manage",
        "destroy": "invoices.manage",
        "send": "invoices.manage",
    }

    def get_queryset(self):
        queryset = services.studio_invoices(get_request_studio_id(self.request))
        invoice_status = self.request.query_params.get("status")
        if invoice_status:
            if invoice_status not in Invoice.Status.values:
                raise ValidationError({"status": f"Unknown invoice status '{invoice_status}'."})
            queryset = queryset.filter(status=invoice_status)
        return queryset

    def _audit(self, *, action, entity_id, before_snapshot=None, after_snapshot=None):
        create_audit_log_from_request(
            self.request,
            action=f"invoice.{action}",
            entity="invoice",
            entity_id=entity_id,
            before_snapshot=before_snapshot,
            after_snapshot=after_snapshot,
        )

    def create(self, request):
        studio_id = get_request_studio_id(request)
        serializer = InvoiceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        invoice = services.create_invoice(studio_id, **serializer.validated_data)
        data = InvoiceSerializer(services.get_invoice(studio_id, invoice.id)).data
        self._audit(action="create", entity_id=invoice.id, after_snapshot=data)
        return Response(data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        studio_id = get_request_studio_id(request)
        before_snapshot = InvoiceSerializer(services.get_invoice(studio_id, pk)).data
        serializer = InvoiceUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        invoice = services.update_invoice(studio_id, pk, serializer.validated_data)
        data = InvoiceSerializer(services.get_invoice(studio_id, invoice.id)).data
        self._audit(action="update", entity_id=invoice.id, before_snapshot=before_snapshot, after_snapshot=data)
        return Response(data)

    def destroy(self, request, pk=None):
        studio_id = get_request_studio_id(request)
        before_snapshot = InvoiceSerializer(services.get_invoice(studio_id, pk)).data
        services.delete_invoice(studio_id, pk)
        self._audit(action="delete", entity_id=before_snapshot["id"], before_snapshot=before_snapshot)
        return Response({"message": "Invoice deleted successfully."})

    @action(detail=True, methods=["post"])
    def send(self, request, pk=None):
        studio_id = get_request_studio_id(request)
        invoice = services.send_invoice(studio_id, pk)
        data = InvoiceSerializer(services.get_invoice(studio_id, invoice.id)).data
        self._audit(action="send", entity_id=invoice.id, after_snapshot=data)
        return Response(data)

    @action(detail=False, methods=["get"])
    def stats(self, request):
        stats = services.invoice_stats(get_request_studio_id(request))
        return Response(InvoiceStatsSerializer(stats).data)
