from decimal import Decimal

from rest_framework import serializers

from billing.models import Invoice, Payment


class PaymentCustomerSerializer(serializers.Serializer):
    id = serializers.UUIDField(read_only=True)
    name = serializers.CharField(read_only=True)
    email = serializers.EmailField(read_only=True, allow_null=True)


class PaymentInvoiceSummarySerializer(serializers.ModelSerializer):
    customer = PaymentCustomerSerializer(read_only=True)

    class Meta:
        model = Invoice
        fields = ["id", "invoice_number", "total", "status", "customer"]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    invoice = PaymentInvoiceSummarySerializer(read_only=True)

    class Meta:
        model = Payment
        fields = [
            "id",
            "invoice_id",
            "invoice",
            "amount",
            "payment_method",
            "transaction_id",
            "notes",
            "paid_at",
            "created_at",
        ]
        read_only_fields = fields


class InvoicePaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = ["id", "amount", "payment_method", "transaction_id", "notes", "paid_at", "created_at"]
        read_only_fields = fields


class PaymentCreateSerializer(serializers.Serializer):
    # Amount bounds are checked by the reconciliation service, after the invoice lookup.
    invoice_id = serializers.UUIDField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    payment_method = serializers.ChoiceField(choices=Payment.Method.choices)
    transaction_id = serializers.CharField(max_length=255, required=False, allow_null=True, allow_blank=True)
    notes = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    paid_at = serializers.DateTimeField(required=False)


class PaymentStatsSerializer(serializers.Serializer):
    total_payments = serializers.IntegerField()
    total_amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    recent_payments = PaymentSerializer(many=True)


class InvoiceSerializer(serializers.ModelSerializer):
    payments = InvoicePaymentSerializer(many=True, read_only=True)
    customer = PaymentCustomerSerializer(read_only=True)
    amount_paid = serializers.SerializerMethodField()
    balance_due = serializers.SerializerMethodField()

    class Meta:
        model = Invoice
        fields = [
            "id",
            "invoice_number",
            "customer",
            "booking_id",
            "status",
            "subtotal",
            "tax",
            "discount",
            "line_items",
            "total",
            "due_date",
            "notes",
            "amount_paid",
            "balance_due",
            "payments",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def _paid(self, obj):
        # Reads the prefetched payments.
        return sum((payment.amount for payment in obj.payments.all()), Decimal("0.00"))

    def get_amount_paid(self, obj):
        return str(self._paid(obj).quantize(Decimal("0.01")))

    def get_balance_due(self, obj):
        return str(max(obj.total - self._paid(obj), Decimal("0.00")).quantize(Decimal("0.01")))


class LineItemSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=255)
    quantity = serializers.IntegerField(min_value=1, default=1)
    rate = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"), required=False)


class InvoiceCreateSerializer(serializers.Serializer):
    customer_id = serializers.UUIDField()
    booking_id = serializers.UUIDField(required=False, allow_null=True)
    line_items = LineItemSerializer(many=True, allow_empty=False)
    tax = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"), default=Decimal("0.00"))
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"), default=Decimal("0.00"))
    due_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class InvoiceUpdateSerializer(serializers.Serializer):
    line_items = LineItemSerializer(many=True, allow_empty=False, required=False)
    tax = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"), required=False)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"), required=False)
    due_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(
        choices=[Invoice.Status.DRAFT, Invoice.Status.SENT, Invoice.Status.CANCELLED], required=False
    )


class InvoiceStatsSerializer(serializers.Serializer):
    total_invoices = serializers.IntegerField()
    draft_invoices = serializers.IntegerField()
    sent_invoices = serializers.IntegerField()
    paid_invoices = serializers.IntegerField()
    total_revenue = serializers.DecimalField(max_digits=14, decimal_places=2)
    pending_revenue = serializers.DecimalField(max_digits=14, decimal_places=2)
