from rest_framework import serializers

from bookings.models import Booking
from billing.models import Invoice
from customers.models import Customer


class CustomerWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    phone = serializers.CharField(max_length=64)
    email = serializers.EmailField(required=False, allow_null=True, allow_blank=True)
    metadata = serializers.JSONField(required=False, allow_null=True)

    def validate_metadata(self, value):
        if value is not None and not isinstance(value, dict):
            raise serializers.ValidationError("Metadata must be a JSON object.")
        return value


class CustomerSerializer(serializers.ModelSerializer):
    booking_count = serializers.IntegerField(read_only=True)
    invoice_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Customer
        fields = [
            "id",
            "studio_id",
            "name",
            "phone",
            "email",
            "metadata",
            "booking_count",
            "invoice_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CustomerBookingSerializer(serializers.ModelSerializer):
    service_name = serializers.CharField(source="service.name", read_only=True)

    class Meta:
        model = Booking
        fields = ["id", "service_id", "service_name", "scheduled_at", "status", "created_at"]
        read_only_fields = fields


class CustomerInvoiceSerializer(serializers.ModelSerializer):
    class Meta:
        model = Invoice
        fields = ["id", "invoice_number", "status", "total", "due_date", "created_at"]
        read_only_fields = fields


class CustomerDetailSerializer(CustomerSerializer):
    bookings = CustomerBookingSerializer(many=True, read_only=True, source="recent_bookings")
    invoices = CustomerInvoiceSerializer(many=True, read_only=True, source="recent_invoices")

    class Meta(CustomerSerializer.Meta):
        fields = CustomerSerializer.Meta.fields + ["bookings", "invoices"]
        read_only_fields = fields


class CustomerStatsSerializer(serializers.Serializer):
    total_bookings = serializers.IntegerField()
    total_invoices = serializers.IntegerField()
    total_spent = serializers.DecimalField(max_digits=14, decimal_places=2)
    last_booking = serializers.DateTimeField(allow_null=True)
