from decimal import Decimal

from rest_framework import serializers

from bookings.models import Booking, Service


class ServiceWriteSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))
    duration_minutes = serializers.IntegerField(min_value=0, required=False)
    is_active = serializers.BooleanField(required=False)
    sort_order = serializers.IntegerField(required=False)


class ServiceSerializer(serializers.ModelSerializer):
    booking_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Service
        fields = [
            "id",
            "name",
            "description",
            "price",
            "duration_minutes",
            "is_active",
            "sort_order",
            "booking_count",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ServiceReorderSerializer(serializers.Serializer):
    service_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)


class ServiceStatsSerializer(serializers.Serializer):
    total_bookings = serializers.IntegerField()
    completed_bookings = serializers.IntegerField()
    upcoming_bookings = serializers.IntegerField()


class BookingCustomerSerializer(serializers.Serializer):
    id = serializers.UUIDField(read_only=True)
    name = serializers.CharField(read_only=True)
    phone = serializers.CharField(read_only=True)
    email = serializers.EmailField(read_only=True, allow_null=True)


class BookingServiceSerializer(serializers.Serializer):
    id = serializers.UUIDField(read_only=True)
    name = serializers.CharField(read_only=True)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)
    duration_minutes = serializers.IntegerField(read_only=True)


class BookingAssigneeSerializer(serializers.Serializer):
    id = serializers.UUIDField(read_only=True)
    name = serializers.CharField(read_only=True)
    email = serializers.EmailField(read_only=True)


class BookingSerializer(serializers.ModelSerializer):
    customer = BookingCustomerSerializer(read_only=True)
    service = BookingServiceSerializer(read_only=True)
    assigned_to = BookingAssigneeSerializer(read_only=True, allow_null=True)

    class Meta:
        model = Booking
        fields = [
            "id",
            "customer",
            "service",
            "assigned_to",
            "scheduled_at",
            "status",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BookingCreateSerializer(serializers.Serializer):
    customer_id = serializers.UUIDField()
    service_id = serializers.UUIDField()
    scheduled_at = serializers.DateTimeField()
    assigned_to = serializers.UUIDField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class BookingUpdateSerializer(serializers.Serializer):
    scheduled_at = serializers.DateTimeField(required=False)
    status = serializers.ChoiceField(choices=Booking.Status.choices, required=False)
    assigned_to = serializers.UUIDField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class BookingStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Booking.Status.choices)


class BookingCancelSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True)
