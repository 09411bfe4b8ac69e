"""Service catalog and booking schedule for a studio.

A studio can hold at most one open booking (INQUIRY, QUOTED or CONFIRMED) per
scheduled instant. Creation and rescheduling lock the studio row before the
slot check so two writers cannot both claim the same slot.
"""

import logging

from django.db import transaction
from django.db.models import Count, ProtectedError, Q
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from bookings.models import Booking, Service
from common.exceptions import Conflict
from core.models import Studio, User
from customers.models import Customer

logger = logging.getLogger(__name__)

OPEN_BOOKING_STATUSES = (Booking.Status.INQUIRY, Booking.Status.QUOTED, Booking.Status.CONFIRMED)
FINAL_BOOKING_STATUSES = (Booking.Status.COMPLETED, Booking.Status.CANCELLED)
UPCOMING_LIMIT = 10

SLOT_TAKEN_MESSAGE = "This time slot is already booked. Please choose another time."
SERVICE_DELETE_BLOCKED_MESSAGE = "Cannot delete service with existing bookings. Consider deactivating it instead."


def studio_services(studio_id, include_inactive=False):
    queryset = Service.objects.filter(studio_id=studio_id).annotate(booking_count=Count("bookings"))
    if not include_inactive:
        queryset = queryset.filter(is_active=True)
    return queryset.order_by("sort_order", "name")


def get_service(studio_id, service_id):
    service = studio_services(studio_id, include_inactive=True).filter(id=service_id).first()
    if service is None:
        raise NotFound("Service not found.")
    return service


def create_service(studio_id, data):
    service = Service.objects.create(studio_id=studio_id, **data)
    logger.info("service_created", extra={"studio_id": studio_id, "service_id": service.id})
    return get_service(studio_id, service.id)


def update_service(studio_id, service_id, data):
    service = get_service(studio_id, service_id)
    for field, value in data.items():
        setattr(service, field, value)
    service.save()
    return get_service(studio_id, service.id)


def toggle_service_active(studio_id, service_id):
    service = get_service(studio_id, service_id)
    service.is_active = not service.is_active
    service.save(update_fields=["is_active", "updated_at"])
    logger.info("service_toggled", extra={"studio_id": studio_id, "service_id": service.id, "is_active": service.is_active})
    return service


def reorder_services(studio_id, service_ids):
    """Set sort_order to each service's position in service_ids."""
    if len(set(service_ids)) != len(service_ids):
        raise ValidationError({"service_ids": "Service ids must be unique."})

    with transaction.atomic():
        services = {
            service.id: service
            for service in Service.objects.select_for_update().filter(studio_id=studio_id, id__in=service_ids)
        }
        if len(services) != len(service_ids):
            raise ValidationError({"service_ids": "Some services do not belong to this studio."})
        for position, service_id in enumerate(service_ids):
            service = services[service_id]
            service.sort_order = position
            service.save(update_fields=["sort_order", "updated_at"])

    return list(studio_services(studio_id, include_inactive=True))


def delete_service(studio_id, service_id):
    service = get_service(studio_id, service_id)
    if service.booking_count:
        raise Conflict(SERVICE_DELETE_BLOCKED_MESSAGE)
    try:
        service.delete()
    except ProtectedError:
        raise Conflict(SERVICE_DELETE_BLOCKED_MESSAGE)
    logger.info("service_deleted", extra={"studio_id": studio_id, "service_id": service_id})


def service_stats(studio_id, service_id):
    service = get_service(studio_id, service_id)
    return Booking.objects.filter(service=service).aggregate(
        total_bookings=Count("id"),
        completed_bookings=Count("id", filter=Q(status=Booking.Status.COMPLETED)),
        upcoming_bookings=Count(
            "id", filter=Q(status__in=OPEN_BOOKING_STATUSES, scheduled_at__gte=timezone.now())
        ),
    )


def studio_bookings(studio_id, status=None):
    queryset = Booking.objects.filter(studio_id=studio_id).select_related("customer", "service", "assigned_to")
    if status:
        queryset = queryset.filter(status=status)
    return queryset.order_by("-scheduled_at")


def get_booking(studio_id, booking_id):
    booking = studio_bookings(studio_id).filter(id=booking_id).first()
    if booking is None:
        raise NotFound("Booking not found.")
    return booking


def _ensure_slot_available(studio_id, scheduled_at, exclude_id=None):
    clashes = Booking.objects.filter(
        studio_id=studio_id,
        scheduled_at=scheduled_at,
        status__in=OPEN_BOOKING_STATUSES,
    )
    if exclude_id is not None:
        clashes = clashes.exclude(id=exclude_id)
    if clashes.exists():
        raise Conflict(SLOT_TAKEN_MESSAGE)


def _studio_member(studio_id, user_id):
    if user_id is None:
        return None
    member = User.objects.filter(id=user_id, studio_id=studio_id, is_active=True).first()
    if member is None:
        raise ValidationError({"assigned_to": "Assignee must be an active member of this studio."})
    return member


def create_booking(studio_id, *, customer_id, service_id, scheduled_at, assigned_to=None, notes=""):
    customer = Customer.objects.filter(id=customer_id, studio_id=studio_id).first()
    if customer is None:
        raise NotFound("Customer not found.")
    service = Service.objects.filter(id=service_id, studio_id=studio_id, is_active=True).first()
    if service is None:
        raise NotFound("Service not found or not available.")
    assignee = _studio_member(studio_id, assigned_to)

    with transaction.atomic():
        Studio.objects.select_for_update().filter(id=studio_id).first()
        _ensure_slot_available(studio_id, scheduled_at)
        booking = Booking.objects.create(
            studio_id=studio_id,
            customer=customer,
            service=service,
            assigned_to=assignee,
            scheduled_at=scheduled_at,
            status=Booking.Status.INQUIRY,
            notes=notes or "",
        )

    logger.info(
        "booking_created",
        extra={"studio_id": studio_id, "booking_id": booking.id, "scheduled_at": scheduled_at.isoformat()},
    )
    return get_booking(studio_id, booking.id)


def update_booking(studio_id, booking_id, data):
    with transaction.atomic():
        Studio.objects.select_for_update().filter(id=studio_id).first()
        booking = get_booking(studio_id, booking_id)

        scheduled_at = data.get("scheduled_at") or booking.scheduled_at
        status = data.get("status", booking.status)
        moved = scheduled_at != booking.scheduled_at
        reopened = booking.status not in OPEN_BOOKING_STATUSES
        if status in OPEN_BOOKING_STATUSES and (moved or reopened):
            _ensure_slot_available(studio_id, scheduled_at, exclude_id=booking.id)

        booking.scheduled_at = scheduled_at
        booking.status = status
        if "assigned_to" in data:
            booking.assigned_to = _studio_member(studio_id, data["assigned_to"])
        if "notes" in data:
            booking.notes = data["notes"] or ""
        booking.save()

    logger.info("booking_updated", extra={"studio_id": studio_id, "booking_id": booking.id, "status": booking.status})
    return get_booking(studio_id, booking.id)


def update_booking_status(studio_id, booking_id, status):
    with transaction.atomic():
        Studio.objects.select_for_update().filter(id=studio_id).first()
        booking = get_booking(studio_id, booking_id)
        previous = booking.status
        if status in OPEN_BOOKING_STATUSES and previous not in OPEN_BOOKING_STATUSES:
            _ensure_slot_available(studio_id, booking.scheduled_at, exclude_id=booking.id)
        booking.status = status
        booking.save(update_fields=["status", "updated_at"])

    logger.info(
        "booking_status_changed",
        extra={"studio_id": studio_id, "booking_id": booking.id, "from_status": previous, "to_status": status},
    )
    return booking


def cancel_booking(studio_id, booking_id, notes=None):
    booking = get_booking(studio_id, booking_id)
    if booking.status in FINAL_BOOKING_STATUSES:
        raise Conflict(f"Cannot cancel a {booking.status.lower()} booking.")
    booking.status = Booking.Status.CANCELLED
    update_fields = ["status", "updated_at"]
    if notes:
        booking.notes = f"{booking.notes}\n{notes}".strip()
        update_fields.append("notes")
    booking.save(update_fields=update_fields)
    logger.info("booking_cancelled", extra={"studio_id": studio_id, "booking_id": booking.id})
    return booking


def upcoming_bookings(studio_id, limit=UPCOMING_LIMIT):
    return list(
        studio_bookings(studio_id)
        .filter(scheduled_at__gte=timezone.now(), status__in=OPEN_BOOKING_STATUSES)
        .order_by("scheduled_at")[:limit]
    )
