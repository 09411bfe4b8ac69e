import logging
from decimal import Decimal

from django.db import IntegrityError, transaction
from django.db.models import Count, Max, ProtectedError, Q, Sum
from rest_framework.exceptions import NotFound

from billing.models import Invoice
from common.exceptions import Conflict
from customers.models import Customer

logger = logging.getLogger(__name__)

RECENT_ITEMS_LIMIT = 10

DUPLICATE_PHONE_MESSAGE = "Customer with this phone number already exists."
DUPLICATE_PHONE_ON_UPDATE_MESSAGE = "Another customer with this phone number already exists."
DELETE_BLOCKED_MESSAGE = "Cannot delete customer with existing bookings or invoices."


def normalize_customer_fields(data):
    normalized = dict(data)
    if "name" in normalized and normalized["name"] is not None:
        normalized["name"] = normalized["name"].strip()
    if "phone" in normalized and normalized["phone"] is not None:
        normalized["phone"] = normalized["phone"].strip()
    if "email" in normalized:
        email = (normalized["email"] or "").strip().lower()
        normalized["email"] = email or None
    return normalized


def studio_customers(studio_id, search=None):
    queryset = Customer.objects.filter(studio_id=studio_id).annotate(
        booking_count=Count("bookings", distinct=True),
        invoice_count=Count("invoices", distinct=True),
    )
    search = (search or "").strip()
    if search:
        queryset = queryset.filter(
            Q(name__icontains=search) | Q(email__icontains=search) | Q(phone=search)
        )
    return queryset.order_by("-created_at")


def get_customer(studio_id, customer_id):
    customer = studio_customers(studio_id).filter(id=customer_id).first()
    if customer is None:
        raise NotFound("Customer not found.")
    return customer


def create_customer(studio_id, data):
    data = normalize_customer_fields(data)
    if Customer.objects.filter(studio_id=studio_id, phone=data["phone"]).exists():
        raise Conflict(DUPLICATE_PHONE_MESSAGE)

    try:
        with transaction.atomic():
            customer = Customer.objects.create(studio_id=studio_id, **data)
    except IntegrityError:
        raise Conflict(DUPLICATE_PHONE_MESSAGE)

    logger.info("customer_created", extra={"studio_id": studio_id, "customer_id": customer.id})
    return get_customer(studio_id, customer.id)


def update_customer(studio_id, customer_id, data):
    customer = get_customer(studio_id, customer_id)
    data = normalize_customer_fields(data)

    phone = data.get("phone")
    if phone and phone != customer.phone:
        duplicate = Customer.objects.filter(studio_id=studio_id, phone=phone).exclude(id=customer.id)
        if duplicate.exists():
            raise Conflict(DUPLICATE_PHONE_ON_UPDATE_MESSAGE)

    for field, value in data.items():
        setattr(customer, field, value)

    try:
        with transaction.atomic():
            customer.save(update_fields=[*data.keys(), "updated_at"])
    except IntegrityError:
        raise Conflict(DUPLICATE_PHONE_ON_UPDATE_MESSAGE)

    logger.info("customer_updated", extra={"studio_id": studio_id, "customer_id": customer.id})
    return get_customer(studio_id, customer.id)


def delete_customer(studio_id, customer_id):
    customer = get_customer(studio_id, customer_id)
    if customer.booking_count or customer.invoice_count:
        raise Conflict(DELETE_BLOCKED_MESSAGE)

    try:
        with transaction.atomic():
            customer.delete()
    except ProtectedError:
        raise Conflict(DELETE_BLOCKED_MESSAGE)

    logger.info("customer_deleted", extra={"studio_id": studio_id, "customer_id": customer_id})


def recent_bookings(customer):
    return list(customer.bookings.select_related("service").order_by("-created_at")[:RECENT_ITEMS_LIMIT])


def recent_invoices(customer):
    return list(customer.invoices.order_by("-created_at")[:RECENT_ITEMS_LIMIT])


def customer_stats(studio_id, customer_id):
    customer = get_customer(studio_id, customer_id)
    total_spent = customer.invoices.filter(status=Invoice.Status.PAID).aggregate(total=Sum("total"))["total"]
    last_booking = customer.bookings.aggregate(last=Max("created_at"))["last"]
    return {
        "total_bookings": customer.booking_count,
        "total_invoices": customer.invoice_count,
        "total_spent": total_spent or Decimal("0.00"),
        "last_booking": last_booking,
    }
