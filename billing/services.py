"""Invoice lifecycle and payment reconciliation.

Payments are only ever created or removed through this module. Both paths lock
the invoice row, change the payment set, then recompute the paid sum from the
database and derive the invoice status from it.

Invoice edits are limited to DRAFT and SENT invoices, which never carry
payments. PARTIALLY_PAID and PAID are only reached through reconciliation.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from billing.models import Invoice, Payment
from bookings.models import Booking
from common.exceptions import Conflict
from core.models import Studio
from customers.models import Customer

logger = logging.getLogger(__name__)

MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0.00")
RECENT_PAYMENTS_LIMIT = 10
DEFAULT_PAYMENT_LIST_LIMIT = 100
INVOICE_NUMBER_PREFIX = "INV"
EDITABLE_INVOICE_STATUSES = {Invoice.Status.DRAFT, Invoice.Status.SENT}
MANUAL_INVOICE_STATUSES = (Invoice.Status.DRAFT, Invoice.Status.SENT, Invoice.Status.CANCELLED)


def to_money(value):
    try:
        return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError({"amount": "A valid amount is required."})


def derive_status_after_payment(total, total_paid, current_status):
    if total_paid >= total:
        return Invoice.Status.PAID
    if total_paid > 0:
        return Invoice.Status.PARTIALLY_PAID
    return current_status


def derive_status_after_removal(total, total_paid):
    # Removing every payment always lands on SENT, whatever the invoice was before.
    if total_paid == 0:
        return Invoice.Status.SENT
    if total_paid >= total:
        return Invoice.Status.PAID
    return Invoice.Status.PARTIALLY_PAID


def paid_total(invoice):
    return to_money(invoice.payments.aggregate(total=Sum("amount"))["total"] or ZERO)


def _get_studio_invoice(studio_id, invoice_id, *, for_update=False):
    queryset = Invoice.objects.all()
    if for_update:
        queryset = queryset.select_for_update()
    invoice = queryset.filter(id=invoice_id, studio_id=studio_id).first()
    if invoice is None:
        raise NotFound("Invoice not found.")
    return invoice


def _validate_payment(invoice, amount):
    if invoice.status == Invoice.Status.CANCELLED:
        raise Conflict("Cannot add payment to a cancelled invoice.")

    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError({"amount": "Payment amount must be greater than zero."})

    remaining = to_money(invoice.total) - paid_total(invoice)
    if amount > remaining:
        raise Conflict(f"Payment amount ({amount:.2f}) exceeds remaining balance ({remaining:.2f}).")
    return amount


def create_payment(studio_id, invoice_id, amount, payment_method, transaction_id=None, notes=None, paid_at=None):
    """Record a payment against an invoice of the studio and reconcile its status."""
    with transaction.atomic():
        invoice = _get_studio_invoice(studio_id, invoice_id, for_update=True)
        amount = _validate_payment(invoice, amount)

        payment = Payment.objects.create(
            invoice=invoice,
            amount=amount,
            payment_method=payment_method,
            transaction_id=transaction_id,
            notes=notes,
            paid_at=paid_at or timezone.now(),
        )

        total_paid = paid_total(invoice)
        new_status = derive_status_after_payment(to_money(invoice.total), total_paid, invoice.status)
        if new_status != invoice.status:
            invoice.status = new_status
            invoice.save(update_fields=["status", "updated_at"])

    logger.info(
        "payment_created",
        extra={
            "studio_id": studio_id,
            "invoice_id": invoice.id,
            "payment_id": payment.id,
            "amount": str(amount),
            "invoice_status": invoice.status,
        },
    )
    return payment


def remove_payment(studio_id, payment_id):
    """Delete a payment of the studio and reconcile the invoice it belonged to."""
    with transaction.atomic():
        payment = (
            Payment.objects.select_related("invoice")
            .filter(id=payment_id, invoice__studio_id=studio_id)
            .first()
        )
        if payment is None:
            raise NotFound("Payment not found.")

        invoice = _get_studio_invoice(studio_id, payment.invoice_id, for_update=True)
        removed_amount = payment.amount
        payment.delete()

        total_paid = paid_total(invoice)
        new_status = derive_status_after_removal(to_money(invoice.total), total_paid)
        if new_status != invoice.status:
            invoice.status = new_status
            invoice.save(update_fields=["status", "updated_at"])

    logger.info(
        "payment_removed",
        extra={
            "studio_id": studio_id,
            "invoice_id": invoice.id,
            "payment_id": payment_id,
            "amount": str(removed_amount),
            "invoice_status": invoice.status,
        },
    )
    return invoice


def studio_payments(studio_id):
    return Payment.objects.select_related("invoice__customer").filter(invoice__studio_id=studio_id)


def list_payments(studio_id, limit=DEFAULT_PAYMENT_LIST_LIMIT, payment_method=None):
    queryset = studio_payments(studio_id)
    if payment_method:
        queryset = queryset.filter(payment_method=payment_method)
    return list(queryset.order_by("-paid_at", "-created_at")[:limit])


def list_invoice_payments(studio_id, invoice_id):
    invoice = _get_studio_invoice(studio_id, invoice_id)
    return list(studio_payments(studio_id).filter(invoice=invoice).order_by("-paid_at", "-created_at"))


def get_payment(studio_id, payment_id):
    payment = studio_payments(studio_id).filter(id=payment_id).first()
    if payment is None:
        raise NotFound("Payment not found.")
    return payment


def payment_stats(studio_id):
    queryset = studio_payments(studio_id)
    totals = queryset.aggregate(count=Count("id"), amount=Sum("amount"))
    return {
        "total_payments": totals["count"] or 0,
        "total_amount": to_money(totals["amount"] or ZERO),
        "recent_payments": list(queryset.order_by("-paid_at", "-created_at")[:RECENT_PAYMENTS_LIMIT]),
    }


def _line_item_payload(item):
    quantity = int(item.get("quantity", 1))
    rate = to_money(item.get("rate", ZERO))
    amount = item.get("amount")
    amount = to_money(amount) if amount is not None else to_money(rate * quantity)
    return {
        "description": item["description"],
        "quantity": quantity,
        "rate": str(rate),
        "amount": str(amount),
    }


def compute_invoice_totals(line_items, tax=ZERO, discount=ZERO):
    """Return (subtotal, tax, discount, total) for stored line items."""
    subtotal = sum((to_money(item["amount"]) for item in line_items), ZERO)
    tax = to_money(tax or ZERO)
    discount = to_money(discount or ZERO)
    total = subtotal + tax - discount
    if total < 0:
        raise ValidationError({"discount": "Discount cannot exceed subtotal plus tax."})
    return subtotal, tax, discount, total


def next_invoice_number(studio_id, year=None):
    year = year or timezone.now().year
    prefix = f"{INVOICE_NUMBER_PREFIX}-{year}-"
    highest = 0
    numbers = Invoice.objects.filter(studio_id=studio_id, invoice_number__startswith=prefix).values_list(
        "invoice_number", flat=True
    )
    for number in numbers:
        sequence = number[len(prefix):]
        if sequence.isdigit():
            highest = max(highest, int(sequence))
    return f"{prefix}{highest + 1:05d}"


def studio_invoices(studio_id):
    return (
        Invoice.objects.filter(studio_id=studio_id)
        .select_related("customer")
        .prefetch_related("payments")
        .order_by("-created_at")
    )


def get_invoice(studio_id, invoice_id):
    invoice = studio_invoices(studio_id).filter(id=invoice_id).first()
    if invoice is None:
        raise NotFound("Invoice not found.")
    return invoice


def create_invoice(
    studio_id, *, customer_id, line_items, booking_id=None, tax=ZERO, discount=ZERO, due_date=None, notes=""
):
    """Create a DRAFT invoice numbered INV-<year>-<sequence> within the studio."""
    customer = Customer.objects.filter(id=customer_id, studio_id=studio_id).first()
    if customer is None:
        raise NotFound("Customer not found.")

    booking = None
    if booking_id:
        booking = Booking.objects.filter(id=booking_id, studio_id=studio_id).first()
        if booking is None:
            raise NotFound("Booking not found.")
        if booking.customer_id != customer.id:
            raise ValidationError({"booking_id": "Booking belongs to a different customer."})

    items = [_line_item_payload(item) for item in line_items]
    subtotal, tax, discount, total = compute_invoice_totals(items, tax, discount)

    with transaction.atomic():
        # Serializes numbering per studio.
        Studio.objects.select_for_update().filter(id=studio_id).first()
        invoice = Invoice.objects.create(
            studio_id=studio_id,
            customer=customer,
            booking=booking,
            invoice_number=next_invoice_number(studio_id),
            status=Invoice.Status.DRAFT,
            line_items=items,
            subtotal=subtotal,
            tax=tax,
            discount=discount,
            total=total,
            due_date=due_date,
            notes=notes or "",
        )

    logger.info(
        "invoice_created",
        extra={"studio_id": studio_id, "invoice_id": invoice.id, "invoice_number": invoice.invoice_number},
    )
    return invoice


def update_invoice(studio_id, invoice_id, changes):
    with transaction.atomic():
        invoice = _get_studio_invoice(studio_id, invoice_id, for_update=True)
        if invoice.status not in EDITABLE_INVOICE_STATUSES:
            raise Conflict(f"Cannot update invoice with status {invoice.status}.")

        new_status = changes.get("status")
        if new_status is not None and new_status not in MANUAL_INVOICE_STATUSES:
            raise ValidationError({"status": f"Status cannot be set to {new_status}."})

        if {"line_items", "tax", "discount"} & set(changes):
            if "line_items" in changes:
                invoice.line_items = [_line_item_payload(item) for item in changes["line_items"]]
            invoice.subtotal, invoice.tax, invoice.discount, invoice.total = compute_invoice_totals(
                invoice.line_items,
                changes.get("tax", invoice.tax),
                changes.get("discount", invoice.discount),
            )

        for field in ("due_date", "notes", "status"):
            if field in changes:
                setattr(invoice, field, changes[field])
        invoice.save()

    logger.info("invoice_updated", extra={"studio_id": studio_id, "invoice_id": invoice.id, "invoice_status": invoice.status})
    return invoice


def delete_invoice(studio_id, invoice_id):
    with transaction.atomic():
        invoice = _get_studio_invoice(studio_id, invoice_id, for_update=True)
        if invoice.status != Invoice.Status.DRAFT:
            raise Conflict("Only draft invoices can be deleted.")
        if invoice.payments.exists():
            raise Conflict("Cannot delete an invoice with payments.")
        invoice.delete()

    logger.info("invoice_deleted", extra={"studio_id": studio_id, "invoice_id": invoice_id})


def send_invoice(studio_id, invoice_id):
    """Mark a DRAFT invoice as SENT. Delivery to the customer happens outside this service."""
    with transaction.atomic():
        invoice = _get_studio_invoice(studio_id, invoice_id, for_update=True)
        if invoice.status != Invoice.Status.DRAFT:
            raise Conflict("Only draft invoices can be sent.")
        invoice.status = Invoice.Status.SENT
        invoice.save(update_fields=["status", "updated_at"])

    logger.info("invoice_sent", extra={"studio_id": studio_id, "invoice_id": invoice.id})
    return invoice


def invoice_stats(studio_id):
    totals = Invoice.objects.filter(studio_id=studio_id).aggregate(
        total_invoices=Count("id"),
        draft_invoices=Count("id", filter=Q(status=Invoice.Status.DRAFT)),
        sent_invoices=Count("id", filter=Q(status=Invoice.Status.SENT)),
        paid_invoices=Count("id", filter=Q(status=Invoice.Status.PAID)),
        total_revenue=Sum("total", filter=Q(status=Invoice.Status.PAID)),
        pending_revenue=Sum(
            "total", filter=Q(status__in=[Invoice.Status.SENT, Invoice.Status.PARTIALLY_PAID])
        ),
    )
    totals["total_revenue"] = to_money(totals["total_revenue"] or ZERO)
    totals["pending_revenue"] = to_money(totals["pending_revenue"] or ZERO)
    return totals
