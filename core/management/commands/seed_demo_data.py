from datetime import timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.utils import timezone

from billing import services as billing_services
from billing.models import Invoice, Payment
from bookings.models import Booking, Service
from core.models import Admin, Studio, User
from customers.models import Customer


class Command(BaseCommand):
    help = "Seed a demo studio with staff, customers, bookings, invoices and payments for local development."

    def _principal(self, model, email, password, **defaults):
        principal, created = model.objects.get_or_create(email=email, defaults=defaults)
        if created:
            principal.set_password(password)
            principal.save(update_fields=["password"])
        return principal

    def handle(self, *args, **options):
        studio, _ = Studio.objects.get_or_create(
            slug="demo-studio",
            defaults={"name": "Demo Studio", "email": "studio@example.com", "status": Studio.Status.ACTIVE},
        )

        self._principal(Admin, "admin@example.com", "admin1234", name="Platform Admin")
        self._principal(User, "owner@example.com", "owner1234", name="Studio Owner", studio=studio, role=User.Role.OWNER)
        photographer = self._principal(
            User,
            "photographer@example.com",
            "photographer1234",
            name="Staff Photographer",
            studio=studio,
            role=User.Role.PHOTOGRAPHER,
        )
        self._principal(
            User, "assistant@example.com", "assistant1234", name="Studio Assistant", studio=studio, role=User.Role.ASSISTANT
        )

        portrait, _ = Service.objects.get_or_create(
            studio=studio,
            name="Portrait Session",
            defaults={"price": Decimal("250.00"), "duration_minutes": 60, "sort_order": 1},
        )
        wedding, _ = Service.objects.get_or_create(
            studio=studio,
            name="Wedding Coverage",
            defaults={"price": Decimal("1800.00"), "duration_minutes": 480, "sort_order": 2},
        )

        maya, _ = Customer.objects.get_or_create(
            studio=studio,
            phone="+15550000001",
            defaults={"name": "Maya Chen", "email": "maya@example.com"},
        )
        leo, _ = Customer.objects.get_or_create(
            studio=studio,
            phone="+15550000002",
            defaults={"name": "Leo Park", "email": "leo@example.com"},
        )

        now = timezone.now()
        portrait_booking, _ = Booking.objects.get_or_create(
            studio=studio,
            customer=maya,
            service=portrait,
            defaults={
                "scheduled_at": now - timedelta(days=3),
                "status": Booking.Status.COMPLETED,
                "assigned_to": photographer,
            },
        )
        wedding_booking, _ = Booking.objects.get_or_create(
            studio=studio,
            customer=leo,
            service=wedding,
            defaults={
                "scheduled_at": now + timedelta(days=21),
                "status": Booking.Status.CONFIRMED,
                "assigned_to": photographer,
            },
        )

        paid_invoice, created_paid = Invoice.objects.get_or_create(
            studio=studio,
            invoice_number="INV-0001",
            defaults={
                "customer": maya,
                "booking": portrait_booking,
                "status": Invoice.Status.SENT,
                "line_items": [{"description": "Portrait Session", "quantity": 1, "rate": "250.00", "amount": "250.00"}],
                "subtotal": Decimal("250.00"),
                "total": Decimal("250.00"),
            },
        )
        if created_paid:
            billing_services.create_payment(studio.id, paid_invoice.id, Decimal("250.00"), Payment.Method.CARD)

        deposit_invoice, created_deposit = Invoice.objects.get_or_create(
            studio=studio,
            invoice_number="INV-0002",
            defaults={
                "customer": leo,
                "booking": wedding_booking,
                "status": Invoice.Status.SENT,
                "line_items": [{"description": "Wedding Coverage", "quantity": 1, "rate": "1800.00", "amount": "1800.00"}],
                "subtotal": Decimal("1800.00"),
                "total": Decimal("1800.00"),
                "due_date": (now + timedelta(days=14)).date(),
            },
        )
        if created_deposit:
            billing_services.create_payment(studio.id, deposit_invoice.id, Decimal("500.00"), Payment.Method.BANK_TRANSFER)

        self.stdout.write(self.style.SUCCESS("Demo data seeded successfully."))
        self.stdout.write(
            "Credentials: admin@example.com/admin1234 (admin login), owner@example.com/owner1234, "
            "photographer@example.com/photographer1234, assistant@example.com/assistant1234"
        )
        self.stdout.write(f"Studio: {studio.slug}")
