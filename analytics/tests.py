from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from billing import services as billing_services
from billing.models import Invoice, Payment
from bookings.models import Booking, Service
from core.models import Admin, Studio, User
from customers.models import Customer

PASSWORD = "correct-horse-42"
RANGE = {"startDate": "2026-03-01", "endDate": "2026-03-03"}


def at(day, hour=12):
    return datetime(2026, 3, day, hour, 0, tzinfo=dt_timezone.utc)


class AnalyticsTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.studio = Studio.objects.create(name="Lumen", slug="lumen")
        self.other_studio = Studio.objects.create(name="Umbra", slug="umbra")
        self.photographer = User.objects.create_user(
            email="shooter@lumen.test",
            password=PASSWORD,
            name="Shooter",
            studio=self.studio,
            role=User.Role.PHOTOGRAPHER,
        )
        self.portrait = Service.objects.create(studio=self.studio, name="Portrait", price=Decimal("200.00"))
        self.wedding = Service.objects.create(studio=self.studio, name="Wedding", price=Decimal("1500.00"))

        self.ana = self._customer("Ana", "555-1", created=at(1))
        self.ben = self._customer("Ben", "555-2", created=at(2))
        self.old = self._customer("Old", "555-3", created=datetime(2026, 1, 10, tzinfo=dt_timezone.utc))

        self.ana_first = self._booking(self.ana, self.portrait, created=at(1), status=Booking.Status.COMPLETED)
        self._booking(self.ana, self.wedding, created=at(2), status=Booking.Status.CONFIRMED)
        self._booking(self.ben, self.portrait, created=at(3), status=Booking.Status.CONFIRMED)
        self._booking(self.old, self.portrait, created=datetime(2026, 2, 1, tzinfo=dt_timezone.utc))

        invoice = Invoice.objects.create(
            studio=self.studio,
            customer=self.ana,
            booking=self.ana_first,
            invoice_number="INV-1",
            subtotal=Decimal("200.00"),
            total=Decimal("200.00"),
            status=Invoice.Status.SENT,
        )
        Invoice.objects.filter(id=invoice.id).update(created_at=at(1))
        pending = Invoice.objects.create(
            studio=self.studio,
            customer=self.ben,
            invoice_number="INV-2",
            subtotal=Decimal("50.00"),
            total=Decimal("50.00"),
            status=Invoice.Status.SENT,
        )
        Invoice.objects.filter(id=pending.id).update(created_at=at(2))

        billing_services.create_payment(self.studio.id, invoice.id, "120.00", Payment.Method.CASH, paid_at=at(1))
        billing_services.create_payment(self.studio.id, invoice.id, "30.00", Payment.Method.CARD, paid_at=at(3))

        other_customer = Customer.objects.create(studio=self.other_studio, name="Else", phone="555-9")
        other_invoice = Invoice.objects.create(
            studio=self.other_studio,
            customer=other_customer,
            invoice_number="INV-1",
            subtotal=Decimal("999.00"),
            total=Decimal("999.00"),
            status=Invoice.Status.SENT,
        )
        billing_services.create_payment(self.other_studio.id, other_invoice.id, "999.00", Payment.Method.CASH, paid_at=at(2))

        self.client.force_authenticate(user=self.photographer)

    def _customer(self, name, phone, created):
        customer = Customer.objects.create(studio=self.studio, name=name, phone=phone)
        Customer.objects.filter(id=customer.id).update(created_at=created)
        return customer

    def _booking(self, customer, service, created, status=Booking.Status.INQUIRY):
        booking = Booking.objects.create(
            studio=self.studio, customer=customer, service=service, scheduled_at=created, status=status
        )
        Booking.objects.filter(id=booking.id).update(created_at=created)
        return booking

    def test_overview(self):
        response = self.client.get("/api/v1/analytics/overview/", RANGE)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {
                "total_bookings": 3,
                "total_revenue": 150.0,
                "pending_invoices": 1,
                "completed_bookings": 1,
            },
        )

    def test_revenue_series_is_zero_filled(self):
        response = self.client.get("/api/v1/analytics/revenue/", RANGE)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            [
                {"date": "2026-03-01", "revenue": 120.0},
                {"date": "2026-03-02", "revenue": 0.0},
                {"date": "2026-03-03", "revenue": 30.0},
            ],
        )

    def test_bookings_by_status(self):
        response = self.client.get("/api/v1/analytics/bookings-by-status/", RANGE)

        self.assertEqual(response.status_code, 200)
        counts = {row["status"]: row["count"] for row in response.json()}
        self.assertEqual(counts, {"COMPLETED": 1, "CONFIRMED": 2})

    def test_service_performance(self):
        response = self.client.get("/api/v1/analytics/service-performance/", RANGE)

        self.assertEqual(response.status_code, 200)
        rows = {row["name"]: row for row in response.json()}
        self.assertEqual(rows["Portrait"]["bookings"], 2)
        self.assertEqual(rows["Portrait"]["revenue"], 150.0)
        self.assertEqual(rows["Wedding"]["bookings"], 1)
        self.assertEqual(rows["Wedding"]["revenue"], 0.0)

    def test_customer_insights(self):
        response = self.client.get("/api/v1/analytics/customer-insights/", RANGE)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {
                "total_customers": 3,
                "new_customers": 2,
                "returning_customers": 1,
                "total_revenue": 150.0,
                "average_revenue_per_customer": 50.0,
            },
        )

    def test_default_range_covers_last_thirty_days(self):
        Booking.objects.filter(studio=self.studio).update(created_at=timezone.now())

        response = self.client.get("/api/v1/analytics/overview/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["total_bookings"], 4)

    def test_invalid_dates_are_rejected(self):
        bad = self.client.get("/api/v1/analytics/overview/", {"startDate": "yesterday"})
        self.assertEqual(bad.status_code, 400)
        self.assertEqual(bad.json()["code"], "validation_error")
        self.assertIn("startDate", bad.json()["errors"])

        impossible = self.client.get("/api/v1/analytics/overview/", {"startDate": "2026-02-30"})
        self.assertEqual(impossible.status_code, 400)

        reversed_range = self.client.get(
            "/api/v1/analytics/overview/", {"startDate": "2026-03-05", "endDate": "2026-03-01"}
        )
        self.assertEqual(reversed_range.status_code, 400)

    def test_default_range_before_calendar_start_is_rejected(self):
        response = self.client.get("/api/v1/analytics/overview/", {"endDate": "0001-01-10"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertIn("endDate", response.json()["errors"])

    def test_range_longer_than_a_year_is_rejected(self):
        response = self.client.get(
            "/api/v1/analytics/revenue/", {"startDate": "0001-01-01", "endDate": "9999-12-31"}
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("startDate", response.json()["errors"])

        full_year = self.client.get(
            "/api/v1/analytics/revenue/", {"startDate": "2025-03-03", "endDate": "2026-03-03"}
        )
        self.assertEqual(full_year.status_code, 200)
        self.assertEqual(len(full_year.json()), 366)

    def test_cache_is_per_studio(self):
        mine = self.client.get("/api/v1/analytics/overview/", RANGE).json()

        other_owner = User.objects.create_user(
            email="owner@umbra.test", password=PASSWORD, name="Owner", studio=self.other_studio, role=User.Role.OWNER
        )
        self.client.force_authenticate(user=other_owner)
        theirs = self.client.get("/api/v1/analytics/overview/", RANGE).json()

        self.assertEqual(mine["total_revenue"], 150.0)
        self.assertEqual(theirs["total_revenue"], 999.0)

    def test_platform_admin_is_forbidden(self):
        admin = Admin.objects.create_user(email="ops@platform.test", password=PASSWORD, name="Ops")
        self.client.force_authenticate(user=admin)

        response = self.client.get("/api/v1/analytics/overview/", RANGE)

        self.assertEqual(response.status_code, 403)
