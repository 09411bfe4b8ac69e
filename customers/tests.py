from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from billing.models import Invoice
from bookings.models import Booking, Service
from core.models import AuditLog, Studio, User
from customers.models import Customer

PASSWORD = "correct-horse-42"


class CustomerDirectoryTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.studio = Studio.objects.create(name="Aperture", slug="aperture")
        self.other_studio = Studio.objects.create(name="Shutter", slug="shutter")
        self.owner = User.objects.create_user(
            email="owner@aperture.test", password=PASSWORD, name="Owner", studio=self.studio, role=User.Role.OWNER
        )
        self.assistant = User.objects.create_user(
            email="assist@aperture.test", password=PASSWORD, name="Assistant", studio=self.studio, role=User.Role.ASSISTANT
        )
        self.service = Service.objects.create(studio=self.studio, name="Portrait Session", price=Decimal("250.00"))
        self.client.force_authenticate(user=self.owner)

    def _create(self, **overrides):
        payload = {"name": "Maya Chen", "phone": "555-0100", "email": "maya@example.test"}
        payload.update(overrides)
        return self.client.post("/api/v1/customers/", payload, format="json")

    def test_create_normalizes_and_scopes_to_caller_studio(self):
        response = self._create(name="  Maya Chen ", phone=" 555-0100 ", email=" Maya@Example.TEST ", studio_id=str(self.other_studio.id))

        self.assertEqual(response.status_code, 201)
        customer = Customer.objects.get(id=response.json()["id"])
        self.assertEqual(customer.studio_id, self.studio.id)
        self.assertEqual(customer.name, "Maya Chen")
        self.assertEqual(customer.phone, "555-0100")
        self.assertEqual(customer.email, "maya@example.test")
        self.assertTrue(AuditLog.objects.filter(action="customer.create", entity_id=customer.id).exists())

    def test_duplicate_phone_in_same_studio_conflicts(self):
        self.assertEqual(self._create().status_code, 201)

        response = self._create(name="Someone Else", email=None)

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["message"], "Customer with this phone number already exists.")
        self.assertEqual(Customer.objects.filter(studio=self.studio).count(), 1)

    def test_same_phone_allowed_in_other_studio(self):
        Customer.objects.create(studio=self.other_studio, name="Elsewhere", phone="555-0100")

        response = self._create()

        self.assertEqual(response.status_code, 201)

    def test_metadata_must_be_object(self):
        response = self._create(metadata=["not", "an", "object"])

        self.assertEqual(response.status_code, 400)
        self.assertIn("metadata", response.json()["errors"])

    def test_list_paginates_and_searches(self):
        Customer.objects.create(studio=self.studio, name="Maya Chen", phone="555-0100", email="maya@example.test")
        Customer.objects.create(studio=self.studio, name="Leo Park", phone="555-0200", email="leo@example.test")
        Customer.objects.create(studio=self.other_studio, name="Maya Outside", phone="555-0300")

        response = self.client.get("/api/v1/customers/", {"limit": 1})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["meta"], {"total": 2, "page": 1, "limit": 1, "total_pages": 2})
        self.assertEqual(len(payload["data"]), 1)

        by_name = self.client.get("/api/v1/customers/", {"search": "maya"}).json()
        self.assertEqual([row["name"] for row in by_name["data"]], ["Maya Chen"])

        by_phone = self.client.get("/api/v1/customers/", {"search": "555-0200"}).json()
        self.assertEqual([row["name"] for row in by_phone["data"]], ["Leo Park"])

        partial_phone = self.client.get("/api/v1/customers/", {"search": "555"}).json()
        self.assertEqual(partial_phone["meta"]["total"], 0)

    def test_search_matches_email_substring_case_insensitively(self):
        Customer.objects.create(studio=self.studio, name="Maya Chen", phone="555-0100", email="maya@example.test")
        Customer.objects.create(studio=self.studio, name="Leo Park", phone="555-0200", email="leo@example.test")
        Customer.objects.create(studio=self.other_studio, name="Leo Outside", phone="555-0300", email="leo@example.test")

        domain = self.client.get("/api/v1/customers/", {"search": "EXAMPLE.Test"}).json()
        self.assertEqual(sorted(row["name"] for row in domain["data"]), ["Leo Park", "Maya Chen"])

        fragment = self.client.get("/api/v1/customers/", {"search": "O@EXA"}).json()
        self.assertEqual([row["name"] for row in fragment["data"]], ["Leo Park"])

        missing = self.client.get("/api/v1/customers/", {"search": "nobody@"}).json()
        self.assertEqual(missing["meta"]["total"], 0)

    def test_retrieve_includes_recent_activity_and_counts(self):
        customer = Customer.objects.create(studio=self.studio, name="Maya Chen", phone="555-0100")
        Booking.objects.create(studio=self.studio, customer=customer, service=self.service, scheduled_at=timezone.now())
        Invoice.objects.create(
            studio=self.studio,
            customer=customer,
            invoice_number="INV-1",
            subtotal=Decimal("250.00"),
            total=Decimal("250.00"),
            status=Invoice.Status.PAID,
        )

        response = self.client.get(f"/api/v1/customers/{customer.id}/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["booking_count"], 1)
        self.assertEqual(payload["invoice_count"], 1)
        self.assertEqual(payload["bookings"][0]["service_name"], "Portrait Session")
        self.assertEqual(payload["invoices"][0]["invoice_number"], "INV-1")

        stats = self.client.get(f"/api/v1/customers/{customer.id}/stats/").json()
        self.assertEqual(stats["total_bookings"], 1)
        self.assertEqual(stats["total_invoices"], 1)
        self.assertEqual(stats["total_spent"], "250.00")
        self.assertIsNotNone(stats["last_booking"])

    def test_other_studio_customer_is_not_found(self):
        foreign = Customer.objects.create(studio=self.other_studio, name="Elsewhere", phone="555-0300")

        self.assertEqual(self.client.get(f"/api/v1/customers/{foreign.id}/").status_code, 404)
        self.assertEqual(self.client.patch(f"/api/v1/customers/{foreign.id}/", {"name": "X"}, format="json").status_code, 404)
        self.assertEqual(self.client.delete(f"/api/v1/customers/{foreign.id}/").status_code, 404)
        self.assertTrue(Customer.objects.filter(id=foreign.id, name="Elsewhere").exists())

    def test_update_rechecks_phone_excluding_self(self):
        first = Customer.objects.create(studio=self.studio, name="First", phone="555-0100")
        Customer.objects.create(studio=self.studio, name="Second", phone="555-0200")

        same_phone = self.client.patch(f"/api/v1/customers/{first.id}/", {"phone": "555-0100", "name": "Renamed"}, format="json")
        self.assertEqual(same_phone.status_code, 200)
        self.assertEqual(same_phone.json()["name"], "Renamed")

        clash = self.client.patch(f"/api/v1/customers/{first.id}/", {"phone": "555-0200"}, format="json")
        self.assertEqual(clash.status_code, 409)
        self.assertEqual(clash.json()["message"], "Another customer with this phone number already exists.")
        first.refresh_from_db()
        self.assertEqual(first.phone, "555-0100")

    def test_put_is_not_allowed(self):
        customer = Customer.objects.create(studio=self.studio, name="First", phone="555-0100")

        response = self.client.put(f"/api/v1/customers/{customer.id}/", {"name": "X", "phone": "1"}, format="json")

        self.assertEqual(response.status_code, 405)

    def test_delete_blocked_by_booking(self):
        customer = Customer.objects.create(studio=self.studio, name="Booked", phone="555-0100")
        Booking.objects.create(studio=self.studio, customer=customer, service=self.service, scheduled_at=timezone.now())

        response = self.client.delete(f"/api/v1/customers/{customer.id}/")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["message"], "Cannot delete customer with existing bookings or invoices.")
        self.assertTrue(Customer.objects.filter(id=customer.id).exists())

    def test_delete_blocked_by_invoice(self):
        customer = Customer.objects.create(studio=self.studio, name="Invoiced", phone="555-0100")
        Invoice.objects.create(
            studio=self.studio, customer=customer, invoice_number="INV-9", subtotal=Decimal("10.00"), total=Decimal("10.00")
        )

        response = self.client.delete(f"/api/v1/customers/{customer.id}/")

        self.assertEqual(response.status_code, 409)
        self.assertTrue(Customer.objects.filter(id=customer.id).exists())

    def test_owner_deletes_unreferenced_customer(self):
        customer = Customer.objects.create(studio=self.studio, name="Free", phone="555-0100")

        response = self.client.delete(f"/api/v1/customers/{customer.id}/")

        self.assertEqual(response.status_code, 204)
        self.assertFalse(Customer.objects.filter(id=customer.id).exists())
        self.assertTrue(AuditLog.objects.filter(action="customer.delete", entity_id=customer.id).exists())

    def test_assistant_can_manage_but_not_delete(self):
        customer = Customer.objects.create(studio=self.studio, name="Free", phone="555-0100")
        self.client.force_authenticate(user=self.assistant)

        self.assertEqual(self._create(phone="555-0999").status_code, 201)
        self.assertEqual(self.client.patch(f"/api/v1/customers/{customer.id}/", {"name": "Edited"}, format="json").status_code, 200)

        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.delete(f"/api/v1/customers/{customer.id}/")

        self.assertEqual(response.status_code, 403)
        self.assertTrue(any("customers.delete" in message for message in cm.output))
        self.assertTrue(Customer.objects.filter(id=customer.id).exists())

    def test_requires_authentication(self):
        response = APIClient().get("/api/v1/customers/")

        self.assertEqual(response.status_code, 401)
