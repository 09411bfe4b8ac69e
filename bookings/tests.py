from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

from django.core.cache import cache
from django.test import TestCase
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.test import APIClient

from bookings import services
from bookings.models import Booking, Service
from common.exceptions import Conflict
from core.models import Admin, AuditLog, Studio, User
from customers.models import Customer

PASSWORD = "correct-horse-42"
SLOT = datetime(2030, 5, 4, 10, 0, tzinfo=dt_timezone.utc)


class BookingScheduleServiceTests(TestCase):
    def setUp(self):
        self.studio = Studio.objects.create(name="Frame", slug="frame")
        self.other_studio = Studio.objects.create(name="Grain", slug="grain")
        self.customer = Customer.objects.create(studio=self.studio, name="Ana", phone="555-1")
        self.other_customer = Customer.objects.create(studio=self.other_studio, name="Eve", phone="555-2")
        self.service = Service.objects.create(studio=self.studio, name="Portrait", price=Decimal("200.00"))

    def _book(self, scheduled_at=SLOT, **overrides):
        params = {"customer_id": self.customer.id, "service_id": self.service.id, "scheduled_at": scheduled_at}
        params.update(overrides)
        return services.create_booking(self.studio.id, **params)

    def test_create_starts_as_inquiry(self):
        booking = self._book(notes="Bring the dog")

        self.assertEqual(booking.status, Booking.Status.INQUIRY)
        self.assertEqual(booking.notes, "Bring the dog")

    def test_open_booking_blocks_the_same_slot(self):
        self._book()

        with self.assertRaises(Conflict) as ctx:
            self._book()
        self.assertIn("already booked", str(ctx.exception.detail))
        self.assertEqual(Booking.objects.filter(studio=self.studio).count(), 1)

    def test_closed_bookings_free_the_slot(self):
        first = self._book()
        services.cancel_booking(self.studio.id, first.id)

        second = self._book()

        self.assertEqual(second.status, Booking.Status.INQUIRY)

    def test_same_slot_in_another_studio_is_allowed(self):
        self._book()
        other_service = Service.objects.create(studio=self.other_studio, name="Event", price=Decimal("10.00"))

        booking = services.create_booking(
            self.other_studio.id,
            customer_id=self.other_customer.id,
            service_id=other_service.id,
            scheduled_at=SLOT,
        )

        self.assertEqual(booking.studio_id, self.other_studio.id)

    def test_reschedule_checks_slot_but_ignores_itself(self):
        first = self._book()
        second = self._book(scheduled_at=SLOT + timedelta(hours=2))

        same = services.update_booking(self.studio.id, first.id, {"scheduled_at": SLOT, "notes": "confirmed by phone"})
        self.assertEqual(same.notes, "confirmed by phone")

        with self.assertRaises(Conflict):
            services.update_booking(self.studio.id, second.id, {"scheduled_at": SLOT})

    def test_reopening_a_cancelled_booking_checks_the_slot(self):
        first = self._book()
        services.cancel_booking(self.studio.id, first.id)
        self._book()

        with self.assertRaises(Conflict):
            services.update_booking_status(self.studio.id, first.id, Booking.Status.CONFIRMED)

    def test_cancel_rejects_final_bookings(self):
        booking = self._book()
        services.update_booking_status(self.studio.id, booking.id, Booking.Status.COMPLETED)

        with self.assertRaises(Conflict) as ctx:
            services.cancel_booking(self.studio.id, booking.id)
        self.assertIn("completed", str(ctx.exception.detail))

    def test_foreign_and_inactive_references_are_rejected(self):
        with self.assertRaises(NotFound):
            self._book(customer_id=self.other_customer.id)

        self.service.is_active = False
        self.service.save()
        with self.assertRaises(NotFound):
            self._book()

    def test_assignee_must_belong_to_studio(self):
        outsider = User.objects.create_user(
            email="outsider@grain.test", password=PASSWORD, name="Out", studio=self.other_studio
        )

        with self.assertRaises(ValidationError):
            self._book(assigned_to=outsider.id)

    def test_upcoming_lists_open_future_bookings_soonest_first(self):
        later = self._book(scheduled_at=timezone.now() + timedelta(days=3))
        sooner = self._book(scheduled_at=timezone.now() + timedelta(days=1))
        cancelled = self._book(scheduled_at=timezone.now() + timedelta(days=2))
        services.cancel_booking(self.studio.id, cancelled.id)
        self._book(scheduled_at=timezone.now() - timedelta(days=1))

        upcoming = services.upcoming_bookings(self.studio.id)

        self.assertEqual([booking.id for booking in upcoming], [sooner.id, later.id])


class ServiceCatalogServiceTests(TestCase):
    def setUp(self):
        self.studio = Studio.objects.create(name="Frame", slug="frame")
        self.other_studio = Studio.objects.create(name="Grain", slug="grain")
        self.portrait = Service.objects.create(studio=self.studio, name="Portrait", price=Decimal("200.00"), sort_order=0)
        self.wedding = Service.objects.create(studio=self.studio, name="Wedding", price=Decimal("1500.00"), sort_order=1)
        self.foreign = Service.objects.create(studio=self.other_studio, name="Event", price=Decimal("10.00"))

    def test_reorder_sets_positions(self):
        ordered = services.reorder_services(self.studio.id, [self.wedding.id, self.portrait.id])

        self.assertEqual([service.name for service in ordered], ["Wedding", "Portrait"])
        self.portrait.refresh_from_db()
        self.assertEqual(self.portrait.sort_order, 1)

    def test_reorder_rejects_foreign_services(self):
        with self.assertRaises(ValidationError):
            services.reorder_services(self.studio.id, [self.wedding.id, self.foreign.id])

        self.wedding.refresh_from_db()
        self.assertEqual(self.wedding.sort_order, 1)

    def test_delete_blocked_while_bookings_exist(self):
        customer = Customer.objects.create(studio=self.studio, name="Ana", phone="555-1")
        Booking.objects.create(studio=self.studio, customer=customer, service=self.portrait, scheduled_at=SLOT)

        with self.assertRaises(Conflict):
            services.delete_service(self.studio.id, self.portrait.id)

        services.delete_service(self.studio.id, self.wedding.id)
        self.assertFalse(Service.objects.filter(id=self.wedding.id).exists())

    def test_inactive_services_hidden_unless_requested(self):
        services.toggle_service_active(self.studio.id, self.wedding.id)

        active = services.studio_services(self.studio.id)
        everything = services.studio_services(self.studio.id, include_inactive=True)

        self.assertEqual([service.name for service in active], ["Portrait"])
        self.assertEqual(everything.count(), 2)

    def test_stats(self):
        customer = Customer.objects.create(studio=self.studio, name="Ana", phone="555-1")
        Booking.objects.create(
            studio=self.studio, customer=customer, service=self.portrait, scheduled_at=SLOT, status=Booking.Status.CONFIRMED
        )
        Booking.objects.create(
            studio=self.studio,
            customer=customer,
            service=self.portrait,
            scheduled_at=SLOT - timedelta(days=3650),
            status=Booking.Status.COMPLETED,
        )

        stats = services.service_stats(self.studio.id, self.portrait.id)

        self.assertEqual(stats, {"total_bookings": 2, "completed_bookings": 1, "upcoming_bookings": 1})

    def test_other_studio_service_is_not_found(self):
        with self.assertRaises(NotFound):
            services.get_service(self.studio.id, self.foreign.id)


class ServiceApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.studio = Studio.objects.create(name="Frame", slug="frame")
        self.owner = User.objects.create_user(
            email="owner@frame.test", password=PASSWORD, name="Owner", studio=self.studio, role=User.Role.OWNER
        )
        self.photographer = User.objects.create_user(
            email="shooter@frame.test",
            password=PASSWORD,
            name="Shooter",
            studio=self.studio,
            role=User.Role.PHOTOGRAPHER,
        )
        self.client.force_authenticate(user=self.owner)

    def test_owner_manages_catalog(self):
        created = self.client.post(
            "/api/v1/services/",
            {"name": "Headshots", "price": "99.00", "duration_minutes": 30},
            format="json",
        )
        self.assertEqual(created.status_code, 201)
        service_id = created.json()["id"]
        self.assertEqual(created.json()["booking_count"], 0)

        updated = self.client.patch(f"/api/v1/services/{service_id}/", {"price": "120.00"}, format="json")
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["price"], "120.00")

        toggled = self.client.post(f"/api/v1/services/{service_id}/toggle-active/")
        self.assertFalse(toggled.json()["is_active"])
        self.assertEqual(self.client.get("/api/v1/services/").json(), [])
        self.assertEqual(len(self.client.get("/api/v1/services/", {"include_inactive": "true"}).json()), 1)

        deleted = self.client.delete(f"/api/v1/services/{service_id}/")
        self.assertEqual(deleted.status_code, 204)
        self.assertTrue(AuditLog.objects.filter(action="service.delete", entity_id=service_id).exists())

    def test_negative_price_is_rejected(self):
        response = self.client.post("/api/v1/services/", {"name": "Free", "price": "-1.00"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIn("price", response.json()["errors"])

    def test_photographer_reads_but_cannot_manage(self):
        Service.objects.create(studio=self.studio, name="Portrait", price=Decimal("200.00"))
        self.client.force_authenticate(user=self.photographer)

        self.assertEqual(len(self.client.get("/api/v1/services/").json()), 1)
        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.post("/api/v1/services/", {"name": "X", "price": "1.00"}, format="json")
        self.assertEqual(response.status_code, 403)
        self.assertTrue(any("services.manage" in message for message in cm.output))


class BookingApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.studio = Studio.objects.create(name="Frame", slug="frame")
        self.other_studio = Studio.objects.create(name="Grain", slug="grain")
        self.assistant = User.objects.create_user(
            email="assistant@frame.test",
            password=PASSWORD,
            name="Assistant",
            studio=self.studio,
            role=User.Role.ASSISTANT,
        )
        self.customer = Customer.objects.create(studio=self.studio, name="Ana", phone="555-1")
        self.service = Service.objects.create(studio=self.studio, name="Portrait", price=Decimal("200.00"))
        self.client.force_authenticate(user=self.assistant)

    def _book(self, scheduled_at="2030-05-04T10:00:00Z"):
        return self.client.post(
            "/api/v1/bookings/",
            {
                "customer_id": str(self.customer.id),
                "service_id": str(self.service.id),
                "scheduled_at": scheduled_at,
                "assigned_to": str(self.assistant.id),
            },
            format="json",
        )

    def test_create_and_double_booking_conflict(self):
        created = self._book()
        self.assertEqual(created.status_code, 201)
        payload = created.json()
        self.assertEqual(payload["status"], "INQUIRY")
        self.assertEqual(payload["customer"]["name"], "Ana")
        self.assertEqual(payload["assigned_to"]["id"], str(self.assistant.id))

        clash = self._book()
        self.assertEqual(clash.status_code, 409)
        self.assertEqual(clash.json()["code"], "conflict")
        self.assertEqual(clash.json()["message"], "This time slot is already booked. Please choose another time.")

    def test_list_filters_by_status_and_is_scoped(self):
        booking_id = self._book().json()["id"]
        self._book(scheduled_at="2030-05-05T10:00:00Z")
        self.client.patch(f"/api/v1/bookings/{booking_id}/status/", {"status": "CONFIRMED"}, format="json")
        other_customer = Customer.objects.create(studio=self.other_studio, name="Eve", phone="555-2")
        other_service = Service.objects.create(studio=self.other_studio, name="Event", price=Decimal("10.00"))
        foreign = Booking.objects.create(
            studio=self.other_studio, customer=other_customer, service=other_service, scheduled_at=SLOT
        )

        everything = self.client.get("/api/v1/bookings/").json()
        self.assertEqual(everything["meta"]["total"], 2)

        confirmed = self.client.get("/api/v1/bookings/", {"status": "CONFIRMED"}).json()
        self.assertEqual([row["id"] for row in confirmed["data"]], [booking_id])

        self.assertEqual(self.client.get("/api/v1/bookings/", {"status": "LOST"}).status_code, 400)
        self.assertEqual(self.client.get(f"/api/v1/bookings/{foreign.id}/").status_code, 404)

    def test_cancel_then_cancel_again(self):
        booking_id = self._book().json()["id"]

        cancelled = self.client.post(f"/api/v1/bookings/{booking_id}/cancel/", {"notes": "client ill"}, format="json")
        self.assertEqual(cancelled.status_code, 200)
        self.assertEqual(cancelled.json()["status"], "CANCELLED")
        self.assertIn("client ill", cancelled.json()["notes"])

        again = self.client.post(f"/api/v1/bookings/{booking_id}/cancel/")
        self.assertEqual(again.status_code, 409)

    def test_reschedule_into_taken_slot_conflicts(self):
        self._book()
        second_id = self._book(scheduled_at="2030-05-04T12:00:00Z").json()["id"]

        response = self.client.patch(
            f"/api/v1/bookings/{second_id}/", {"scheduled_at": "2030-05-04T10:00:00Z"}, format="json"
        )

        self.assertEqual(response.status_code, 409)
        self.assertTrue(AuditLog.objects.filter(action="booking.create").exists())

    def test_upcoming(self):
        soon = (timezone.now() + timedelta(days=1)).isoformat()
        booking_id = self._book(scheduled_at=soon).json()["id"]

        response = self.client.get("/api/v1/bookings/upcoming/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["id"] for row in response.json()], [booking_id])

    def test_platform_admin_is_forbidden(self):
        admin = Admin.objects.create_user(email="ops@platform.test", password=PASSWORD, name="Ops")
        self.client.force_authenticate(user=admin)

        response = self.client.get("/api/v1/bookings/")

        self.assertEqual(response.status_code, 403)
