from decimal import Decimal

from django.core.cache import cache
from django.db import connection
from django.test import TestCase
from django.test.utils import CaptureQueriesContext
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.test import APIClient

from billing import services
from billing.models import Invoice, Payment
from bookings.models import Booking, Service
from common.exceptions import Conflict
from core.models import Admin, AuditLog, Studio, User
from customers.models import Customer

PASSWORD = "correct-horse-42"


def make_studio(slug):
    studio = Studio.objects.create(name=slug.title(), slug=slug)
    owner = User.objects.create_user(
        email=f"owner@{slug}.test",
        password=PASSWORD,
        name="Owner",
        studio=studio,
        role=User.Role.OWNER,
    )
    customer = Customer.objects.create(studio=studio, name="Client", phone=f"555-{slug}")
    return studio, owner, customer


def make_invoice(studio, customer, number, total="100.00", status=Invoice.Status.SENT):
    return Invoice.objects.create(
        studio=studio,
        customer=customer,
        invoice_number=number,
        subtotal=Decimal(total),
        total=Decimal(total),
        status=status,
    )


class StatusDerivationTests(TestCase):
    def test_status_after_payment(self):
        total = Decimal("100.00")
        self.assertEqual(services.derive_status_after_payment(total, Decimal("100.00"), Invoice.Status.SENT), Invoice.Status.PAID)
        self.assertEqual(
            services.derive_status_after_payment(total, Decimal("0.01"), Invoice.Status.DRAFT),
            Invoice.Status.PARTIALLY_PAID,
        )
        self.assertEqual(services.derive_status_after_payment(total, Decimal("0"), Invoice.Status.DRAFT), Invoice.Status.DRAFT)

    def test_status_after_removal(self):
        total = Decimal("100.00")
        self.assertEqual(services.derive_status_after_removal(total, Decimal("0")), Invoice.Status.SENT)
        self.assertEqual(services.derive_status_after_removal(total, Decimal("40.00")), Invoice.Status.PARTIALLY_PAID)
        self.assertEqual(services.derive_status_after_removal(total, Decimal("100.00")), Invoice.Status.PAID)


class ReconciliationServiceTests(TestCase):
    def setUp(self):
        self.studio, self.owner, self.customer = make_studio("alpha")
        self.other_studio, _, self.other_customer = make_studio("beta")
        self.invoice = make_invoice(self.studio, self.customer, "INV-001")

    def test_partial_then_full_then_overpay(self):
        services.create_payment(self.studio.id, self.invoice.id, Decimal("60.00"), Payment.Method.CASH)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, Invoice.Status.PARTIALLY_PAID)

        services.create_payment(self.studio.id, self.invoice.id, "40.00", Payment.Method.CARD)
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, Invoice.Status.PAID)

        with self.assertRaises(Conflict) as ctx:
            services.create_payment(self.studio.id, self.invoice.id, "0.01", Payment.Method.CASH)
        self.assertIn("0.01", str(ctx.exception.detail))
        self.assertIn("0.00", str(ctx.exception.detail))
        self.assertEqual(self.invoice.payments.count(), 2)

    def test_overpayment_message_states_amount_and_remaining(self):
        with self.assertRaises(Conflict) as ctx:
            services.create_payment(self.studio.id, self.invoice.id, "150", Payment.Method.CASH)

        self.assertEqual(
            str(ctx.exception.detail),
            "Payment amount (150.00) exceeds remaining balance (100.00).",
        )
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, Invoice.Status.SENT)
        self.assertFalse(Payment.objects.exists())

    def test_precondition_order(self):
        with self.assertRaises(NotFound):
            services.create_payment(self.other_studio.id, self.invoice.id, "0", Payment.Method.CASH)

        self.invoice.status = Invoice.Status.CANCELLED
        self.invoice.save(update_fields=["status"])
        with self.assertRaises(Conflict):
            services.create_payment(self.studio.id, self.invoice.id, "0", Payment.Method.CASH)

        open_invoice = make_invoice(self.studio, self.customer, "INV-002")
        with self.assertRaises(ValidationError):
            services.create_payment(self.studio.id, open_invoice.id, "-5.00", Payment.Method.CASH)
        with self.assertRaises(ValidationError):
            services.create_payment(self.studio.id, open_invoice.id, "0.00", Payment.Method.CASH)
        self.assertFalse(Payment.objects.exists())

    def test_sum_never_exceeds_total_and_status_tracks_sum(self):
        amounts = ["12.50", "30.00", "70.00", "25.00", "0.50", "40.00", "32.00", "1.00"]
        for amount in amounts:
            try:
                services.create_payment(self.studio.id, self.invoice.id, amount, Payment.Method.UPI)
            except Conflict:
                pass

            self.invoice.refresh_from_db()
            paid = services.paid_total(self.invoice)
            self.assertLessEqual(paid, self.invoice.total)
            if paid >= self.invoice.total:
                self.assertEqual(self.invoice.status, Invoice.Status.PAID)
            else:
                self.assertEqual(self.invoice.status, Invoice.Status.PARTIALLY_PAID)

        self.assertEqual(services.paid_total(self.invoice), Decimal("100.00"))

    def test_removal_recomputes_status(self):
        first = services.create_payment(self.studio.id, self.invoice.id, "60.00", Payment.Method.CASH)
        second = services.create_payment(self.studio.id, self.invoice.id, "40.00", Payment.Method.CASH)

        invoice = services.remove_payment(self.studio.id, second.id)
        self.assertEqual(invoice.status, Invoice.Status.PARTIALLY_PAID)

        invoice = services.remove_payment(self.studio.id, first.id)
        self.assertEqual(invoice.status, Invoice.Status.SENT)

    def test_removing_last_payment_resets_draft_invoice_to_sent(self):
        draft = make_invoice(self.studio, self.customer, "INV-DRAFT", status=Invoice.Status.DRAFT)
        payment = services.create_payment(self.studio.id, draft.id, "50.00", Payment.Method.CASH)

        services.remove_payment(self.studio.id, payment.id)

        draft.refresh_from_db()
        self.assertEqual(draft.status, Invoice.Status.SENT)

    def test_removing_and_re_adding_identical_payment_restores_sum_and_status(self):
        services.create_payment(self.studio.id, self.invoice.id, "30.00", Payment.Method.CASH)
        second = services.create_payment(self.studio.id, self.invoice.id, "45.50", Payment.Method.CARD)
        self.invoice.refresh_from_db()
        status_before = self.invoice.status
        sum_before = services.paid_total(self.invoice)

        services.remove_payment(self.studio.id, second.id)
        services.create_payment(self.studio.id, self.invoice.id, "45.50", Payment.Method.CARD)

        self.invoice.refresh_from_db()
        self.assertEqual(services.paid_total(self.invoice), sum_before)
        self.assertEqual(sum_before, Decimal("75.50"))
        self.assertEqual(self.invoice.status, status_before)
        self.assertEqual(self.invoice.payments.count(), 2)

    def test_remove_payment_of_other_studio_is_not_found(self):
        payment = services.create_payment(self.studio.id, self.invoice.id, "10.00", Payment.Method.CASH)

        with self.assertRaises(NotFound):
            services.remove_payment(self.other_studio.id, payment.id)
        self.assertTrue(Payment.objects.filter(id=payment.id).exists())


class PaymentApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.studio, self.owner, self.customer = make_studio("gamma")
        self.other_studio, self.other_owner, self.other_customer = make_studio("delta")
        self.photographer = User.objects.create_user(
            email="shooter@gamma.test",
            password=PASSWORD,
            name="Shooter",
            studio=self.studio,
            role=User.Role.PHOTOGRAPHER,
        )
        self.invoice = make_invoice(self.studio, self.customer, "INV-100")
        self.other_invoice = make_invoice(self.other_studio, self.other_customer, "INV-100")

    def _pay(self, amount, invoice=None, method="CASH"):
        return self.client.post(
            "/api/v1/payments/",
            {"invoice_id": str((invoice or self.invoice).id), "amount": amount, "payment_method": method},
            format="json",
        )

    def test_owner_records_partial_and_full_payment(self):
        self.client.force_authenticate(user=self.owner)

        first = self._pay("60.00")
        self.assertEqual(first.status_code, 201)
        self.assertEqual(first.json()["amount"], "60.00")
        self.assertEqual(first.json()["invoice"]["status"], "PARTIALLY_PAID")

        second = self._pay("40.00", method="BANK_TRANSFER")
        self.assertEqual(second.status_code, 201)
        self.assertEqual(second.json()["invoice"]["status"], "PAID")

        overpay = self._pay("0.01")
        self.assertEqual(overpay.status_code, 409)
        self.assertEqual(overpay.json()["code"], "conflict")
        self.assertEqual(overpay.json()["message"], "Payment amount (0.01) exceeds remaining balance (0.00).")

        self.assertTrue(AuditLog.objects.filter(action="payment.create", entity_id=first.json()["id"]).exists())

    def test_cancelled_invoice_rejects_payment(self):
        self.invoice.status = Invoice.Status.CANCELLED
        self.invoice.save(update_fields=["status"])
        self.client.force_authenticate(user=self.owner)

        response = self._pay("10.00")

        self.assertEqual(response.status_code, 409)
        self.assertFalse(Payment.objects.exists())

    def test_non_positive_amount_is_validation_error(self):
        self.client.force_authenticate(user=self.owner)

        response = self._pay("0.00")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
        self.assertIn("amount", response.json()["errors"])

    def test_payment_on_other_studio_invoice_is_not_found(self):
        self.client.force_authenticate(user=self.owner)

        response = self._pay("10.00", invoice=self.other_invoice)

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["message"], "Invoice not found.")
        self.assertFalse(Payment.objects.exists())

    def test_unknown_payment_method_is_rejected(self):
        self.client.force_authenticate(user=self.owner)

        response = self._pay("10.00", method="CHEQUE")

        self.assertEqual(response.status_code, 400)
        self.assertIn("payment_method", response.json()["errors"])

    def test_photographer_cannot_create_or_delete_payments(self):
        payment = services.create_payment(self.studio.id, self.invoice.id, "10.00", Payment.Method.CASH)
        self.client.force_authenticate(user=self.photographer)

        with self.assertLogs("security.authorization", level="WARNING") as cm:
            create = self._pay("10.00")
        self.assertEqual(create.status_code, 403)
        self.assertTrue(any("payments.manage" in message for message in cm.output))

        delete = self.client.delete(f"/api/v1/payments/{payment.id}/")
        self.assertEqual(delete.status_code, 403)
        self.assertTrue(Payment.objects.filter(id=payment.id).exists())

        listing = self.client.get("/api/v1/payments/")
        self.assertEqual(listing.status_code, 200)
        self.assertEqual(len(listing.json()), 1)

    def test_platform_admin_has_no_payment_access(self):
        admin = Admin.objects.create_user(email="ops@platform.test", password=PASSWORD, name="Ops")
        self.client.force_authenticate(user=admin)

        response = self.client.get("/api/v1/payments/")

        self.assertEqual(response.status_code, 403)

    def test_delete_payment_resets_invoice(self):
        payment = services.create_payment(self.studio.id, self.invoice.id, "100.00", Payment.Method.CARD)
        self.client.force_authenticate(user=self.owner)

        response = self.client.delete(f"/api/v1/payments/{payment.id}/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["invoice"]["status"], "SENT")
        self.invoice.refresh_from_db()
        self.assertEqual(self.invoice.status, Invoice.Status.SENT)
        self.assertTrue(AuditLog.objects.filter(action="payment.delete", entity_id=payment.id).exists())

    def test_delete_payment_of_other_studio_is_not_found(self):
        payment = services.create_payment(self.other_studio.id, self.other_invoice.id, "10.00", Payment.Method.CASH)
        self.client.force_authenticate(user=self.owner)

        response = self.client.delete(f"/api/v1/payments/{payment.id}/")

        self.assertEqual(response.status_code, 404)
        self.assertTrue(Payment.objects.filter(id=payment.id).exists())

    def test_list_is_scoped_and_filterable(self):
        services.create_payment(self.studio.id, self.invoice.id, "10.00", Payment.Method.CASH)
        services.create_payment(self.studio.id, self.invoice.id, "20.00", Payment.Method.UPI)
        services.create_payment(self.other_studio.id, self.other_invoice.id, "30.00", Payment.Method.CASH)
        self.client.force_authenticate(user=self.owner)

        everything = self.client.get("/api/v1/payments/")
        self.assertEqual(len(everything.json()), 2)

        cash_only = self.client.get("/api/v1/payments/", {"payment_method": "CASH"})
        self.assertEqual([row["amount"] for row in cash_only.json()], ["10.00"])

        limited = self.client.get("/api/v1/payments/", {"limit": 1})
        self.assertEqual(len(limited.json()), 1)

    def test_invoice_payments_and_retrieve(self):
        payment = services.create_payment(self.studio.id, self.invoice.id, "25.00", Payment.Method.CASH)
        other_payment = services.create_payment(self.other_studio.id, self.other_invoice.id, "5.00", Payment.Method.CASH)
        self.client.force_authenticate(user=self.photographer)

        response = self.client.get(f"/api/v1/payments/invoice/{self.invoice.id}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row["id"] for row in response.json()], [str(payment.id)])

        foreign = self.client.get(f"/api/v1/payments/invoice/{self.other_invoice.id}/")
        self.assertEqual(foreign.status_code, 404)

        detail = self.client.get(f"/api/v1/payments/{payment.id}/")
        self.assertEqual(detail.status_code, 200)
        self.assertEqual(detail.json()["invoice"]["invoice_number"], "INV-100")

        foreign_detail = self.client.get(f"/api/v1/payments/{other_payment.id}/")
        self.assertEqual(foreign_detail.status_code, 404)

    def test_stats(self):
        services.create_payment(self.studio.id, self.invoice.id, "10.00", Payment.Method.CASH)
        services.create_payment(self.studio.id, self.invoice.id, "15.50", Payment.Method.CARD)
        self.client.force_authenticate(user=self.owner)

        response = self.client.get("/api/v1/payments/stats/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["total_payments"], 2)
        self.assertEqual(payload["total_amount"], "25.50")
        self.assertEqual(len(payload["recent_payments"]), 2)


class InvoiceApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.studio, self.owner, self.customer = make_studio("epsilon")
        self.other_studio, _, self.other_customer = make_studio("zeta")
        self.invoice = make_invoice(self.studio, self.customer, "INV-7")
        self.other_invoice = make_invoice(self.other_studio, self.other_customer, "INV-8")

    def test_invoice_detail_reports_balance(self):
        services.create_payment(self.studio.id, self.invoice.id, "35.00", Payment.Method.CASH)
        self.client.force_authenticate(user=self.owner)

        response = self.client.get(f"/api/v1/invoices/{self.invoice.id}/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["status"], "PARTIALLY_PAID")
        self.assertEqual(payload["amount_paid"], "35.00")
        self.assertEqual(payload["balance_due"], "65.00")
        self.assertEqual(len(payload["payments"]), 1)

    def test_invoice_list_is_scoped(self):
        self.client.force_authenticate(user=self.owner)

        response = self.client.get("/api/v1/invoices/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["meta"]["total"], 1)
        self.assertEqual(payload["data"][0]["id"], str(self.invoice.id))

        foreign = self.client.get(f"/api/v1/invoices/{self.other_invoice.id}/")
        self.assertEqual(foreign.status_code, 404)

    def test_invoice_list_query_count_does_not_grow_with_invoices(self):
        services.create_payment(self.studio.id, self.invoice.id, "10.00", Payment.Method.CASH)
        self.client.force_authenticate(user=self.owner)

        with CaptureQueriesContext(connection) as single:
            self.client.get("/api/v1/invoices/")

        for number in ("INV-9", "INV-10", "INV-11"):
            extra = make_invoice(self.studio, self.customer, number)
            services.create_payment(self.studio.id, extra.id, "5.00", Payment.Method.CASH)
            services.create_payment(self.studio.id, extra.id, "5.00", Payment.Method.CARD)

        with CaptureQueriesContext(connection) as several:
            response = self.client.get("/api/v1/invoices/")

        self.assertEqual(response.json()["meta"]["total"], 4)
        self.assertEqual(len(several.captured_queries), len(single.captured_queries))
        amounts = {row["invoice_number"]: row["amount_paid"] for row in response.json()["data"]}
        self.assertEqual(amounts["INV-7"], "10.00")
        self.assertEqual(amounts["INV-10"], "10.00")


class InvoiceLifecycleServiceTests(TestCase):
    def setUp(self):
        self.studio, self.owner, self.customer = make_studio("eta")
        self.other_studio, _, self.other_customer = make_studio("theta")
        self.year = timezone.now().year
        self.items = [
            {"description": "Portrait session", "quantity": 2, "rate": Decimal("150.00"), "amount": Decimal("300.00")},
            {"description": "Prints", "quantity": 1, "rate": Decimal("50.00")},
        ]

    def _create(self, **overrides):
        params = {"customer_id": self.customer.id, "line_items": self.items}
        params.update(overrides)
        return services.create_invoice(self.studio.id, **params)

    def test_create_computes_totals_and_numbers_sequentially(self):
        first = self._create(tax=Decimal("35.00"), discount=Decimal("10.00"))
        second = self._create()

        self.assertEqual(first.invoice_number, f"INV-{self.year}-00001")
        self.assertEqual(second.invoice_number, f"INV-{self.year}-00002")
        self.assertEqual(first.status, Invoice.Status.DRAFT)
        self.assertEqual(first.subtotal, Decimal("350.00"))
        self.assertEqual(first.total, Decimal("375.00"))
        self.assertEqual(first.line_items[1]["amount"], "50.00")

    def test_numbering_continues_after_a_deleted_invoice(self):
        first = self._create()
        self._create()
        services.delete_invoice(self.studio.id, first.id)

        third = self._create()

        self.assertEqual(third.invoice_number, f"INV-{self.year}-00003")

    def test_numbering_is_per_studio(self):
        self._create()
        other = services.create_invoice(self.other_studio.id, customer_id=self.other_customer.id, line_items=self.items)

        self.assertEqual(other.invoice_number, f"INV-{self.year}-00001")

    def test_customer_and_booking_must_belong_to_studio(self):
        with self.assertRaises(NotFound):
            self._create(customer_id=self.other_customer.id)

        service = Service.objects.create(studio=self.other_studio, name="Event", price=Decimal("10.00"))
        foreign_booking = Booking.objects.create(
            studio=self.other_studio, customer=self.other_customer, service=service, scheduled_at=timezone.now()
        )
        with self.assertRaises(NotFound):
            self._create(booking_id=foreign_booking.id)
        self.assertFalse(Invoice.objects.filter(studio=self.studio).exists())

    def test_discount_cannot_make_total_negative(self):
        with self.assertRaises(ValidationError):
            self._create(discount=Decimal("500.00"))

    def test_update_recomputes_totals(self):
        invoice = self._create()

        invoice = services.update_invoice(self.studio.id, invoice.id, {"tax": Decimal("20.00")})
        self.assertEqual(invoice.total, Decimal("370.00"))

        invoice = services.update_invoice(
            self.studio.id,
            invoice.id,
            {"line_items": [{"description": "Mini session", "quantity": 1, "rate": Decimal("80.00")}]},
        )
        self.assertEqual(invoice.subtotal, Decimal("80.00"))
        self.assertEqual(invoice.total, Decimal("100.00"))

    def test_paid_invoice_cannot_be_updated_or_deleted(self):
        invoice = self._create()
        services.send_invoice(self.studio.id, invoice.id)
        services.create_payment(self.studio.id, invoice.id, "350.00", Payment.Method.CASH)

        with self.assertRaises(Conflict):
            services.update_invoice(self.studio.id, invoice.id, {"notes": "late"})
        with self.assertRaises(Conflict):
            services.delete_invoice(self.studio.id, invoice.id)

    def test_cancelled_invoice_rejects_payments(self):
        invoice = self._create()
        services.update_invoice(self.studio.id, invoice.id, {"status": Invoice.Status.CANCELLED})

        with self.assertRaises(Conflict):
            services.create_payment(self.studio.id, invoice.id, "10.00", Payment.Method.CASH)
        with self.assertRaises(Conflict):
            services.update_invoice(self.studio.id, invoice.id, {"status": Invoice.Status.DRAFT})

    def test_status_cannot_be_set_to_a_reconciled_value(self):
        invoice = self._create()

        with self.assertRaises(ValidationError):
            services.update_invoice(self.studio.id, invoice.id, {"status": Invoice.Status.PAID})

    def test_send_only_from_draft(self):
        invoice = self._create()

        invoice = services.send_invoice(self.studio.id, invoice.id)
        self.assertEqual(invoice.status, Invoice.Status.SENT)

        with self.assertRaises(Conflict):
            services.send_invoice(self.studio.id, invoice.id)

    def test_only_draft_invoices_can_be_deleted(self):
        invoice = self._create()
        services.send_invoice(self.studio.id, invoice.id)

        with self.assertRaises(Conflict):
            services.delete_invoice(self.studio.id, invoice.id)
        self.assertTrue(Invoice.objects.filter(id=invoice.id).exists())

    def test_stats(self):
        paid = self._create()
        services.send_invoice(self.studio.id, paid.id)
        services.create_payment(self.studio.id, paid.id, "350.00", Payment.Method.CASH)
        pending = self._create()
        services.send_invoice(self.studio.id, pending.id)
        self._create()

        stats = services.invoice_stats(self.studio.id)

        self.assertEqual(stats["total_invoices"], 3)
        self.assertEqual(stats["draft_invoices"], 1)
        self.assertEqual(stats["sent_invoices"], 1)
        self.assertEqual(stats["paid_invoices"], 1)
        self.assertEqual(stats["total_revenue"], Decimal("350.00"))
        self.assertEqual(stats["pending_revenue"], Decimal("350.00"))


class InvoiceWriteApiTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.studio, self.owner, self.customer = make_studio("iota")
        self.other_studio, _, self.other_customer = make_studio("kappa")
        self.assistant = User.objects.create_user(
            email="assistant@iota.test",
            password=PASSWORD,
            name="Assistant",
            studio=self.studio,
            role=User.Role.ASSISTANT,
        )
        self.client.force_authenticate(user=self.owner)

    def _create(self, **overrides):
        payload = {
            "customer_id": str(self.customer.id),
            "line_items": [{"description": "Headshots", "quantity": 3, "rate": "40.00", "amount": "120.00"}],
            "tax": "12.00",
            "due_date": "2026-12-01",
        }
        payload.update(overrides)
        return self.client.post("/api/v1/invoices/", payload, format="json")

    def test_owner_creates_invoice(self):
        response = self._create()

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["status"], "DRAFT")
        self.assertTrue(payload["invoice_number"].startswith("INV-"))
        self.assertEqual(payload["subtotal"], "120.00")
        self.assertEqual(payload["total"], "132.00")
        self.assertEqual(payload["balance_due"], "132.00")
        self.assertEqual(payload["line_items"][0]["description"], "Headshots")
        self.assertTrue(AuditLog.objects.filter(action="invoice.create", entity_id=payload["id"]).exists())

    def test_create_validates_line_items(self):
        empty = self._create(line_items=[])
        self.assertEqual(empty.status_code, 400)
        self.assertIn("line_items", empty.json()["errors"])

        negative = self._create(line_items=[{"description": "Bad", "quantity": 1, "rate": "-1.00"}])
        self.assertEqual(negative.status_code, 400)

    def test_create_for_foreign_customer_is_not_found(self):
        response = self._create(customer_id=str(self.other_customer.id))

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")

    def test_assistant_can_read_but_not_write(self):
        invoice_id = self._create().json()["id"]
        self.client.force_authenticate(user=self.assistant)

        self.assertEqual(self.client.get(f"/api/v1/invoices/{invoice_id}/").status_code, 200)
        with self.assertLogs("security.authorization", level="WARNING"):
            response = self._create()
        self.assertEqual(response.status_code, 403)
        with self.assertLogs("security.authorization", level="WARNING"):
            response = self.client.post(f"/api/v1/invoices/{invoice_id}/send/")
        self.assertEqual(response.status_code, 403)

    def test_send_update_and_cancel(self):
        invoice_id = self._create().json()["id"]

        sent = self.client.post(f"/api/v1/invoices/{invoice_id}/send/")
        self.assertEqual(sent.status_code, 200)
        self.assertEqual(sent.json()["status"], "SENT")

        again = self.client.post(f"/api/v1/invoices/{invoice_id}/send/")
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.json()["code"], "conflict")

        updated = self.client.patch(f"/api/v1/invoices/{invoice_id}/", {"discount": "2.00"}, format="json")
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["total"], "130.00")

        paid = self.client.patch(f"/api/v1/invoices/{invoice_id}/", {"status": "PAID"}, format="json")
        self.assertEqual(paid.status_code, 400)

        cancelled = self.client.patch(f"/api/v1/invoices/{invoice_id}/", {"status": "CANCELLED"}, format="json")
        self.assertEqual(cancelled.status_code, 200)
        payment = self.client.post(
            "/api/v1/payments/",
            {"invoice_id": invoice_id, "amount": "10.00", "payment_method": "CASH"},
            format="json",
        )
        self.assertEqual(payment.status_code, 409)

    def test_delete_only_draft(self):
        draft_id = self._create().json()["id"]
        sent_id = self._create().json()["id"]
        self.client.post(f"/api/v1/invoices/{sent_id}/send/")

        blocked = self.client.delete(f"/api/v1/invoices/{sent_id}/")
        self.assertEqual(blocked.status_code, 409)

        deleted = self.client.delete(f"/api/v1/invoices/{draft_id}/")
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(deleted.json()["message"], "Invoice deleted successfully.")
        self.assertFalse(Invoice.objects.filter(id=draft_id).exists())
        self.assertTrue(AuditLog.objects.filter(action="invoice.delete", entity_id=draft_id).exists())

    def test_stats_and_status_filter(self):
        self._create()
        sent_id = self._create().json()["id"]
        self.client.post(f"/api/v1/invoices/{sent_id}/send/")

        stats = self.client.get("/api/v1/invoices/stats/")
        self.assertEqual(stats.status_code, 200)
        self.assertEqual(stats.json()["draft_invoices"], 1)
        self.assertEqual(stats.json()["pending_revenue"], "132.00")

        filtered = self.client.get("/api/v1/invoices/", {"status": "SENT"})
        self.assertEqual(filtered.json()["meta"]["total"], 1)
        self.assertEqual(filtered.json()["data"][0]["id"], sent_id)

        unknown = self.client.get("/api/v1/invoices/", {"status": "LOST"})
        self.assertEqual(unknown.status_code, 400)
