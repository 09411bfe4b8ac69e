import os
import subprocess
import sys
from io import StringIO

from django.conf import settings
from django.core.cache import cache
from django.core.management import call_command
from django.http import Http404
from django.test import SimpleTestCase, TestCase
from rest_framework.exceptions import ValidationError
from rest_framework.test import APIClient

from billing.models import Invoice, Payment
from common.exceptions import Conflict, custom_exception_handler
from core.auth import refresh_token_cache_key
from core.models import Admin, Studio, User

PASSWORD = "correct-horse-42"


class AuthFlowTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.studio = Studio.objects.create(name="North Light", slug="north-light", email="hello@northlight.test")
        self.owner = User.objects.create_user(
            email="owner@northlight.test",
            password=PASSWORD,
            name="Owner",
            studio=self.studio,
            role=User.Role.OWNER,
        )

    def _login(self, email="owner@northlight.test", password=PASSWORD):
        return self.client.post("/api/v1/auth/login/", {"email": email, "password": password}, format="json")

    def test_login_returns_tokens_and_stores_refresh_token(self):
        response = self._login(email="Owner@NorthLight.test")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertIn("accessToken", payload)
        self.assertEqual(payload["user"]["id"], str(self.owner.id))
        self.assertEqual(payload["user"]["role"], "OWNER")
        self.assertEqual(payload["user"]["studio"]["slug"], "north-light")
        self.assertEqual(cache.get(refresh_token_cache_key(self.owner.id)), payload["refreshToken"])

    def test_wrong_password_is_unauthorized_and_stores_nothing(self):
        response = self._login(password="wrong-password-1")

        self.assertEqual(response.status_code, 401)
        payload = response.json()
        self.assertEqual(payload["code"], "authentication_failed")
        self.assertEqual(payload["message"], "Invalid credentials.")
        self.assertEqual(payload["status"], 401)
        self.assertIsNone(cache.get(refresh_token_cache_key(self.owner.id)))

    def test_unknown_email_gets_same_error(self):
        response = self._login(email="nobody@northlight.test")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["message"], "Invalid credentials.")

    def test_inactive_user_cannot_login(self):
        self.owner.is_active = False
        self.owner.save(update_fields=["is_active"])

        response = self._login()

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["message"], "Invalid credentials.")

    def test_suspended_studio_cannot_login(self):
        self.studio.status = Studio.Status.SUSPENDED
        self.studio.save(update_fields=["status"])

        response = self._login()

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["message"], "Studio is not active.")

    def test_refresh_rotates_tokens(self):
        first = self._login().json()

        response = self.client.post("/api/v1/auth/refresh/", {"refreshToken": first["refreshToken"]}, format="json")

        self.assertEqual(response.status_code, 200)
        rotated = response.json()
        self.assertNotEqual(rotated["refreshToken"], first["refreshToken"])
        self.assertEqual(cache.get(refresh_token_cache_key(self.owner.id)), rotated["refreshToken"])

        replay = self.client.post("/api/v1/auth/refresh/", {"refreshToken": first["refreshToken"]}, format="json")
        self.assertEqual(replay.status_code, 401)
        self.assertEqual(replay.json()["message"], "Invalid refresh token.")

    def test_superseded_refresh_token_is_rejected(self):
        first = self._login().json()
        second = self._login().json()

        stale = self.client.post("/api/v1/auth/refresh/", {"refreshToken": first["refreshToken"]}, format="json")
        fresh = self.client.post("/api/v1/auth/refresh/", {"refreshToken": second["refreshToken"]}, format="json")

        self.assertEqual(stale.status_code, 401)
        self.assertEqual(fresh.status_code, 200)

    def test_garbage_refresh_token_is_rejected(self):
        response = self.client.post("/api/v1/auth/refresh/", {"refreshToken": "not-a-token"}, format="json")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "authentication_failed")

    def test_access_token_cannot_be_used_as_refresh_token(self):
        tokens = self._login().json()

        response = self.client.post("/api/v1/auth/refresh/", {"refreshToken": tokens["accessToken"]}, format="json")

        self.assertEqual(response.status_code, 401)

    def test_logout_forgets_refresh_token(self):
        tokens = self._login().json()
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['accessToken']}")

        response = self.client.post("/api/v1/auth/logout/")

        self.assertEqual(response.status_code, 204)
        self.assertIsNone(cache.get(refresh_token_cache_key(self.owner.id)))
        self.client.credentials()
        refresh = self.client.post("/api/v1/auth/refresh/", {"refreshToken": tokens["refreshToken"]}, format="json")
        self.assertEqual(refresh.status_code, 401)

    def test_me_returns_current_user(self):
        tokens = self._login().json()
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['accessToken']}")

        response = self.client.get("/api/v1/auth/me/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["type"], "user")
        self.assertEqual(response.json()["user"]["email"], "owner@northlight.test")

    def test_access_token_rejected_once_studio_is_suspended(self):
        tokens = self._login().json()
        self.studio.status = Studio.Status.SUSPENDED
        self.studio.save(update_fields=["status"])
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['accessToken']}")

        response = self.client.get("/api/v1/auth/me/")

        self.assertEqual(response.status_code, 401)

    def test_me_requires_authentication(self):
        response = self.client.get("/api/v1/auth/me/")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "not_authenticated")


class RegistrationTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()

    def test_register_creates_studio_and_owner(self):
        response = self.client.post(
            "/api/v1/auth/register/",
            {
                "email": "Founder@Bright.test",
                "name": "Founder",
                "password": "Sup3r-secret-pass",
                "studio_name": "Bright Frames",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        user = User.objects.get(email="founder@bright.test")
        self.assertEqual(user.role, User.Role.OWNER)
        self.assertEqual(user.studio.slug, "bright-frames")
        self.assertEqual(user.studio.status, Studio.Status.ACTIVE)
        self.assertEqual(payload["user"]["id"], str(user.id))
        self.assertEqual(cache.get(refresh_token_cache_key(user.id)), payload["refreshToken"])

    def test_register_duplicate_email_conflicts(self):
        studio = Studio.objects.create(name="Existing", slug="existing")
        User.objects.create_user(email="taken@bright.test", password=PASSWORD, name="Taken", studio=studio)

        response = self.client.post(
            "/api/v1/auth/register/",
            {
                "email": "taken@bright.test",
                "name": "Someone",
                "password": "Sup3r-secret-pass",
                "studio_name": "Another Studio",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "conflict")
        self.assertFalse(Studio.objects.filter(slug="another-studio").exists())

    def test_register_validates_payload(self):
        response = self.client.post("/api/v1/auth/register/", {"email": "not-an-email"}, format="json")

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "validation_error")
        self.assertIn("email", payload["errors"])
        self.assertIn("password", payload["errors"])


class AdminAuthTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.admin = Admin.objects.create_user(email="ops@platform.test", password=PASSWORD, name="Ops")
        self.studio = Studio.objects.create(name="Studio", slug="studio")
        self.user = User.objects.create_user(
            email="member@studio.test",
            password=PASSWORD,
            name="Member",
            studio=self.studio,
            role=User.Role.OWNER,
        )

    def test_admin_login_issues_admin_tokens(self):
        response = self.client.post(
            "/api/v1/auth/admin/login/",
            {"email": "ops@platform.test", "password": PASSWORD},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["admin"]["id"], str(self.admin.id))
        self.assertEqual(cache.get(refresh_token_cache_key(self.admin.id)), payload["refreshToken"])

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {payload['accessToken']}")
        me = self.client.get("/api/v1/auth/me/")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["type"], "admin")

    def test_admin_login_wrong_password(self):
        response = self.client.post(
            "/api/v1/auth/admin/login/",
            {"email": "ops@platform.test", "password": "wrong-password-1"},
            format="json",
        )

        self.assertEqual(response.status_code, 401)
        self.assertIsNone(cache.get(refresh_token_cache_key(self.admin.id)))

    def test_studio_user_cannot_use_admin_login(self):
        response = self.client.post(
            "/api/v1/auth/admin/login/",
            {"email": "member@studio.test", "password": PASSWORD},
            format="json",
        )

        self.assertEqual(response.status_code, 401)

    def test_admin_register_requires_admin_principal(self):
        payload = {"email": "new-ops@platform.test", "name": "New Ops", "password": PASSWORD}

        anonymous = self.client.post("/api/v1/auth/admin/register/", payload, format="json")
        self.assertEqual(anonymous.status_code, 401)

        self.client.force_authenticate(user=self.user)
        as_user = self.client.post("/api/v1/auth/admin/register/", payload, format="json")
        self.assertEqual(as_user.status_code, 403)

        self.client.force_authenticate(user=self.admin)
        as_admin = self.client.post("/api/v1/auth/admin/register/", payload, format="json")
        self.assertEqual(as_admin.status_code, 201)
        self.assertTrue(Admin.objects.filter(email="new-ops@platform.test").exists())

        duplicate = self.client.post("/api/v1/auth/admin/register/", payload, format="json")
        self.assertEqual(duplicate.status_code, 409)

    def test_admin_has_no_studio_access(self):
        self.client.force_authenticate(user=self.admin)
        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.get("/api/v1/customers/")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "permission_denied")
        self.assertTrue(any("permission_denied" in message for message in cm.output))


class HealthCheckTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()

    def test_healthz_echoes_request_id(self):
        response = self.client.get("/api/v1/healthz/", HTTP_X_REQUEST_ID="req-123")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["request_id"], "req-123")
        self.assertEqual(response["X-Request-ID"], "req-123")

    def test_readyz_checks_database(self):
        response = self.client.get("/api/v1/readyz/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ready")


class SeedDemoDataTests(TestCase):
    def test_seed_is_idempotent_and_reconciles_invoices(self):
        call_command("seed_demo_data", stdout=StringIO())
        call_command("seed_demo_data", stdout=StringIO())

        studio = Studio.objects.get(slug="demo-studio")
        self.assertEqual(User.objects.filter(studio=studio).count(), 3)
        self.assertTrue(Admin.objects.filter(email="admin@example.com").exists())
        statuses = dict(Invoice.objects.filter(studio=studio).values_list("invoice_number", "status"))
        self.assertEqual(statuses, {"INV-0001": "PAID", "INV-0002": "PARTIALLY_PAID"})
        self.assertEqual(Payment.objects.filter(invoice__studio=studio).count(), 2)


class AuthenticationImportTests(SimpleTestCase):
    def test_authentication_class_loads_when_views_import_first(self):
        script = (
            "import django; django.setup(); "
            "from rest_framework.views import APIView; "
            "print(type(APIView().get_authenticators()[0]).__name__)"
        )
        env = {**os.environ, "DJANGO_SETTINGS_MODULE": "config.settings"}

        result = subprocess.run(
            [sys.executable, "-c", script],
            cwd=settings.BASE_DIR,
            env=env,
            capture_output=True,
            text=True,
            timeout=60,
        )

        self.assertEqual(result.returncode, 0, result.stderr)
        self.assertEqual(result.stdout.strip(), "PrincipalJWTAuthentication")

    def test_token_claim_names(self):
        from core import tokens

        self.assertEqual(tokens.PRINCIPAL_TYPE_CLAIM, "type")
        self.assertEqual(tokens.STUDIO_ID_CLAIM, "studio_id")
        self.assertEqual(tokens.EMAIL_CLAIM, "email")


class ErrorEnvelopeTests(SimpleTestCase):
    def test_conflict_keeps_its_message_and_has_no_field_errors(self):
        response = custom_exception_handler(Conflict("Only draft invoices can be sent."), {})

        self.assertEqual(response.status_code, 409)
        self.assertEqual(
            response.data,
            {"code": "conflict", "message": "Only draft invoices can be sent.", "errors": None, "status": 409},
        )

    def test_validation_error_exposes_field_errors(self):
        response = custom_exception_handler(ValidationError({"amount": ["Required."]}), {})

        self.assertEqual(response.data["code"], "validation_error")
        self.assertEqual(response.data["message"], "Validation failed.")
        self.assertEqual(response.data["errors"], {"amount": ["Required."]})

    def test_django_404_maps_to_not_found(self):
        response = custom_exception_handler(Http404("gone"), {})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["code"], "not_found")

    def test_unhandled_error_is_logged_and_hidden(self):
        with self.assertLogs("common.exceptions", level="ERROR") as cm:
            response = custom_exception_handler(RuntimeError("database on fire"), {})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data["code"], "internal_server_error")
        self.assertEqual(response.data["message"], "An unexpected error occurred.")
        self.assertNotIn("database on fire", str(response.data))
        self.assertTrue(any("Unhandled API exception in unknown" in line for line in cm.output))
