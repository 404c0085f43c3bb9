from django.contrib.auth import get_user_model
from django.test import RequestFactory, TestCase, override_settings
from rest_framework.authtoken.models import Token
from rest_framework.test import APIClient

from api.v1.permissions import has_kiosk_key
from staff.models import Employee, EmployeeType


@override_settings(KIOSK_API_KEY="kiosk-secret")
class KioskPermissionTests(TestCase):
    def setUp(self):
        self.factory = RequestFactory()
        self.user = get_user_model().objects.create_user(
            username="front-desk",
            password="pass1234",
        )
        employee_type = EmployeeType.objects.create(name="Cleaner")
        Employee.objects.create(
            name="Chamari Dias",
            nic="931234567V",
            employee_type=employee_type,
            qr_code_image="employee_qr/test.png",
        )

    def test_has_kiosk_key_trims_header_and_handles_empty_setting(self):
        request = self.factory.get("/", HTTP_X_BMS_KIOSK_KEY=" kiosk-secret ")
        self.assertTrue(has_kiosk_key(request))

        with override_settings(KIOSK_API_KEY="  "):
            self.assertFalse(has_kiosk_key(request))

        wrong = self.factory.get("/", HTTP_X_BMS_KIOSK_KEY="nope")
        self.assertFalse(has_kiosk_key(wrong))

    def test_qr_scan_requires_auth_or_kiosk_key(self):
        client = APIClient()

        response = client.post("/api/v1/attendance/qr-scan/", {"nic": "931234567V"}, format="json")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "not_authenticated")

    def test_qr_scan_allows_kiosk_key_without_auth(self):
        client = APIClient()

        response = client.post(
            "/api/v1/attendance/qr-scan/",
            {"nic": "931234567V"},
            format="json",
            HTTP_X_BMS_KIOSK_KEY="kiosk-secret",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["type"], "check_in")

    def test_kiosk_key_does_not_open_other_endpoints(self):
        client = APIClient()

        response = client.get("/api/v1/employees/", HTTP_X_BMS_KIOSK_KEY="kiosk-secret")

        self.assertEqual(response.status_code, 401)

    def test_qr_scan_allows_authenticated_user_without_key(self):
        client = APIClient()
        client.force_authenticate(self.user)

        response = client.post("/api/v1/attendance/qr-scan/", {"nic": "931234567V"}, format="json")

        self.assertEqual(response.status_code, 201)


class TokenAuthenticationTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(
            username="manager",
            password="pass1234",
        )

    def test_anonymous_requests_are_rejected_with_error_payload(self):
        response = APIClient().get("/api/v1/products/")

        self.assertEqual(response.status_code, 401)
        payload = response.json()
        self.assertEqual(payload["code"], "not_authenticated")
        self.assertEqual(payload["details"], {})
        self.assertTrue(payload["error"])

    def test_token_endpoint_issues_token_usable_on_api(self):
        client = APIClient()

        response = client.post(
            "/api/auth/token/",
            {"username": "manager", "password": "pass1234"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        token = response.json()["token"]
        self.assertEqual(token, Token.objects.get(user=self.user).key)

        client.credentials(HTTP_AUTHORIZATION=f"Token {token}")
        self.assertEqual(client.get("/api/v1/products/").status_code, 200)

    def test_token_endpoint_rejects_bad_credentials(self):
        response = APIClient().post(
            "/api/auth/token/",
            {"username": "manager", "password": "wrong"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")
