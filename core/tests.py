from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import RequestFactory, SimpleTestCase, TestCase, override_settings
from django.urls import URLResolver, get_resolver, resolve
from rest_framework.test import APIClient

from common.permissions import AccessDecision, evaluate_access, get_user_role
from common.throttling import CacheRateLimitStore, get_client_address


class RegistrationTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.user_model = get_user_model()

    def test_register_creates_plain_user_even_when_role_requested(self):
        response = self.client.post(
            "/api/v1/register/",
            {"email": "New.Person@Example.com", "password": "strongpass1", "name": "New Person", "role": "ADMIN"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["message"], "User registered successfully")
        self.assertEqual(payload["user"]["email"], "new.person@example.com")
        self.assertEqual(payload["user"]["role"], "USER")
        self.assertNotIn("password", payload["user"])

        user = self.user_model.objects.get(email="new.person@example.com")
        self.assertTrue(user.check_password("strongpass1"))

    def test_admin_may_register_elevated_role(self):
        admin = self.user_model.objects.create_user(username="reg-admin", password="pass1234", role="ADMIN")
        self.client.force_authenticate(user=admin)

        response = self.client.post(
            "/api/v1/register/",
            {"email": "worker@example.com", "password": "strongpass1", "name": "Worker One", "role": "WORKER1"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["user"]["role"], "WORKER1")

    def test_duplicate_email_is_rejected_case_insensitively(self):
        self.user_model.objects.create_user(username="taken@example.com", email="taken@example.com", password="pass1234")

        response = self.client.post(
            "/api/v1/register/",
            {"email": "TAKEN@example.com", "password": "strongpass1", "name": "Someone"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "EMAIL_EXISTS")
        self.assertEqual(response.json()["error"], "Email already in use")

    def test_short_password_fails_validation(self):
        response = self.client.post(
            "/api/v1/register/",
            {"email": "short@example.com", "password": "abc", "name": "Short"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "VALIDATION_ERROR")
        self.assertIn("password", payload["errors"])
        self.assertTrue(payload["error"].startswith("password:"))


class TokenLoginTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.user = get_user_model().objects.create_user(
            username="login@example.com",
            email="login@example.com",
            password="pass1234",
            name="Login User",
            role="WORKER2",
        )

    def test_login_by_email_returns_token_pair(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "LOGIN@example.com", "password": "pass1234"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertIn("access", response.json())
        self.assertIn("refresh", response.json())

    def test_wrong_password_is_unauthorized(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "login@example.com", "password": "wrong-password"},
            format="json",
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "UNAUTHORIZED")

    def test_bearer_token_authenticates_requests(self):
        token = self.client.post(
            "/api/v1/token/",
            {"username": "login@example.com", "password": "pass1234"},
            format="json",
        ).json()["access"]

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        response = self.client.get("/api/v1/orders/")

        self.assertEqual(response.status_code, 200)


class UserManagementTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(
            username="admin-core", email="admin@example.com", password="pass1234", role="ADMIN"
        )
        self.worker = self.user_model.objects.create_user(
            username="worker-core", email="worker@example.com", password="pass1234", role="WORKER1"
        )

    def test_admin_lists_users_with_pagination_envelope(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/users/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["count", "next", "previous", "results"])
        self.assertEqual(payload["count"], 2)

    @override_settings(API_MAX_PAGE_SIZE=1)
    def test_page_size_is_capped(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/users/", {"page_size": 50})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()["results"]), 1)
        self.assertEqual(response.json()["count"], 2)
        self.assertIsNotNone(response.json()["next"])

    def test_worker_cannot_list_users_and_denial_is_logged(self):
        self.client.force_authenticate(user=self.worker)

        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.get("/api/v1/users/")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "FORBIDDEN")
        self.assertTrue(any("permission_denied" in message for message in cm.output))

    def test_anonymous_request_is_unauthorized(self):
        response = self.client.get("/api/v1/users/")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "UNAUTHORIZED")

    def test_admin_changes_role(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.patch(f"/api/v1/users/{self.worker.id}/", {"role": "WORKER2"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.worker.refresh_from_db()
        self.assertEqual(self.worker.role, "WORKER2")

    def test_unknown_user_uses_not_found_code(self):
        self.client.force_authenticate(user=self.admin)

        response = self.client.get("/api/v1/users/00000000-0000-0000-0000-000000000000/")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "USER_NOT_FOUND")


class RoleEvaluationTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()

    def test_superuser_is_treated_as_admin(self):
        superuser = self.user_model.objects.create_superuser(username="root", password="pass1234", role="USER")

        self.assertEqual(get_user_role(superuser), "ADMIN")
        self.assertIs(evaluate_access(superuser, "user.manage"), AccessDecision.ALLOWED)

    def test_unknown_capability_is_forbidden(self):
        worker = self.user_model.objects.create_user(username="w1", password="pass1234", role="WORKER1")

        self.assertIs(evaluate_access(worker, "does.not.exist"), AccessDecision.FORBIDDEN)
        self.assertIs(evaluate_access(worker, "inventory.manage"), AccessDecision.ALLOWED)
        self.assertIs(evaluate_access(worker, "order.manage"), AccessDecision.FORBIDDEN)


class HealthEndpointTests(TestCase):
    def setUp(self):
        cache.clear()
        self.client = APIClient()

    def test_healthz_echoes_request_id(self):
        response = self.client.get("/api/v1/healthz/", HTTP_X_REQUEST_ID="req-123")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "request_id": "req-123"})
        self.assertEqual(response["X-Request-ID"], "req-123")

    def test_readyz_reports_database(self):
        response = self.client.get("/api/v1/readyz/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ready")


class CacheRateLimitStoreTests(TestCase):
    def setUp(self):
        cache.clear()
        self.now = 1_000.0
        self.store = CacheRateLimitStore(clock=lambda: self.now)

    def test_counts_within_window_and_reports_reset(self):
        self.assertEqual(self.store.get("k"), (0, None))

        first = self.store.increment("k", 60)
        second = self.store.increment("k", 60)

        self.assertEqual(first, (1, 1_060.0))
        self.assertEqual(second, (2, 1_060.0))
        self.assertEqual(self.store.get("k"), (2, 1_060.0))

    def test_reset_starts_a_fresh_window(self):
        self.store.increment("k", 60)
        self.store.reset("k")
        self.now = 1_030.0

        self.assertEqual(self.store.increment("k", 60), (1, 1_090.0))

    def test_client_address_prefers_first_forwarded_hop(self):
        request = RequestFactory().get("/", HTTP_X_FORWARDED_FOR="10.0.0.9, 172.16.0.1", REMOTE_ADDR="127.0.0.1")

        self.assertEqual(get_client_address(request), "10.0.0.9")


class ApiRoutingTests(SimpleTestCase):
    def test_only_core_router_serves_api_root(self):
        root_modules = [
            getattr(entry.urlconf_name, "__name__", entry.urlconf_name)
            for entry in get_resolver().url_patterns
            if isinstance(entry, URLResolver)
            and any(getattr(pattern, "name", None) == "api-root" for pattern in entry.url_patterns)
        ]

        self.assertEqual(root_modules, ["core.urls"])
        self.assertEqual(resolve("/api/v1/").url_name, "api-root")
        self.assertEqual(resolve("/api/v1/items/").url_name, "item-list")
        self.assertEqual(resolve("/api/v1/orders/").url_name, "order-list")
