"""Authentication flows: login with fault counter, refresh, logout, profile, landing."""

from __future__ import annotations

import time
from unittest import mock

import jwt
from django.conf import settings
from django.db import DatabaseError
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from authentication.services import GENERIC_LOGIN_ERROR, BlocklistUnavailable, TokenService
from tests.utils import FakeRedis, create_user, seed_core_modules, services


@override_settings(ACL_MAX_LOGIN_FAULTS=3)
class AuthFlowTests(TestCase):
    """End-to-end tests covering auth endpoints and the login fault counter."""

    @classmethod
    def setUpClass(cls):
        """Patch Redis clients to use in-memory fake for all tests."""
        super().setUpClass()
        cls.fake_redis = FakeRedis()
        cls.patchers = [
            mock.patch("core.redis_client.get_redis_client", return_value=cls.fake_redis),
            mock.patch("authentication.services.get_redis_client", return_value=cls.fake_redis),
        ]
        for patcher in cls.patchers:
            patcher.start()

    @classmethod
    def tearDownClass(cls):
        """Stop Redis patches after all tests complete."""
        for patcher in cls.patchers:
            patcher.stop()
        super().tearDownClass()

    @classmethod
    def setUpTestData(cls):
        """Install the core modules and a user in the default group."""
        seed_core_modules()
        cls.group = services().groups.create("Users")
        cls.password = "StrongPass123"
        cls.user = create_user("alice", cls.password, cls.group, name="Alice", surname="Smith")

    def setUp(self):
        """Fresh DRF APIClient per test."""
        self.api_client: APIClient = APIClient()

    def _login(self, password: str | None = None):
        return self.api_client.post(
            "/auth/login/",
            {"username": self.user.username, "password": password or self.password},
            format="json",
        )

    def _authenticate(self) -> dict:
        tokens = self._login().json()["data"]
        self.api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
        return tokens

    def test_login_success_returns_tokens_and_landing(self):
        """Valid credentials return tokens and the group's landing grant."""
        response = self._login()
        body = response.json()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(body["errors"], [])
        self.assertIn("access", body["data"])
        self.assertIn("refresh", body["data"])
        self.assertEqual(body["data"]["landing"], {"module": "users", "action": None})

    def test_login_success_resets_faults_and_stamps_last_login(self):
        self.user.faults = 2
        self.user.save(update_fields=["faults"])

        self.assertEqual(self._login().status_code, 200)

        self.user.refresh_from_db()
        self.assertEqual(self.user.faults, 0)
        self.assertIsNotNone(self.user.last_login)

    def test_wrong_password_increments_faults(self):
        response = self._login("wrongpass")
        body = response.json()

        self.assertEqual(response.status_code, 401)
        self.assertIsNone(body["data"])
        self.user.refresh_from_db()
        self.assertEqual(self.user.faults, 1)

    def test_locked_user_cannot_login_with_right_password(self):
        self.user.faults = 4
        self.user.save(update_fields=["faults"])

        response = self._login()

        self.assertEqual(response.status_code, 401)
        self.user.refresh_from_db()
        self.assertEqual(self.user.faults, 5)

    def test_login_disabled_user_401(self):
        """Disabled user cannot log in and receives 401."""
        self.user.enabled = False
        self.user.save(update_fields=["enabled"])

        response = self._login()
        body = response.json()

        self.assertEqual(response.status_code, 401)
        self.assertIsNone(body["data"])
        self.assertTrue(body["errors"])

    def test_unknown_username_401(self):
        response = self.api_client.post(
            "/auth/login/", {"username": "nobody", "password": "whatever"}, format="json"
        )

        self.assertEqual(response.status_code, 401)

    @override_settings(DEBUG_AUTH_ERRORS=True)
    def test_login_failures_share_one_message(self):
        wrong = self._login("wrongpass").json()["errors"]
        unknown = self.api_client.post(
            "/auth/login/", {"username": "nobody", "password": "whatever"}, format="json"
        ).json()["errors"]

        self.assertEqual(wrong, [GENERIC_LOGIN_ERROR])
        self.assertEqual(unknown, [GENERIC_LOGIN_ERROR])

    def test_refresh_with_valid_refresh_token(self):
        """Refresh endpoint issues new access/refresh tokens."""
        login = self._login().json()
        old_access = login["data"]["access"]
        refresh_token = login["data"]["refresh"]

        response = self.api_client.post("/auth/refresh/", {"refresh": refresh_token}, format="json")
        body = response.json()

        self.assertEqual(response.status_code, 200)
        self.assertIn("access", body["data"])
        self.assertNotEqual(body["data"]["access"], old_access)

    def test_refresh_with_access_token_rejected(self):
        """Providing an access token to refresh endpoint returns 401."""
        tokens = self._login().json()["data"]

        response = self.api_client.post("/auth/refresh/", {"refresh": tokens["access"]}, format="json")

        self.assertEqual(response.status_code, 401)
        self.assertIsNone(response.json()["data"])

    def test_refresh_with_non_object_body_is_400(self):
        response = self.api_client.post("/auth/refresh/", [1, 2], format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIsNone(response.json()["data"])

    def test_expired_refresh_token_returns_401(self):
        """Expired refresh tokens should be rejected with 401 Unauthorized."""
        now = int(time.time())
        payload = {
            "sub": str(self.user.id),
            "jti": "expired-jti",
            "exp": now - 60,
            "iat": now - 120,
            "group": self.user.group_id,
            "type": "refresh",
            "ver": self.user.token_version,
        }
        expired_refresh = jwt.encode(payload, settings.SECRET_KEY, algorithm=TokenService.ALGORITHM)

        response = self.api_client.post("/auth/refresh/", {"refresh": expired_refresh}, format="json")

        self.assertEqual(response.status_code, 401)

    def test_logout_blocklists_token(self):
        """Logout blocklists current access token causing subsequent 401."""
        self._authenticate()

        self.assertEqual(self.api_client.post("/auth/logout/").status_code, 204)

        # Reusing the same token should now fail because it was blocklisted.
        self.assertEqual(self.api_client.get("/auth/me/").status_code, 401)

    def test_logout_all_revokes_access_and_refresh_tokens(self):
        login_a = self._login().json()["data"]
        login_b = self._login().json()["data"]

        client_a = APIClient()
        client_a.credentials(HTTP_AUTHORIZATION=f"Bearer {login_a['access']}")
        self.assertEqual(client_a.post("/auth/logout-all/").status_code, 204)

        client_b = APIClient()
        client_b.credentials(HTTP_AUTHORIZATION=f"Bearer {login_b['access']}")
        self.assertEqual(client_b.get("/auth/me/").status_code, 401)

        refresh = self.api_client.post("/auth/refresh/", {"refresh": login_b["refresh"]}, format="json")
        self.assertEqual(refresh.status_code, 401)

    def test_logout_redis_down_returns_503(self):
        """If Redis is unavailable during logout, the API should fail-closed."""
        self._authenticate()

        with mock.patch.object(
                TokenService,
                "block_token",
                side_effect=BlocklistUnavailable("Redis unavailable while blocklisting"),
        ):
            response = self.api_client.post("/auth/logout/")

        self.assertEqual(response.status_code, 503)
        self.assertIsNone(response.json()["data"])

    def test_me_returns_profile_with_group_name(self):
        self._authenticate()

        response = self.api_client.get("/auth/me/")
        body = response.json()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(body["data"]["username"], "alice")
        self.assertEqual(body["data"]["group"], "Users")
        self.assertEqual(body["data"]["language"], "en")

    def test_patch_me_cannot_change_group(self):
        self._authenticate()

        response = self.api_client.patch("/auth/me/", {"group": 1, "name": "Al"}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertIsNone(response.json()["data"])

    def test_patch_me_updates_name(self):
        self._authenticate()

        response = self.api_client.patch("/auth/me/", {"name": "Alicia"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["name"], "Alicia")

    def test_delete_me_disables_user_and_token(self):
        self._authenticate()

        self.assertEqual(self.api_client.delete("/auth/me/").status_code, 204)

        self.assertEqual(self.api_client.get("/auth/me/").status_code, 401)
        self.user.refresh_from_db()
        self.assertFalse(self.user.enabled)
        self.assertEqual(self._login().status_code, 401)

    def test_landing_endpoint(self):
        self._authenticate()

        response = self.api_client.get("/auth/landing/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"], {"module": "users", "action": None})

    def test_landing_is_null_without_default_grant(self):
        services().grants.revoke(self.group.grants.get(is_default=True).pk)
        self._authenticate()

        response = self.api_client.get("/auth/landing/")

        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()["data"])

    def test_landing_requires_authentication(self):
        self.assertEqual(self.api_client.get("/auth/landing/").status_code, 401)

    def test_refresh_when_database_unavailable_returns_503_with_envelope(self):
        """Database errors during refresh should surface as 503 with JSON envelope."""
        refresh_token = self._login().json()["data"]["refresh"]

        with mock.patch(
                "authentication.views._get_enabled_user",
                side_effect=DatabaseError("DB down"),
        ):
            response = self.api_client.post("/auth/refresh/", {"refresh": refresh_token}, format="json")

        self.assertEqual(response.status_code, 503)
        self.assertIsNone(response.json()["data"])
