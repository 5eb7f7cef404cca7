import asyncio
import unittest

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from api.main import app
from auth.dependencies import enforce_action_rate_limit, get_services, require_roles
from tests.support import make_config, make_services

EMAIL = "member@swayamvar.in"
PASSWORD = "Secret@123"
# 73 ASCII bytes, and 84 UTF-8 bytes in 44 characters.
LONG_PASSWORDS = ["Aa1@" + "x" * 69, "Aa1@" + "\u00e9" * 40]


class ApiTestCase(unittest.TestCase):
    config_overrides: dict = {}

    def setUp(self):
        self.services, self.stores, self.email, self.clock = make_services(
            config=make_config(**self.config_overrides)
        )
        app.dependency_overrides[get_services] = lambda: self.services
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()

    def register(self, email: str = EMAIL, password: str = PASSWORD):
        return self.client.post(
            "/api/v1/auth/register", json={"email": email, "password": password, "name": "Asha"}
        )

    def bearer(self, access_token: str) -> dict:
        return {"Authorization": f"Bearer {access_token}"}


class TestRegisterAndLogin(ApiTestCase):
    def test_register(self):
        response = self.register()

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["data"]["user"]["email"], EMAIL)
        self.assertNotIn("hashed_password", body["data"]["user"])
        self.assertIn("access_token", body["data"])
        self.assertIn("refresh_token", response.cookies)

    def test_register_rejects_weak_password(self):
        response = self.register(password="alllowercase1")

        self.assertEqual(response.status_code, 422)

    def test_register_rejects_password_over_bcrypt_limit(self):
        for password in LONG_PASSWORDS:
            with self.subTest(length=len(password.encode("utf-8"))):
                response = self.register(password=password)

                self.assertEqual(response.status_code, 422)
        self.assertEqual(self.register().status_code, 201)

    def test_register_duplicate(self):
        self.register()

        response = self.register()

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["detail"], "Email already registered")

    def test_login_and_me(self):
        self.register()

        response = self.client.post("/api/v1/auth/login", json={"email": EMAIL, "password": PASSWORD})

        self.assertEqual(response.status_code, 200)
        access_token = response.json()["data"]["access_token"]
        me = self.client.get("/api/v1/auth/me", headers=self.bearer(access_token))
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["data"]["user"]["email"], EMAIL)

    def test_me_from_access_cookie(self):
        self.register()

        response = self.client.post("/api/v1/auth/login", json={"email": EMAIL, "password": PASSWORD})

        self.assertEqual(response.cookies["access_token"], response.json()["data"]["access_token"])
        me = self.client.get("/api/v1/auth/me")
        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.json()["data"]["user"]["email"], EMAIL)

    def test_bad_credentials(self):
        self.register()

        response = self.client.post("/api/v1/auth/login", json={"email": EMAIL, "password": "Wrong@123"})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Invalid credentials")

    def test_me_requires_token(self):
        self.assertEqual(self.client.get("/api/v1/auth/me").status_code, 401)
        response = self.client.get("/api/v1/auth/me", headers=self.bearer("not-a-token"))
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Invalid or expired token")

    def test_session_check(self):
        access_token = self.register().json()["data"]["access_token"]

        response = self.client.get("/api/v1/session", headers=self.bearer(access_token))

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["authenticated"])


class TestLoginThrottle(ApiTestCase):
    config_overrides = {"LOGIN_RATE_LIMIT_PER_MINUTE": 2}

    def test_login_throttled_per_ip(self):
        self.register()
        for _ in range(2):
            self.client.post("/api/v1/auth/login", json={"email": EMAIL, "password": "Wrong@123"})

        response = self.client.post("/api/v1/auth/login", json={"email": EMAIL, "password": PASSWORD})

        self.assertEqual(response.status_code, 429)


class TestRefreshAndLogout(ApiTestCase):
    def test_refresh_from_cookie(self):
        self.register()

        response = self.client.post("/api/v1/auth/refresh-token")

        self.assertEqual(response.status_code, 200)
        self.assertIn("access_token", response.json()["data"])

    def test_reused_refresh_token_is_rejected(self):
        old_refresh = self.register().cookies["refresh_token"]
        self.client.post("/api/v1/auth/refresh-token", json={"refresh_token": old_refresh})

        response = self.client.post("/api/v1/auth/refresh-token", json={"refresh_token": old_refresh})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Invalid or expired token")

    def test_logout_ends_session(self):
        old_refresh = self.register().cookies["refresh_token"]

        response = self.client.post("/api/v1/auth/logout", json={"refresh_token": old_refresh})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get("/api/v1/auth/me").status_code, 401)
        refreshed = self.client.post("/api/v1/auth/refresh-token", json={"refresh_token": old_refresh})
        self.assertEqual(refreshed.status_code, 401)


class TestCredentialRoutes(ApiTestCase):
    def test_forgot_password_response_does_not_reveal_accounts(self):
        self.register()

        known = self.client.post("/api/v1/auth/forgot-password", json={"email": EMAIL})
        unknown = self.client.post("/api/v1/auth/forgot-password", json={"email": "nobody@swayamvar.in"})

        self.assertEqual(known.status_code, 200)
        self.assertEqual(known.json(), unknown.json())

    def test_reset_password_flow(self):
        self.register()
        self.client.post("/api/v1/auth/forgot-password", json={"email": EMAIL})
        raw_token = self.email.last_reset_token()

        response = self.client.put(
            "/api/v1/auth/reset-password", json={"token": raw_token, "password": "Changed@456"}
        )

        self.assertEqual(response.status_code, 200)
        self.assertIn("access_token", response.json()["data"])
        login = self.client.post("/api/v1/auth/login", json={"email": EMAIL, "password": "Changed@456"})
        self.assertEqual(login.status_code, 200)

        reused = self.client.put(
            "/api/v1/auth/reset-password", json={"token": raw_token, "password": "Again@789"}
        )
        self.assertEqual(reused.status_code, 400)
        self.assertEqual(reused.json()["detail"], "Invalid or expired token")

    def test_reset_password_rejects_long_password_without_spending_token(self):
        self.register()
        self.client.post("/api/v1/auth/forgot-password", json={"email": EMAIL})
        raw_token = self.email.last_reset_token()

        for password in LONG_PASSWORDS:
            response = self.client.put(
                "/api/v1/auth/reset-password", json={"token": raw_token, "password": password}
            )
            self.assertEqual(response.status_code, 422)

        response = self.client.put(
            "/api/v1/auth/reset-password", json={"token": raw_token, "password": "Changed@456"}
        )
        self.assertEqual(response.status_code, 200)

    def test_verify_email(self):
        self.register()
        raw_token = self.email.last_verification_token()

        response = self.client.get(f"/api/v1/auth/verify-email/{raw_token}")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get(f"/api/v1/auth/verify-email/{raw_token}").status_code, 400)

    def test_change_password(self):
        access_token = self.register().json()["data"]["access_token"]

        response = self.client.put(
            "/api/v1/auth/change-password",
            json={"current_password": PASSWORD, "new_password": "Changed@456"},
            headers=self.bearer(access_token),
        )

        self.assertEqual(response.status_code, 200)
        # The cookie session made the change and survives it.
        self.assertEqual(self.client.post("/api/v1/auth/refresh-token").status_code, 200)

    def test_change_password_rejects_long_password(self):
        access_token = self.register().json()["data"]["access_token"]

        for password in LONG_PASSWORDS:
            response = self.client.put(
                "/api/v1/auth/change-password",
                json={"current_password": PASSWORD, "new_password": password},
                headers=self.bearer(access_token),
            )
            self.assertEqual(response.status_code, 422)

        login = self.client.post("/api/v1/auth/login", json={"email": EMAIL, "password": PASSWORD})
        self.assertEqual(login.status_code, 200)


class TestGoogleRoutes(ApiTestCase):
    config_overrides = {
        "GOOGLE_CLIENT_ID": "client-id",
        "GOOGLE_CLIENT_SECRET": "client-secret",
        "GOOGLE_REDIRECT_URI": "http://api.swayamvar.in/api/v1/auth/google/callback",
    }

    def test_login_url_sets_state_cookie(self):
        response = self.client.get("/api/v1/auth/google/login")

        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertIn("state=" + data["state"], data["auth_url"])
        self.assertEqual(response.cookies["oauth_state"], data["state"])

    def test_callback_with_wrong_state_redirects_to_login(self):
        self.client.get("/api/v1/auth/google/login")

        response = self.client.get(
            "/api/v1/auth/google/callback",
            params={"code": "abc", "state": "forged"},
            follow_redirects=False,
        )

        self.assertEqual(response.status_code, 307)
        self.assertTrue(response.headers["location"].startswith("http://frontend.local/login?auth=error"))


def build_member_app() -> FastAPI:
    member_app = FastAPI()

    @member_app.post("/interests")
    async def send_interest(user: dict = Depends(enforce_action_rate_limit("send-interest"))):
        return {"sent_by": user["id"]}

    @member_app.get("/admin")
    async def admin_only(user: dict = Depends(require_roles("admin"))):
        return {"ok": True}

    return member_app


class TestMemberDependencies(unittest.TestCase):
    def setUp(self):
        self.services, self.stores, _, self.clock = make_services()
        self.app = build_member_app()
        self.app.dependency_overrides[get_services] = lambda: self.services
        self.client = TestClient(self.app)

    async def _token_for(self, role: str) -> str:
        account = await self.stores.users.create_account({"email": f"{role}@swayamvar.in", "role": role})
        return self.services.tokens.issue_access_token(account["id"], {"role": role})

    def _issue(self, role: str) -> str:
        return asyncio.run(self._token_for(role))

    def test_send_interest_budget(self):
        headers = {"Authorization": f"Bearer {self._issue('user')}"}
        for _ in range(10):
            self.assertEqual(self.client.post("/interests", headers=headers).status_code, 200)

        response = self.client.post("/interests", headers=headers)

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.headers["retry-after"], str(24 * 60 * 60))

    def test_require_roles(self):
        user_headers = {"Authorization": f"Bearer {self._issue('user')}"}
        admin_headers = {"Authorization": f"Bearer {self._issue('admin')}"}

        self.assertEqual(self.client.get("/admin", headers=user_headers).status_code, 403)
        self.assertEqual(self.client.get("/admin", headers=admin_headers).status_code, 200)


if __name__ == "__main__":
    unittest.main()
