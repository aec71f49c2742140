"""
Tests for the /auth routes and the internal maintenance routes.
"""


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# TEST: PHONE OTP FLOW
# =============================================================================

class TestOtpEndpoints:

    def test_send_otp_returns_window_not_code(self, client, gateway):
        response = client.post("/auth/send-otp", json={"phoneNumber": "9876543210"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["expiresIn"] == 300
        assert "timestamp" in body
        assert gateway.last_code() not in response.text

    def test_invalid_phone_is_400_envelope(self, client, gateway):
        response = client.post("/auth/send-otp", json={"phoneNumber": "12345"})

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert "phone" in body["message"].lower()
        assert gateway.sent == []

    def test_delivery_failure_is_502(self, client):
        from naiyaksetu.main import app
        from naiyaksetu.services.identity.sms_gateway import get_sms_gateway
        from conftest import CapturingGateway

        app.dependency_overrides[get_sms_gateway] = lambda: CapturingGateway(fail=True)
        response = client.post("/auth/send-otp", json={"phoneNumber": "9876543210"})

        assert response.status_code == 502
        assert response.json()["message"] == "Failed to send OTP"

    def test_wrong_then_right_code(self, client, gateway):
        client.post("/auth/send-otp", json={"phoneNumber": "+919876543210"})
        code = gateway.last_code()
        wrong = "000000" if code != "000000" else "111111"

        first = client.post("/auth/verify-otp", json={"phoneNumber": "+919876543210", "otp": wrong})
        assert first.status_code == 401
        assert first.json()["message"] == "Invalid OTP. 2 attempts remaining."
        assert first.json()["remainingAttempts"] == 2

        second = client.post("/auth/verify-otp", json={"phoneNumber": "+919876543210", "otp": wrong})
        assert second.json()["message"] == "Invalid OTP. 1 attempt remaining."

        ok = client.post("/auth/verify-otp", json={"phoneNumber": "+919876543210", "otp": code})
        assert ok.status_code == 200
        body = ok.json()
        assert body["user"]["phone"] == "+919876543210"
        assert body["user"]["isVerified"] is True
        assert body["user"]["isNewUser"] is True

        me = client.get("/auth/validate-token", headers=_auth(body["token"]))
        assert me.status_code == 200
        assert me.json()["user"]["phone"] == "+919876543210"

    def test_exhausted_is_429(self, client, gateway):
        client.post("/auth/send-otp", json={"phoneNumber": "+919876543210"})
        code = gateway.last_code()
        wrong = "000000" if code != "000000" else "111111"
        for _ in range(3):
            client.post("/auth/verify-otp", json={"phoneNumber": "+919876543210", "otp": wrong})

        response = client.post("/auth/verify-otp", json={"phoneNumber": "+919876543210", "otp": code})
        assert response.status_code == 429

    def test_deactivated_account_is_401(self, client, gateway, db):
        from naiyaksetu.services.identity import AccountService

        client.post("/auth/send-otp", json={"phoneNumber": "+919876543210"})
        account = AccountService(db).find_by_phone("+919876543210")
        AccountService(db).deactivate(account.id)

        response = client.post(
            "/auth/verify-otp", json={"phoneNumber": "+919876543210", "otp": gateway.last_code()}
        )
        assert response.status_code == 401
        assert response.json()["message"] == "User not found"
        assert "token" not in response.json()

    def test_verify_without_code_is_404(self, client):
        response = client.post("/auth/verify-otp", json={"phoneNumber": "+919876543210", "otp": "123456"})
        assert response.status_code == 404


# =============================================================================
# TEST: EMAIL / PASSWORD
# =============================================================================

class TestPasswordEndpoints:

    def test_register_then_login(self, client):
        registered = client.post("/auth/register", json={
            "name": "Meera",
            "email": "Meera@Example.com",
            "password": "secret123",
            "phone": "9123456780",
        })
        assert registered.status_code == 201
        user = registered.json()["user"]
        assert user["email"] == "meera@example.com"
        assert user["phone"] == "+919123456780"

        login = client.post("/auth/login", json={"email": "meera@example.com", "password": "secret123"})
        assert login.status_code == 200
        assert login.json()["token"]

    def test_duplicate_registration_is_409(self, client, citizen_account):
        response = client.post("/auth/register", json={
            "name": "Someone",
            "email": "citizen@example.com",
            "password": "secret123",
        })
        assert response.status_code == 409

    def test_short_password_is_400(self, client):
        response = client.post("/auth/register", json={
            "name": "Someone", "email": "someone@example.com", "password": "123",
        })
        assert response.status_code == 400

    def test_bad_password_is_401(self, client, citizen_account):
        response = client.post("/auth/login", json={"email": "citizen@example.com", "password": "nope-nope"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid email or password"

    def test_malformed_body_is_400_envelope(self, client):
        response = client.post("/auth/login", json={"email": "not-an-email"})
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Validation failed"
        fields = {e["field"] for e in body["errors"]}
        assert {"email", "password"} <= fields


# =============================================================================
# TEST: SANDBOX DEMO LOGIN
# =============================================================================

class TestDemoLogin:

    def test_demo_admin(self, client):
        response = client.post("/auth/demo-login", json={"email": "naiyaksetu@gmail.com", "password": "123456"})

        assert response.status_code == 200
        body = response.json()
        assert body["token"].startswith("sandbox.")
        assert body["user"]["role"] == "admin"
        assert body["user"]["isSandbox"] is True

        me = client.get("/auth/validate-token", headers=_auth(body["token"]))
        assert me.json()["user"]["id"] == "demo-admin"

    def test_wrong_demo_password(self, client):
        response = client.post("/auth/demo-login", json={"email": "customer@email.com", "password": "654321"})
        assert response.status_code == 401

    def test_disabled_in_production(self, client):
        from naiyaksetu.config import Settings, get_settings
        from naiyaksetu.main import app

        app.dependency_overrides[get_settings] = lambda: Settings(env="production")
        response = client.post("/auth/demo-login", json={"email": "naiyaksetu@gmail.com", "password": "123456"})
        assert response.status_code == 404

    def test_demo_profile_is_read_only(self, client):
        token = client.post(
            "/auth/demo-login", json={"email": "customer@email.com", "password": "123456"}
        ).json()["token"]

        response = client.put("/auth/profile", json={"name": "Changed"}, headers=_auth(token))
        assert response.status_code == 403


# =============================================================================
# TEST: SESSION / PROFILE
# =============================================================================

class TestSession:

    def test_missing_token_is_401_envelope(self, client):
        response = client.get("/auth/validate-token")
        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "message": "Access token required",
            "timestamp": response.json()["timestamp"],
        }

    def test_garbage_token_is_401(self, client):
        response = client.get("/auth/validate-token", headers=_auth("garbage"))
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid token format"

    def test_get_profile(self, client, citizen_token):
        response = client.get("/auth/profile", headers=_auth(citizen_token))
        assert response.status_code == 200
        user = response.json()["user"]
        assert user["email"] == "citizen@example.com"
        assert user["phone"] == "+919876543210"
        assert "memberSince" in user

    def test_get_profile_for_demo_account(self, client):
        token = client.post(
            "/auth/demo-login", json={"email": "customer@email.com", "password": "123456"}
        ).json()["token"]

        response = client.get("/auth/profile", headers=_auth(token))
        assert response.status_code == 200
        assert response.json()["user"]["id"] == "demo-customer"
        assert response.json()["user"]["isSandbox"] is True

    def test_get_profile_requires_token(self, client):
        assert client.get("/auth/profile").status_code == 401

    def test_profile_update(self, client, citizen_token):
        response = client.put("/auth/profile", json={"name": "Asha K"}, headers=_auth(citizen_token))
        assert response.status_code == 200
        assert response.json()["user"]["name"] == "Asha K"

    def test_profile_email_clash_is_409(self, client, citizen_token, admin_account):
        response = client.put(
            "/auth/profile", json={"email": "officer@naiyaksetu.gov.in"}, headers=_auth(citizen_token)
        )
        assert response.status_code == 409

    def test_profile_requires_a_field(self, client, citizen_token):
        response = client.put("/auth/profile", json={}, headers=_auth(citizen_token))
        assert response.status_code == 400


# =============================================================================
# TEST: INTERNAL / MISC
# =============================================================================

class TestInternalRoutes:

    def test_otp_sweep_requires_key(self, client):
        assert client.post("/internal/otp-sweep").status_code == 403
        assert client.post("/internal/otp-sweep", headers={"X-Internal-Key": "wrong"}).status_code == 403

    def test_otp_sweep_removes_used_codes(self, client, gateway):
        from naiyaksetu.config import settings

        client.post("/auth/send-otp", json={"phoneNumber": "+919876543210"})
        client.post("/auth/verify-otp", json={"phoneNumber": "+919876543210", "otp": gateway.last_code()})

        response = client.post("/internal/otp-sweep", headers={"X-Internal-Key": settings.internal_api_key})
        assert response.status_code == 200
        assert response.json()["deleted"] == 1

    def test_health_and_unknown_route(self, client):
        assert client.get("/health").json()["status"] == "healthy"

        missing = client.get("/no-such-route")
        assert missing.status_code == 404
        assert missing.json()["success"] is False
