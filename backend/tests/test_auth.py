"""
Authentication tests.

Verifies:
- Login issues a bearer token usable on protected routes
- Repeated failures lock the account (423 with retry_after_seconds)
- Logout, deactivation and password changes revoke sessions
"""

from datetime import timedelta

import pytest

from retail_api.extensions import db
from retail_api.models import SessionToken, User
from retail_api.services import session_service
from retail_api.time_utils import utcnow

from conftest import PASSWORD


def login(client, email, password=PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


class TestLogin:
    def test_login_returns_token_and_user(self, client, clerk):
        resp = login(client, clerk.email)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["data"]["token"]
        assert body["data"]["user"]["email"] == clerk.email
        assert body["data"]["user"]["store_id"] == clerk.store_id
        assert "password_hash" not in body["data"]["user"]

    def test_token_authenticates_me(self, client, clerk):
        token = login(client, clerk.email).get_json()["data"]["token"]

        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert resp.status_code == 200
        assert resp.get_json()["data"]["id"] == clerk.id

    def test_email_is_case_insensitive(self, client, clerk):
        assert login(client, clerk.email.upper()).status_code == 200

    @pytest.mark.parametrize("email,password", [
        ("clerk@retail.test", "Wrong123!"),
        ("nobody@retail.test", PASSWORD),
    ])
    def test_bad_credentials_are_401(self, client, clerk, email, password):
        resp = login(client, email, password)

        assert resp.status_code == 401
        assert resp.get_json() == {"success": False, "message": "Invalid credentials"}

    def test_missing_fields_are_400(self, client):
        resp = client.post("/api/auth/login", json={})

        assert resp.status_code == 400
        fields = {error["field"] for error in resp.get_json()["errors"]}
        assert fields == {"email", "password"}

    def test_inactive_user_cannot_login(self, client, make_user, store_a):
        user = make_user(store=store_a, is_active=False)

        resp = login(client, user.email)

        assert resp.status_code == 401
        assert resp.get_json()["message"] == "Account is inactive"


class TestLockout:
    def test_fifth_failure_locks_account(self, app, client, clerk):
        max_attempts = app.config["MAX_LOGIN_ATTEMPTS"]
        for _ in range(max_attempts - 1):
            assert login(client, clerk.email, "Wrong123!").status_code == 401

        resp = login(client, clerk.email, "Wrong123!")

        assert resp.status_code == 423
        body = resp.get_json()
        assert body["success"] is False
        assert body["retry_after_seconds"] == app.config["LOCK_TIME_MINUTES"] * 60

    def test_locked_account_rejects_correct_password(self, client, clerk):
        clerk.locked_until = utcnow() + timedelta(minutes=10)
        db.session.commit()

        resp = login(client, clerk.email)

        assert resp.status_code == 423
        assert 0 < resp.get_json()["retry_after_seconds"] <= 601

    def test_expired_lock_allows_login_and_resets_counter(self, client, clerk):
        clerk.locked_until = utcnow() - timedelta(minutes=1)
        clerk.failed_login_attempts = 3
        db.session.commit()

        resp = login(client, clerk.email)

        assert resp.status_code == 200
        db.session.expire_all()
        user = db.session.get(User, clerk.id)
        assert user.failed_login_attempts == 0
        assert user.locked_until is None
        assert user.last_login_at is not None

    def test_admin_can_reset_attempts(self, client, clerk, admin_headers):
        clerk.locked_until = utcnow() + timedelta(minutes=10)
        db.session.commit()

        resp = client.post(f"/api/users/{clerk.id}/reset-attempts", headers=admin_headers)

        assert resp.status_code == 200
        assert login(client, clerk.email).status_code == 200


class TestSessions:
    def test_logout_revokes_token(self, client, clerk, clerk_headers):
        assert client.post("/api/auth/logout", headers=clerk_headers).status_code == 200

        assert client.get("/api/auth/me", headers=clerk_headers).status_code == 401

    def test_expired_session_is_rejected(self, client, clerk, clerk_headers):
        db.session.query(SessionToken).update({"expires_at": utcnow() - timedelta(seconds=1)})
        db.session.commit()

        assert client.get("/api/auth/me", headers=clerk_headers).status_code == 401

    def test_idle_session_is_revoked(self, app, client, clerk, clerk_headers):
        idle = timedelta(hours=app.config["SESSION_IDLE_TIMEOUT_HOURS"], minutes=1)
        db.session.query(SessionToken).update({"last_used_at": utcnow() - idle})
        db.session.commit()

        assert client.get("/api/auth/me", headers=clerk_headers).status_code == 401
        db.session.expire_all()
        session = db.session.query(SessionToken).one()
        assert session.is_revoked is True
        assert session.revoked_reason == "Idle timeout"

    def test_deactivated_user_loses_sessions(self, client, clerk, clerk_headers, admin_headers):
        resp = client.delete(f"/api/users/{clerk.id}", headers=admin_headers)

        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=clerk_headers).status_code == 401

    def test_cleanup_removes_old_revoked_sessions(self, clerk):
        session, token = session_service.create_session(clerk.id)
        session_service.revoke_session(token)
        session.created_at = utcnow() - timedelta(days=40)
        db.session.commit()
        session_service.create_session(clerk.id)

        assert session_service.cleanup_expired_sessions(days=30) == 1
        assert db.session.query(SessionToken).count() == 1

    @pytest.mark.parametrize("header", [
        None,
        "Bearer",
        "Basic abc",
        "Bearer not-a-real-token",
    ])
    def test_bad_authorization_header_is_401(self, client, header):
        headers = {"Authorization": header} if header else {}

        resp = client.get("/api/auth/me", headers=headers)

        assert resp.status_code == 401
        assert resp.get_json()["success"] is False


class TestPasswords:
    def test_change_password_revokes_other_sessions(self, client, clerk, auth_headers):
        current = auth_headers(clerk)
        other = auth_headers(clerk)

        resp = client.put("/api/auth/password", headers=current, json={
            "current_password": PASSWORD,
            "new_password": "NewPassword456!",
        })

        assert resp.status_code == 200
        assert client.get("/api/auth/me", headers=current).status_code == 200
        assert client.get("/api/auth/me", headers=other).status_code == 401
        assert login(client, clerk.email, "NewPassword456!").status_code == 200

    def test_wrong_current_password_is_401(self, client, clerk_headers):
        resp = client.put("/api/auth/password", headers=clerk_headers, json={
            "current_password": "Nope123!",
            "new_password": "NewPassword456!",
        })

        assert resp.status_code == 401

    @pytest.mark.parametrize("weak", ["short1!", "alllowercase1!", "ALLUPPERCASE1!", "NoDigits!!", "NoSpecial123"])
    def test_weak_new_password_is_rejected(self, client, clerk_headers, weak):
        resp = client.put("/api/auth/password", headers=clerk_headers, json={
            "current_password": PASSWORD,
            "new_password": weak,
        })

        assert resp.status_code == 400
        assert resp.get_json()["errors"][0]["field"] == "new_password"

    def test_register_is_admin_only(self, client, clerk_headers, store_a):
        resp = client.post("/api/auth/register", headers=clerk_headers, json={
            "name": "Nuevo",
            "email": "nuevo@retail.test",
            "password": PASSWORD,
            "role": "user",
            "store_id": store_a.id,
        })

        assert resp.status_code == 403
