"""Tests for the auth blueprint.

Covers:
- Login with valid/invalid credentials
- Session cookie and bearer token both authenticate
- Expired / tampered bearer tokens rejected
- Deactivated users rejected
- JSON 401 for unauthenticated API calls
"""

import json
from datetime import datetime, timedelta, timezone

import jwt

from app.extensions import db
from app.models.user import User


def login(client, email, password):
    return client.post("/auth/login", json={"email": email, "password": password})


class TestLogin:
    """Tests for POST /auth/login."""

    def test_login_success(self, client, seed_data):
        resp = login(client, "owner@crm.local", "owner123")
        assert resp.status_code == 200
        data = json.loads(resp.data)
        assert data["user"]["email"] == "owner@crm.local"
        assert data["token_type"] == "Bearer"
        assert data["access_token"]

    def test_login_email_is_case_insensitive(self, client, seed_data):
        resp = login(client, "  Owner@CRM.local ", "owner123")
        assert resp.status_code == 200

    def test_login_wrong_password(self, client, seed_data):
        resp = login(client, "owner@crm.local", "wrong")
        assert resp.status_code == 401
        assert json.loads(resp.data)["error"] == "Invalid email or password."

    def test_login_missing_fields(self, client, seed_data):
        resp = client.post("/auth/login", json={"email": "owner@crm.local"})
        assert resp.status_code == 401
        assert json.loads(resp.data)["error"] == "Email and password are required."

    def test_deactivated_user(self, client, seed_data, app):
        with app.app_context():
            user = db.session.get(User, seed_data["other_id"])
            user.is_active = False
            db.session.commit()

        resp = login(client, "other@crm.local", "other123")
        assert resp.status_code == 401
        assert json.loads(resp.data)["error"] == "This account has been deactivated."

        # An already-issued bearer token stops working too
        resp = client.get("/auth/me", headers=seed_data["other_headers"])
        assert resp.status_code == 401


class TestSessionAndBearer:

    def test_session_cookie_authenticates(self, client, seed_data):
        login(client, "owner@crm.local", "owner123")
        resp = client.get("/auth/me")
        assert resp.status_code == 200
        data = json.loads(resp.data)
        assert data["user"]["id"] == seed_data["owner_id"]
        assert "csrf_token" in data

    def test_bearer_token_authenticates(self, client, seed_data):
        resp = client.get("/auth/me", headers=seed_data["owner_headers"])
        assert resp.status_code == 200
        assert json.loads(resp.data)["user"]["role"] == "admin"

    def test_logout_ends_session(self, client, seed_data):
        login(client, "owner@crm.local", "owner123")
        assert client.post("/auth/logout").status_code == 200
        assert client.get("/auth/me").status_code == 401

    def test_unauthenticated_is_json_401(self, client, seed_data):
        resp = client.get("/auth/me")
        assert resp.status_code == 401
        assert json.loads(resp.data) == {"error": "Authentication required"}

    def test_expired_token_rejected(self, client, seed_data, app):
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {
                "sub": seed_data["owner_id"],
                "iat": int(past.timestamp()),
                "exp": int((past + timedelta(hours=1)).timestamp()),
            },
            app.config["SECRET_KEY"],
            algorithm="HS256",
        )
        resp = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_token_signed_with_other_key_rejected(self, client, seed_data):
        token = jwt.encode(
            {"sub": seed_data["owner_id"]}, "some-other-secret-key-32-bytes!!",
            algorithm="HS256",
        )
        resp = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
