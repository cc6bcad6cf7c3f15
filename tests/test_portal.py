"""Tests for the client portal.

Covers:
- Token issuance and revocation (staff side)
- Token validation: missing, unknown, expired, revoked
- Bundle scoped to the token's customer
- Session re-validation on /client/dashboard
- All-or-nothing bundle on read failures
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from app.extensions import db
from app.models.billing import Invoice
from app.models.portal_token import ClientPortalToken
from app.services import portal_service


def make_token(app, seed_data, **changes):
    with app.app_context():
        row = portal_service.issue_token(seed_data["customer_id"], seed_data["owner_id"])
        for key, value in changes.items():
            setattr(row, key, value)
        db.session.commit()
        return row.token


class TestValidateToken:

    def test_missing_token(self, ctx):
        assert portal_service.validate_token(None) == (None, "No access token provided.")

    def test_unknown_token(self, ctx, seed_data):
        assert portal_service.validate_token("nope") == (None, "Invalid access link.")

    def test_valid_token(self, app, seed_data):
        token = make_token(app, seed_data)
        with app.app_context():
            assert portal_service.validate_token(token) == (seed_data["customer_id"], None)

    def test_expired_token(self, app, seed_data):
        token = make_token(
            app, seed_data,
            expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        )
        with app.app_context():
            assert portal_service.validate_token(token) == (
                None, "This access link has expired."
            )

    def test_revoked_token(self, app, seed_data):
        token = make_token(app, seed_data, revoked_at=datetime.now(timezone.utc))
        with app.app_context():
            assert portal_service.validate_token(token) == (
                None, "This access link has been revoked."
            )

    def test_issue_rejects_foreign_customer(self, ctx, seed_data):
        with pytest.raises(LookupError, match="Customer not found"):
            portal_service.issue_token(seed_data["other_customer_id"], seed_data["owner_id"])

    def test_purge(self, app, seed_data):
        make_token(app, seed_data, revoked_at=datetime.now(timezone.utc))
        make_token(app, seed_data)
        with app.app_context():
            assert portal_service.purge_tokens() == 1
            assert ClientPortalToken.query.count() == 1


class TestPortalLogin:

    def test_valid_token_returns_scoped_bundle(self, client, seed_data, app):
        # A second invoice for another customer must not leak in
        with app.app_context():
            db.session.add(Invoice(
                user_id=seed_data["other_id"],
                customer_id=seed_data["other_customer_id"],
                invoice_number="INV-9",
                title="Fence install",
                total_amount=900,
            ))
            db.session.commit()

        token = make_token(app, seed_data)
        resp = client.get(f"/client/login?token={token}")
        assert resp.status_code == 200

        bundle = json.loads(resp.data)
        assert bundle["customer"]["id"] == seed_data["customer_id"]
        assert [row["id"] for row in bundle["jobs"]] == [seed_data["job_id"]]
        assert [row["id"] for row in bundle["invoices"]] == [seed_data["invoice_id"]]
        assert bundle["estimates"] == []

        for row in [bundle["customer"], *bundle["jobs"], *bundle["invoices"]]:
            assert "user_id" not in row
        assert "stripe_session_id" not in bundle["invoices"][0]
        assert "lead_id" not in bundle["customer"]

    def test_expired_token_gets_no_data(self, client, seed_data, app):
        token = make_token(
            app, seed_data,
            expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
        )
        resp = client.get(f"/client/login?token={token}")
        assert resp.status_code == 401
        data = json.loads(resp.data)
        assert data == {"error": "This access link has expired."}

    def test_revoked_token_gets_no_data(self, client, seed_data, app):
        token = make_token(app, seed_data, revoked_at=datetime.now(timezone.utc))
        resp = client.get(f"/client/login?token={token}")
        assert resp.status_code == 401
        assert "customer" not in json.loads(resp.data)

    def test_missing_token(self, client, seed_data):
        resp = client.get("/client/login")
        assert resp.status_code == 401
        assert json.loads(resp.data)["error"] == "No access token provided."

    def test_bundle_read_failure_returns_nothing(self, client, seed_data, app):
        token = make_token(app, seed_data)
        boom = OperationalError("SELECT", {}, Exception("connection reset"))
        with patch("app.services.portal_service.Estimate") as estimate:
            estimate.query.filter_by.side_effect = boom
            resp = client.get(f"/client/login?token={token}")
        assert resp.status_code == 503
        data = json.loads(resp.data)
        assert data == {"error": "Failed to load your account data"}


class TestPortalSession:

    def test_dashboard_requires_session(self, client, seed_data):
        resp = client.get("/client/dashboard")
        assert resp.status_code == 401
        assert json.loads(resp.data)["error"] == "Portal access required"

    def test_dashboard_after_login(self, client, seed_data, app):
        token = make_token(app, seed_data)
        client.get(f"/client/login?token={token}")

        resp = client.get("/client/dashboard")
        assert resp.status_code == 200
        assert json.loads(resp.data)["customer"]["id"] == seed_data["customer_id"]

    def test_revocation_ends_session(self, client, seed_data, app):
        token = make_token(app, seed_data)
        client.get(f"/client/login?token={token}")

        with app.app_context():
            portal_service.revoke_token(token, seed_data["owner_id"])

        resp = client.get("/client/dashboard")
        assert resp.status_code == 401
        assert json.loads(resp.data)["error"] == "This access link has been revoked."

    def test_logout(self, client, seed_data, app):
        token = make_token(app, seed_data)
        client.get(f"/client/login?token={token}")
        client.post("/client/logout")

        resp = client.get("/client/dashboard")
        assert resp.status_code == 401


class TestTokenEndpoints:

    def test_issue_token(self, client, seed_data):
        resp = client.post(
            f"/api/customers/{seed_data['customer_id']}/portal-token",
            json={},
            headers=seed_data["owner_headers"],
        )
        assert resp.status_code == 201
        data = json.loads(resp.data)
        assert data["url"].endswith(f"/client/login?token={data['token']}")
        assert data["sent"] is False

    @patch("app.blueprints.portal.send_email")
    def test_issue_and_send(self, mock_send, client, seed_data):
        resp = client.post(
            f"/api/customers/{seed_data['customer_id']}/portal-token",
            json={"send": True, "expires_hours": 24},
            headers=seed_data["owner_headers"],
        )
        assert resp.status_code == 201
        assert json.loads(resp.data)["sent"] is True
        assert mock_send.call_args.kwargs["to"] == "joe@demoroofing.com"
        assert mock_send.call_args.kwargs["template"] == "emails/portal_link.html"

    def test_issue_for_foreign_customer(self, client, seed_data):
        resp = client.post(
            f"/api/customers/{seed_data['other_customer_id']}/portal-token",
            json={},
            headers=seed_data["owner_headers"],
        )
        assert resp.status_code == 404

    @pytest.mark.parametrize("hours", [1e12, 24 * 366, 0, -5, "soon"])
    def test_issue_rejects_bad_lifetime(self, client, seed_data, hours):
        resp = client.post(
            f"/api/customers/{seed_data['customer_id']}/portal-token",
            json={"expires_hours": hours},
            headers=seed_data["owner_headers"],
        )
        assert resp.status_code == 400
        assert resp.is_json

    def test_issue_requires_login(self, client, seed_data):
        resp = client.post(f"/api/customers/{seed_data['customer_id']}/portal-token")
        assert resp.status_code == 401

    def test_revoke(self, client, seed_data, app):
        token = make_token(app, seed_data)

        resp = client.delete(
            f"/api/portal-tokens/{token}", headers=seed_data["other_headers"]
        )
        assert resp.status_code == 404

        resp = client.delete(
            f"/api/portal-tokens/{token}", headers=seed_data["owner_headers"]
        )
        assert resp.status_code == 200
        assert json.loads(resp.data) == {"revoked": True}

        with app.app_context():
            assert portal_service.validate_token(token)[1] == (
                "This access link has been revoked."
            )
