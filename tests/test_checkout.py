"""Tests for POST /create-checkout.

Covers:
- Auth required
- Missing invoice id -> 400
- Another user's invoice -> 404
- Paid / failed / zero-amount invoices -> 409
- Stripe errors -> 502, invoice untouched
- Success -> session URL, invoice pending with the session id stored
"""

import json
from unittest.mock import MagicMock, patch

import stripe

from app.extensions import db
from app.models.billing import Invoice


def fake_session(session_id="cs_test_123"):
    return MagicMock(id=session_id, url=f"https://checkout.stripe.com/c/pay/{session_id}")


class TestCheckoutValidation:

    def test_requires_login(self, client, seed_data):
        resp = client.post("/create-checkout", json={"invoiceId": seed_data["invoice_id"]})
        assert resp.status_code == 401

    def test_missing_invoice_id(self, client, seed_data):
        resp = client.post("/create-checkout", json={}, headers=seed_data["owner_headers"])
        assert resp.status_code == 400
        assert json.loads(resp.data)["error"] == "invoiceId is required"

    def test_other_users_invoice_is_not_found(self, client, seed_data):
        resp = client.post(
            "/create-checkout",
            json={"invoiceId": seed_data["invoice_id"]},
            headers=seed_data["other_headers"],
        )
        assert resp.status_code == 404

    def test_paid_invoice_rejected(self, client, seed_data, app):
        with app.app_context():
            invoice = db.session.get(Invoice, seed_data["invoice_id"])
            invoice.payment_status = "paid"
            db.session.commit()

        resp = client.post(
            "/create-checkout",
            json={"invoiceId": seed_data["invoice_id"]},
            headers=seed_data["owner_headers"],
        )
        assert resp.status_code == 409
        assert json.loads(resp.data)["error"] == "Invoice is already paid"

    def test_zero_amount_rejected(self, client, seed_data, app):
        with app.app_context():
            invoice = db.session.get(Invoice, seed_data["invoice_id"])
            invoice.total_amount = 0
            db.session.commit()

        resp = client.post(
            "/create-checkout",
            json={"invoice_id": seed_data["invoice_id"]},
            headers=seed_data["owner_headers"],
        )
        assert resp.status_code == 409


class TestCheckoutSession:

    @patch("app.services.stripe_service.stripe.checkout.Session.create")
    @patch("app.services.stripe_service.stripe.Customer.list")
    def test_creates_session(self, mock_customers, mock_create, client, seed_data, app):
        mock_customers.return_value = MagicMock(data=[])
        mock_create.return_value = fake_session()

        resp = client.post(
            "/create-checkout",
            json={"invoiceId": seed_data["invoice_id"]},
            headers=seed_data["owner_headers"],
        )
        assert resp.status_code == 200
        assert json.loads(resp.data) == {"url": "https://checkout.stripe.com/c/pay/cs_test_123"}

        params = mock_create.call_args.kwargs
        assert params["mode"] == "payment"
        assert params["customer_email"] == "owner@crm.local"
        assert params["metadata"] == {
            "invoice_id": seed_data["invoice_id"],
            "user_id": seed_data["owner_id"],
        }
        line = params["line_items"][0]
        assert line["price_data"]["unit_amount"] == 10000
        assert line["price_data"]["product_data"]["name"] == "Invoice #INV-1"
        assert "session_id={CHECKOUT_SESSION_ID}" in params["success_url"]

        with app.app_context():
            invoice = db.session.get(Invoice, seed_data["invoice_id"])
            assert invoice.payment_status == "pending"
            assert invoice.stripe_session_id == "cs_test_123"

    @patch("app.services.stripe_service.stripe.checkout.Session.create")
    @patch("app.services.stripe_service.stripe.Customer.list")
    def test_reuses_stripe_customer(self, mock_customers, mock_create, client, seed_data):
        mock_customers.return_value = MagicMock(data=[MagicMock(id="cus_existing")])
        mock_create.return_value = fake_session()

        client.post(
            "/create-checkout",
            json={"invoiceId": seed_data["invoice_id"]},
            headers=seed_data["owner_headers"],
        )
        params = mock_create.call_args.kwargs
        assert params["customer"] == "cus_existing"
        assert "customer_email" not in params

    @patch("app.services.stripe_service.stripe.checkout.Session.create")
    @patch("app.services.stripe_service.stripe.Customer.list")
    def test_pending_invoice_can_retry(self, mock_customers, mock_create,
                                       client, seed_data, app):
        mock_customers.return_value = MagicMock(data=[])
        mock_create.side_effect = [fake_session("cs_first"), fake_session("cs_second")]

        for _ in range(2):
            resp = client.post(
                "/create-checkout",
                json={"invoiceId": seed_data["invoice_id"]},
                headers=seed_data["owner_headers"],
            )
            assert resp.status_code == 200

        with app.app_context():
            invoice = db.session.get(Invoice, seed_data["invoice_id"])
            assert invoice.stripe_session_id == "cs_second"

    @patch("app.services.stripe_service.stripe.checkout.Session.create")
    @patch("app.services.stripe_service.stripe.Customer.list")
    def test_stripe_error_returns_502(self, mock_customers, mock_create,
                                      client, seed_data, app):
        mock_customers.return_value = MagicMock(data=[])
        mock_create.side_effect = stripe.StripeError("card network down")

        resp = client.post(
            "/create-checkout",
            json={"invoiceId": seed_data["invoice_id"]},
            headers=seed_data["owner_headers"],
        )
        assert resp.status_code == 502

        with app.app_context():
            invoice = db.session.get(Invoice, seed_data["invoice_id"])
            assert invoice.payment_status == "unpaid"
            assert invoice.stripe_session_id is None
