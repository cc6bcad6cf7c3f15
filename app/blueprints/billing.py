"""Billing blueprint — POST /create-checkout

Starts a Stripe Checkout Session for one of the caller's invoices.
Authenticated by bearer token or session cookie.

Responses:
- 200 {url}     — redirect the browser here
- 400           — invoiceId missing
- 404           — invoice missing or owned by someone else
- 409           — invoice already paid, failed or has nothing to pay
- 502           — Stripe rejected the request
"""

import logging

import stripe
from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from app.extensions import get_store
from app.services.stripe_service import create_invoice_checkout

logger = logging.getLogger(__name__)

billing_bp = Blueprint("billing", __name__)


@billing_bp.route("/create-checkout", methods=["POST"])
@login_required
def create_checkout():
    data = request.get_json(silent=True) or {}
    invoice_id = data.get("invoiceId") or data.get("invoice_id")
    if not invoice_id:
        return jsonify({"error": "invoiceId is required"}), 400

    try:
        url = create_invoice_checkout(get_store(), invoice_id, current_user)
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except ValueError as e:
        return jsonify({"error": str(e)}), 409
    except stripe.StripeError as e:
        logger.error(f"Checkout error for invoice {invoice_id}: {e}", exc_info=True)
        return jsonify({"error": "Payment provider error. Please try again."}), 502

    return jsonify({"url": url})
