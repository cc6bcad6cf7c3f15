"""Webhooks blueprint — POST /webhook

Receives Stripe webhook events. CSRF-exempt.
Raw body is required for signature verification.

Any failure before the invoice change commits is answered with a 500 so
Stripe keeps retrying the delivery.
"""

import logging

from flask import Blueprint, jsonify, request

from app.extensions import get_store
from app.services.stripe_service import handle_webhook_event, verify_webhook_signature

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__)


@webhooks_bp.route("/webhook", methods=["POST"])
def stripe_webhook():
    """Receive and process Stripe webhook events.

    1. Get raw body (required for signature verification)
    2. Verify signature with STRIPE_WEBHOOK_SECRET
    3. Pass to handle_webhook_event (idempotent via stripe_events table)
    4. Return 200 {received: true} to acknowledge receipt
    """
    payload = request.get_data(as_text=True)
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header:
        logger.warning("Webhook received without Stripe-Signature header")
        return jsonify({"error": "Missing signature"}), 500

    # --- Verify signature ---
    try:
        event = verify_webhook_signature(payload, sig_header)
    except Exception as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        return jsonify({"error": "Invalid signature"}), 500

    # --- Process event (idempotent) ---
    success, message = handle_webhook_event(get_store(), event)

    if success:
        return jsonify({"received": True, "status": message}), 200
    logger.error(f"Webhook processing failed: {message}")
    return jsonify({"error": message}), 500
