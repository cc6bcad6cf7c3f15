"""Stripe service — invoice checkout and payment webhooks.

Responsible for:
- Creating Stripe Checkout Sessions for a single invoice
- Verifying webhook signatures (mandatory)
- Moving an invoice to paid on checkout.session.completed
- Idempotency via the stripe_events table

invoices.payment_status is the source of truth for payment. Only the
webhook sets it to "paid"; checkout moves it to "pending".
"""

import logging
from datetime import datetime, timezone

import stripe
from flask import current_app

from app.extensions import db
from app.models.billing import Invoice
from app.models.stripe_event import StripeEvent
from app.services.activity_service import log_activity
from app.services.receipt_service import send_receipt

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


# ──────────────────────────────────────────────
# Checkout Sessions
# ──────────────────────────────────────────────

def _find_stripe_customer(email):
    """Reuse an existing Stripe customer for this email, if there is one."""
    if not email:
        return None
    customers = stripe.Customer.list(email=email, limit=1)
    if customers.data:
        return customers.data[0].id
    return None


def create_invoice_checkout(store, invoice_id, user):
    """Create a one-off Checkout Session paying an invoice in full.

    Stores the session id on the invoice and moves it to pending.

    Returns the Stripe checkout session URL.
    Raises LookupError if the invoice is missing or not owned by the user.
    Raises ValueError if the invoice cannot be paid.
    Raises stripe.StripeError on API failures.
    Raises RuntimeError if the invoice could not be updated afterwards.
    """
    invoice = Invoice.query.filter_by(id=invoice_id, user_id=user.id).first()
    if invoice is None:
        raise LookupError("Invoice not found")

    if invoice.payment_status == "paid":
        raise ValueError("Invoice is already paid")
    if not Invoice.can_transition(invoice.payment_status, "pending"):
        raise ValueError(f"Invoice payment has {invoice.payment_status}")
    if not invoice.total_amount or invoice.total_amount <= 0:
        raise ValueError("Invoice has no amount due")

    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]
    app_base_url = current_app.config["APP_BASE_URL"]

    customer_id = _find_stripe_customer(user.email)
    params = {
        "mode": "payment",
        "line_items": [{
            "price_data": {
                "currency": current_app.config.get("STRIPE_CURRENCY", "usd"),
                "product_data": {
                    "name": f"Invoice #{invoice.invoice_number or invoice.id[:8]}",
                    "description": invoice.title,
                },
                "unit_amount": round(invoice.total_amount * 100),
            },
            "quantity": 1,
        }],
        "success_url": (
            f"{app_base_url}/admin/invoices"
            f"?payment=success&session_id={{CHECKOUT_SESSION_ID}}"
        ),
        "cancel_url": f"{app_base_url}/admin/invoices?payment=cancelled",
        "metadata": {
            "invoice_id": invoice.id,
            "user_id": user.id,
        },
    }
    if customer_id:
        params["customer"] = customer_id
    else:
        params["customer_email"] = user.email

    session = stripe.checkout.Session.create(**params)

    response = store.update(
        "invoices",
        {"id": invoice.id, "user_id": user.id},
        {"stripe_session_id": session.id, "payment_status": "pending"},
    )
    if response.error:
        logger.error(
            f"Checkout session {session.id} created but invoice {invoice.id} "
            f"not updated: {response.error.message}"
        )
        raise RuntimeError("Failed to update invoice")

    logger.info(f"Checkout session {session.id} created for invoice {invoice.id}")
    return session.url


# ──────────────────────────────────────────────
# Webhook Handling
# ──────────────────────────────────────────────

def verify_webhook_signature(payload, sig_header):
    """Verify Stripe webhook signature and construct the event.

    Raises stripe.SignatureVerificationError on an invalid signature and
    ValueError on an unparseable payload.
    """
    webhook_secret = current_app.config["STRIPE_WEBHOOK_SECRET"]
    return stripe.Webhook.construct_event(payload, sig_header, webhook_secret)


def _record_event(event, invoice_id=None):
    db.session.add(StripeEvent(
        stripe_event_id=event["id"],
        event_type=event["type"],
        invoice_id=invoice_id,
    ))


def handle_webhook_event(store, event):
    """Process a verified Stripe webhook event.

    Returns (success: bool, message: str). success is False only for
    failures before the invoice change committed, so Stripe retries.
    """
    event_id = event["id"]
    event_type = event["type"]

    # --- Idempotency check ---
    if StripeEvent.already_processed(event_id):
        logger.info(f"Duplicate webhook event {event_id}, skipping")
        return True, "already_processed"

    if event_type != CHECKOUT_COMPLETED:
        _record_event(event)
        db.session.commit()
        return True, "ignored"

    try:
        return _handle_checkout_completed(store, event)
    except Exception as e:
        logger.error(f"Error handling {event_type}: {e}", exc_info=True)
        db.session.rollback()
        return False, str(e)


def _handle_checkout_completed(store, event):
    session = event["data"]["object"]
    session_id = session.get("id")

    invoice = (
        Invoice.query.filter_by(stripe_session_id=session_id).first()
        if session_id else None
    )
    if invoice is None:
        logger.error(f"No invoice found for checkout session {session_id}")
        return False, f"Invoice not found for session {session_id}"

    invoice_id = invoice.id
    user_id = invoice.user_id
    invoice_number = invoice.invoice_number

    # --- Paid guard ---
    if invoice.payment_status == "paid":
        logger.info(f"Invoice {invoice_id} already paid, event {event['id']} is a no-op")
        _record_event(event, invoice_id)
        db.session.commit()
        return True, "already_paid"

    if not Invoice.can_transition(invoice.payment_status, "paid"):
        logger.error(
            f"Checkout {session_id} completed for invoice {invoice_id} "
            f"in terminal state {invoice.payment_status}; left unchanged"
        )
        _record_event(event, invoice_id)
        db.session.commit()
        return True, "terminal_state"

    # The event row rides in the same commit as the invoice change.
    _record_event(event, invoice_id)
    response = store.update(
        "invoices",
        {"id": invoice_id},
        {"payment_status": "paid", "paid_at": datetime.now(timezone.utc)},
    )
    if response.error:
        db.session.rollback()
        return False, response.error.message

    logger.info(f"Invoice {invoice_id} marked paid via session {session_id}")

    # --- Advisory side effects (never fail the webhook) ---
    log_activity(
        user_id, "payment_completed", "invoice", invoice_id,
        f"Payment completed for invoice {invoice_number} via Stripe",
        {
            "stripe_session_id": session_id,
            "amount_total": session.get("amount_total"),
            "stripe_event_id": event["id"],
        },
    )
    send_receipt(invoice_id)

    return True, "processed"
