"""Payment receipts.

Sent once an invoice is confirmed paid. Best-effort: every failure is
logged and reported as False, never raised, so the payment confirmation
that triggered it stands regardless.
"""

import logging

from flask import current_app

from app.extensions import db
from app.models.billing import Invoice
from app.models.customer import Customer
from app.services.activity_service import log_activity
from app.services.email_service import send_email

logger = logging.getLogger(__name__)


def send_receipt(invoice_id):
    """Email a receipt to the invoice's customer and log receipt_sent."""
    try:
        invoice = db.session.get(Invoice, invoice_id)
        if invoice is None:
            logger.warning(f"Receipt skipped, invoice {invoice_id} not found")
            return False

        customer = (
            db.session.get(Customer, invoice.customer_id)
            if invoice.customer_id else None
        )
        if customer is None or not customer.email:
            logger.warning(f"Receipt skipped, invoice {invoice_id} has no customer email")
            return False

        send_email(
            to=customer.email,
            subject=f"Payment receipt for invoice {invoice.invoice_number or invoice.title}",
            template="emails/payment_receipt.html",
            context={
                "customer_name": f"{customer.first_name} {customer.last_name}",
                "invoice_number": invoice.invoice_number,
                "invoice_title": invoice.title,
                "amount": invoice.total_amount or 0,
                "currency": current_app.config.get("STRIPE_CURRENCY", "usd").upper(),
                "paid_at": invoice.paid_at,
            },
        )
        log_activity(
            invoice.user_id, "receipt_sent", "invoice", invoice.id,
            f"Receipt sent to {customer.email}",
            {"email": customer.email},
        )
        return True
    except Exception as e:
        # Never let a receipt failure surface to the payment path
        logger.error(f"Failed to send receipt for invoice {invoice_id}: {e}")
        return False
