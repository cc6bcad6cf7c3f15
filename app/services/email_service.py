"""
Transactional email over SMTP.

Used for payment receipts and client-portal links. Sending happens on a
daemon thread so a slow or unreachable SMTP server never holds up a request
or a webhook acknowledgement.

Usage:
    from app.services.email_service import send_email

    send_email(
        to="client@example.com",
        subject="Your receipt",
        template="emails/payment_receipt.html",
        context={"invoice_number": "INV-1"},
    )
"""

import logging
import smtplib
import threading
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app, render_template

logger = logging.getLogger(__name__)


def _deliver(app, msg):
    """Runs on the mail thread."""
    with app.app_context():
        host = app.config.get("MAIL_SMTP_HOST", "smtp.gmail.com")
        port = app.config.get("MAIL_SMTP_PORT", 587)
        username = app.config.get("MAIL_USERNAME")
        password = app.config.get("MAIL_PASSWORD")

        if not username or not password:
            logger.warning(f"Email to {msg['To']} not sent, SMTP credentials not configured")
            return

        try:
            with smtplib.SMTP(host, port, timeout=30) as server:
                server.ehlo()
                server.starttls()
                server.ehlo()
                server.login(username, password)
                server.send_message(msg)
            logger.info(f"Email sent to {msg['To']}: {msg['Subject']}")
        except Exception as e:
            logger.error(f"Failed to send email to {msg['To']}: {e}")


def build_message(to, subject, template, context=None, reply_to=None):
    """Render a template into a MIME message ready for SMTP."""
    config = current_app.config
    from_name = config.get("MAIL_FROM_NAME", "Invoices")
    from_email = config.get("MAIL_FROM_ADDRESS") or config.get("MAIL_USERNAME") or ""

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{from_name} <{from_email}>"
    msg["To"] = to if isinstance(to, str) else ", ".join(to)
    if reply_to:
        msg["Reply-To"] = reply_to

    msg.attach(MIMEText(render_template(template, **(context or {})), "html"))
    return msg


def send_email(to, subject, template, context=None, reply_to=None):
    """Render and send in the background. Returns the mail thread."""
    app = current_app._get_current_object()
    msg = build_message(to, subject, template, context, reply_to)

    thread = threading.Thread(target=_deliver, args=(app, msg))
    thread.daemon = True
    thread.start()
    return thread
