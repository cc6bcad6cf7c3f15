"""Client portal service — token issuance, validation, and the data bundle.

Handles the full lifecycle of client portal tokens:
- issue: a staff user creates a time-limited token for one of their customers
- validate: check that a token exists, is not expired and is not revoked
- revoke: end a token early
- load_bundle: the read-only customer/jobs/estimates/invoices view
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.models.billing import Estimate, Invoice
from app.models.customer import Customer
from app.models.job import Job
from app.models.portal_token import ClientPortalToken

logger = logging.getLogger(__name__)

# Longest lifetime a staff user may request for one token.
MAX_TOKEN_HOURS = 24 * 365


class PortalDataError(Exception):
    """One of the bundle reads failed; no partial bundle is returned."""


def portal_url(token):
    return f"{current_app.config['APP_BASE_URL']}/client/login?token={token}"


def issue_token(customer_id, user_id, expires_hours=None):
    """Create a portal token for a customer owned by user_id.

    Args:
        customer_id: UUID of the customer
        user_id: UUID of the issuing staff user
        expires_hours: lifetime in hours (default CLIENT_PORTAL_TOKEN_HOURS)

    Returns:
        ClientPortalToken: the newly created token row

    Raises:
        LookupError: the customer does not exist or is not owned by user_id
        ValueError: expires_hours is not positive or exceeds MAX_TOKEN_HOURS
    """
    customer = Customer.query.filter_by(id=customer_id, user_id=user_id).first()
    if customer is None:
        raise LookupError("Customer not found")

    if expires_hours is None:
        expires_hours = current_app.config.get("CLIENT_PORTAL_TOKEN_HOURS", 168)
    if expires_hours <= 0:
        raise ValueError("Token lifetime must be positive")
    if expires_hours > MAX_TOKEN_HOURS:
        raise ValueError(f"Token lifetime cannot exceed {MAX_TOKEN_HOURS} hours")

    token = ClientPortalToken(
        token=secrets.token_urlsafe(48),
        customer_id=customer.id,
        user_id=user_id,
        expires_at=datetime.now(timezone.utc) + timedelta(hours=expires_hours),
    )
    db.session.add(token)
    db.session.commit()
    logger.info(f"Portal token issued for customer {customer.id} by user {user_id}")
    return token


def validate_token(token):
    """Look up a portal token and check if it's usable.

    Never raises for a missing, unknown, expired or revoked token.

    Returns:
        tuple: (customer_id, error_message)
            - If valid: (customer_id, None)
            - If invalid: (None, "reason string")
    """
    if not token:
        return None, "No access token provided."

    row = ClientPortalToken.query.filter_by(token=token).first()

    if row is None:
        return None, "Invalid access link."

    if row.is_revoked:
        return None, "This access link has been revoked."

    if row.is_expired:
        return None, "This access link has expired."

    return row.customer_id, None


def revoke_token(token, user_id):
    """Revoke a token issued by user_id. Returns True if it was revoked."""
    row = ClientPortalToken.query.filter_by(token=token, user_id=user_id).first()
    if row is None:
        return False
    if row.revoked_at is None:
        row.revoked_at = datetime.now(timezone.utc)
        db.session.commit()
        logger.info(f"Portal token for customer {row.customer_id} revoked")
    return True


def purge_tokens():
    """Delete expired and revoked tokens. Returns how many were removed."""
    now = datetime.now(timezone.utc)
    stale = ClientPortalToken.query.filter(
        db.or_(
            ClientPortalToken.expires_at <= now,
            ClientPortalToken.revoked_at.isnot(None),
        )
    ).all()
    for row in stale:
        db.session.delete(row)
    db.session.commit()
    return len(stale)


# Staff-side columns left out of the customer's view.
PORTAL_HIDDEN_FIELDS = ("user_id", "lead_id", "stripe_session_id")


def _public(row):
    data = row.to_dict()
    for field in PORTAL_HIDDEN_FIELDS:
        data.pop(field, None)
    return data


def load_bundle(customer_id):
    """Load the read-only portal view for one customer.

    Every list is scoped to the customer and its owning user, newest first.
    Staff-side columns (PORTAL_HIDDEN_FIELDS) are dropped from every row.

    Raises:
        PortalDataError: the customer is gone or any read failed
    """
    try:
        customer = db.session.get(Customer, customer_id)
        if customer is None:
            raise PortalDataError("Customer not found")

        scope = {"customer_id": customer.id, "user_id": customer.user_id}
        jobs = Job.query.filter_by(**scope).order_by(Job.created_at.desc()).all()
        estimates = (
            Estimate.query.filter_by(**scope)
            .order_by(Estimate.created_at.desc()).all()
        )
        invoices = (
            Invoice.query.filter_by(**scope)
            .order_by(Invoice.created_at.desc()).all()
        )
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Portal bundle for customer {customer_id} failed: {e}")
        raise PortalDataError("Failed to load your account data") from e

    return {
        "customer": _public(customer),
        "jobs": [_public(row) for row in jobs],
        "estimates": [_public(row) for row in estimates],
        "invoices": [_public(row) for row in invoices],
    }
