"""Billing document models.

- Estimate: a quote sent to a customer.
- Invoice: a bill, payable through Stripe Checkout.

invoices.payment_status is the source of truth for payment; it only moves
forward and is set to "paid" exclusively by the Stripe webhook.
"""

from app.extensions import db
from app.models.mixins import OwnedEntityMixin


class Estimate(OwnedEntityMixin, db.Model):
    __tablename__ = "estimates"

    STATUSES = ["draft", "sent", "viewed", "approved", "rejected", "expired"]

    estimate_number = db.Column(db.String(50), nullable=True)
    title = db.Column(db.String(255), nullable=False)
    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    job_id = db.Column(
        db.String(36), db.ForeignKey("jobs.id", ondelete="SET NULL"), nullable=True
    )
    description = db.Column(db.Text, nullable=True)
    subtotal = db.Column(db.Float, nullable=True)
    tax_rate = db.Column(db.Float, nullable=True)
    tax_amount = db.Column(db.Float, nullable=True)
    total_amount = db.Column(db.Float, nullable=True)
    valid_until = db.Column(db.Date, nullable=True)
    terms = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(50), default="draft", nullable=False)

    def __repr__(self):
        return f"<Estimate {self.estimate_number} ({self.status})>"


class Invoice(OwnedEntityMixin, db.Model):
    __tablename__ = "invoices"

    STATUSES = ["draft", "sent", "viewed", "paid", "overdue", "cancelled"]

    PAYMENT_STATUSES = ["unpaid", "pending", "paid", "failed"]

    # -- Forward-only payment transitions (paid / failed are terminal) --
    PAYMENT_TRANSITIONS = {
        "unpaid": ["pending", "paid", "failed"],
        "pending": ["pending", "paid", "failed"],
    }

    invoice_number = db.Column(db.String(50), nullable=True)
    title = db.Column(db.String(255), nullable=False)
    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    job_id = db.Column(
        db.String(36), db.ForeignKey("jobs.id", ondelete="SET NULL"), nullable=True
    )
    estimate_id = db.Column(
        db.String(36), db.ForeignKey("estimates.id", ondelete="SET NULL"),
        nullable=True,
    )
    description = db.Column(db.Text, nullable=True)
    subtotal = db.Column(db.Float, nullable=True)
    tax_rate = db.Column(db.Float, nullable=True)
    tax_amount = db.Column(db.Float, nullable=True)
    total_amount = db.Column(db.Float, nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    payment_terms = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(50), default="draft", nullable=False)
    payment_status = db.Column(db.String(50), default="unpaid", nullable=False)
    stripe_session_id = db.Column(
        db.String(255), unique=True, nullable=True
    )  # set once a checkout session is created
    paid_at = db.Column(
        db.DateTime(timezone=True), nullable=True
    )  # set exactly once by the webhook

    @classmethod
    def can_transition(cls, old_status, new_status):
        """Check a payment_status move against PAYMENT_TRANSITIONS."""
        if old_status == new_status and old_status in ("paid", "failed"):
            return True  # no-op on a terminal state
        return new_status in cls.PAYMENT_TRANSITIONS.get(old_status or "unpaid", [])

    def __repr__(self):
        return f"<Invoice {self.invoice_number} ({self.payment_status})>"
