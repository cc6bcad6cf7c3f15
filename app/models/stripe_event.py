"""Processed Stripe webhook events.

A row is written only after an event has been handled successfully, in the
same transaction as the invoice change it caused. A redelivered event whose
id is already here is acknowledged without touching the invoice again and
without sending a second receipt.
"""

import uuid

from app.extensions import db
from app.models.mixins import utcnow


class StripeEvent(db.Model):
    __tablename__ = "stripe_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    stripe_event_id = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "evt_1Abc..."
    event_type = db.Column(db.String(255), nullable=False)
    invoice_id = db.Column(
        db.String(36), db.ForeignKey("invoices.id", ondelete="SET NULL"),
        nullable=True,
    )  # invoice the event settled, when there was one
    processed_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    @classmethod
    def already_processed(cls, stripe_event_id):
        if not stripe_event_id:
            return False
        return cls.query.filter_by(stripe_event_id=stripe_event_id).first() is not None

    def __repr__(self):
        return f"<StripeEvent {self.stripe_event_id} ({self.event_type})>"
