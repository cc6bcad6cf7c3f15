"""Client portal token model.

A staff user issues a token bound to one of their customers. The customer
opens /client/login?token=... to see a read-only view of their jobs,
estimates and invoices. Tokens expire (default 168 hours) and can be revoked.
"""

import uuid
from datetime import datetime, timezone

from app.extensions import db


class ClientPortalToken(db.Model):
    __tablename__ = "client_portal_tokens"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    token = db.Column(
        db.String(128), unique=True, nullable=False
    )  # cryptographically random
    customer_id = db.Column(
        db.String(36),
        db.ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )  # issuing staff user
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    customer = db.relationship("Customer")

    @property
    def is_expired(self):
        """Check if the token has expired."""
        now = datetime.now(timezone.utc)
        expires = self.expires_at
        # SQLite returns naive datetimes; Postgres returns aware ones.
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return now >= expires

    @property
    def is_revoked(self):
        return self.revoked_at is not None

    @property
    def is_valid(self):
        return not self.is_expired and not self.is_revoked

    def __repr__(self):
        return f"<ClientPortalToken token={self.token[:8]}... customer={self.customer_id}>"
