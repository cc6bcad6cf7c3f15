"""Activity and compliance audit models.

- ActivityLog: human-readable trail of entity mutations for the activity
  feed. Append-only; application code never updates or deletes rows.
- AuditTrail: compliance rows written by the entity store in the same
  transaction as each insert/update/delete, with before/after values.
"""

import uuid

from app.extensions import db
from app.models.mixins import SerializerMixin, utcnow


class ActivityLog(SerializerMixin, db.Model):
    __tablename__ = "activity_logs"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    entity_type = db.Column(db.String(50), nullable=False)  # e.g. "invoice"
    entity_id = db.Column(db.String(36), nullable=False)
    action = db.Column(db.String(100), nullable=False)  # e.g. "payment_completed"
    description = db.Column(db.Text, nullable=True)
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # named metadata_ to avoid clashing with SQLAlchemy's Model.metadata
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<ActivityLog {self.entity_type}:{self.action}>"


class AuditTrail(SerializerMixin, db.Model):
    __tablename__ = "audit_trail"

    ACTIONS = ["INSERT", "UPDATE", "DELETE"]
    COMPLIANCE_LEVELS = ["standard", "high", "critical"]

    # Tables whose changes carry financial or contractual weight.
    CRITICAL_TABLES = ("invoices", "payments", "signed_documents")
    HIGH_TABLES = ("customers", "jobs", "estimates")

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True, index=True
    )
    table_name = db.Column(db.String(100), nullable=False)
    record_id = db.Column(db.String(36), nullable=False)
    action = db.Column(db.String(10), nullable=False)
    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)
    changed_fields = db.Column(db.JSON, nullable=True)
    compliance_level = db.Column(db.String(20), default="standard", nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    @classmethod
    def compliance_level_for(cls, table_name):
        if table_name in cls.CRITICAL_TABLES:
            return "critical"
        if table_name in cls.HIGH_TABLES:
            return "high"
        return "standard"

    def __repr__(self):
        return f"<AuditTrail {self.action} {self.table_name}:{self.record_id}>"
