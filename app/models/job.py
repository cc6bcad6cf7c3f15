"""Job and Task models."""

from app.extensions import db
from app.models.mixins import OwnedEntityMixin


class Job(OwnedEntityMixin, db.Model):
    __tablename__ = "jobs"

    STATUSES = [
        "quoted",
        "approved",
        "scheduled",
        "in_progress",
        "on_hold",
        "completed",
        "cancelled",
    ]

    title = db.Column(db.String(255), nullable=False)
    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    description = db.Column(db.Text, nullable=True)
    address = db.Column(db.String(500), nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    estimated_hours = db.Column(db.Float, nullable=True)
    actual_hours = db.Column(db.Float, nullable=True)
    budget = db.Column(db.Float, nullable=True)
    total_cost = db.Column(db.Float, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(50), default="quoted", nullable=False)

    def __repr__(self):
        return f"<Job {self.title} ({self.status})>"


class Task(OwnedEntityMixin, db.Model):
    __tablename__ = "tasks"

    STATUSES = ["pending", "in_progress", "completed", "cancelled"]
    PRIORITIES = ["low", "medium", "high", "urgent"]

    title = db.Column(db.String(255), nullable=False)
    job_id = db.Column(
        db.String(36), db.ForeignKey("jobs.id", ondelete="SET NULL"), nullable=True
    )
    description = db.Column(db.Text, nullable=True)
    assigned_to = db.Column(db.String(255), nullable=True)
    due_date = db.Column(db.Date, nullable=True)
    estimated_hours = db.Column(db.Float, nullable=True)
    actual_hours = db.Column(db.Float, nullable=True)
    priority = db.Column(db.String(50), default="medium", nullable=False)
    status = db.Column(db.String(50), default="pending", nullable=False)

    def __repr__(self):
        return f"<Task {self.title} ({self.status})>"
