"""Dashboard preferences model (one row per user, created lazily)."""

import uuid

from app.extensions import db
from app.models.mixins import SerializerMixin, utcnow


def default_layout():
    return {"columns": 3}


def default_visible_widgets():
    return ["stats", "recent-activity", "metrics"]


def default_theme_settings():
    return {"mode": "light"}


class DashboardPreferences(SerializerMixin, db.Model):
    __tablename__ = "dashboard_preferences"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), unique=True, nullable=False
    )
    layout = db.Column(db.JSON, default=default_layout)
    widget_positions = db.Column(db.JSON, default=dict)
    visible_widgets = db.Column(db.JSON, default=default_visible_widgets)
    theme_settings = db.Column(db.JSON, default=default_theme_settings)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    def __repr__(self):
        return f"<DashboardPreferences user={self.user_id}>"
