"""Dashboard preferences — one row per user, created on first read."""

import logging

from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.models.preferences import DashboardPreferences

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("layout", "widget_positions", "visible_widgets", "theme_settings")


def get_preferences(user_id):
    """Return the user's preferences row, creating the defaults on a miss."""
    prefs = DashboardPreferences.query.filter_by(user_id=user_id).first()
    if prefs is not None:
        return prefs

    prefs = DashboardPreferences(user_id=user_id)
    db.session.add(prefs)
    try:
        db.session.commit()
    except IntegrityError:
        # Another request created it first.
        db.session.rollback()
        prefs = DashboardPreferences.query.filter_by(user_id=user_id).first()
    return prefs


def update_preferences(user_id, changes):
    """Apply a partial update. Raises ValueError for unknown or mistyped fields."""
    unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
    if unknown:
        raise ValueError(f"Unknown preference field(s): {', '.join(unknown)}")
    if "visible_widgets" in changes and not isinstance(changes["visible_widgets"], list):
        raise ValueError("visible_widgets must be a list")
    for field in ("layout", "widget_positions", "theme_settings"):
        if field in changes and not isinstance(changes[field], dict):
            raise ValueError(f"{field} must be an object")

    prefs = get_preferences(user_id)
    for field, value in changes.items():
        setattr(prefs, field, value)
    db.session.commit()
    return prefs


def toggle_widget(user_id, widget_id):
    """Show a hidden widget or hide a visible one."""
    prefs = get_preferences(user_id)
    visible = list(prefs.visible_widgets or [])
    if widget_id in visible:
        visible.remove(widget_id)
    else:
        visible.append(widget_id)
    prefs.visible_widgets = visible
    db.session.commit()
    return prefs


def move_widget(user_id, widget_id, position):
    if not isinstance(position, dict):
        raise ValueError("position must be an object")
    prefs = get_preferences(user_id)
    positions = dict(prefs.widget_positions or {})
    positions[widget_id] = position
    prefs.widget_positions = positions
    db.session.commit()
    return prefs
