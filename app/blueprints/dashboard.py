"""Dashboard blueprint — /api/dashboard, /api/preferences, /api/activity

Routes:
- GET   /api/dashboard/stats                             — counts and revenue
- GET   /api/preferences                                 — lazily created defaults
- PATCH /api/preferences                                 — partial update
- POST  /api/preferences/widgets/<widget_id>/toggle      — show/hide a widget
- PUT   /api/preferences/widgets/<widget_id>/position    — move a widget
- GET   /api/activity?limit=&entity_type=                — recent activity
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from app.services import dashboard_service, preferences_service
from app.services.activity_service import recent_activity

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api")


@dashboard_bp.route("/dashboard/stats")
@login_required
def stats():
    return jsonify(dashboard_service.get_stats(current_user.id))


# ──────────────────────────────────────────────
# Preferences
# ──────────────────────────────────────────────

@dashboard_bp.route("/preferences", methods=["GET"])
@login_required
def get_preferences():
    return jsonify(preferences_service.get_preferences(current_user.id).to_dict())


@dashboard_bp.route("/preferences", methods=["PATCH"])
@login_required
def update_preferences():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400
    try:
        prefs = preferences_service.update_preferences(current_user.id, data)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(prefs.to_dict())


@dashboard_bp.route("/preferences/widgets/<widget_id>/toggle", methods=["POST"])
@login_required
def toggle_widget(widget_id):
    prefs = preferences_service.toggle_widget(current_user.id, widget_id)
    return jsonify(prefs.to_dict())


@dashboard_bp.route("/preferences/widgets/<widget_id>/position", methods=["PUT"])
@login_required
def move_widget(widget_id):
    data = request.get_json(silent=True)
    try:
        prefs = preferences_service.move_widget(current_user.id, widget_id, data)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(prefs.to_dict())


# ──────────────────────────────────────────────
# Activity
# ──────────────────────────────────────────────

@dashboard_bp.route("/activity")
@login_required
def activity():
    limit = min(request.args.get("limit", 20, type=int), 100)
    rows = recent_activity(
        current_user.id, limit=limit, entity_type=request.args.get("entity_type")
    )
    return jsonify({"data": rows})
