"""Auth blueprint — /auth/*

Staff login for the SPA. Login sets the Flask-Login session cookie and also
returns a bearer token for API calls made outside the browser session.

Routes:
- POST /auth/login   — email + password -> session + bearer token
- POST /auth/logout  — end the session
- GET  /auth/me      — current user + CSRF token for cookie-session writes
"""

import logging

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from app.extensions import limiter
from app.services import auth_service

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# ──────────────────────────────────────────────
# POST /auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    data = request.get_json(silent=True) or {}

    user, error = auth_service.authenticate(data.get("email"), data.get("password"))
    if error:
        logger.info(f"Failed login for {data.get('email')!r}")
        return jsonify({"error": error}), 401

    login_user(user, remember=bool(data.get("remember")))
    logger.info(f"User {user.id} logged in")

    return jsonify({
        "user": user.to_dict(),
        "access_token": auth_service.issue_access_token(user),
        "token_type": "Bearer",
        "expires_in": current_app.config["ACCESS_TOKEN_TTL_SECONDS"],
    })


# ──────────────────────────────────────────────
# POST /auth/logout
# ──────────────────────────────────────────────

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"ok": True})


# ──────────────────────────────────────────────
# GET /auth/me
# ──────────────────────────────────────────────

@auth_bp.route("/me")
@login_required
def me():
    return jsonify({"user": current_user.to_dict(), "csrf_token": generate_csrf()})
