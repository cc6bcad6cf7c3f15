"""Portal blueprint — client portal and its token management.

Staff side (login required):
- POST   /api/customers/<id>/portal-token  — issue a token (optionally email it)
- DELETE /api/portal-tokens/<token>         — revoke a token

Client side (portal token):
- GET  /client/login?token=<token>  — validate, start a portal session, return the bundle
- GET  /client/dashboard            — the bundle for the session's customer
- POST /client/logout               — end the portal session
"""

import logging

from flask import Blueprint, g, jsonify, request, session
from flask_login import current_user, login_required

from app.decorators import portal_customer_required
from app.extensions import limiter
from app.middleware.portal import SESSION_KEY
from app.services import portal_service
from app.services.email_service import send_email

logger = logging.getLogger(__name__)

portal_bp = Blueprint("portal", __name__)


def _bundle_response(customer_id):
    try:
        bundle = portal_service.load_bundle(customer_id)
    except portal_service.PortalDataError as e:
        return jsonify({"error": str(e)}), 503
    return jsonify(bundle)


# ──────────────────────────────────────────────
# POST /api/customers/<id>/portal-token
# ──────────────────────────────────────────────

@portal_bp.route("/api/customers/<customer_id>/portal-token", methods=["POST"])
@login_required
def issue_token(customer_id):
    data = request.get_json(silent=True) or {}

    try:
        row = portal_service.issue_token(
            customer_id, current_user.id, expires_hours=data.get("expires_hours")
        )
    except LookupError as e:
        return jsonify({"error": str(e)}), 404
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400

    url = portal_service.portal_url(row.token)
    sent = False
    if data.get("send"):
        customer = row.customer
        if customer.email:
            try:
                send_email(
                    to=customer.email,
                    subject="Your client portal access",
                    template="emails/portal_link.html",
                    context={
                        "customer_name": customer.first_name,
                        "portal_url": url,
                        "expires_at": row.expires_at,
                    },
                )
                sent = True
            except Exception as e:
                logger.error(f"Failed to email portal link to customer {customer.id}: {e}")

    return jsonify({
        "token": row.token,
        "url": url,
        "expires_at": row.expires_at.isoformat(),
        "sent": sent,
    }), 201


# ──────────────────────────────────────────────
# DELETE /api/portal-tokens/<token>
# ──────────────────────────────────────────────

@portal_bp.route("/api/portal-tokens/<token>", methods=["DELETE"])
@login_required
def revoke_token(token):
    if not portal_service.revoke_token(token, current_user.id):
        return jsonify({"error": "Token not found"}), 404
    return jsonify({"revoked": True})


# ──────────────────────────────────────────────
# GET /client/login?token=<token>
# ──────────────────────────────────────────────

@portal_bp.route("/client/login")
@limiter.limit("20 per minute")
def login():
    token = request.args.get("token")

    customer_id, error = portal_service.validate_token(token)
    if error:
        session.pop(SESSION_KEY, None)
        return jsonify({"error": error}), 401

    session[SESSION_KEY] = token
    return _bundle_response(customer_id)


# ──────────────────────────────────────────────
# GET /client/dashboard
# ──────────────────────────────────────────────

@portal_bp.route("/client/dashboard")
@portal_customer_required
def dashboard():
    return _bundle_response(g.portal_customer_id)


# ──────────────────────────────────────────────
# POST /client/logout
# ──────────────────────────────────────────────

@portal_bp.route("/client/logout", methods=["POST"])
def logout():
    session.pop(SESSION_KEY, None)
    return jsonify({"ok": True})
