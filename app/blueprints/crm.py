"""CRM blueprint — /api/<collection>/*

JSON CRUD over the six entity collections (leads, customers, estimates,
invoices, jobs, tasks). Each request builds the entity hook for the
collection; the response carries the hook's notifications so the SPA can
show exactly one toast per mutation.

Routes:
- GET    /api/<collection>              — list the caller's rows, newest first
- POST   /api/<collection>              — create
- PATCH  /api/<collection>/<id>         — partial update
- DELETE /api/<collection>/<id>         — hard delete
- POST   /api/leads/<id>/convert        — lead -> customer
"""

import html
import logging

import bleach
from flask import Blueprint, abort, jsonify, request
from flask_login import current_user, login_required

from app.extensions import get_store
from app.services.entity_hooks import HOOKS, hook_for
from app.services.entity_store import StoreError
from app.services.notifier import Notifier

logger = logging.getLogger(__name__)

crm_bp = Blueprint("crm", __name__, url_prefix="/api")

ERROR_STATUS = {
    StoreError.INVALID: 400,
    StoreError.NOT_FOUND: 404,
    StoreError.TRANSIENT: 503,
    "unauthenticated": 401,
}


def _clean(value):
    """Strip HTML tags from free-text input, keeping the text itself.

    Rows are stored as plain text and escaped where they are rendered.
    """
    if isinstance(value, str):
        return html.unescape(bleach.clean(value, tags=[], strip=True)).strip()
    return value


def _payload():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description="Request body must be a JSON object")
    return {key: _clean(value) for key, value in data.items()}


def _hook(collection):
    if collection not in HOOKS:
        abort(404)
    return hook_for(collection, get_store(), current_user.id, Notifier())


def _respond(hook, body, status=200):
    body["notifications"] = hook.notifier.drain()
    return jsonify(body), status


def _fail(hook):
    status = ERROR_STATUS.get(hook.error_code, 400)
    last = hook.notifier.last
    return _respond(hook, {"error": last["message"] if last else hook.error}, status)


# ──────────────────────────────────────────────
# /api/<collection>
# ──────────────────────────────────────────────

@crm_bp.route("/<collection>", methods=["GET"])
@login_required
def list_rows(collection):
    hook = _hook(collection)
    if not hook.fetch_all():
        return _fail(hook)
    return _respond(hook, {"data": hook.items})


@crm_bp.route("/<collection>", methods=["POST"])
@login_required
def create_row(collection):
    hook = _hook(collection)
    row = hook.create(_payload())
    if row is None:
        return _fail(hook)
    return _respond(hook, {"data": row}, 201)


# ──────────────────────────────────────────────
# /api/<collection>/<id>
# ──────────────────────────────────────────────

@crm_bp.route("/<collection>/<row_id>", methods=["PATCH"])
@login_required
def update_row(collection, row_id):
    hook = _hook(collection)
    if not hook.update(row_id, _payload()):
        return _fail(hook)
    return _respond(hook, {"data": hook.get(row_id)})


@crm_bp.route("/<collection>/<row_id>", methods=["DELETE"])
@login_required
def delete_row(collection, row_id):
    hook = _hook(collection)
    if not hook.delete(row_id):
        return _fail(hook)
    return _respond(hook, {"deleted": row_id})


# ──────────────────────────────────────────────
# POST /api/leads/<id>/convert
# ──────────────────────────────────────────────

@crm_bp.route("/leads/<lead_id>/convert", methods=["POST"])
@login_required
def convert_lead(lead_id):
    hook = _hook("leads")
    customer = hook.convert_to_customer(lead_id)
    if customer is None:
        return _fail(hook)
    return _respond(hook, {"data": customer, "lead": hook.get(lead_id)}, 201)
