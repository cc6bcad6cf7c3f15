"""
Custom route decorators for access control.

- portal_customer_required: a valid client portal token is in the session
  (g.portal_customer_id is set by the portal middleware).

Staff routes use flask_login.login_required directly; it accepts either
the session cookie or a bearer token.
"""

from functools import wraps

from flask import abort, g


def portal_customer_required(f):
    """Require a validated client portal session."""

    @wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "portal_customer_id", None) is None:
            abort(401, description=getattr(g, "portal_error", None) or "Portal access required")
        return f(*args, **kwargs)

    return decorated
