"""Portal middleware — resolves the client portal session to a customer.

Runs before every request to /client/* routes. The portal token stored in
the Flask session at login is re-validated on each request, so a revoked
or expired token loses access immediately.

Sets g.portal_customer_id (or None) and g.portal_error.
"""

from flask import g, request, session

from app.services import portal_service

SESSION_KEY = "portal_token"


def resolve_portal_customer():
    """Before-request hook for portal routes.

    Skips everything outside /client/ and the login route itself, which
    validates the token from the query string instead.
    """
    g.portal_customer_id = None
    g.portal_error = None

    if not request.path.startswith("/client/"):
        return
    if request.endpoint == "portal.login":
        return

    token = session.get(SESSION_KEY)
    if not token:
        g.portal_error = "Portal access required"
        return

    customer_id, error = portal_service.validate_token(token)
    if error:
        session.pop(SESSION_KEY, None)
        g.portal_error = error
        return

    g.portal_customer_id = customer_id


def init_portal_middleware(app):
    """Register the portal resolver as a before_request hook."""
    app.before_request(resolve_portal_customer)
