"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
"""

from flask import current_app, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit, applied per-route
    storage_uri="memory://",
)


@login_manager.user_loader
def load_user(user_id):
    """Load user by ID from session. Imports lazily to avoid circular deps."""
    from app.models.user import User

    return db.session.get(User, user_id)


@login_manager.request_loader
def load_user_from_request(request):
    """Load user from an `Authorization: Bearer <jwt>` header."""
    from app.services.auth_service import user_from_bearer

    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return None
    return user_from_bearer(header[len("Bearer "):].strip())


@login_manager.unauthorized_handler
def unauthorized():
    """JSON 401 instead of a redirect; every client of this app is an API client."""
    return jsonify({"error": "Authentication required"}), 401


def get_store():
    """The EntityStore built by create_app()."""
    return current_app.extensions["entity_store"]


def get_hub():
    """The RealtimeHub built by create_app()."""
    return current_app.extensions["realtime_hub"]
