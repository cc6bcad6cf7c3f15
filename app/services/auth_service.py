"""Auth service — staff login and bearer tokens.

The SPA logs in once (POST /auth/login) and gets both a Flask-Login session
cookie and a short-lived HS256 JWT. API calls may use either; the JWT is
read by the Flask-Login request loader in extensions.py.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app
from werkzeug.security import check_password_hash, generate_password_hash

from app.extensions import db
from app.models.user import User

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


def hash_password(password):
    return generate_password_hash(password)


def authenticate(email, password):
    """Check credentials.

    Returns:
        tuple: (user, error_message)
    """
    if not email or not password:
        return None, "Email and password are required."

    user = User.query.filter_by(email=email.lower().strip()).first()
    if user is None or not check_password_hash(user.password_hash, password):
        return None, "Invalid email or password."

    if not user.is_active:
        return None, "This account has been deactivated."

    return user, None


def issue_access_token(user):
    now = datetime.now(timezone.utc)
    ttl = current_app.config["ACCESS_TOKEN_TTL_SECONDS"]
    payload = {
        "sub": user.id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl)).timestamp()),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, current_app.config["SECRET_KEY"], algorithm=JWT_ALGORITHM)


def decode_access_token(token):
    """Decode a bearer token. Raises jwt.InvalidTokenError on any problem."""
    return jwt.decode(
        token, current_app.config["SECRET_KEY"], algorithms=[JWT_ALGORITHM]
    )


def user_from_bearer(token):
    """Resolve a bearer token to an active User, or None."""
    if not token:
        return None
    try:
        payload = decode_access_token(token)
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired bearer token")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected invalid bearer token: {e}")
        return None

    user = db.session.get(User, payload.get("sub"))
    if user is None or not user.is_active:
        return None
    return user
