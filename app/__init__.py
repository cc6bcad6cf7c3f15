import os
import logging

import click
from flask import Flask, jsonify, request
from flask_wtf.csrf import CSRFError
from werkzeug.exceptions import HTTPException

from app.config import config_by_name
from app.extensions import db, migrate, login_manager, csrf, limiter

logger = logging.getLogger(__name__)

# Blueprints whose POSTs never carry a browser session to forge.
CSRF_EXEMPT_BLUEPRINTS = ("webhooks",)
SAFE_METHODS = ("GET", "HEAD", "OPTIONS", "TRACE")


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from app import models  # noqa: F401

    # --- Store + realtime hub (one per process) ---
    from app.services.entity_store import EntityStore
    from app.services.realtime import RealtimeHub

    hub = RealtimeHub()
    app.extensions["realtime_hub"] = hub
    app.extensions["entity_store"] = EntityStore(hub)

    # --- Portal middleware ---
    from app.middleware.portal import init_portal_middleware
    init_portal_middleware(app)

    # --- Register blueprints ---
    from app.blueprints.auth import auth_bp
    from app.blueprints.crm import crm_bp
    from app.blueprints.dashboard import dashboard_bp
    from app.blueprints.portal import portal_bp
    from app.blueprints.billing import billing_bp
    from app.blueprints.webhooks import webhooks_bp
    from app.blueprints.realtime import realtime_bp
    from app.blueprints.health import health_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(crm_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(portal_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(realtime_bp)
    app.register_blueprint(health_bp)

    # Exempt webhooks from CSRF: raw body needed for Stripe signature verification
    csrf.exempt(webhooks_bp)

    # --- CSRF for cookie-session writes ---
    @app.before_request
    def protect_cookie_session_writes():
        """Bearer-token calls and cookieless requests have nothing to forge."""
        if not app.config.get("WTF_CSRF_ENABLED", True):
            return
        if request.method in SAFE_METHODS:
            return
        if request.blueprint in CSRF_EXEMPT_BLUEPRINTS:
            return
        if request.headers.get("Authorization"):
            return
        if app.config["SESSION_COOKIE_NAME"] not in request.cookies:
            return
        csrf.protect()

    # --- Error handlers ---
    @app.errorhandler(CSRFError)
    def csrf_error(e):
        return jsonify({"error": e.description}), 400

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({"error": e.description}), e.code

    @app.errorhandler(Exception)
    def unhandled_error(e):
        """Last line of defence: log it and answer with a JSON 500."""
        logger.error(f"Unhandled error on {request.method} {request.path}: {e}", exc_info=True)
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Control referrer information
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Restrict browser features
        response.headers["Permissions-Policy"] = (
            "camera=(), microphone=(), geolocation=(), payment=()"
        )
        # JSON API: nothing here should ever load sub-resources
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'; base-uri 'none'"
        )
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-admin")
    @click.option("--email", default="admin@crm.local", help="Admin email")
    @click.option("--password", default="admin123", help="Admin password")
    def seed_admin(email, password):
        """Create admin user + demo lead, customer, invoice and portal token.

        Usage:
            flask seed-admin
            flask seed-admin --email admin@example.com --password s3cret
        """
        from app.models.user import User
        from app.services.auth_service import hash_password
        from app.services.portal_service import issue_token, portal_url

        store = app.extensions["entity_store"]

        # --- 1. Admin user ---
        admin = User.query.filter_by(email=email).first()
        if admin:
            click.echo(f"Admin user already exists: {email}")
        else:
            admin = User(
                email=email,
                password_hash=hash_password(password),
                full_name="Admin",
                role="admin",
            )
            db.session.add(admin)
            db.session.commit()
            click.echo(f"Created admin user: {email}")

        # --- 2. Demo lead ---
        lead = store.insert("leads", {
            "first_name": "Ann",
            "last_name": "Lee",
            "email": "ann@example.com",
            "source": "referral",
            "status": "new",
            "estimated_value": 4500,
        }, admin.id)

        # --- 3. Demo customer + invoice ---
        customer = store.insert("customers", {
            "first_name": "Joe",
            "last_name": "Demo",
            "company_name": "Demo Roofing",
            "email": "joe@demoroofing.com",
        }, admin.id)
        for response in (lead, customer):
            if response.error:
                raise click.ClickException(response.error.message)

        invoice = store.insert("invoices", {
            "invoice_number": "INV-1",
            "title": "Roof repair",
            "customer_id": customer.data["id"],
            "total_amount": 100,
            "status": "sent",
        }, admin.id)
        if invoice.error:
            raise click.ClickException(invoice.error.message)

        # --- 4. Portal token ---
        token = issue_token(customer.data["id"], admin.id)

        click.echo("")
        click.echo("=" * 60)
        click.echo("Seed data created successfully!")
        click.echo("=" * 60)
        click.echo(f"  Admin:     {email} / {password}")
        click.echo(f"  Lead:      Ann Lee (id: {lead.data['id']})")
        click.echo(f"  Customer:  Demo Roofing (id: {customer.data['id']})")
        click.echo(f"  Invoice:   INV-1 (id: {invoice.data['id']})")
        click.echo(f"  Portal:    {portal_url(token.token)}")
        click.echo(f"  Expires:   {token.expires_at.isoformat()}")
        click.echo("=" * 60)

    @app.cli.command("purge-portal-tokens")
    def purge_portal_tokens():
        """Delete expired and revoked client portal tokens."""
        from app.services.portal_service import purge_tokens

        removed = purge_tokens()
        click.echo(f"Removed {removed} portal token(s).")
