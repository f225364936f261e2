"""
Service Desk
Flask Application Factory.

Usage:
    from servicedesk import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, abort, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_sock import Sock
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from servicedesk.auth import init_auth
from servicedesk.config import config
from servicedesk.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDenied,
    TransitionError,
    ValidationError,
)
from servicedesk.middleware.logging_config import configure_logging
from servicedesk.middleware.rate_limiter import init_rate_limits
from servicedesk.middleware.security_headers import init_security_headers
from servicedesk.middleware.timing import init_request_timing
from servicedesk.models import db
from servicedesk.services.realtime import init_realtime
from servicedesk.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
sock = Sock()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # limits are applied per endpoint and blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)

# Multipart uploads are the only mutating API calls without a JSON body
_NON_JSON_PATHS = ("/api/upload",)


def _register_error_handlers(app):
    """Map service exceptions and HTTP errors to JSON responses.

    Every service-error handler rolls the session back: a failed request must
    not leave pending changes for the next one on the same session.
    """

    @app.errorhandler(TransitionError)
    def _transition_error(e):
        db.session.rollback()
        return api_error(E.INVALID_TRANSITION, str(e), details=e.details)

    @app.errorhandler(ValidationError)
    def _validation_error(e):
        db.session.rollback()
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details or None)

    @app.errorhandler(NotFoundError)
    def _not_found_error(e):
        db.session.rollback()
        return api_error(E.NOT_FOUND, str(e))

    @app.errorhandler(ConflictError)
    def _conflict_error(e):
        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(e), details={e.field: "duplicate"})

    @app.errorhandler(PermissionDenied)
    def _permission_denied(e):
        db.session.rollback()
        logger.warning("Service denied member %s: requires any of %s", e.member_id, e.required)
        return jsonify({
            "error": "Permission denied",
            "code": E.FORBIDDEN,
            "required_any": e.required,
        }), 403

    @app.errorhandler(400)
    def bad_request(e):
        return {"error": getattr(e, "description", None) or "Bad request"}, 400

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return {"error": e.description}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        db.session.rollback()
        logger.error("500 error on %s %s: %s", request.method, request.path, e, exc_info=True)
        return {"error": "Internal server error"}, 500


def _register_cli(app):

    @app.cli.command("create-admin")
    @click.option("--email", default=None, help="Admin email (defaults to DEFAULT_ADMIN_EMAIL).")
    @click.option("--password", default=None, help="Admin password (defaults to DEFAULT_ADMIN_PASSWORD).")
    @click.option("--name", default="Administrator", show_default=True)
    def create_admin_cmd(email, password, name):
        """Create an Admin team member."""
        from servicedesk.models.team import ROLE_ADMIN
        from servicedesk.services import team_service

        member = team_service.create_member({
            "name": name,
            "email": email or app.config["DEFAULT_ADMIN_EMAIL"],
            "password": password or app.config["DEFAULT_ADMIN_PASSWORD"],
            "role": ROLE_ADMIN,
        })
        db.session.commit()
        click.echo(f"Created admin {member.email} (id={member.id})")


def _bootstrap_default_admin(app):
    from servicedesk.services import team_service

    try:
        admin = team_service.ensure_default_admin(
            app.config["DEFAULT_ADMIN_EMAIL"], app.config["DEFAULT_ADMIN_PASSWORD"],
        )
        if admin is not None:
            db.session.commit()
            app.logger.warning(
                "Default admin %s created; change its password after first login", admin.email,
            )
    except Exception as e:
        db.session.rollback()
        app.logger.warning("Default admin bootstrap failed: %s", e)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    sock.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()],
             supports_credentials=True)
    else:
        CORS(app)

    # ── Member resolution (Bearer token, then session cookie) ────────────
    init_auth(app)

    # ── Security headers (CSP, HSTS, X-Frame-Options, etc.) ─────────────
    init_security_headers(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Realtime frames released after successful responses ─────────────
    init_realtime(app)

    # ── Request guard (Content-Type) ─────────────────────────────────────
    @app.before_request
    def _guard_request():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            if request.path.startswith(_NON_JSON_PATHS):
                return None
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")
        return None

    # ── Import all models so Alembic can detect them ─────────────────────
    from servicedesk.models import audit as _audit_models                  # noqa: F401
    from servicedesk.models import complaint as _complaint_models          # noqa: F401
    from servicedesk.models import notification as _notification_models    # noqa: F401
    from servicedesk.models import service_request as _request_models      # noqa: F401
    from servicedesk.models import team as _team_models                    # noqa: F401
    from servicedesk.models import technician as _technician_models        # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ──────────────────────────
    if not app.testing:
        with app.app_context():
            try:
                db.create_all()
                app.logger.info("db.create_all() completed successfully")
            except Exception as e:
                app.logger.warning("db.create_all() failed: %s", e)
            else:
                _bootstrap_default_admin(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from servicedesk.blueprints.audit_bp import audit_bp
    from servicedesk.blueprints.auth_bp import auth_bp
    from servicedesk.blueprints.complaint_bp import complaint_bp
    from servicedesk.blueprints.health_bp import health_bp
    from servicedesk.blueprints.notification_bp import notification_bp
    from servicedesk.blueprints.report_bp import report_bp
    from servicedesk.blueprints.request_bp import request_bp
    from servicedesk.blueprints.team_bp import team_bp
    from servicedesk.blueprints.technician_bp import technician_bp
    from servicedesk.blueprints.upload_bp import upload_bp
    from servicedesk.blueprints.webhook_bp import webhook_bp
    from servicedesk.blueprints.ws_bp import ws_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(complaint_bp)
    app.register_blueprint(team_bp)
    app.register_blueprint(technician_bp)
    app.register_blueprint(request_bp)
    app.register_blueprint(report_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(upload_bp)
    app.register_blueprint(webhook_bp)
    app.register_blueprint(ws_bp)
    app.register_blueprint(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    _register_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    _register_cli(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
