"""
Status Reconciler
Flask Application Factory.

Usage:
    from status_reconciler import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_migrate import Migrate
from sqlalchemy.exc import SQLAlchemyError

from status_reconciler.config import config
from status_reconciler.core.exceptions import NotFoundError, ValidationError
from status_reconciler.middleware.logging_config import configure_logging
from status_reconciler.middleware.timing import init_request_timing
from status_reconciler.models import db
from status_reconciler.utils.errors import E, api_error

logger = logging.getLogger(__name__)

migrate = Migrate()


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
    config_cls = config[config_name]
    # ProductionConfig validates DATABASE_URL in its constructor
    app.config.from_object(config_cls())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from status_reconciler.models import directory as _directory_models  # noqa: F401
    from status_reconciler.models import migration_log as _migration_log_models  # noqa: F401
    from status_reconciler.models import workflow as _workflow_models  # noqa: F401

    # Local SQLite databases are created on demand; everything else goes
    # through `flask db upgrade`.
    db_uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if db_uri.startswith("sqlite:///") and ":memory:" not in db_uri and not app.testing:
        os.makedirs(os.path.dirname(db_uri[len("sqlite:///"):]), exist_ok=True)
        with app.app_context():
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from status_reconciler.blueprints.migration_bp import migration_bp

    app.register_blueprint(migration_bp)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        try:
            db.session.execute(db.text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.error("Health check — database failed: %s", exc)
            return api_error(E.STORE_UNAVAILABLE, "Database unreachable")
        return {"status": "ok", "app": "Status Reconciler"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(NotFoundError)
    def _not_found_error(exc):
        return api_error(E.NOT_FOUND, str(exc))

    @app.errorhandler(ValidationError)
    def _validation_error(exc):
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details)

    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    return app
