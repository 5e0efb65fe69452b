# backend/repairdesk/__init__.py
from flask import Flask, request
from sqlalchemy.exc import SQLAlchemyError

from .config import Config
from .extensions import db, migrate, reference_cache



def create_app(test_config=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    reference_cache.init_app(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.customers import customers_bp
    from .routes.inventory import inventory_bp
    from .routes.repairs import repairs_bp
    from .routes.documents import documents_bp  # Quotes and invoices
    from .routes.settings import settings_bp  # Currencies and tax rates
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(repairs_bp)
    app.register_blueprint(documents_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(reports_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, X-Organization-Id"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config.get("BACKFILL_ON_STARTUP"):
        _run_startup_backfill(app)

    return app


def _run_startup_backfill(app: Flask) -> None:
    """Provision missing currencies / tax rates; never blocks startup."""
    from .services.backfill_service import backfill_all_organizations

    with app.app_context():
        try:
            report = backfill_all_organizations()
        except SQLAlchemyError as exc:
            # Schema not migrated yet (fresh checkout, first `flask db upgrade`)
            db.session.rollback()
            app.logger.warning("Startup backfill skipped: %s", exc)
            return
        if not report.ok:
            app.logger.error("Startup backfill finished with failures: %s", report.to_dict())
