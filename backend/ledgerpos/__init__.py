# backend/ledgerpos/__init__.py
import logging
import os

from flask import Flask, jsonify

from .config import Config
from .extensions import db, migrate

MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "migrations")


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # app.logger is the "ledgerpos" logger, parent of every service module logger
    app.logger.setLevel(logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper()))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db, directory=MIGRATIONS_DIR)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.ledger import ledger_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp
    from .routes.sync import sync_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(ledger_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(sync_bp)
    app.register_blueprint(reports_bp)

    from .errors import LedgerError, http_status

    @app.errorhandler(LedgerError)
    def handle_ledger_error(exc: LedgerError):
        return jsonify(exc.to_dict()), http_status(exc)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    # Ledger core components, one set per app
    from .core import EXTENSION_KEY, build_core
    with app.app_context():
        app.extensions[EXTENSION_KEY] = build_core(app, online_check=app.config.get("SYNC_ONLINE_CHECK"))

    return app


def start_sync_worker(app: Flask):
    """Start the background sync worker when SYNC_ENABLED is set; returns it (or None)."""
    from .core import get_core
    from .services.sync_service import SyncWorker

    core = get_core(app)
    if not core.sync.settings.enabled:
        app.logger.info("Background sync disabled (LEDGERPOS_SYNC_ENABLED is off)")
        return None
    if core.worker is None:
        core.worker = SyncWorker(app, core.sync)
    core.worker.start()
    return core.worker
