# backend/posbridge/__init__.py
from flask import Flask

from .config import Config, _engine_options
from .extensions import db, migrate
from .logging_config import configure_logging


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)
        # Engine options follow the overridden database, not the env default
        if "SQLALCHEMY_DATABASE_URI" in config_overrides and "SQLALCHEMY_ENGINE_OPTIONS" not in config_overrides:
            app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _engine_options(app.config["SQLALCHEMY_DATABASE_URI"])

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.sync import sync_bp
    from .routes.webhooks import webhooks_bp
    from .routes.purchase_orders import purchase_orders_bp
    from .routes.changes import changes_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(sync_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(changes_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config.get("SCHEDULER_ENABLED") and not app.config.get("TESTING"):
        start_scheduler(app)

    return app


def start_scheduler(app: Flask):
    """Start the in-process scheduler once per app; run a single web worker when enabled."""
    from .config import validate_required
    from .services.scheduler_service import SyncScheduler

    existing = app.extensions.get("posbridge_scheduler")
    if existing is not None:
        return existing

    validate_required(app.config)
    scheduler = SyncScheduler(app)
    scheduler.start()
    app.extensions["posbridge_scheduler"] = scheduler
    return scheduler
