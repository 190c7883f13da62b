# backend/regcore/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before db.init_app binds the engine
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Default collaborators; tests and deployments may replace them
    from .services.collaborators import (
        PAYMENT_PROCESSOR_KEY,
        NOTIFICATION_SENDER_KEY,
        ManualPaymentProcessor,
        LoggingNotificationSender,
    )
    app.extensions.setdefault(PAYMENT_PROCESSOR_KEY, ManualPaymentProcessor())
    app.extensions.setdefault(NOTIFICATION_SENDER_KEY, LoggingNotificationSender())

    # Register blueprints
    from .routes.system import system_bp
    from .routes.orders import orders_bp
    from .routes.sponsorships import sponsorships_bp
    from .routes.teams import teams_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(sponsorships_bp)
    app.register_blueprint(teams_bp)
    app.register_blueprint(reports_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
