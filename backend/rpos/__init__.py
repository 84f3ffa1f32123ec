# backend/rpos/__init__.py
from __future__ import annotations

import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)

    # Overrides must land before the engine is created in db.init_app
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.orders import orders_bp
    from .routes.payments import payments_bp
    from .routes.discounts import discounts_bp
    from .routes.receipt_series import receipt_series_bp
    from .routes.cash_register import cash_register_bp

    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(discounts_bp)
    app.register_blueprint(receipt_series_bp)
    app.register_blueprint(cash_register_bp)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
