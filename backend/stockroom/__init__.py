# backend/stockroom/__init__.py
from __future__ import annotations

import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # app.logger is the "stockroom" logger; service module loggers are its children
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO
    app.logger.setLevel(level)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp, units_bp
    from .routes.inventory import inventory_bp
    from .routes.purchases import purchases_bp
    from .routes.sales import sales_bp
    from .routes.returns import returns_bp
    from .routes.stock_takings import stock_takings_bp
    from .routes.storage_locations import storage_locations_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(units_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(returns_bp)
    app.register_blueprint(stock_takings_bp)
    app.register_blueprint(storage_locations_bp)
    app.register_blueprint(reports_bp)

    from .decorators import failure

    @app.errorhandler(404)
    def not_found(_e):
        return failure("Resource not found", "NOT_FOUND", 404)

    @app.errorhandler(405)
    def method_not_allowed(_e):
        return failure("Method not allowed", "VALIDATION_ERROR", 405)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
