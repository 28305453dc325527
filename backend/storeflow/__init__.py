# backend/storeflow/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.sales import sales_bp
    from .routes.payments import payments_bp
    from .routes.credits import credits_bp
    from .routes.refunds import refunds_bp
    from .routes.inventory import inventory_bp
    from .routes.products import products_bp
    from .routes.customers import customers_bp
    from .routes.cash_sessions import cash_sessions_bp

    app.register_blueprint(sales_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(credits_bp)
    app.register_blueprint(refunds_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(cash_sessions_bp)

    # Observational audit worker
    from .services.audit_service import init_audit
    init_audit(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
