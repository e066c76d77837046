# backend/retail_api/__init__.py
import logging

from flask import Flask, request

from .cache import EXTENSION_KEY, ResponseCache
from .config import Config
from .errors import register_error_handlers
from .extensions import db, migrate


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    if not logging.getLogger().handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.logger.setLevel(level)
    logging.getLogger(__name__).setLevel(level)


def create_app(config_overrides: dict | None = None, cache: ResponseCache | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    _configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    app.extensions[EXTENSION_KEY] = cache or ResponseCache(default_ttl=app.config["CACHE_DEFAULT_TTL"])

    register_error_handlers(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.stores import stores_bp
    from .routes.products import products_bp
    from .routes.suppliers import suppliers_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp
    from .routes.credits import credits_bp
    from .routes.transfers import transfers_bp
    from .routes.purchase_orders import purchase_orders_bp
    from .routes.returns import returns_bp
    from .routes.cash_register import cash_register_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(stores_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(suppliers_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(credits_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(returns_bp)
    app.register_blueprint(cash_register_bp)
    app.register_blueprint(reports_bp)

    allowed_origins = {
        origin.strip() for origin in app.config.get("CORS_ORIGINS", "").split(",") if origin.strip()
    }

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
