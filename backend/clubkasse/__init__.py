# backend/clubkasse/__init__.py
import os

from flask import Flask, request

from .config import Config
from .extensions import db, migrate

MIGRATIONS_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "migrations")


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        # Must land before db.init_app: Flask-SQLAlchemy builds engines there
        app.config.update(test_config)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db, directory=MIGRATIONS_DIR)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.reports import reports_bp
    from .routes.accounts import accounts_bp
    from .routes.products import products_bp
    from .routes.transactions import transactions_bp
    from .routes.stock_movements import stock_movements_bp
    from .routes.billings import billings_bp
    from .routes.clothing import clothing_items_bp, clothing_orders_bp, clothing_billings_bp
    from .routes.vouchers import vouchers_bp
    from .routes.settings import settings_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(accounts_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(stock_movements_bp)
    app.register_blueprint(billings_bp)
    app.register_blueprint(clothing_items_bp)
    app.register_blueprint(clothing_orders_bp)
    app.register_blueprint(clothing_billings_bp)
    app.register_blueprint(vouchers_bp)
    app.register_blueprint(settings_bp)

    allowed_origins = set(app.config.get("CORS_ORIGINS") or [])

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and ("*" in allowed_origins or origin in allowed_origins):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
