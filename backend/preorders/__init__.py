# backend/preorders/__init__.py
from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate
from .errors import LedgerError
from . import notifications


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.customers import customers_bp
    from .routes.flights import flights_bp
    from .routes.preorders import preorders_bp
    from .routes.payments import payments_bp
    from .routes.reminders import reminders_bp
    from .routes.exports import exports_bp
    from .routes.transactions import transactions_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(flights_bp)
    app.register_blueprint(preorders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(reminders_bp)
    app.register_blueprint(exports_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(reports_bp)

    @app.errorhandler(LedgerError)
    def handle_ledger_error(exc: LedgerError):
        if exc.status_code >= 500:
            app.logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.path, exc.message)
        notifications.notify(notifications.LEVEL_ERROR, exc.message)
        body = exc.to_dict()
        body["notifications"] = notifications.drain()
        return jsonify(body), exc.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        db.session.rollback()
        notifications.notify(notifications.LEVEL_ERROR, "Internal server error")
        body = {"error": "Internal server error", "type": "InternalError"}
        body["notifications"] = notifications.drain()
        return jsonify(body), 500

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "X-User-Id, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
