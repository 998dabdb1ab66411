"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - `flask db migrate` and the maintenance CLI commands to run
             without starting the server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  3. Register all route blueprints under /api/v1
  4. Register global error handlers (AppError → JSON, Exception → 500)
  5. Register a custom JSON provider to serialise Decimal as string
     (prices are transmitted as strings, never JS numbers)
  6. Register CLI commands (sweep-expired-splits, grant-admin)

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is populated before Alembic inspects it. They are not used
  directly here — the import side-effect is sufficient.
"""

from __future__ import annotations

import logging
import os
import traceback
from decimal import Decimal

import click
from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from flask.logging import default_handler
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from foodhunt.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────
# Flask's default JSON encoder does not handle Decimal.

class DecimalJSONProvider(DefaultJSONProvider):
    """
    Extends Flask's default JSON provider to serialise Decimal as str.

    Example: Decimal("10.50") → "10.50" (not 10.5 or 10.500000001)
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str | None = None) -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to FLASK_ENV, then "development".

    Returns:
        A fully configured Flask app ready to serve requests.
    """
    config_name = config_name or os.getenv("FLASK_ENV", "development")

    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from foodhunt.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Import all models so that SQLAlchemy's MetaData is populated.
    with app.app_context():
        from foodhunt.app.models import (  # noqa: F401
            conversation,
            meal_split,
            split_request,
            user,
        )

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)
    _register_cli(app)

    return app


def _configure_logging(app: Flask) -> None:
    """
    app.logger carries request-level failures; services and jobs log
    through module loggers under the "foodhunt" namespace, which share
    Flask's default handler.
    """
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    app.logger.setLevel(level)

    package_logger = logging.getLogger("foodhunt")
    package_logger.setLevel(level)
    if default_handler not in package_logger.handlers:
        package_logger.addHandler(default_handler)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    Route files only specify the path relative to their resource
    (e.g. "" and "/<int:split_id>").
    """
    from foodhunt.app.routes.auth import auth_bp
    from foodhunt.app.routes.conversations import conversations_bp
    from foodhunt.app.routes.split_requests import split_requests_bp
    from foodhunt.app.routes.splits import splits_bp
    from foodhunt.app.routes.users import users_bp

    app.register_blueprint(auth_bp,           url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp,          url_prefix="/api/v1/users")
    app.register_blueprint(splits_bp,         url_prefix="/api/v1/splits")
    app.register_blueprint(split_requests_bp, url_prefix="/api/v1/split-requests")
    app.register_blueprint(conversations_bp,  url_prefix="/api/v1/conversations")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with the correct HTTP status
      ValidationError → marshmallow schema errors formatted as MISSING_FIELD /
                        INVALID_FIELD responses (400)
      HTTPException   → passed through (404 for unknown URLs, 405, ...)
      Exception       → generic INTERNAL_ERROR (500); full traceback logged

    Stack traces never leave the server.
    """
    from foodhunt.app.errors import AppError, ErrorCode

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the standard error envelope.
        Routes never catch AppError.
        """
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Converts marshmallow ValidationError into the standard error envelope.

        Only the FIRST field error is returned. A message that is itself a
        registered ErrorCode (e.g. INVALID_PRICE_PRECISION) becomes the code,
        with a readable message looked up in _code_to_message().
        """
        messages = error.messages  # e.g. {"total_price": ["INVALID_PRICE_PRECISION"]}

        field = None
        raw_message = "Invalid input."
        code = ErrorCode.INVALID_FIELD

        if isinstance(messages, dict):
            for field_name, field_errors in messages.items():
                field = field_name if field_name != "_schema" else None

                if isinstance(field_errors, list):
                    raw_message = field_errors[0] if field_errors else "Invalid value."
                else:
                    raw_message = str(field_errors)
                code = _classify(raw_message, ErrorCode)
                break
        elif isinstance(messages, list):
            raw_message = messages[0] if messages else "Invalid input."
            code = _classify(raw_message, ErrorCode)

        response_body = {
            "error": {
                "code": code,
                "message": raw_message if raw_message not in vars(ErrorCode).values()
                else _code_to_message(code),
            }
        }
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.
        The full traceback is written to app.logger.
        """
        if isinstance(error, HTTPException):
            return error

        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _classify(raw_message, error_codes) -> str:
    if raw_message in vars(error_codes).values():
        return raw_message
    if str(raw_message).startswith("Missing data for required field"):
        return error_codes.MISSING_FIELD
    return error_codes.INVALID_FIELD


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so a frontend served from another
    local port can call the API with Authorization headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _register_cli(app: Flask) -> None:
    """Maintenance commands: `flask sweep-expired-splits`, `flask grant-admin EMAIL`."""
    from foodhunt.app.extensions import db

    @app.cli.command("sweep-expired-splits")
    def sweep_expired_splits_command():
        """Close every open split whose time has passed."""
        from foodhunt.app.jobs.expiry_sweep import sweep_expired_splits

        summary = sweep_expired_splits(db.session)
        db.session.commit()
        click.echo(f"Expired {summary['expired_count']} split(s).")

    @app.cli.command("grant-admin")
    @click.argument("email")
    def grant_admin_command(email: str):
        """Promote the user registered with EMAIL to admin."""
        from foodhunt.app.errors import AppError
        from foodhunt.app.services import auth_service

        try:
            user = auth_service.grant_admin(email, db.session)
        except AppError as exc:
            db.session.rollback()
            raise click.ClickException(exc.message)
        db.session.commit()
        click.echo(f"User {user.id} ({user.email}) is now an admin.")


def _code_to_message(code: str) -> str:
    """
    Returns a human-readable default message for a known error code.
    Used when a ValidationError message IS the error code constant itself.
    """
    _messages = {
        "INVALID_PRICE_PRECISION": "Total price must have at most 2 decimal places.",
    }
    return _messages.get(code, "Invalid input.")
