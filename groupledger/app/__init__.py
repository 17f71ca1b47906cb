"""
app/__init__.py — Flask application factory.

create_app(config_name) creates and returns a configured Flask app. Nothing
is initialised at import time, so tests can build isolated app instances
and `alembic` can load the models without starting a server.

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Set the `groupledger` logger level from LOG_LEVEL
  3. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  4. Register the ledger blueprints under /api/v1/groups
  5. Register global error handlers (AppError → JSON, Exception → 500)

Monetary amounts are int minor units and serialise as JSON integers; no
custom JSON provider is needed.
"""

from __future__ import annotations

import logging
from typing import Callable

from flask import Flask, jsonify, request
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from groupledger.config import config_by_name, validate_production_config


# ── Application factory ────────────────────────────────────────────────────

def create_app(
        config_name: str = "development",
        notifier: Callable | None = None,
) -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
        notifier:    Optional callable receiving a SettlementEvent after each
                     settlement is proposed, confirmed or rejected.
    """
    app = Flask(__name__)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    logging.getLogger("groupledger").setLevel(
        str(app.config.get("LOG_LEVEL", "INFO")).upper()
    )

    # ── Extensions ─────────────────────────────────────────────────────────
    from groupledger.app.extensions import db, ma
    from groupledger.app.routes.ledger_context import NOTIFIER_EXTENSION

    db.init_app(app)
    ma.init_app(app)
    app.extensions[NOTIFIER_EXTENSION] = notifier

    # ── Model registration ─────────────────────────────────────────────────
    # Populates SQLAlchemy's MetaData for create_all() and Alembic.
    with app.app_context():
        from groupledger.app.models import (  # noqa: F401
            expense,
            group,
            membership,
            settlement,
            split,
        )

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    return app


def _register_blueprints(app: Flask) -> None:
    """Both blueprints own paths below /groups/<group_id>."""
    from groupledger.app.routes.balances import balances_bp
    from groupledger.app.routes.settlements import settlements_bp

    app.register_blueprint(balances_bp,    url_prefix="/api/v1/groups")
    app.register_blueprint(settlements_bp, url_prefix="/api/v1/groups")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

      AppError        → structured JSON error envelope with its HTTP status
      ValidationError → marshmallow errors as MISSING_FIELD / INVALID_FIELD
                        or the error code named in the message (400)
      Exception       → generic INTERNAL_ERROR (500); traceback logged only

    Stack traces never leave the server.
    """
    from groupledger.app.errors import AppError, ErrorCode

    known_codes = {
        value for name, value in vars(ErrorCode).items()
        if not name.startswith("_")
    }

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        if error.http_status >= 500:
            app.logger.error("%r context=%s", error, error.context)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Returns the FIRST field error only. A message that is itself a
        registered error code (e.g. SPLIT_SUM_MISMATCH) becomes the code.
        """
        field, raw_message = _first_validation_message(error.messages)

        if raw_message in known_codes:
            code = raw_message
            message = _code_to_message(code)
        elif str(raw_message).startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
            message = raw_message
        else:
            code = ErrorCode.INVALID_FIELD
            message = raw_message

        body = {"code": code, "message": message, "retryable": False}
        if field is not None:
            body["field"] = field
        return jsonify({"error": body}), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        if isinstance(error, HTTPException):
            return jsonify({
                "error": {
                    "code": ErrorCode.INTERNAL_ERROR if error.code >= 500 else ErrorCode.INVALID_FIELD,
                    "message": error.description,
                    "retryable": False,
                }
            }), error.code
        app.logger.exception("Unhandled exception: %s", error)
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
                "retryable": False,
            }
        }), 500


def _first_validation_message(messages) -> tuple[str | None, str]:
    """Walks marshmallow's nested messages down to the first string."""
    field = None
    current = messages
    while True:
        if isinstance(current, dict) and current:
            key, current = next(iter(current.items()))
            if field is None and isinstance(key, str) and key != "_schema":
                field = key
        elif isinstance(current, list) and current:
            current = current[0]
        else:
            break
    if isinstance(current, str):
        return field, current
    return field, "Invalid input."


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for origins listed in CORS_ALLOWED_ORIGINS. Any origin
    is echoed back while DEBUG or TESTING is on.
    """
    allowed = set(app.config.get("CORS_ALLOWED_ORIGINS", ()))

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin is None:
            return response

        debugging = bool(app.config.get("DEBUG") or app.config.get("TESTING"))
        if debugging or origin in allowed:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _code_to_message(code: str) -> str:
    """Human-readable default for a ValidationError whose message is a code."""
    _messages = {
        "INVALID_AMOUNT": "Amount must be a positive integer of minor units.",
        "INVALID_CURRENCY": "Currency must be a three-letter ISO-4217 code.",
        "INVALID_STATUS": "The status value is not valid.",
        "INVALID_PAYMENT_METHOD": "payment_method must be one of cash, upi, bank_transfer, other.",
        "SPLIT_SUM_MISMATCH": "The split amounts must add up to the expense amount.",
        "EMPTY_SPLITS": "An expense needs at least one split.",
    }
    return _messages.get(code, "Invalid input.")
