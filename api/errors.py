from flask import jsonify
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError
import logging

from utils.exceptions import AuthError

logger = logging.getLogger(__name__)


def error_response(message: str, status: int):
    return jsonify({"error": message}), status


def _flatten(messages) -> str:
    """Turn marshmallow's nested messages into one line."""
    if isinstance(messages, dict):
        return "; ".join(f"{field}: {_flatten(msg)}" for field, msg in messages.items())
    if isinstance(messages, (list, tuple)):
        return " ".join(_flatten(m) for m in messages)
    return str(messages)


def register_error_handlers(app):
    # Werkzeug HTTPExceptions (abort(...)) map to their status codes
    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        return error_response(err.description or err.name, err.code or 400)

    # 404 Not Found (unknown routes get a fixed message)
    @app.errorhandler(404)
    def not_found(e):
        description = getattr(e, "description", None)
        if not description or description.startswith("The requested URL"):
            description = "Resource not found"
        return error_response(description, 404)

    # Marshmallow validation errors: malformed request body
    @app.errorhandler(ValidationError)
    def handle_validation_error(err: ValidationError):
        return error_response(_flatten(err.messages), 400)

    # Domain errors carry their own status and caller-safe message
    @app.errorhandler(AuthError)
    def handle_auth_error(err: AuthError):
        if err.status_code >= 500:
            logger.error("Auth error: %s", err.detail)
        return error_response(err.message, err.status_code)

    # 500 Internal Error (catch-all); details stay in the log
    @app.errorhandler(Exception)
    def internal_error(err: Exception):
        logger.exception("Unhandled exception", exc_info=err)
        return error_response("Internal server error", 500)
