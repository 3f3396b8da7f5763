"""
Mapping of exceptions to JSON error responses.

Xano auth failures become 401 with a login redirect, other Xano failures
become 502, bad input becomes 400 and anything else is logged and becomes 500.
"""
from flask import jsonify
from werkzeug.exceptions import HTTPException

from planner.auth.utils import clear_session
from planner.logging_config import get_logger
from planner.xano.exceptions import XanoAPIError, XanoUnauthorizedError

logger = get_logger(__name__)


def unauthorized_response(exc: XanoUnauthorizedError):
    clear_session()
    logger.warning("Xano rejected auth token", status_code=exc.status_code)
    return jsonify({
        "error": "Session expired or invalid. Please log in again.",
        "redirect": XanoUnauthorizedError.REDIRECT_TO,
    }), 401


def error_response(exc: Exception, message: str):
    """
    Build the response for an exception caught in a route.

    Args:
        exc: the caught exception
        message: human readable summary used for 4xx/5xx bodies

    Returns:
        (json response, status code)
    """
    if isinstance(exc, XanoUnauthorizedError):
        return unauthorized_response(exc)
    if isinstance(exc, XanoAPIError):
        logger.error("Xano request failed", message=message, status_code=exc.status_code, error=exc.message)
        return jsonify({"error": message, "details": exc.message}), 502
    if isinstance(exc, ValueError):
        return jsonify({"error": str(exc)}), 400

    logger.error(message, error=str(exc), exc_info=True)
    return jsonify({"error": message, "details": str(exc)}), 500


def register_error_handlers(app):
    """App-wide handlers for errors that escape a view."""

    @app.errorhandler(XanoUnauthorizedError)
    def handle_unauthorized(exc):
        return unauthorized_response(exc)

    @app.errorhandler(XanoAPIError)
    def handle_xano_error(exc):
        return error_response(exc, "Upstream request failed")

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return jsonify({"error": exc.name, "details": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        return error_response(exc, "Internal server error")
