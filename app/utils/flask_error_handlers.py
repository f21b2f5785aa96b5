"""Core Flask error handlers returning JSON error bodies."""

import logging

from flask import Flask, jsonify
from flask.typing import ResponseReturnValue
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


def register_core_error_handlers(app: Flask) -> None:
    """Register handlers for HTTP errors and unhandled exceptions."""

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException) -> ResponseReturnValue:
        return jsonify({"error": error.description, "code": error.code}), error.code or 500

    @app.errorhandler(Exception)
    def handle_unexpected_exception(error: Exception) -> ResponseReturnValue:
        logger.error(f"Unhandled exception: {error}", exc_info=error)
        return jsonify({"error": "Internal server error", "code": 500}), 500
