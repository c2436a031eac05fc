from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException
import logging

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Error with an HTTP status, rendered as {"error": ...}"""
    status_code = 500

    def __init__(self, message, status_code=None, details=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self):
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class BadRequest(ApiError):
    status_code = 400


class Unauthorized(ApiError):
    status_code = 401


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(error):
        if error.status_code >= 500:
            logger.error(f"API error: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Endpoint not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            "error": "Method not allowed",
            "details": str(error.description)
        }), 405

    @app.errorhandler(Exception)
    def unexpected_error(error):
        # Errores HTTP de werkzeug conservan su codigo
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code

        logger.error(f"Unhandled error: {error}", exc_info=True)
        reporter = current_app.config.get("ERROR_REPORTER")
        if reporter is not None:
            try:
                reporter(error)
            except Exception as e:
                logger.warning(f"Error reporter failed: {e}")
        return jsonify({
            "error": "Something went wrong",
            "retry": True
        }), 500
