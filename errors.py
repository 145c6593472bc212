from flask import current_app, jsonify, request, send_from_directory
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException
import os

from models import db


class ApiError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message


class ValidationError(ApiError):
    status_code = 400
    message = "Invalid request"


class ConflictError(ApiError):
    # duplicates are reported as a plain bad request
    status_code = 400
    message = "Resource already exists"


class AuthenticationError(ApiError):
    status_code = 401
    message = "Authentication required"


class ForbiddenError(ApiError):
    status_code = 403
    message = "Access denied"


class NotFoundError(ApiError):
    status_code = 404
    message = "Not found"


def ok(data=None, message=None, status=200, **extra):
    body = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return jsonify(body), status


def fail(message, status, error=None, **extra):
    body = {"success": False, "message": message}
    if error is not None:
        body["error"] = error
    body.update(extra)
    return jsonify(body), status


def spa_entry():
    index = os.path.join(current_app.static_folder or "", "index.html")
    if request.method == "GET" and os.path.isfile(index):
        return send_from_directory(current_app.static_folder, "index.html")
    return None


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def api_error(e):
        return fail(e.message, e.status_code)

    @app.errorhandler(IntegrityError)
    def integrity_error(e):
        db.session.rollback()
        current_app.logger.warning(f"Constraint violation: {e.orig}")
        return fail(ConflictError.message, ConflictError.status_code)

    @app.errorhandler(404)
    def not_found(e):
        if not request.path.startswith("/api"):
            entry = spa_entry()
            if entry is not None:
                return entry
        return fail("Route not found", 404, path=request.path)

    @app.errorhandler(HTTPException)
    def http_error(e):
        return fail(e.description or e.name, e.code)

    @app.errorhandler(Exception)
    def server_error(e):
        db.session.rollback()
        current_app.logger.exception(f"Unhandled error on {request.method} {request.path}")
        error = str(e) if current_app.config.get("EXPOSE_ERRORS") else None
        return fail("Something broke on our end", 500, error=error)
