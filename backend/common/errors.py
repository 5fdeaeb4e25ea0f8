"""
Error taxonomy shared by every service.

Services raise these exceptions; register_error_handlers() turns them into
JSON responses of the form {"error": <name>, "message": <text>}.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import psycopg2
from flask import Flask, Response, jsonify
from werkzeug.exceptions import HTTPException


class ApiError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code = 500
    message = "Server error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.details = details

    @property
    def error(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error, "message": self.message}
        if self.details:
            body.update(self.details)
        return body


class ValidationError(ApiError):
    status_code = 400
    message = "Invalid input"


class Unauthenticated(ApiError):
    status_code = 401
    message = "Unauthorized - No Token Provided"


class IdentityNotFound(Unauthenticated):
    message = "User not found"


class InvalidCredentials(ApiError):
    status_code = 401
    message = "Invalid credentials"


class Forbidden(ApiError):
    status_code = 403
    message = "Not authorized"


class NotFound(ApiError):
    status_code = 404
    message = "Not found"


class AlreadyJoined(ApiError):
    status_code = 400
    message = "Already joined this event"


class CapacityExceeded(ApiError):
    status_code = 400
    message = "This event has reached its maximum number of attendees"


class Conflict(ApiError):
    status_code = 409
    message = "Resource already exists"


class Internal(ApiError):
    status_code = 500
    message = "Server error"


def missing_fields_error(missing: list) -> ValidationError:
    """
    Build a ValidationError that names every missing field.
    """
    return ValidationError(
        f"Missing required fields: {', '.join(missing)}",
        details={"missing_fields": missing},
    )


def register_error_handlers(app: Flask) -> None:
    """
    Install JSON error handlers on the application.
    """

    @app.errorhandler(ApiError)
    def handle_api_error(err: ApiError) -> Tuple[Response, int]:
        if err.status_code >= 500:
            logging.error(f"[Error] {err.error}: {err.message}")
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException) -> Tuple[Response, int]:
        # Routing errors (404 on unknown paths, 405, 413 ...) keep their status
        return jsonify({"error": err.name.replace(" ", ""), "message": err.description}), err.code

    @app.errorhandler(psycopg2.Error)
    def handle_database_error(err: psycopg2.Error) -> Tuple[Response, int]:
        logging.error(f"[Error] Database failure: {err}", exc_info=True)
        return jsonify(Internal().to_dict()), 500

    @app.errorhandler(Exception)
    def handle_unexpected(err: Exception) -> Tuple[Response, int]:
        logging.error(f"[Error] Unhandled exception: {err}", exc_info=True)
        return jsonify(Internal().to_dict()), 500
