"""
Authentication service route handlers.

Provides routes for:
- User registration
- User login
- Profile retrieval with created/joined events (/me)
- Profile update (/me PUT)

JWT logic lives in `auth_service.utils`, persistence in `auth_service.users`.
"""

import logging
from typing import Tuple, Dict, Any

from flask import Blueprint, request, jsonify, Response

from backend.auth_service import users
from backend.auth_service.utils import create_token, authenticated_user_id
from backend.common.payload import json_body
from backend.events_service.queries import get_my_events

auth_bp = Blueprint("auth", __name__)


# --- REQUEST LOGGING ---
@auth_bp.before_request
def before_request() -> None:
    """
    Log every incoming request method and path to the authentication service.
    """
    logging.info(f"[Auth] Incoming {request.method} {request.path}")


@auth_bp.after_request
def after_request(response: Response) -> Response:
    """
    Log the response status code for every request.

    Args:
        response (Response): The Flask response object.

    Returns:
        Response: The passed-through response object.
    """
    logging.info(f"[Auth] Response {response.status}")
    return response


# --- REGISTER ---
@auth_bp.route("/register", methods=["POST"])
def register() -> Tuple[Response, int]:
    """
    Register a new user in the system.

    Expects a JSON body with:
    - name (str)
    - email (str): Unique email address.
    - password (str): Minimum 6 characters.

    Returns:
        201: JSON with message, user and a JWT token for immediate login.
        400: Missing fields or invalid input.
        409: Email already exists.
    """
    data: Dict[str, Any] = json_body()
    user = users.create_user(data.get("name"), data.get("email"), data.get("password"))

    return jsonify({
        "message": "User registered successfully",
        "user": user,
        "token": create_token(user["user_id"]),
    }), 201


# --- LOGIN ---
@auth_bp.route("/login", methods=["POST"])
def login() -> Tuple[Response, int]:
    """
    Authenticate a user and return a JWT.

    Expects a JSON body with:
    - email (str)
    - password (str)

    Returns:
        200: JSON with message, token and user summary.
        400: Missing credentials.
        401: Invalid credentials (wrong password or unknown email).
    """
    data: Dict[str, Any] = json_body()
    user = users.authenticate(data.get("email"), data.get("password"))

    return jsonify({
        "message": "Login successful",
        "token": create_token(user["user_id"]),
        "user": user,
    }), 200


# --- GET CURRENT USER ---
@auth_bp.route("/me", methods=["GET"])
def get_current_user() -> Tuple[Response, int]:
    """
    Retrieve the current user's profile with the events they created and joined.

    Requires Authorization header: Bearer <token>

    Returns:
        200: { "user": User, "created_events": [...], "joined_events": [...] }
        401: Authentication failure.
    """
    user_id = authenticated_user_id()
    user = users.get_user(user_id)
    mine = get_my_events(user_id)

    return jsonify({
        "user": user,
        "created_events": mine["created"],
        "joined_events": mine["joined"],
    }), 200


# --- UPDATE CURRENT USER ---
@auth_bp.route("/me", methods=["PUT"])
def update_current_user() -> Tuple[Response, int]:
    """
    Update specific fields of the current user's profile.

    Allowed fields:
    - name
    - email
    - password (re-hashed)
    - avatar

    Requires Authorization header: Bearer <token>

    Returns:
        200: Updated user object.
        400: No valid fields provided.
        401: Authentication failure.
        409: Email already in use.
    """
    user_id = authenticated_user_id()
    data: Dict[str, Any] = json_body()
    user = users.update_user(user_id, data)

    return jsonify({"message": "Profile updated successfully", "user": user}), 200
