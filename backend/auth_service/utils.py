"""
Shared authentication helpers.
Provides token creation, verification, and request identity resolution.
"""

import os
import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
from flask import request, g
from dotenv import load_dotenv

from backend.auth_service import users
from backend.common.errors import IdentityNotFound, Unauthenticated

# Load .env only once here
load_dotenv()

# Load secrets & configs
JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET is missing. Set it in .env")

JWT_ALGORITHM = "HS256"
TOKEN_EXPIRATION_MINUTES = int(os.getenv("TOKEN_EXPIRATION_MINUTES", 1440))  # Default 24 hours


# --- JWT CREATION ---
def create_token(user_id: int) -> str:
    """
    Generates a new JWT for a given user.

    Args:
        user_id (int): The unique ID of the user.

    Returns:
        str: Encoded JWT string.
    """
    now = datetime.now(timezone.utc)

    payload = {
        # PyJWT requires "sub" to be a string
        "sub": str(user_id),
        "exp": now + timedelta(minutes=TOKEN_EXPIRATION_MINUTES),
        "iat": now
    }

    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


# --- JWT VALIDATION ---
def decode_token(token: str) -> int:
    """
    Verify signature and expiry of a token and return the user id it carries.

    Raises:
        Unauthenticated: Expired, malformed, or badly signed token.
    """
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Unauthorized - Token expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Unauthorized - Invalid Token")

    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise Unauthenticated("Unauthorized - Invalid Token")


def resolve_token(token: Optional[str]) -> int:
    """
    Resolve a token to the id of an existing user.

    Raises:
        Unauthenticated: Missing or invalid token.
        IdentityNotFound: The token is valid but the user no longer exists.
    """
    if not token:
        raise Unauthenticated()

    user_id = decode_token(token)
    if not users.user_exists(user_id):
        raise IdentityNotFound()
    return user_id


def bearer_token() -> Optional[str]:
    """
    Extract the token from an "Authorization: Bearer <token>" header.
    """
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.split(" ", 1)[1].strip() or None


def authenticated_user_id() -> int:
    """
    Resolve the caller of the current request. Stores the id on flask.g.

    Raises:
        Unauthenticated, IdentityNotFound
    """
    user_id = resolve_token(bearer_token())
    g.user_id = user_id
    return user_id


def optional_user_id() -> Optional[int]:
    """
    Resolve the caller if a usable token was sent; anonymous callers get None.
    """
    token = bearer_token()
    if not token:
        return None
    try:
        return authenticated_user_id()
    except Unauthenticated:
        return None
