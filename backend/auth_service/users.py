"""
Credential store: persistence and password verification for User records.

Membership is read from event_participants, so joined_event_ids is always
consistent with the events' participant lists.
"""

import logging
from typing import Any, Dict, List, Optional

import psycopg2.errors
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from backend.common.errors import (
    Conflict,
    InvalidCredentials,
    NotFound,
    ValidationError,
    missing_fields_error,
)
from backend.database.db_connection import get_db

ph = PasswordHasher()

# Verified against when the email is unknown, so both failure paths cost one hash
_DUMMY_HASH = ph.hash("event-finder-timing-equalizer")

PASSWORD_MIN_LENGTH = 6
DEFAULT_AVATAR = "1"
UPDATABLE_FIELDS = ("name", "email", "password", "avatar")

USER_COLUMNS = """
    u.user_id, u.email, u.name, u.avatar, u.created_at, u.updated_at,
    ARRAY(
        SELECT p.event_id FROM event_participants p
        WHERE p.user_id = u.user_id
        ORDER BY p.joined_at, p.event_id
    ) AS joined_event_ids
"""


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def serialize_user(row: Any) -> Dict[str, Any]:
    """
    Convert a users row to its JSON shape. The password hash is never included.
    """
    user = dict(row)
    user.pop("password_hash", None)
    for key in ("created_at", "updated_at"):
        if user.get(key):
            user[key] = user[key].isoformat()
    if "joined_event_ids" in user:
        user["joined_event_ids"] = list(user["joined_event_ids"] or [])
    return user


def user_summary(row: Any) -> Dict[str, Any]:
    """
    Public summary used in login responses and participant lists.
    """
    return {"user_id": row["user_id"], "name": row["name"], "email": row["email"]}


def _require_text(fields: Dict[str, Any]) -> None:
    """
    Raise ValidationError naming every field that was sent but is not a string.
    """
    wrong = [name for name, value in fields.items() if value is not None and not isinstance(value, str)]
    if wrong:
        raise ValidationError(f"Must be strings: {', '.join(wrong)}")


def _validate_password(password: str) -> None:
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")


def create_user(name: Optional[str], email: Optional[str], password: Optional[str]) -> Dict[str, Any]:
    """
    Register a new user.

    Raises:
        ValidationError: A field is missing or the password is too short.
        Conflict: The email is already registered.
    """
    _require_text({"name": name, "email": email, "password": password})
    name = (name or "").strip()
    email = normalize_email(email)
    password = password or ""

    missing = [field for field, value in (("name", name), ("email", email), ("password", password)) if not value]
    if missing:
        raise missing_fields_error(missing)
    _validate_password(password)

    pw_hash = ph.hash(password)

    sql = f"""
        WITH inserted AS (
            INSERT INTO users (email, password_hash, name, avatar)
            VALUES (%s, %s, %s, %s)
            RETURNING *
        )
        SELECT {USER_COLUMNS} FROM inserted u;
    """

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (email, pw_hash, name, DEFAULT_AVATAR))
                user = cur.fetchone()
    except psycopg2.errors.UniqueViolation:
        logging.warning(f"[Auth] Registration rejected, email already exists: {email}")
        raise Conflict("User already exists")

    logging.info(f"[Auth] Registered user {user['user_id']}")
    return serialize_user(user)


def authenticate(email: Optional[str], password: Optional[str]) -> Dict[str, Any]:
    """
    Verify an email/password pair and return the user summary.

    Unknown email and wrong password both raise InvalidCredentials, and both
    run exactly one argon2 verification.

    Raises:
        ValidationError: Email or password missing.
        InvalidCredentials: The pair does not match a user.
    """
    if not isinstance(email, str) or not isinstance(password, str):
        raise ValidationError("Email and password required")
    email = normalize_email(email)
    password = password or ""
    if not email or not password:
        raise ValidationError("Email and password required")

    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT user_id, email, name, avatar, password_hash FROM users WHERE email = %s;",
                (email,),
            )
            user = cur.fetchone()

    stored_hash = user["password_hash"] if user else _DUMMY_HASH
    try:
        ph.verify(stored_hash, password)
    except (VerificationError, InvalidHashError):
        user = None

    if not user:
        raise InvalidCredentials()

    return {**user_summary(user), "avatar": user["avatar"]}


def user_exists(user_id: int) -> bool:
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1 FROM users WHERE user_id = %s;", (user_id,))
            return cur.fetchone() is not None


def get_user(user_id: int) -> Dict[str, Any]:
    """
    Fetch a user profile including joined_event_ids.

    Raises:
        NotFound: No such user.
    """
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute(f"SELECT {USER_COLUMNS} FROM users u WHERE u.user_id = %s;", (user_id,))
            user = cur.fetchone()

    if not user:
        raise NotFound("User not found")
    return serialize_user(user)


def update_user(user_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Update name, email, password and/or avatar of a user.

    Raises:
        ValidationError: No updatable field given, or an invalid value.
        Conflict: The new email belongs to another user.
        NotFound: No such user.
    """
    fields = {k: data[k] for k in UPDATABLE_FIELDS if data.get(k)}
    if not fields:
        raise ValidationError(f"No valid fields provided. Allowed: {', '.join(UPDATABLE_FIELDS)}")
    _require_text({k: fields.get(k) for k in ("name", "email", "password")})

    if "name" in fields:
        fields["name"] = fields["name"].strip()
        if not fields["name"]:
            raise ValidationError("Name cannot be empty")
    if "email" in fields:
        fields["email"] = normalize_email(fields["email"])
        if not fields["email"]:
            raise ValidationError("Email cannot be empty")
    if "avatar" in fields:
        fields["avatar"] = str(fields["avatar"])
    if "password" in fields:
        password = fields.pop("password")
        _validate_password(password)
        fields["password_hash"] = ph.hash(password)

    assignments: List[str] = [f"{column} = %s" for column in fields]
    assignments.append("updated_at = CURRENT_TIMESTAMP")
    values = list(fields.values()) + [user_id]

    sql = f"""
        WITH updated AS (
            UPDATE users SET {', '.join(assignments)}
            WHERE user_id = %s
            RETURNING *
        )
        SELECT {USER_COLUMNS} FROM updated u;
    """

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, values)
                user = cur.fetchone()
    except psycopg2.errors.UniqueViolation:
        raise Conflict("Email already in use")

    if not user:
        raise NotFound("User not found")

    logging.info(f"[Auth] Updated profile of user {user_id}: {', '.join(sorted(fields))}")
    return serialize_user(user)
