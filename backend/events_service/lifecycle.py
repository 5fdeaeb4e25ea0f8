"""
Event lifecycle: create, update and delete, with organizer-only mutation.

Validation and permission checks run before any write, so a rejected request
never changes stored state.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from werkzeug.datastructures import FileStorage

from backend.common import storage
from backend.common.errors import Forbidden, NotFound, ValidationError, missing_fields_error
from backend.database.db_connection import get_db
from backend.events_service.queries import fetch_event

# --- CONSTANTS FOR VALIDATION ---
TITLE_MAX_LENGTH = 200
REQUIRED_FIELDS = ["title", "date", "venue"]
PROTECTED_FIELDS = ["event_id", "organizer_id", "participant_ids"]

# request field -> events column
FIELD_COLUMNS = {
    "title": "title",
    "description": "description",
    "category": "category",
    "date": "event_date",
    "time": "event_time",
    "venue": "venue",
    "address": "address",
    "lat": "lat",
    "lng": "lng",
    "max_attendees": "max_attendees",
}


def parse_dt(val: Optional[str]) -> Optional[datetime]:
    """
    Safely parse an ISO-8601 date or datetime string to a datetime object.

    Args:
        val (str): The date string to parse.

    Returns:
        datetime: The parsed datetime, or None if invalid.
    """
    if not val:
        return None
    try:
        # Handles 'YYYY-MM-DD', 'YYYY-MM-DDTHH:MM' and '...Z' or '...+00:00'
        if val.endswith('Z'):
            val = val[:-1] + '+00:00'
        return datetime.fromisoformat(val)
    except (ValueError, TypeError):
        return None


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coordinate(name: str, value: Any, limit: float) -> Optional[float]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")
    if not -limit <= number <= limit:
        raise ValidationError(f"{name} must be between {-limit:g} and {limit:g}")
    return number


def _capacity(value: Any) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValidationError("max_attendees must be a positive integer")
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("max_attendees must be a positive integer")
    if number <= 0 or number != float(value):
        raise ValidationError("max_attendees must be a positive integer")
    return number


def clean_event_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate the known event fields present in data and map them to columns.

    Only keys present in data are returned, so the same function serves both
    full creation payloads and partial update patches.

    Raises:
        ValidationError: A present field has an invalid value.
    """
    cleaned: Dict[str, Any] = {}

    if "title" in data:
        title = _optional_text(data["title"])
        if not title:
            raise ValidationError("Title cannot be empty")
        if len(title) > TITLE_MAX_LENGTH:
            raise ValidationError(f"Title must be {TITLE_MAX_LENGTH} characters or less.")
        cleaned["title"] = title

    if "date" in data:
        event_date = parse_dt(_optional_text(data["date"]))
        if not event_date:
            raise ValidationError("Invalid date format. Use ISO-8601.")
        cleaned["event_date"] = event_date

    if "venue" in data:
        venue = _optional_text(data["venue"])
        if not venue:
            raise ValidationError("Venue cannot be empty")
        cleaned["venue"] = venue

    for key in ("description", "category", "time", "address"):
        if key in data:
            cleaned[FIELD_COLUMNS[key]] = _optional_text(data[key])

    if "lat" in data:
        cleaned["lat"] = _coordinate("lat", data["lat"], 90)
    if "lng" in data:
        cleaned["lng"] = _coordinate("lng", data["lng"], 180)

    if "max_attendees" in data:
        cleaned["max_attendees"] = _capacity(data["max_attendees"])

    return cleaned


def _check_coordinate_pair(lat: Optional[float], lng: Optional[float]) -> None:
    if (lat is None) != (lng is None):
        raise ValidationError("lat and lng must be given together")


def create_event(actor_id: int, data: Dict[str, Any], image: Optional[FileStorage] = None) -> Dict[str, Any]:
    """
    Create an event organized by actor_id.

    Args:
        actor_id (int): The authenticated user; becomes the organizer.
        data (dict): Event fields. title, date and venue are required.
        image (FileStorage, optional): Uploaded image to store with the event.

    Returns:
        dict: The created event.

    Raises:
        ValidationError: Missing required fields or invalid values.
    """
    missing = [field for field in REQUIRED_FIELDS if not _optional_text(data.get(field))]
    if missing:
        raise missing_fields_error(missing)

    fields = clean_event_fields({k: v for k, v in data.items() if k in FIELD_COLUMNS})
    _check_coordinate_pair(fields.get("lat"), fields.get("lng"))

    image_url = None
    if image is not None and image.filename:
        image_url = fields["image"] = storage.save_image(image)

    fields["organizer_id"] = actor_id
    columns = list(fields)
    placeholders = ", ".join(["%s"] * len(columns))

    sql = f"INSERT INTO events ({', '.join(columns)}) VALUES ({placeholders}) RETURNING event_id;"

    try:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, [fields[c] for c in columns])
                event_id = cur.fetchone()["event_id"]
                event = fetch_event(cur, event_id)
            conn.commit()
    except Exception:
        # Drop the uploaded file when the insert fails
        if image_url:
            storage.delete_image(image_url)
        raise

    logging.info(f"[Events] User {actor_id} created event {event_id}")
    return event


def _lock_owned_event(cur, actor_id: int, event_id: int) -> Dict[str, Any]:
    """
    Lock the event row for the rest of the transaction and check ownership.

    Raises:
        NotFound: No such event.
        Forbidden: actor_id is not the organizer.
    """
    cur.execute(
        "SELECT event_id, organizer_id, lat, lng, max_attendees FROM events WHERE event_id = %s FOR UPDATE;",
        (event_id,),
    )
    ev = cur.fetchone()
    if not ev:
        raise NotFound("Event not found")

    if ev["organizer_id"] != actor_id:
        logging.warning(f"[Events] User {actor_id} denied on event {event_id} (organizer {ev['organizer_id']})")
        raise Forbidden("Not authorized")
    return ev


def update_event(
    actor_id: int,
    event_id: int,
    data: Dict[str, Any],
    image: Optional[FileStorage] = None,
) -> Dict[str, Any]:
    """
    Apply a patch to an event. Only the organizer may update.

    Raises:
        NotFound: No such event.
        Forbidden: actor_id is not the organizer.
        ValidationError: Empty patch, protected field in patch, invalid value,
            or max_attendees below the current participant count.
    """
    with get_db() as conn:
        with conn.cursor() as cur:
            ev = _lock_owned_event(cur, actor_id, event_id)

            protected = [field for field in PROTECTED_FIELDS if field in data]
            if protected:
                raise ValidationError(f"Fields cannot be changed: {', '.join(protected)}")

            fields = clean_event_fields({k: v for k, v in data.items() if k in FIELD_COLUMNS})
            has_image = image is not None and bool(image.filename)
            if not fields and not has_image:
                raise ValidationError("No update data provided")

            _check_coordinate_pair(fields.get("lat", ev["lat"]), fields.get("lng", ev["lng"]))

            if fields.get("max_attendees") is not None:
                cur.execute("SELECT COUNT(*) AS participant_count FROM event_participants WHERE event_id = %s;", (event_id,))
                participant_count = cur.fetchone()["participant_count"]
                if fields["max_attendees"] < participant_count:
                    raise ValidationError(
                        f"max_attendees cannot be lower than the current participant count ({participant_count})"
                    )

            if has_image:
                fields["image"] = storage.save_image(image)

            try:
                assignments = [f"{column} = %s" for column in fields]
                assignments.append("updated_at = CURRENT_TIMESTAMP")
                values = list(fields.values()) + [event_id]

                cur.execute(f"UPDATE events SET {', '.join(assignments)} WHERE event_id = %s;", values)
                event = fetch_event(cur, event_id)
                conn.commit()
            except Exception:
                if has_image:
                    storage.delete_image(fields["image"])
                raise

    logging.info(f"[Events] User {actor_id} updated event {event_id}: {', '.join(sorted(fields))}")
    return event


def delete_event(actor_id: int, event_id: int) -> None:
    """
    Delete an event. Only the organizer may delete. Membership rows go with it.

    Raises:
        NotFound: No such event.
        Forbidden: actor_id is not the organizer.
    """
    with get_db() as conn:
        with conn.cursor() as cur:
            _lock_owned_event(cur, actor_id, event_id)
            cur.execute("DELETE FROM events WHERE event_id = %s;", (event_id,))
        conn.commit()

    logging.info(f"[Events] User {actor_id} deleted event {event_id}")
