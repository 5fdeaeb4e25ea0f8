"""
Event read side: listing, search, details with viewer context, and "my events".

Every read goes through EVENT_COLUMNS/EVENT_FROM so all endpoints return the
same event shape, with the organizer summary and participant_ids attached.
"""

import math
from typing import Any, Dict, List, Optional

from backend.common.errors import NotFound, ValidationError
from backend.database.db_connection import get_db

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 111.045

EVENT_COLUMNS = """
    e.event_id, e.title, e.description, e.category,
    e.event_date, e.event_time, e.venue, e.address, e.lat, e.lng,
    e.max_attendees, e.image, e.organizer_id, e.created_at, e.updated_at,
    u.name AS organizer_name, u.email AS organizer_email,
    ARRAY(
        SELECT p.user_id FROM event_participants p
        WHERE p.event_id = e.event_id
        ORDER BY p.joined_at, p.user_id
    ) AS participant_ids
"""

EVENT_FROM = """
    FROM events e
    JOIN users u ON e.organizer_id = u.user_id
"""

# Great-circle distance between the event and (%(lat)s, %(lng)s), in km.
# LEAST() keeps rounding error from pushing ASIN outside its domain.
HAVERSINE_KM_SQL = f"""
    {EARTH_RADIUS_KM} * 2 * ASIN(LEAST(1.0, SQRT(
        POWER(SIN(RADIANS(e.lat - %(lat)s) / 2), 2)
        + COS(RADIANS(%(lat)s)) * COS(RADIANS(e.lat))
        * POWER(SIN(RADIANS(e.lng - %(lng)s) / 2), 2)
    )))
"""


def serialize_event(row: Any) -> Dict[str, Any]:
    """
    Convert an EVENT_COLUMNS row into the JSON shape returned by the API.
    """
    event = dict(row)

    event_date = event.pop("event_date", None)
    event["date"] = event_date.isoformat() if event_date else None
    event["time"] = event.pop("event_time", None)

    event["organizer"] = {
        "user_id": event["organizer_id"],
        "name": event.pop("organizer_name", None),
        "email": event.pop("organizer_email", None),
    }

    event["participant_ids"] = list(event.get("participant_ids") or [])
    event["participant_count"] = len(event["participant_ids"])

    for key in ("created_at", "updated_at"):
        if event.get(key):
            event[key] = event[key].isoformat()

    if event.get("distance_km") is not None:
        event["distance_km"] = round(float(event["distance_km"]), 3)

    return event


def fetch_event(cur, event_id: int) -> Optional[Dict[str, Any]]:
    """
    Read one serialized event with an open cursor, or None if it does not exist.
    """
    cur.execute(f"SELECT {EVENT_COLUMNS} {EVENT_FROM} WHERE e.event_id = %s;", (event_id,))
    row = cur.fetchone()
    return serialize_event(row) if row else None


def participant_summaries(cur, event_id: int) -> List[Dict[str, Any]]:
    """
    Participants of an event as {user_id, name, email}, in join order.
    """
    cur.execute("""
        SELECT u.user_id, u.name, u.email
        FROM event_participants p
        JOIN users u ON p.user_id = u.user_id
        WHERE p.event_id = %s
        ORDER BY p.joined_at, u.user_id;
    """, (event_id,))
    return [dict(row) for row in cur.fetchall()]


def list_events() -> List[Dict[str, Any]]:
    """
    All events in creation order.
    """
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute(f"SELECT {EVENT_COLUMNS} {EVENT_FROM} ORDER BY e.created_at, e.event_id;")
            return [serialize_event(row) for row in cur.fetchall()]


def get_event(event_id: int) -> Dict[str, Any]:
    """
    Raises:
        NotFound: No such event.
    """
    with get_db() as conn:
        with conn.cursor() as cur:
            event = fetch_event(cur, event_id)

    if not event:
        raise NotFound("Event not found")
    return event


def _parse_number(name: str, raw: Optional[str]) -> Optional[float]:
    if raw is None or str(raw).strip() == "":
        return None
    try:
        number = float(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number")
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be a finite number")
    return number


def _like_pattern(text: str) -> str:
    """
    Case-insensitive substring pattern with LIKE wildcards escaped.
    """
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def parse_search_filter(args: Dict[str, Optional[str]]) -> Dict[str, Any]:
    """
    Validate raw query-string filters.

    Returns:
        dict: title/venue (str or None) and lat/lng/radius (float or None).

    Raises:
        ValidationError: Only some of lat, lng, radius given; non-numeric or
            out-of-range values.
    """
    title = (args.get("title") or "").strip() or None
    venue = (args.get("venue") or "").strip() or None
    lat = _parse_number("lat", args.get("lat"))
    lng = _parse_number("lng", args.get("lng"))
    radius = _parse_number("radius", args.get("radius"))

    proximity = [value is not None for value in (lat, lng, radius)]
    if any(proximity) and not all(proximity):
        raise ValidationError("lat, lng and radius must be given together")

    if all(proximity):
        if not -90 <= lat <= 90:
            raise ValidationError("lat must be between -90 and 90")
        if not -180 <= lng <= 180:
            raise ValidationError("lng must be between -180 and 180")
        if radius <= 0:
            raise ValidationError("radius must be greater than 0")

    return {"title": title, "venue": venue, "lat": lat, "lng": lng, "radius": radius}


def search_events(args: Dict[str, Optional[str]]) -> List[Dict[str, Any]]:
    """
    Filter events by title and venue substrings and, optionally, by distance.

    All given filters are combined with AND. With a proximity filter the
    result is ordered nearest first and each event carries distance_km;
    events without coordinates never match a proximity filter.
    """
    filters = parse_search_filter(args)

    conditions: List[str] = []
    params: Dict[str, Any] = {}

    if filters["title"]:
        conditions.append("e.title ILIKE %(title)s")
        params["title"] = _like_pattern(filters["title"])
    if filters["venue"]:
        conditions.append("e.venue ILIKE %(venue)s")
        params["venue"] = _like_pattern(filters["venue"])

    columns = EVENT_COLUMNS
    order_by = "e.created_at, e.event_id"

    if filters["radius"] is not None:
        lat_delta = filters["radius"] / KM_PER_DEGREE_LAT
        params.update({
            "lat": filters["lat"],
            "lng": filters["lng"],
            "radius": filters["radius"],
            "lat_min": filters["lat"] - lat_delta,
            "lat_max": filters["lat"] + lat_delta,
        })
        columns += f", ({HAVERSINE_KM_SQL}) AS distance_km"
        # Latitude band first so the (lat, lng) index narrows the scan
        conditions.append("e.lat IS NOT NULL AND e.lat BETWEEN %(lat_min)s AND %(lat_max)s")
        conditions.append(f"({HAVERSINE_KM_SQL}) <= %(radius)s")
        order_by = "distance_km, e.event_id"

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    sql = f"SELECT {columns} {EVENT_FROM} {where} ORDER BY {order_by};"

    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute(sql, params)
            return [serialize_event(row) for row in cur.fetchall()]


def get_event_details(event_id: int, viewer_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Event with participant summaries, plus whether the viewer has joined.

    Anonymous viewers (viewer_id None) get is_joined False.

    Raises:
        NotFound: No such event.
    """
    with get_db() as conn:
        with conn.cursor() as cur:
            event = fetch_event(cur, event_id)
            if not event:
                raise NotFound("Event not found")
            event["participants"] = participant_summaries(cur, event_id)

    is_joined = viewer_id is not None and viewer_id in event["participant_ids"]
    return {"event": event, "is_joined": is_joined}


def get_my_events(user_id: int) -> Dict[str, List[Dict[str, Any]]]:
    """
    Events the user organizes and events the user has joined.
    """
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute(
                f"SELECT {EVENT_COLUMNS} {EVENT_FROM} WHERE e.organizer_id = %s ORDER BY e.created_at, e.event_id;",
                (user_id,),
            )
            created = [serialize_event(row) for row in cur.fetchall()]

            cur.execute(f"""
                SELECT {EVENT_COLUMNS} {EVENT_FROM}
                JOIN event_participants mine ON mine.event_id = e.event_id AND mine.user_id = %s
                ORDER BY mine.joined_at, e.event_id;
            """, (user_id,))
            joined = [serialize_event(row) for row in cur.fetchall()]

    return {"created": created, "joined": joined}
