"""
Membership: joining events and listing participants.

A membership is one event_participants row. Event.participant_ids and
User.joined_event_ids are both read from that table, so a successful join
updates both sides at once and a failed join updates neither.
"""

import logging
from typing import Any, Dict, List

import psycopg2.errors

from backend.common.errors import AlreadyJoined, CapacityExceeded, NotFound
from backend.database.db_connection import get_db
from backend.events_service.queries import fetch_event, participant_summaries


def join_event(actor_id: int, event_id: int) -> Dict[str, Any]:
    """
    Add actor_id to the participants of event_id.

    The event row is locked (SELECT ... FOR UPDATE) before the duplicate and
    capacity checks, and the insert happens in the same transaction, so
    concurrent joins on one event are applied one at a time.

    Returns:
        dict: The event after the join.

    Raises:
        NotFound: No such event.
        AlreadyJoined: actor_id is already a participant.
        CapacityExceeded: The event has max_attendees participants already.
    """
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT max_attendees FROM events WHERE event_id = %s FOR UPDATE;", (event_id,))
            ev = cur.fetchone()
            if not ev:
                raise NotFound("Event not found")

            cur.execute("""
                SELECT COUNT(*) AS participant_count,
                       COALESCE(BOOL_OR(user_id = %s), FALSE) AS already_joined
                FROM event_participants
                WHERE event_id = %s;
            """, (actor_id, event_id))
            stats = cur.fetchone()

            if stats["already_joined"]:
                logging.warning(f"[Events] User {actor_id} already joined event {event_id}")
                raise AlreadyJoined()

            max_attendees = ev["max_attendees"]
            if max_attendees is not None and stats["participant_count"] >= max_attendees:
                logging.warning(f"[Events] Event {event_id} is full ({max_attendees}); rejected user {actor_id}")
                raise CapacityExceeded()

            try:
                cur.execute(
                    "INSERT INTO event_participants (event_id, user_id) VALUES (%s, %s);",
                    (event_id, actor_id),
                )
            except psycopg2.errors.UniqueViolation:
                raise AlreadyJoined()

            event = fetch_event(cur, event_id)
        conn.commit()

    logging.info(f"[Events] User {actor_id} joined event {event_id} ({event['participant_count']} participants)")
    return event


def list_participants(event_id: int) -> List[Dict[str, Any]]:
    """
    Participant summaries (user_id, name, email) of an event.

    Raises:
        NotFound: No such event.
    """
    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1 FROM events WHERE event_id = %s;", (event_id,))
            if cur.fetchone() is None:
                raise NotFound("Event not found")
            return participant_summaries(cur, event_id)
