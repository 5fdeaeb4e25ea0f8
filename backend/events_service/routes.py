"""
Events service routes: create, read, update, delete, search and join events.
Handlers parse the request, resolve the caller and delegate to the
lifecycle, membership and query modules; errors are rendered by the
application's error handlers.
"""

import logging
from typing import Tuple, Dict, Any, Optional

from flask import Blueprint, request, jsonify, Response
from werkzeug.datastructures import FileStorage

from backend.auth_service.utils import authenticated_user_id, optional_user_id
from backend.common.payload import json_body
from backend.events_service import lifecycle, membership, queries

events_bp = Blueprint("events", __name__)


# --- REQUEST LOGGING ---
@events_bp.before_request
def before_request() -> None:
    """
    Log every incoming request to the events service.
    """
    logging.info(f"[Events] Incoming {request.method} {request.path}")


@events_bp.after_request
def after_request(response: Response) -> Response:
    """
    Log the response status code for every request.
    """
    logging.info(f"[Events] Response {response.status}")
    return response


def _event_payload() -> Dict[str, Any]:
    """
    Read event fields from a JSON body or from multipart/urlencoded form fields.
    """
    if request.form:
        return request.form.to_dict()
    return json_body()


def _event_image() -> Optional[FileStorage]:
    return request.files.get("image")


@events_bp.route("/", methods=["GET"], strict_slashes=False)
def list_events() -> Tuple[Response, int]:
    """
    Return all events, each with its organizer summary and participant_ids.

    Returns:
        200: List of event objects.
    """
    return jsonify(queries.list_events()), 200


@events_bp.route("/", methods=["POST"], strict_slashes=False)
def create_event() -> Tuple[Response, int]:
    """
    Create an event. The caller becomes its organizer.

    Accepts JSON or multipart/form-data; in multipart requests an optional
    "image" file (jpg, jpeg, png) is stored and its URL saved on the event.

    Required: title, date (ISO-8601), venue.
    Optional: description, category, time, address, lat + lng, max_attendees.

    Returns:
        201: { "message": str, "event": Event }
        400: Validation error (missing_fields lists absent required fields).
        401: Missing or invalid token.
    """
    user_id = authenticated_user_id()
    event = lifecycle.create_event(user_id, _event_payload(), _event_image())
    return jsonify({"message": "Event created successfully", "event": event}), 201


@events_bp.route("/search", methods=["GET"])
def search_events() -> Tuple[Response, int]:
    """
    Search events.

    Query parameters (all optional, combined with AND):
    - title: case-insensitive substring of the title.
    - venue: case-insensitive substring of the venue.
    - lat, lng, radius: only events within radius km; all three or none.

    Returns:
        200: List of matching events (nearest first when filtering by distance).
        400: Partial or invalid proximity filter.
    """
    args = {key: request.args.get(key) for key in ("title", "venue", "lat", "lng", "radius")}
    return jsonify(queries.search_events(args)), 200


@events_bp.route("/<int:event_id>", methods=["GET"])
def get_event(event_id: int) -> Tuple[Response, int]:
    """
    Get a single event by ID.

    Returns:
        200: Event object.
        404: Event not found.
    """
    return jsonify(queries.get_event(event_id)), 200


@events_bp.route("/<int:event_id>", methods=["PUT"])
def update_event(event_id: int) -> Tuple[Response, int]:
    """
    Update an event. Organizer only.

    organizer_id and participant_ids cannot be changed.

    Returns:
        200: { "message": str, "event": Event }
        400: Validation error.
        401: Missing or invalid token.
        403: Caller is not the organizer.
        404: Event not found.
    """
    user_id = authenticated_user_id()
    event = lifecycle.update_event(user_id, event_id, _event_payload(), _event_image())
    return jsonify({"message": "Event updated", "event": event}), 200


@events_bp.route("/<int:event_id>", methods=["DELETE"])
def delete_event(event_id: int) -> Tuple[Response, int]:
    """
    Delete an event. Organizer only.

    Returns:
        200: { "message": str }
        401/403/404 as for update.
    """
    user_id = authenticated_user_id()
    lifecycle.delete_event(user_id, event_id)
    return jsonify({"message": "Event deleted successfully"}), 200


@events_bp.route("/<int:event_id>/apply", methods=["POST"])
def apply_to_event(event_id: int) -> Tuple[Response, int]:
    """
    Join an event as a participant.

    Returns:
        200: { "message": str, "event": Event }
        400: Already joined, or the event is full.
        401: Missing or invalid token.
        404: Event not found.
    """
    user_id = authenticated_user_id()
    event = membership.join_event(user_id, event_id)
    return jsonify({"message": "Successfully joined the event", "event": event}), 200


@events_bp.route("/<int:event_id>/participants", methods=["GET"])
def get_participants(event_id: int) -> Tuple[Response, int]:
    """
    List participants of an event (user_id, name, email).

    Returns:
        200: { "participants": [...] }
        404: Event not found.
    """
    return jsonify({"participants": membership.list_participants(event_id)}), 200


@events_bp.route("/<int:event_id>/details", methods=["GET"])
def get_event_details(event_id: int) -> Tuple[Response, int]:
    """
    Event with expanded participants and whether the caller has joined.

    Authentication is optional: without a usable token is_joined is false.

    Returns:
        200: { "event": Event, "is_joined": bool }
        404: Event not found.
    """
    viewer_id = optional_user_id()
    return jsonify(queries.get_event_details(event_id, viewer_id)), 200
