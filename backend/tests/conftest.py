import pytest
import os
from datetime import datetime, timezone
from unittest.mock import MagicMock

# Ensure JWT_SECRET is set for tests
os.environ["JWT_SECRET"] = "test_secret"

from backend.gateway.server import create_app  # noqa: E402

# Every module that opens its own connection
DB_MODULES = [
    "backend.auth_service.users",
    "backend.events_service.queries",
    "backend.events_service.lifecycle",
    "backend.events_service.membership",
]


@pytest.fixture
def app():
    app = create_app()
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def mock_db(mocker):
    """
    Mocks the database connection and cursor in every service module.
    """
    mock_conn = MagicMock()
    mock_cursor = MagicMock()

    # Setup the context manager for connection
    mock_conn.__enter__.return_value = mock_conn
    mock_conn.__exit__.return_value = None

    # Setup the context manager for cursor
    mock_cursor.__enter__.return_value = mock_cursor
    mock_cursor.__exit__.return_value = None

    # Connect cursor to connection
    mock_conn.cursor.return_value = mock_cursor

    for module in DB_MODULES:
        mocker.patch(f"{module}.get_db", return_value=mock_conn)

    return mock_conn, mock_cursor


@pytest.fixture
def auth_as(mocker):
    """
    Make authenticated_user_id() return the given user id in the routes modules.
    """
    def _auth_as(user_id):
        mocker.patch("backend.events_service.routes.authenticated_user_id", return_value=user_id)
        mocker.patch("backend.auth_service.routes.authenticated_user_id", return_value=user_id)
    return _auth_as


@pytest.fixture
def make_event_row():
    """
    Factory for rows shaped like queries.EVENT_COLUMNS.
    """
    def _make(**overrides):
        row = {
            "event_id": 1,
            "title": "Music Night",
            "description": "Live jazz",
            "category": "music",
            "event_date": datetime(2025, 6, 1, 19, 0, tzinfo=timezone.utc),
            "event_time": "19:00",
            "venue": "Blue Hall",
            "address": "1 Main St",
            "lat": 41.0082,
            "lng": 28.9784,
            "max_attendees": 10,
            "image": None,
            "organizer_id": 1,
            "created_at": datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc),
            "updated_at": datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc),
            "organizer_name": "Org",
            "organizer_email": "org@example.com",
            "participant_ids": [],
        }
        row.update(overrides)
        return row
    return _make
