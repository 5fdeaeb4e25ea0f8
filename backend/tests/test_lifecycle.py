import io
import pytest
import psycopg2
from werkzeug.datastructures import FileStorage
from datetime import datetime, timezone

from backend.common.errors import Forbidden, ValidationError
from backend.events_service import lifecycle
from backend.events_service.lifecycle import clean_event_fields, parse_dt


def locked_row(**overrides):
    row = {"event_id": 1, "organizer_id": 1, "lat": None, "lng": None, "max_attendees": None}
    row.update(overrides)
    return row


def test_parse_dt_formats():
    assert parse_dt("2025-05-01") == datetime(2025, 5, 1)
    assert parse_dt("2025-05-01T10:00") == datetime(2025, 5, 1, 10, 0)
    assert parse_dt("2025-05-01T10:00:00Z") == datetime(2025, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert parse_dt("first of may") is None
    assert parse_dt(None) is None


def test_clean_event_fields_maps_columns():
    cleaned = clean_event_fields({
        "title": "  Jazz  ",
        "date": "2025-05-01",
        "time": "19:30",
        "venue": "Blue Hall",
        "description": "",
        "lat": "41.5",
        "lng": 29,
        "max_attendees": "25",
    })

    assert cleaned == {
        "title": "Jazz",
        "event_date": datetime(2025, 5, 1),
        "venue": "Blue Hall",
        "description": None,
        "event_time": "19:30",
        "lat": 41.5,
        "lng": 29.0,
        "max_attendees": 25,
    }


@pytest.mark.parametrize("data", [
    {"title": ""},
    {"title": "x" * (lifecycle.TITLE_MAX_LENGTH + 1)},
    {"date": "tomorrow"},
    {"venue": "   "},
    {"lat": 91},
    {"lng": -181},
    {"lat": "north"},
    {"max_attendees": 0},
    {"max_attendees": 2.5},
    {"max_attendees": True},
])
def test_clean_event_fields_rejects(data):
    with pytest.raises(ValidationError):
        clean_event_fields(data)


def test_max_attendees_can_be_cleared():
    assert clean_event_fields({"max_attendees": None}) == {"max_attendees": None}
    assert clean_event_fields({"max_attendees": ""}) == {"max_attendees": None}


def test_create_requires_both_coordinates(mock_db):
    mock_conn, mock_cursor = mock_db

    with pytest.raises(ValidationError):
        lifecycle.create_event(1, {"title": "t", "date": "2025-01-01", "venue": "v", "lat": 41.0})
    mock_cursor.execute.assert_not_called()


def test_create_lists_every_missing_field(mock_db):
    with pytest.raises(ValidationError) as exc:
        lifecycle.create_event(1, {})
    assert exc.value.details == {"missing_fields": ["title", "date", "venue"]}


def test_create_without_coordinates(mock_db, make_event_row):
    mock_conn, mock_cursor = mock_db
    mock_cursor.fetchone.side_effect = [{"event_id": 3}, make_event_row(event_id=3, lat=None, lng=None)]

    event = lifecycle.create_event(1, {"title": "t", "date": "2025-01-01", "venue": "v"})

    assert event["event_id"] == 3
    insert_sql = mock_cursor.execute.call_args_list[0].args[0]
    assert "lat" not in insert_sql


def test_update_rejects_capacity_below_participants(mock_db):
    mock_conn, mock_cursor = mock_db
    mock_cursor.fetchone.side_effect = [locked_row(max_attendees=10), {"participant_count": 4}]

    with pytest.raises(ValidationError) as exc:
        lifecycle.update_event(1, 1, {"max_attendees": 3})

    assert "(4)" in exc.value.message
    assert not any(call.args[0].startswith("UPDATE") for call in mock_cursor.execute.call_args_list)


def test_update_allows_capacity_equal_to_participants(mock_db, make_event_row):
    mock_conn, mock_cursor = mock_db
    mock_cursor.fetchone.side_effect = [
        locked_row(max_attendees=10),
        {"participant_count": 4},
        make_event_row(max_attendees=4),
    ]

    event = lifecycle.update_event(1, 1, {"max_attendees": 4})
    assert event["max_attendees"] == 4


def test_update_keeps_coordinates_paired(mock_db):
    mock_conn, mock_cursor = mock_db
    mock_cursor.fetchone.return_value = locked_row(lat=41.0, lng=29.0)

    with pytest.raises(ValidationError):
        lifecycle.update_event(1, 1, {"lat": None})


def test_update_empty_patch(mock_db):
    mock_conn, mock_cursor = mock_db
    mock_cursor.fetchone.return_value = locked_row()

    with pytest.raises(ValidationError):
        lifecycle.update_event(1, 1, {"unknown": "field"})


def test_update_forbidden_before_validation(mock_db):
    mock_conn, mock_cursor = mock_db
    mock_cursor.fetchone.return_value = locked_row(organizer_id=2)

    # An invalid patch from a non-organizer is still reported as Forbidden
    with pytest.raises(Forbidden):
        lifecycle.update_event(1, 1, {"organizer_id": 1})


def test_delete_forbidden(mock_db):
    mock_conn, mock_cursor = mock_db
    mock_cursor.fetchone.return_value = locked_row(organizer_id=2)

    with pytest.raises(Forbidden):
        lifecycle.delete_event(1, 1)
    mock_conn.commit.assert_not_called()


@pytest.mark.parametrize("value", [float("inf"), float("nan")])
def test_non_finite_capacity_is_rejected(value):
    with pytest.raises(ValidationError):
        clean_event_fields({"max_attendees": value})


def test_image_is_not_a_json_field():
    assert clean_event_fields({"image": "/uploads/evil.exe"}) == {}


def test_update_with_only_image_url_is_empty(mock_db):
    mock_conn, mock_cursor = mock_db
    mock_cursor.fetchone.return_value = locked_row()

    with pytest.raises(ValidationError):
        lifecycle.update_event(1, 1, {"image": "http://example.com/x.png"})


def test_update_failure_removes_new_image(mock_db, mocker):
    mock_conn, mock_cursor = mock_db
    mock_cursor.fetchone.return_value = locked_row()
    mocker.patch("backend.common.storage.save_image", return_value="/uploads/new.png")
    delete_image = mocker.patch("backend.common.storage.delete_image")
    mock_cursor.execute.side_effect = [None, psycopg2.OperationalError("connection lost")]
    image = FileStorage(stream=io.BytesIO(b"png"), filename="new.png")

    with pytest.raises(psycopg2.OperationalError):
        lifecycle.update_event(1, 1, {"title": "New"}, image)

    delete_image.assert_called_once_with("/uploads/new.png")
    mock_conn.commit.assert_not_called()
