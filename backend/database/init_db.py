"""
Database bootstrap and schema integrity check.

Applies schema.sql, then performs a full cycle (create user, create event,
join, read back through the membership table, delete) inside a transaction
that is rolled back, so the database is left exactly as the schema made it.

Usage:
    python -m backend.database.init_db
"""

import logging
import os
import sys

from backend.database.db_connection import get_db

SCHEMA_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "schema.sql")
REQUIRED_TABLES = ["users", "events", "event_participants"]


def apply_schema() -> None:
    """
    Execute schema.sql. Every statement is idempotent (IF NOT EXISTS).
    """
    with open(SCHEMA_PATH, encoding="utf-8") as f:
        schema_sql = f.read()

    with get_db() as conn:
        with conn.cursor() as cur:
            cur.execute(schema_sql)
    logging.info("Schema applied from %s", SCHEMA_PATH)


def missing_tables() -> list:
    """
    Return the names of required tables that do not exist.
    """
    missing = []
    with get_db() as conn:
        with conn.cursor() as cur:
            for table in REQUIRED_TABLES:
                cur.execute("SELECT to_regclass(%s);", (table,))
                if cur.fetchone()[0] is None:
                    missing.append(table)
    return missing


def check_relationships() -> None:
    """
    Insert a user, an event and a membership row, read them back with a join,
    then roll everything back.

    Raises:
        RuntimeError: If the joined read does not return the inserted data.
    """
    with get_db() as conn:
        try:
            _insert_and_read_back(conn)
        finally:
            # Nothing from the check is kept
            conn.rollback()


def _insert_and_read_back(conn) -> None:
    with conn.cursor() as cur:
        cur.execute("""
            INSERT INTO users (email, password_hash, name)
            VALUES ('schema-check@example.com', 'hashed_pw', 'Schema Check')
            RETURNING user_id;
        """)
        user_id = cur.fetchone()[0]

        cur.execute("""
            INSERT INTO events (title, event_date, venue, lat, lng, max_attendees, organizer_id)
            VALUES ('Schema Check', NOW(), 'Test Hall', 41.0, 29.0, 10, %s)
            RETURNING event_id;
        """, (user_id,))
        event_id = cur.fetchone()[0]

        cur.execute(
            "INSERT INTO event_participants (event_id, user_id) VALUES (%s, %s);",
            (event_id, user_id),
        )

        cur.execute("""
            SELECT e.title, u.name, p.user_id
            FROM events e
            JOIN users u ON e.organizer_id = u.user_id
            JOIN event_participants p ON p.event_id = e.event_id
            WHERE e.event_id = %s;
        """, (event_id,))
        row = cur.fetchone()
        if not row or row[2] != user_id:
            raise RuntimeError("Failed to retrieve joined data. Relationships may be incorrect.")
        logging.info("Relationship check passed: '%s' organized by %s", row[0], row[1])


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(asctime)s - %(message)s")
    try:
        apply_schema()
        missing = missing_tables()
        if missing:
            logging.error("Missing tables after applying schema: %s", ", ".join(missing))
            return 1
        check_relationships()
    except Exception:
        logging.exception("Database initialization FAILED")
        return 1

    logging.info("Database initialization PASSED")
    return 0


if __name__ == "__main__":
    sys.exit(main())
