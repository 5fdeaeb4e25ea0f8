"""
PostgreSQL connection helper.
Provides get_db() for use by services.
"""

import os
from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2.extras import DictCursor
from dotenv import load_dotenv

# Load .env variables from the project root
load_dotenv()


def get_database_url() -> str:
    """
    Read the database URL from the environment.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set. Please set the environment variable.")
    return database_url


@contextmanager
def get_db() -> Iterator["psycopg2.extensions.connection"]:
    """
    Open a connection with dictionary-based row access, wrapped in one transaction.

    The transaction commits when the block exits normally and rolls back if it
    raises. The connection is always closed afterwards.

    Usage:
        with get_db() as conn:
            with conn.cursor() as cur:
                cur.execute(...)

    Raises:
        psycopg2.Error: If the connection fails.
    """
    # Set the cursor factory to return rows as dictionaries
    # (e.g., {"user_id": 1, "email": "..."})
    conn = psycopg2.connect(get_database_url(), cursor_factory=DictCursor)
    try:
        with conn:
            yield conn
    finally:
        conn.close()
