"""
SQLite storage for contextual metadata profiles.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator

from .config import DB_PATH, ensure_db_directory


@contextmanager
def get_db(db_path: str = DB_PATH) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    conn = sqlite3.connect(db_path, timeout=30)
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: str = DB_PATH):
    """Initialize the database with required tables."""
    ensure_db_directory(db_path)
    with get_db(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute("PRAGMA journal_mode=WAL")

        # List fields are JSON arrays; timestamps are epoch milliseconds
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS contextual_metadata (
                owner_id TEXT PRIMARY KEY,
                prominent_topics TEXT NOT NULL DEFAULT '[]',
                representative_conversations TEXT NOT NULL DEFAULT '[]',
                narrative_overviews TEXT NOT NULL DEFAULT '[]',
                key_questions TEXT NOT NULL DEFAULT '[]',
                emerging_trends TEXT NOT NULL DEFAULT '[]',
                user_sentiments TEXT NOT NULL DEFAULT '[]',
                people_mentions TEXT NOT NULL DEFAULT '[]',
                interaction_count INTEGER NOT NULL DEFAULT 0,
                last_interaction_at INTEGER,
                created_at INTEGER,
                updated_at INTEGER
            )
        ''')

        cursor.execute(
            'CREATE INDEX IF NOT EXISTS idx_metadata_last_interaction '
            'ON contextual_metadata(last_interaction_at DESC)'
        )

        conn.commit()


def health_check(db_path: str = DB_PATH):
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [table[0] for table in cursor.fetchall()]
            return 'contextual_metadata' in table_names
    except sqlite3.Error:
        return False
