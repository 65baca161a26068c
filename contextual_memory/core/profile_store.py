"""
Profile store: get/put/delete contextual metadata profiles by owner.

Each put is a single upsert statement, so a write is atomic per call. There is
no read-modify-write locking across calls; the last write wins.
"""

import asyncio
import json
import sqlite3
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from .config import DB_PATH
from .db import get_db, init_db
from .errors import PersistenceError
from .schema import ContextualMetadataProfile, LIST_FIELDS, now_ms
from ..util.logging import logger

WEEK_MS = 7 * 24 * 60 * 60 * 1000

_COLUMNS = ["owner_id"] + LIST_FIELDS + [
    "interaction_count", "last_interaction_at", "created_at", "updated_at",
]


def _row_to_profile(row: tuple) -> ContextualMetadataProfile:
    data: Dict[str, Any] = dict(zip(_COLUMNS, row))
    for name in LIST_FIELDS:
        try:
            data[name] = json.loads(data[name] or "[]")
        except (TypeError, ValueError):
            data[name] = []
    return ContextualMetadataProfile.from_dict(data)


def _profile_to_row(profile: ContextualMetadataProfile) -> tuple:
    values = []
    for column in _COLUMNS:
        value = getattr(profile, column)
        if column == "people_mentions":
            value = json.dumps([asdict(p) for p in value])
        elif column in LIST_FIELDS:
            value = json.dumps(list(value))
        values.append(value)
    return tuple(values)


class ProfileStore:
    """SQLite-backed persistence for ContextualMetadataProfile rows."""

    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path
        init_db(db_path)

    # Synchronous primitives, run off the event loop by the async API

    def _get(self, owner_id: str) -> Optional[ContextualMetadataProfile]:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {', '.join(_COLUMNS)} FROM contextual_metadata WHERE owner_id = ?",
                (owner_id,)
            )
            row = cursor.fetchone()
            return _row_to_profile(row) if row else None

    def _put(self, profile: ContextualMetadataProfile) -> None:
        placeholders = ", ".join("?" for _ in _COLUMNS)
        updates = ", ".join(f"{c} = excluded.{c}" for c in _COLUMNS if c != "owner_id")
        with get_db(self.db_path) as conn:
            conn.execute(
                f"INSERT INTO contextual_metadata ({', '.join(_COLUMNS)}) VALUES ({placeholders}) "
                f"ON CONFLICT(owner_id) DO UPDATE SET {updates}",
                _profile_to_row(profile)
            )
            conn.commit()

    def _delete(self, owner_id: str) -> bool:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("DELETE FROM contextual_metadata WHERE owner_id = ?", (owner_id,))
            conn.commit()
            return cursor.rowcount > 0

    def _list(self) -> List[ContextualMetadataProfile]:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {', '.join(_COLUMNS)} FROM contextual_metadata "
                "ORDER BY last_interaction_at DESC"
            )
            return [_row_to_profile(row) for row in cursor.fetchall()]

    def _stats(self, since_ms: int) -> Dict[str, Any]:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT COUNT(*), AVG(interaction_count), MAX(last_interaction_at) "
                "FROM contextual_metadata"
            )
            total, average, last = cursor.fetchone()
            cursor.execute(
                "SELECT COUNT(*) FROM contextual_metadata WHERE last_interaction_at >= ?",
                (since_ms,)
            )
            active = cursor.fetchone()[0]
        return {
            "total_owners": total or 0,
            "average_interactions": int((average or 0) + 0.5),
            "last_interaction_at": last,
            "active_owners_last_week": active or 0,
        }

    # Async API

    async def get_profile(self, owner_id: str) -> Optional[ContextualMetadataProfile]:
        """Return the owner's profile, or None if none exists yet."""
        try:
            return await asyncio.to_thread(self._get, owner_id)
        except sqlite3.Error as e:
            logger.log_profile_operation("get", owner_id, "failed", {"error": str(e)})
            raise PersistenceError(f"Profile read failed: {e}", owner_id=owner_id,
                                   operation="get_profile") from e

    async def put_profile(self, profile: ContextualMetadataProfile) -> None:
        """Insert or replace the owner's profile."""
        try:
            await asyncio.to_thread(self._put, profile)
        except sqlite3.Error as e:
            logger.log_profile_operation("put", profile.owner_id, "failed", {"error": str(e)})
            raise PersistenceError(f"Profile write failed: {e}", owner_id=profile.owner_id,
                                   operation="put_profile") from e

        logger.log_profile_operation("put", profile.owner_id, details={
            "interaction_count": profile.interaction_count,
        })

    async def delete_profile(self, owner_id: str) -> bool:
        """Delete the owner's profile. Returns False if there was none."""
        try:
            deleted = await asyncio.to_thread(self._delete, owner_id)
        except sqlite3.Error as e:
            logger.log_profile_operation("delete", owner_id, "failed", {"error": str(e)})
            raise PersistenceError(f"Profile delete failed: {e}", owner_id=owner_id,
                                   operation="delete_profile") from e

        logger.log_profile_operation("delete", owner_id, "success" if deleted else "skipped")
        return deleted

    async def list_profiles(self) -> List[ContextualMetadataProfile]:
        """All profiles, most recently active first."""
        try:
            return await asyncio.to_thread(self._list)
        except sqlite3.Error as e:
            logger.log_profile_operation("list", "*", "failed", {"error": str(e)})
            raise PersistenceError(f"Profile listing failed: {e}", operation="list_profiles") from e

    async def get_stats(self) -> Dict[str, Any]:
        """Owner count, average interactions, last interaction and weekly actives."""
        try:
            return await asyncio.to_thread(self._stats, now_ms() - WEEK_MS)
        except sqlite3.Error as e:
            logger.log_profile_operation("stats", "*", "failed", {"error": str(e)})
            raise PersistenceError(f"Profile stats failed: {e}", operation="get_stats") from e
