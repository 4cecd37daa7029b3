"""SQLite-backed session store."""

from __future__ import annotations

import asyncio
import sqlite3
from typing import TYPE_CHECKING

import structlog

from game.logic.exceptions import StaleSessionError
from game.logic.state import GameSession
from game.session.store import SessionStore, next_version

if TYPE_CHECKING:
    from shared.db.connection import Database

logger = structlog.get_logger()


class SqliteSessionStore(SessionStore):
    """SQLite implementation of SessionStore.

    Sessions are stored as JSON snapshots next to an indexed version column
    that carries the compare-and-swap token. Deleting a session also drops
    the connection bindings that point at it.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self._lock = asyncio.Lock()

    async def get(self, code: str) -> GameSession | None:
        async with self._lock:
            row = self._db.connection.execute(
                "SELECT data FROM game_sessions WHERE code = ?",
                (code,),
            ).fetchone()
        if row is None:
            return None
        return GameSession.model_validate_json(row[0])

    async def put(self, session: GameSession, *, expected_version: int | None) -> GameSession:
        stored = next_version(session, expected_version)
        conn = self._db.connection
        async with self._lock:
            try:
                if expected_version is None:
                    conn.execute(
                        "INSERT INTO game_sessions (code, version, data) VALUES (?, ?, ?)",
                        (stored.code, stored.version, stored.model_dump_json()),
                    )
                else:
                    cursor = conn.execute(
                        "UPDATE game_sessions SET version = ?, data = ? WHERE code = ? AND version = ?",
                        (stored.version, stored.model_dump_json(), stored.code, expected_version),
                    )
                    if cursor.rowcount == 0:
                        conn.rollback()
                        raise StaleSessionError(stored.code, expected_version, self._stored_version(stored.code))
                conn.commit()
            except sqlite3.IntegrityError:
                conn.rollback()
                raise StaleSessionError(stored.code, expected_version, self._stored_version(stored.code)) from None
        return stored

    def _stored_version(self, code: str) -> int | None:
        row = self._db.connection.execute("SELECT version FROM game_sessions WHERE code = ?", (code,)).fetchone()
        return None if row is None else row[0]

    async def delete(self, code: str) -> bool:
        conn = self._db.connection
        async with self._lock:
            cursor = conn.execute("DELETE FROM game_sessions WHERE code = ?", (code,))
            conn.execute("DELETE FROM connection_bindings WHERE code = ?", (code,))
            conn.commit()
        return cursor.rowcount > 0

    async def codes(self) -> list[str]:
        async with self._lock:
            rows = self._db.connection.execute("SELECT code FROM game_sessions ORDER BY code").fetchall()
        return [row[0] for row in rows]

    async def bind(self, connection_id: str, code: str) -> None:
        conn = self._db.connection
        async with self._lock:
            conn.execute(
                "INSERT INTO connection_bindings (connection_id, code) VALUES (?, ?) "
                "ON CONFLICT(connection_id) DO UPDATE SET code = excluded.code",
                (connection_id, code),
            )
            conn.commit()

    async def lookup(self, connection_id: str) -> str | None:
        async with self._lock:
            row = self._db.connection.execute(
                "SELECT code FROM connection_bindings WHERE connection_id = ?",
                (connection_id,),
            ).fetchone()
        return None if row is None else row[0]

    async def unbind(self, connection_id: str) -> None:
        conn = self._db.connection
        async with self._lock:
            conn.execute("DELETE FROM connection_bindings WHERE connection_id = ?", (connection_id,))
            conn.commit()
