import logging
from typing import List, Optional

import aiosqlite

from ..errors import GameNotFound
from ..schemas import GameRecord
from .game_store import GameStore

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS games (
    game_key TEXT PRIMARY KEY,
    state TEXT NOT NULL,
    last_activity INTEGER NOT NULL,
    record TEXT NOT NULL
)
"""


class SqliteGameStore(GameStore):
    """One row per game holding the whole record as JSON."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.db: Optional[aiosqlite.Connection] = None

    async def init(self) -> None:
        if self.db is not None:
            return
        self.db = await aiosqlite.connect(self.db_path)
        await self.db.execute("PRAGMA journal_mode=DELETE")
        await self.db.execute(SCHEMA)
        await self.db.commit()
        logger.info("[STORE] SqliteGameStore ready at %s", self.db_path)

    async def close(self) -> None:
        if self.db is None:
            return
        await self.db.close()
        self.db = None

    def _conn(self) -> aiosqlite.Connection:
        if self.db is None:
            raise RuntimeError("SqliteGameStore not initialized; call init() first")
        return self.db

    async def save(self, key: str, record: GameRecord) -> None:
        last_activity = record.turns[-1].timestamp if record.turns else record.creation_timestamp
        db = self._conn()
        await db.execute(
            "INSERT OR REPLACE INTO games (game_key, state, last_activity, record) "
            "VALUES (?, ?, ?, ?)",
            (key, record.state, last_activity, record.model_dump_json(by_alias=True)),
        )
        await db.commit()

    async def load(self, key: str) -> GameRecord:
        async with self._conn().execute(
                "SELECT record FROM games WHERE game_key = ?", (key,)) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise GameNotFound(f"No such game {key}")
        return GameRecord.model_validate_json(row[0])

    async def keys(self) -> List[str]:
        async with self._conn().execute(
                "SELECT game_key FROM games ORDER BY last_activity DESC") as cursor:
            rows = await cursor.fetchall()
        return [r[0] for r in rows]

    async def delete(self, key: str) -> None:
        db = self._conn()
        cursor = await db.execute("DELETE FROM games WHERE game_key = ?", (key,))
        await db.commit()
        if cursor.rowcount == 0:
            raise GameNotFound(f"No such game {key}")
