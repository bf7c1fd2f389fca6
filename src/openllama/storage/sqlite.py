"""SQLite key-value store.

Provides persistent storage of chat sessions and settings using a
SQLite database file. Uses aiosqlite for async access.
"""

from datetime import datetime
from pathlib import Path

try:
    import aiosqlite
    AIOSQLITE_AVAILABLE = True
except ImportError:
    AIOSQLITE_AVAILABLE = False
    aiosqlite = None

from .base import KeyValueStore


class SQLiteKeyValueStore(KeyValueStore):
    """SQLite-backed key-value store.

    Each key maps to one row; saving a key replaces its row.
    """

    def __init__(self, path: str | Path = "./openllama.db"):
        if not AIOSQLITE_AVAILABLE:
            raise ImportError(
                "SQLite store requires aiosqlite. "
                "Install with: pip install aiosqlite"
            )

        self._db_path = Path(path)
        self._connection: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the database and create the schema."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._db_path)
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        await self._connection.commit()

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> "aiosqlite.Connection":
        if self._connection is None:
            raise RuntimeError("SQLite store is not connected. Call connect() first.")
        return self._connection

    async def load(self, key: str) -> str | None:
        connection = self._require_connection()
        async with connection.execute(
            "SELECT value FROM kv_store WHERE key = ?",
            (key,)
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else None

    async def save(self, key: str, value: str) -> None:
        connection = self._require_connection()
        await connection.execute("""
            INSERT INTO kv_store (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
        """, (key, value, datetime.now().isoformat()))
        await connection.commit()

    async def delete(self, key: str) -> None:
        connection = self._require_connection()
        await connection.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        await connection.commit()

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> Path:
        return self._db_path
