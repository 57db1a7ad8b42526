"""
SQLite database implementation.
A small key-value document store: each key holds one JSON document.
"""

import aiosqlite
import asyncio
import json
from datetime import datetime, timezone
from typing import Any, List, Optional
import os


class SQLiteDatabase:
    """SQLite-backed JSON document store."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._connection: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            os.makedirs(os.path.dirname(self.db_path) or ".", exist_ok=True)
            self._connection = await aiosqlite.connect(self.db_path)
            self._connection.row_factory = aiosqlite.Row
        return self._connection

    async def initialize(self) -> None:
        """Create database tables."""
        conn = await self._get_connection()

        await conn.executescript("""
            CREATE TABLE IF NOT EXISTS documents (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
        """)
        await conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    # ===== Document Operations =====

    async def get_document(self, key: str) -> Optional[Any]:
        conn = await self._get_connection()
        cursor = await conn.execute("SELECT value FROM documents WHERE key = ?", (key,))
        row = await cursor.fetchone()
        return json.loads(row["value"]) if row else None

    async def put_document(self, key: str, value: Any) -> None:
        conn = await self._get_connection()
        async with self._write_lock:
            await conn.execute(
                """
                INSERT INTO documents (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, json.dumps(value), datetime.now(timezone.utc).isoformat())
            )
            await conn.commit()

    async def append_to_document(self, key: str, item: Any) -> int:
        """
        Append an item to the JSON array stored under key.

        The document is created if absent. Returns the new array length.
        """
        conn = await self._get_connection()
        async with self._write_lock:
            cursor = await conn.execute("SELECT value FROM documents WHERE key = ?", (key,))
            row = await cursor.fetchone()
            items = json.loads(row["value"]) if row else []
            if not isinstance(items, list):
                raise ValueError(f"Document '{key}' is not an array")
            items.append(item)

            await conn.execute(
                """
                INSERT INTO documents (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, json.dumps(items), datetime.now(timezone.utc).isoformat())
            )
            await conn.commit()
            return len(items)

    async def list_keys(self, prefix: str = "", limit: int = 100) -> List[str]:
        """List document keys with the given prefix, newest key first."""
        conn = await self._get_connection()
        cursor = await conn.execute(
            "SELECT key FROM documents WHERE key LIKE ? ORDER BY key DESC LIMIT ?",
            (f"{prefix}%", limit)
        )
        rows = await cursor.fetchall()
        return [row["key"] for row in rows]
