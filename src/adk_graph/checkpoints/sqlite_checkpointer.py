"""SQLite-backed checkpointer built on aiosqlite."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import aiosqlite

from .base_checkpointer import BaseCheckpointer
from .base_checkpointer import CheckpointerConfig
from .models import Checkpoint

_SCHEMA = """
CREATE TABLE IF NOT EXISTS checkpoints (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    thread_id TEXT NOT NULL,
    checkpoint_id TEXT NOT NULL UNIQUE,
    payload TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS checkpoints_thread_idx ON checkpoints (thread_id, seq);
"""


class SqliteCheckpointer(BaseCheckpointer):
    """Stores checkpoints as JSON rows in a SQLite database.

    Checkpointed state must be JSON serializable. Rows are only ever
    inserted, which keeps a thread's history append-only; insertion order
    (``seq``) defines "latest".

    Tip:
        Close the connection when done. The easiest way is the
        ``from_conn_string`` context manager:

        ```python
        async with SqliteCheckpointer.from_conn_string("checkpoints.db") as saver:
            graph = builder.compile(checkpointer=saver)
            await graph.invoke({"query": "hi"}, RunConfig(thread_id="thread-1"))
        ```
    """

    def __init__(
        self,
        conn: aiosqlite.Connection,
        config: Optional[CheckpointerConfig] = None,
    ) -> None:
        super().__init__(config)
        self.conn = conn
        self.lock = asyncio.Lock()
        self.is_setup = False

    @classmethod
    @asynccontextmanager
    async def from_conn_string(
        cls, conn_string: str, config: Optional[CheckpointerConfig] = None
    ) -> AsyncIterator["SqliteCheckpointer"]:
        """Open a connection for the lifetime of the context.

        Args:
            conn_string: Path of the database file, or ":memory:"
            config: Optional resource limits
        """
        async with aiosqlite.connect(conn_string) as conn:
            saver = cls(conn, config)
            await saver.setup()
            yield saver

    async def setup(self) -> None:
        """Create the table on first use."""
        async with self.lock:
            if self.is_setup:
                return
            await self.conn.executescript(_SCHEMA)
            await self.conn.commit()
            self.is_setup = True

    async def save(self, thread_id: str, checkpoint: Checkpoint) -> str:
        await self.setup()
        stored = checkpoint.model_copy(update={"thread_id": thread_id})
        payload = stored.model_dump_json()
        async with self.lock:
            async with self.conn.execute(
                "SELECT COUNT(*) FROM checkpoints WHERE thread_id = ?", (thread_id,)
            ) as cursor:
                row = await cursor.fetchone()
            self._check_limits(stored, row[0] if row else 0)
            await self.conn.execute(
                "INSERT INTO checkpoints (thread_id, checkpoint_id, payload) VALUES (?, ?, ?)",
                (thread_id, stored.checkpoint_id, payload),
            )
            await self.conn.commit()
        return stored.checkpoint_id

    async def load_latest(self, thread_id: str) -> Optional[Checkpoint]:
        await self.setup()
        async with self.conn.execute(
            "SELECT payload FROM checkpoints WHERE thread_id = ? ORDER BY seq DESC LIMIT 1",
            (thread_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return Checkpoint.model_validate_json(row[0]) if row else None

    async def load(self, checkpoint_id: str) -> Optional[Checkpoint]:
        await self.setup()
        async with self.conn.execute(
            "SELECT payload FROM checkpoints WHERE checkpoint_id = ?", (checkpoint_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return Checkpoint.model_validate_json(row[0]) if row else None

    async def list(self, thread_id: str) -> list[Checkpoint]:
        await self.setup()
        async with self.conn.execute(
            "SELECT payload FROM checkpoints WHERE thread_id = ? ORDER BY seq ASC",
            (thread_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [Checkpoint.model_validate_json(row[0]) for row in rows]

    async def delete_thread(self, thread_id: str) -> int:
        await self.setup()
        async with self.lock:
            cursor = await self.conn.execute(
                "DELETE FROM checkpoints WHERE thread_id = ?", (thread_id,)
            )
            await self.conn.commit()
            return cursor.rowcount
