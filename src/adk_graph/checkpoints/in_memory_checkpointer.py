"""In-memory checkpointer for tests and single-process runs."""

from __future__ import annotations

import asyncio
import copy
from typing import Optional

from .base_checkpointer import BaseCheckpointer
from .base_checkpointer import CheckpointerConfig
from .models import Checkpoint


class InMemoryCheckpointer(BaseCheckpointer):
    """Keeps checkpoints in process memory.

    States are deep-copied on the way in and on the way out, so neither the
    engine nor a caller holding a returned checkpoint can alter what is
    stored.

    Example:
        ```python
        checkpointer = InMemoryCheckpointer()
        graph = builder.compile(checkpointer=checkpointer)
        await graph.invoke({"topic": "rust"}, RunConfig(thread_id="t-1"))
        history = await checkpointer.list("t-1")
        ```
    """

    def __init__(self, config: Optional[CheckpointerConfig] = None) -> None:
        super().__init__(config)
        self._threads: dict[str, list[str]] = {}
        self._checkpoints: dict[str, Checkpoint] = {}
        self._lock = asyncio.Lock()

    async def save(self, thread_id: str, checkpoint: Checkpoint) -> str:
        async with self._lock:
            if checkpoint.checkpoint_id in self._checkpoints:
                raise ValueError(
                    f"Checkpoint {checkpoint.checkpoint_id} already exists; "
                    "checkpoints are append-only"
                )
            history = self._threads.setdefault(thread_id, [])
            self._check_limits(checkpoint, len(history))
            stored = checkpoint.model_copy(
                update={"thread_id": thread_id, "state": copy.deepcopy(checkpoint.state)},
                deep=True,
            )
            self._checkpoints[stored.checkpoint_id] = stored
            history.append(stored.checkpoint_id)
            return stored.checkpoint_id

    async def load_latest(self, thread_id: str) -> Optional[Checkpoint]:
        history = self._threads.get(thread_id)
        if not history:
            return None
        return self._copy(self._checkpoints[history[-1]])

    async def load(self, checkpoint_id: str) -> Optional[Checkpoint]:
        checkpoint = self._checkpoints.get(checkpoint_id)
        return self._copy(checkpoint) if checkpoint else None

    async def list(self, thread_id: str) -> list[Checkpoint]:
        return [
            self._copy(self._checkpoints[cid]) for cid in self._threads.get(thread_id, [])
        ]

    async def delete_thread(self, thread_id: str) -> int:
        async with self._lock:
            history = self._threads.pop(thread_id, [])
            for cid in history:
                self._checkpoints.pop(cid, None)
            return len(history)

    @staticmethod
    def _copy(checkpoint: Checkpoint) -> Checkpoint:
        return checkpoint.model_copy(deep=True)
