"""Checkpointer capability consumed by the execution engine.

The engine depends only on this interface; where checkpoints live is up to
the implementation.
"""

from __future__ import annotations

import abc
import json
from dataclasses import dataclass
from typing import Optional

from .models import Checkpoint
from .models import ListCheckpointsResponse


@dataclass
class CheckpointerConfig:
    """Resource limits shared by the bundled checkpointers.

    Attributes:
        max_checkpoints_per_thread: Maximum number of checkpoints per thread.
            Default: 0 (unlimited). Saving past the limit raises ValueError.
        max_state_size_bytes: Maximum JSON size of a checkpoint's state.
            Default: 10MB. Set to 0 to disable the check.
    """

    max_checkpoints_per_thread: int = 0
    max_state_size_bytes: int = 10 * 1024 * 1024  # 10MB

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_checkpoints_per_thread < 0:
            raise ValueError("max_checkpoints_per_thread must be >= 0")
        if self.max_state_size_bytes < 0:
            raise ValueError("max_state_size_bytes must be >= 0")


class BaseCheckpointer(abc.ABC):
    """Durable store of append-only checkpoints keyed by thread id.

    Implementations must return checkpoints that callers cannot use to
    mutate stored data.
    """

    def __init__(self, config: Optional[CheckpointerConfig] = None) -> None:
        self.config = config or CheckpointerConfig()

    @abc.abstractmethod
    async def save(self, thread_id: str, checkpoint: Checkpoint) -> str:
        """Persist a checkpoint and return its id."""

    @abc.abstractmethod
    async def load_latest(self, thread_id: str) -> Optional[Checkpoint]:
        """Most recently saved checkpoint of a thread, or None."""

    @abc.abstractmethod
    async def load(self, checkpoint_id: str) -> Optional[Checkpoint]:
        """Checkpoint by id, or None."""

    @abc.abstractmethod
    async def list(self, thread_id: str) -> list[Checkpoint]:
        """All checkpoints of a thread, oldest first."""

    @abc.abstractmethod
    async def delete_thread(self, thread_id: str) -> int:
        """Remove every checkpoint of a thread; returns how many were removed."""

    async def list_checkpoints(
        self,
        thread_id: str,
        page: int = 1,
        page_size: int = 50,
    ) -> ListCheckpointsResponse:
        """List checkpoints of a thread with pagination, most recent first.

        Args:
            thread_id: Thread to list checkpoints from
            page: Page number (1-indexed, default: 1)
            page_size: Number of checkpoints per page (default: 50, max: 1000)

        Returns:
            ListCheckpointsResponse with paginated checkpoints
        """
        if page < 1:
            page = 1
        if page_size < 1 or page_size > 1000:
            page_size = 50

        ordered = list(reversed(await self.list(thread_id)))
        total_count = len(ordered)

        offset = (page - 1) * page_size
        paginated = ordered[offset : offset + page_size]

        return ListCheckpointsResponse(
            checkpoints=paginated,
            total_count=total_count,
            page=page,
            page_size=page_size,
            has_next=offset + len(paginated) < total_count,
            has_previous=page > 1,
        )

    def _check_limits(self, checkpoint: Checkpoint, current_count: int) -> None:
        """Raise ValueError if saving ``checkpoint`` would exceed the config."""
        if (
            self.config.max_checkpoints_per_thread > 0
            and current_count >= self.config.max_checkpoints_per_thread
        ):
            raise ValueError(
                f"Checkpoint limit reached: {current_count} checkpoints exist for "
                f"thread {checkpoint.thread_id} "
                f"(max: {self.config.max_checkpoints_per_thread}). "
                "Delete the thread or increase max_checkpoints_per_thread."
            )

        if self.config.max_state_size_bytes > 0:
            state_size = len(json.dumps(checkpoint.state, default=str).encode("utf-8"))
            if state_size > self.config.max_state_size_bytes:
                raise ValueError(
                    f"State size {state_size} bytes exceeds limit "
                    f"({self.config.max_state_size_bytes} bytes). "
                    f"Current state has {len(checkpoint.state)} keys."
                )


class CheckpointReader:
    """Read-only view of a checkpointer handed to nodes.

    Safe for concurrent use by the nodes of one super-step: it exposes no
    way to write.
    """

    def __init__(self, checkpointer: BaseCheckpointer, thread_id: str) -> None:
        self._checkpointer = checkpointer
        self.thread_id = thread_id

    async def load_latest(self, thread_id: Optional[str] = None) -> Optional[Checkpoint]:
        return await self._checkpointer.load_latest(thread_id or self.thread_id)

    async def load(self, checkpoint_id: str) -> Optional[Checkpoint]:
        return await self._checkpointer.load(checkpoint_id)

    async def list(self, thread_id: Optional[str] = None) -> list[Checkpoint]:
        return await self._checkpointer.list(thread_id or self.thread_id)
