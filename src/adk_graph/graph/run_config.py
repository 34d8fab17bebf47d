"""Run and stream configuration for compiled graphs."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Optional


@dataclass
class RunConfig:
    """Configuration for a single invocation.

    Attributes:
        thread_id: Identifies the persisted run line (required)
        recursion_limit: Max super-steps; None uses the compiled default
        interrupt_before: Node names to suspend before; None uses the compiled set
        interrupt_after: Node names to suspend after; None uses the compiled set
        resume_from: Checkpoint id to resume from instead of the latest
        node_timeout: Default per-node deadline in seconds
        cancel_event: Set to request cooperative cancellation
        stores: Auxiliary stores merged over the compiled ones
        metadata: Free-form metadata recorded on every checkpoint of the run
    """

    thread_id: str
    recursion_limit: Optional[int] = None
    interrupt_before: Optional[Iterable[str]] = None
    interrupt_after: Optional[Iterable[str]] = None
    resume_from: Optional[str] = None
    node_timeout: Optional[float] = None
    cancel_event: Optional[asyncio.Event] = None
    stores: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.thread_id:
            raise ValueError("thread_id is required")
        if self.recursion_limit is not None and self.recursion_limit < 1:
            raise ValueError("recursion_limit must be positive")
        if self.node_timeout is not None and self.node_timeout <= 0:
            raise ValueError("node_timeout must be positive")
        if self.interrupt_before is not None:
            self.interrupt_before = frozenset(self.interrupt_before)
        if self.interrupt_after is not None:
            self.interrupt_after = frozenset(self.interrupt_after)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def interrupts_before(self, default: FrozenSet[str]) -> FrozenSet[str]:
        return default if self.interrupt_before is None else frozenset(self.interrupt_before)

    def interrupts_after(self, default: FrozenSet[str]) -> FrozenSet[str]:
        return default if self.interrupt_after is None else frozenset(self.interrupt_after)


@dataclass
class StreamConfig:
    """Backpressure policy for the event stream.

    Terminal events (complete, interrupt, error) are always delivered. Other
    events go through a bounded buffer.

    Attributes:
        max_buffer_size: Capacity of the event buffer (default: 256)
        drop_when_full: Drop non-terminal events when the buffer is full
            instead of waiting for the consumer (default: True)
    """

    max_buffer_size: int = 256
    drop_when_full: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_buffer_size < 1:
            raise ValueError("max_buffer_size must be positive")
