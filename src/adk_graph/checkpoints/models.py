"""Data models for checkpoints."""

from datetime import datetime
from datetime import timezone
from enum import Enum
from typing import Any
from typing import Optional

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from ..graph.interrupt import Interrupt


class CheckpointSource(str, Enum):
    """Why a checkpoint was written."""

    INPUT = "input"  # Start of a fresh run, before step 0
    LOOP = "loop"  # After a completed super-step
    INTERRUPT = "interrupt"  # At a suspension point
    UPDATE = "update"  # External state edit via update_state


class Checkpoint(BaseModel):  # type: ignore[misc]
    """Immutable snapshot of run progress.

    Checkpoints are append-only: a thread accumulates new checkpoints and
    never rewrites old ones. Resuming from a checkpoint re-enters the
    planning phase with ``pending_frontier`` at ``step``.
    """

    model_config = ConfigDict(frozen=True)

    thread_id: str = Field(description="Run line this checkpoint belongs to")

    checkpoint_id: str = Field(description="Unique identifier for this checkpoint")

    parent_checkpoint_id: Optional[str] = Field(
        default=None,
        description="Checkpoint this one was derived from",
    )

    state: dict[str, Any] = Field(
        default_factory=dict,
        description="Full channel state at checkpoint time",
    )

    step: int = Field(
        default=0,
        description="Super-step the run continues at when resumed",
    )

    pending_frontier: list[str] = Field(
        default_factory=list,
        description="Nodes scheduled for the next step; empty once the run completed",
    )

    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="ISO 8601 timestamp when checkpoint was created",
    )

    source: CheckpointSource = Field(
        default=CheckpointSource.LOOP,
        description="Reason the checkpoint was written",
    )

    interrupt: Optional[Interrupt] = Field(
        default=None,
        description="Suspension marker when source is INTERRUPT",
    )

    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional user-defined metadata",
    )

    @property
    def is_complete(self) -> bool:
        return not self.pending_frontier


class ListCheckpointsResponse(BaseModel):  # type: ignore[misc]
    """Response model for paginated checkpoint listing (most recent first)."""

    checkpoints: list[Checkpoint] = Field(
        default_factory=list,
        description="Checkpoints for the current page",
    )

    total_count: int = Field(
        description="Total number of checkpoints across all pages",
    )

    page: int = Field(
        description="Current page number (1-indexed)",
    )

    page_size: int = Field(
        description="Number of checkpoints per page",
    )

    has_next: bool = Field(
        description="Whether there are more checkpoints on next page",
    )

    has_previous: bool = Field(
        description="Whether there are checkpoints on previous page",
    )
