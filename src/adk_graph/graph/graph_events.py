"""Typed event streams for graph execution."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class GraphEventType(str, Enum):
    """Types of graph execution events."""

    STEP_START = "step_start"  # Super-step planned
    STEP_END = "step_end"  # Super-step merged
    NODE_START = "node_start"  # Node execution starting
    NODE_END = "node_end"  # Node execution completed
    STATE = "state"  # Full state snapshot after a step
    UPDATES = "updates"  # One node's update delta
    CUSTOM = "custom"  # Node-emitted payload
    CHECKPOINT = "checkpoint"  # Checkpoint created
    INTERRUPT = "interrupt"  # Human-in-the-loop interrupt (terminal)
    ERROR = "error"  # Execution error (terminal)
    COMPLETE = "complete"  # Graph execution complete (terminal)


TERMINAL_EVENT_TYPES = frozenset(
    {GraphEventType.INTERRUPT, GraphEventType.ERROR, GraphEventType.COMPLETE}
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class GraphEvent(BaseModel):  # type: ignore[misc]
    """Typed event for graph execution streaming.

    GraphEvent provides structured events for monitoring and debugging
    graph execution. These events can be streamed to track execution progress,
    state changes, and control flow.

    Example:
        ```python
        async for event in graph.stream(inputs, config, GraphStreamMode.DEBUG):
            if event.event_type == GraphEventType.NODE_START:
                print(f"Starting node: {event.node_name}")
            elif event.event_type == GraphEventType.CHECKPOINT:
                print(f"Checkpoint at step {event.step}")
        ```
    """

    event_type: GraphEventType
    timestamp: str = Field(default_factory=_now, description="ISO timestamp of event")
    thread_id: Optional[str] = None

    # Node information
    node_name: Optional[str] = None
    step: Optional[int] = None
    duration_ms: Optional[float] = None

    # State information
    graph_state: Optional[Dict[str, Any]] = None
    state_delta: Optional[Dict[str, Any]] = None
    frontier: Optional[List[str]] = None

    # Custom payload
    payload: Any = None

    # Interrupt information
    interrupt_mode: Optional[str] = None
    interrupt_message: Optional[str] = None

    # Error information
    error_message: Optional[str] = None
    error_type: Optional[str] = None

    # Checkpoint information
    checkpoint_id: Optional[str] = None

    # Additional metadata
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.event_type in TERMINAL_EVENT_TYPES


class GraphStreamMode(str, Enum):
    """Stream modes for graph execution.

    Different stream modes provide different levels of detail:
    - VALUES: Full state after each step
    - UPDATES: Per-node state updates after each step
    - CUSTOM: Payloads emitted by nodes and callbacks
    - DEBUG: All events including steps, nodes, checkpoints

    Terminal events (complete, interrupt, error) are delivered in every mode.
    """

    VALUES = "values"  # Stream state snapshots
    UPDATES = "updates"  # Stream state updates
    CUSTOM = "custom"  # Stream node-emitted events
    DEBUG = "debug"  # Stream all debug events


_MODE_EVENTS = {
    GraphStreamMode.VALUES: {GraphEventType.STATE},
    GraphStreamMode.UPDATES: {GraphEventType.UPDATES},
    GraphStreamMode.CUSTOM: {GraphEventType.CUSTOM},
    GraphStreamMode.DEBUG: set(GraphEventType),
}


def event_types_for(modes: List[GraphStreamMode]) -> frozenset:
    """Event types delivered for a combination of stream modes."""
    selected = set(TERMINAL_EVENT_TYPES)
    for mode in modes:
        selected |= _MODE_EVENTS[GraphStreamMode(mode)]
    return frozenset(selected)
