"""Exception hierarchy for graph compilation and execution.

Every fatal error raised by the engine derives from GraphError and carries
the thread id, step and node name (when known) so callers can diagnose a
failure and retry the whole run. Interrupts are not errors: they are
reported through RunResult.
"""

from __future__ import annotations

from typing import Any, List, Optional


class GraphError(Exception):
    """Base class for all graph errors.

    Attributes:
        thread_id: Run line the error occurred on, if any
        step: Super-step counter at the time of the error, if any
        node: Name of the node involved, if any
    """

    def __init__(
        self,
        message: str,
        *,
        thread_id: Optional[str] = None,
        step: Optional[int] = None,
        node: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.thread_id = thread_id
        self.step = step
        self.node = node

    def __str__(self) -> str:
        context = []
        if self.thread_id is not None:
            context.append(f"thread_id={self.thread_id}")
        if self.step is not None:
            context.append(f"step={self.step}")
        if self.node is not None:
            context.append(f"node={self.node}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class ValidationError(GraphError):
    """Raised when a graph definition is structurally invalid.

    Attributes:
        problems: Every defect found during validation
    """

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("Invalid graph: " + "; ".join(self.problems))


class RoutingError(GraphError):
    """Raised when a conditional edge cannot produce a target."""


class UnknownRouteError(RoutingError):
    """Raised when a router returns a key missing from its route table."""

    def __init__(
        self,
        node: str,
        route_key: Any,
        *,
        thread_id: Optional[str] = None,
        step: Optional[int] = None,
    ):
        self.route_key = route_key
        super().__init__(
            f"Router for node {node!r} returned unknown route {route_key!r}",
            thread_id=thread_id,
            step=step,
            node=node,
        )


class NodeExecutionError(GraphError):
    """Raised when a node call fails or times out.

    The super-step that contained the node is abandoned without applying
    any of its updates. The original exception is chained as __cause__.
    """

    def __init__(
        self,
        message: str,
        *,
        thread_id: Optional[str] = None,
        step: Optional[int] = None,
        node: Optional[str] = None,
        timed_out: bool = False,
    ):
        super().__init__(message, thread_id=thread_id, step=step, node=node)
        self.timed_out = timed_out


class InvalidUpdateError(GraphError):
    """Raised when node updates cannot be merged into the state."""


class RecursionLimitExceeded(GraphError):
    """Raised when a run reaches its recursion limit with work still pending.

    To allow longer runs, pass a higher ``recursion_limit`` in RunConfig or
    at compile time.
    """

    def __init__(self, limit: int, *, thread_id: Optional[str] = None):
        self.limit = limit
        super().__init__(
            f"Recursion limit of {limit} reached without hitting a stop condition",
            thread_id=thread_id,
            step=limit,
        )


class CheckpointPersistenceError(GraphError):
    """Raised when a checkpointer fails to save or load a checkpoint."""


class CheckpointNotFoundError(GraphError):
    """Raised when a run is resumed but no matching checkpoint exists."""


class GraphCancelledError(GraphError):
    """Raised when a run observes its cancellation signal."""
