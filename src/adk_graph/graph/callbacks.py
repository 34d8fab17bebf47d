"""Callback infrastructure for graph observability and extensibility.

This module provides callback primitives for customizing graph behavior:
- NodeCallbackContext: Context passed to node lifecycle callbacks
- EdgeCallbackContext: Context passed when an edge fires
- NodeCallback: Type for before/after node callbacks
- EdgeCallback: Type for edge callbacks

Callbacks enable custom observability, logging, and debugging without
modifying the engine. A callback may return a GraphEvent, which is emitted
on the event stream; returning None emits nothing. A callback that raises
fails the step like a node failure would.

Example:
    ```python
    from adk_graph import GraphEvent, GraphEventType, StateGraph
    from adk_graph.graph.callbacks import NodeCallbackContext

    async def my_observability(ctx: NodeCallbackContext):
        return GraphEvent(
            event_type=GraphEventType.CUSTOM,
            node_name=ctx.node.name,
            payload={"about_to_run": ctx.node.name, "step": ctx.step},
        )

    builder = StateGraph(channels=["x"], before_node_callback=my_observability)
    ```
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Hashable, Mapping, Optional

from .graph_events import GraphEvent, GraphEventType


@dataclass
class NodeCallbackContext:
    """Context passed to node lifecycle callbacks.

    Attributes:
        node: The GraphNode being executed
        state: Pre-step snapshot (before) or the node's output updates (after)
        step: Current super-step
        thread_id: Run line
        metadata: Extensible metadata dictionary for custom use
    """

    node: Any  # GraphNode (avoiding circular import)
    state: Mapping[str, Any]
    step: int
    thread_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EdgeCallbackContext:
    """Context passed when an edge fires.

    Attributes:
        from_node: Name of the source node
        to_node: Resolved target (a node name or END)
        conditional: Whether the edge is conditional
        route_key: Router output for conditional edges
        state: Post-update state the edge was resolved against
        step: Step whose completion fired the edge
        thread_id: Run line
        metadata: Extensible metadata dictionary for custom use
    """

    from_node: str
    to_node: str
    conditional: bool
    route_key: Optional[Hashable]
    state: Mapping[str, Any]
    step: int
    thread_id: str
    metadata: Dict[str, Any] = field(default_factory=dict)


# Type aliases for callbacks
NodeCallback = Callable[[NodeCallbackContext], Awaitable[Optional[GraphEvent]]]
"""Callback function type for node lifecycle events.

Receives NodeCallbackContext and optionally returns a GraphEvent to emit.
"""

EdgeCallback = Callable[[EdgeCallbackContext], Awaitable[Optional[GraphEvent]]]
"""Callback function type for edge events.

Receives EdgeCallbackContext and optionally returns a GraphEvent to emit.
"""


def create_nested_observability_callback() -> NodeCallback:
    """Create a callback that shows nested graph hierarchy.

    Subgraph runs use thread ids of the form ``outer:node``, so the thread id
    spells out the path from the root graph to the running node.

    Example:
        ```python
        builder = StateGraph(
            channels=["x"],
            before_node_callback=create_nested_observability_callback(),
        )
        ```

    Returns:
        NodeCallback that emits custom events with nesting hierarchy
    """

    async def nested_callback(ctx: NodeCallbackContext) -> Optional[GraphEvent]:
        """Emit observability event with nested graph hierarchy."""
        path = ctx.thread_id.split(":")
        hierarchy = " → ".join(path[1:] + [ctx.node.name])

        return GraphEvent(
            event_type=GraphEventType.CUSTOM,
            thread_id=ctx.thread_id,
            node_name=ctx.node.name,
            step=ctx.step,
            payload={
                "observability_hierarchy": hierarchy,
                "observability_level": len(path) - 1,
                "observability_node": ctx.node.name,
            },
        )

    return nested_callback
