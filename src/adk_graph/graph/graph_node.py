"""Graph node wrapper for functions and node objects."""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from .interrupt import Interrupt

if TYPE_CHECKING:
    from ..checkpoints.base_checkpointer import CheckpointReader
    from .run_config import RunConfig


class NodeOutput(BaseModel):  # type: ignore[misc]
    """What a node hands back to the engine.

    Attributes:
        updates: Partial state, merged through the channel reducers
        interrupt: Optional request to suspend the run; all updates of the
            step are discarded when present
        events: Custom payloads surfaced on the event stream
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    updates: Dict[str, Any] = Field(default_factory=dict)
    interrupt: Optional[Interrupt] = None
    events: List[Any] = Field(default_factory=list)

    @classmethod
    def coerce(cls, value: Any, node_name: str) -> "NodeOutput":
        """Accept NodeOutput, a plain update dict, or None."""
        if value is None:
            return cls()
        if isinstance(value, NodeOutput):
            return value
        if isinstance(value, Mapping):
            return cls(updates=dict(value))
        raise TypeError(
            f"Node {node_name!r} returned {type(value).__name__}; expected "
            "NodeOutput, dict or None"
        )


@dataclass(frozen=True)
class NodeContext:
    """Per-call context handed to every node.

    Ambient capabilities travel here explicitly so concurrent node calls
    never share hidden global state.

    Attributes:
        thread_id: Run line being executed
        step: Current super-step
        node_name: Name the node is registered under
        config: Run configuration of the invocation
        checkpoints: Read-only checkpoint accessor, None without a checkpointer
        stores: Auxiliary stores supplied at compile or run time
        resuming: True on the first step after a resume
        resume_input: Input supplied with the resume, if any
        interrupt: Interrupt being resumed, on the first step after a resume
        channels: Channel names declared by the calling graph
    """

    thread_id: str
    step: int
    node_name: str
    config: "RunConfig"
    checkpoints: Optional["CheckpointReader"] = None
    stores: Mapping[str, Any] = field(default_factory=dict)
    resuming: bool = False
    resume_input: Optional[Dict[str, Any]] = None
    interrupt: Optional[Interrupt] = None
    channels: FrozenSet[str] = frozenset()


@runtime_checkable
class Node(Protocol):
    """Node capability: the single extension point for external computation."""

    async def execute(self, state: Mapping[str, Any], context: NodeContext) -> NodeOutput:
        ...


class BaseNode:
    """Convenience base class for node objects."""

    async def execute(self, state: Mapping[str, Any], context: NodeContext) -> NodeOutput:
        raise NotImplementedError


NodeFunction = Callable[..., Any]


class GraphNode:
    """A named node in the graph wrapping a function or a node object.

    Supports:
    - Plain functions ``fn(state, ctx)`` (sync functions run in a worker thread)
    - Async functions ``async fn(state, ctx)``
    - Any object with ``async execute(state, ctx)``, including a compiled graph
      (graphs within graphs)

    Functions may return a NodeOutput, a plain dict of updates, or None.
    """

    def __init__(
        self,
        name: str,
        node: Optional[Node] = None,
        function: Optional[NodeFunction] = None,
        input_mapper: Optional[Callable[[Mapping[str, Any]], Mapping[str, Any]]] = None,
        output_mapper: Optional[Callable[[NodeOutput, Mapping[str, Any]], NodeOutput]] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize graph node.

        Args:
            name: Node name
            node: Object implementing the Node capability
            function: Function to execute (alternative to node)
            input_mapper: Maps the state snapshot to the node's input
            output_mapper: Maps the node's output (and the snapshot) to the
                NodeOutput handed to the engine
            timeout: Per-call deadline in seconds
        """
        if node is None and function is None:
            raise ValueError("Either node or function must be provided")
        if node is not None and function is not None:
            raise ValueError("Provide node or function, not both")
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be positive")

        self.name = name
        self.node = node
        self.function = function
        self.input_mapper = input_mapper
        self.output_mapper = output_mapper
        self.timeout = timeout

    @property
    def kind(self) -> str:
        if self.function is not None:
            return "function"
        if hasattr(self.node, "export_graph_structure"):
            return "graph"
        return "node"

    async def execute(self, state: Mapping[str, Any], context: NodeContext) -> NodeOutput:
        """Run the wrapped callable against a state snapshot."""
        node_input = self.input_mapper(state) if self.input_mapper else state

        if self.function is not None:
            if inspect.iscoroutinefunction(self.function):
                raw = await self.function(node_input, context)
            else:
                raw = await asyncio.to_thread(self.function, node_input, context)
                if inspect.isawaitable(raw):
                    raw = await raw
        else:
            raw = await self.node.execute(node_input, context)  # type: ignore[union-attr]

        output = NodeOutput.coerce(raw, self.name)
        if self.output_mapper:
            output = NodeOutput.coerce(self.output_mapper(output, state), self.name)
        return output

    def __repr__(self) -> str:
        return f"GraphNode({self.name!r}, kind={self.kind})"
