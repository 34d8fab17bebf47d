"""Graph builder.

StateGraph collects nodes, edges and interrupt points, then validates the
whole definition at once in ``compile()``. Construction never raises for
structural defects; ``compile()`` reports every defect it finds in a
single ValidationError.

Example:
    ```python
    from adk_graph import END, START, StateGraph, StateReducer

    builder = StateGraph(channels=["query", ("messages", StateReducer.APPEND)])
    builder.add_node("fetch", fetch)
    builder.add_node("summarize", summarize)
    builder.add_edge(START, "fetch")
    builder.add_edge("fetch", "summarize")
    builder.set_end("summarize")

    graph = builder.compile(checkpointer=InMemoryCheckpointer())
    ```
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, FrozenSet, Hashable, Iterable, List, Mapping, Optional, Union

from ..checkpoints.base_checkpointer import BaseCheckpointer
from ..errors import ValidationError
from .callbacks import EdgeCallback, NodeCallback
from .compiled_graph import CompiledGraph
from .graph_edge import END, START, ConditionalEdge, DirectEdge, Edge, RouterLike
from .graph_node import GraphNode, Node, NodeFunction, NodeOutput
from .graph_state import ChannelSpec, StateSchema
from .interrupt import InterruptMode

logger = logging.getLogger("adk_graph." + __name__)

DEFAULT_RECURSION_LIMIT = 25

_RESERVED_NAMES = frozenset({START, END})


class StateGraph:
    """Mutable builder for a graph over a declared state schema.

    Node registration order matters: it orders the frontier, the merge of
    same-channel writes and the tie-break between simultaneous interrupts.
    """

    def __init__(
        self,
        channels: Union[StateSchema, Iterable[ChannelSpec]],
        *,
        before_node_callback: Optional[NodeCallback] = None,
        after_node_callback: Optional[NodeCallback] = None,
        edge_callback: Optional[EdgeCallback] = None,
    ):
        """Initialize the builder.

        Args:
            channels: State schema, or channel specs (names, ``(name, reducer)``
                tuples or Channel objects)
            before_node_callback: Called before every node execution
            after_node_callback: Called after every successful node execution
            edge_callback: Called whenever an edge fires
        """
        self.schema = StateSchema.coerce(channels)
        self.nodes: Dict[str, GraphNode] = {}
        self.edges: List[Edge] = []
        self.interrupt_before: List[str] = []
        self.interrupt_after: List[str] = []
        self.before_node_callback = before_node_callback
        self.after_node_callback = after_node_callback
        self.edge_callback = edge_callback
        self._problems: List[str] = []
        self._compiled = False

    def _check_mutable(self) -> None:
        if self._compiled:
            raise ValidationError(["Graph was already compiled and can no longer be modified"])

    def add_node(
        self,
        name: str,
        action: Union[GraphNode, Node, NodeFunction],
        *,
        timeout: Optional[float] = None,
        input_mapper: Optional[Callable[[Mapping[str, Any]], Mapping[str, Any]]] = None,
        output_mapper: Optional[Callable[[NodeOutput, Mapping[str, Any]], NodeOutput]] = None,
    ) -> "StateGraph":
        """Register a node.

        Args:
            name: Unique node name
            action: A function ``(state, ctx)``, an object with
                ``async execute(state, ctx)`` such as a compiled graph, or a
                prepared GraphNode
            timeout: Per-call deadline in seconds
            input_mapper: Maps the state snapshot to the node's input
            output_mapper: Post-processes the node's output

        Returns:
            Self for chaining
        """
        self._check_mutable()
        if isinstance(action, GraphNode):
            node = action
            if node.name != name:
                self._problems.append(
                    f"GraphNode {node.name!r} registered under a different name {name!r}"
                )
        elif hasattr(action, "execute"):
            node = GraphNode(
                name,
                node=action,  # type: ignore[arg-type]
                timeout=timeout,
                input_mapper=input_mapper,
                output_mapper=output_mapper,
            )
        elif callable(action):
            node = GraphNode(
                name,
                function=action,
                timeout=timeout,
                input_mapper=input_mapper,
                output_mapper=output_mapper,
            )
        else:
            raise TypeError(f"Cannot use {type(action).__name__} as node {name!r}")

        if name in _RESERVED_NAMES:
            self._problems.append(f"Node name {name!r} is reserved")
        elif name in self.nodes:
            self._problems.append(f"Duplicate node name {name!r}")
        else:
            self.nodes[name] = node
        return self

    def add_edge(self, source: str, target: str) -> "StateGraph":
        """Add an unconditional edge. ``START`` as source marks an entry point."""
        self._check_mutable()
        self.edges.append(DirectEdge(source, target))
        return self

    def add_conditional_edges(
        self,
        source: str,
        router: RouterLike,
        route_table: Union[Mapping[Hashable, str], Iterable[str]],
    ) -> "StateGraph":
        """Add a conditional edge.

        Args:
            source: Node whose completion evaluates the router
            router: Router or callable returning a route key
            route_table: Route key to target mapping, or target names used as
                their own keys

        Returns:
            Self for chaining
        """
        self._check_mutable()
        self.edges.append(ConditionalEdge(source, router, route_table))
        return self

    def set_start(self, node_name: str) -> "StateGraph":
        """Shorthand for ``add_edge(START, node_name)``."""
        return self.add_edge(START, node_name)

    def set_end(self, node_name: str) -> "StateGraph":
        """Shorthand for ``add_edge(node_name, END)``."""
        return self.add_edge(node_name, END)

    def add_interrupt(
        self, node_name: str, mode: InterruptMode = InterruptMode.BEFORE
    ) -> "StateGraph":
        """Add human-in-the-loop interrupt point.

        Args:
            node_name: Node to add interrupt to
            mode: When to interrupt (BEFORE, AFTER, or BOTH)

        Returns:
            Self for chaining
        """
        self._check_mutable()
        mode = InterruptMode(mode)
        if mode in (InterruptMode.BEFORE, InterruptMode.BOTH):
            if node_name not in self.interrupt_before:
                self.interrupt_before.append(node_name)
        if mode in (InterruptMode.AFTER, InterruptMode.BOTH):
            if node_name not in self.interrupt_after:
                self.interrupt_after.append(node_name)
        return self

    def validate(
        self,
        interrupt_before: Iterable[str] = (),
        interrupt_after: Iterable[str] = (),
        recursion_limit: int = DEFAULT_RECURSION_LIMIT,
    ) -> List[str]:
        """Collect every structural defect of the definition."""
        problems = list(self._problems)

        if not self.nodes:
            problems.append("Graph has no nodes")

        if not any(edge.source == START for edge in self.edges):
            problems.append("Graph has no entry edge from START")

        for edge in self.edges:
            if edge.source == END:
                problems.append("END cannot be the source of an edge")
            elif edge.source != START and edge.source not in self.nodes:
                problems.append(f"Edge source {edge.source!r} is not a node")
            if edge.conditional and not edge.targets():
                problems.append(f"Conditional edge from {edge.source!r} has an empty route table")
            for target in edge.targets():
                if target == START:
                    problems.append(f"Edge from {edge.source!r} targets START")
                elif target != END and target not in self.nodes:
                    problems.append(f"Edge target {target!r} from {edge.source!r} is not a node")

        names = [*self.interrupt_before, *interrupt_before, *self.interrupt_after, *interrupt_after]
        for name in dict.fromkeys(names):
            if name not in self.nodes:
                problems.append(f"Interrupt node {name!r} is not a node")

        if recursion_limit < 1:
            problems.append(f"Recursion limit must be positive, got {recursion_limit}")
        return problems

    def compile(
        self,
        checkpointer: Optional[BaseCheckpointer] = None,
        interrupt_before: Iterable[str] = (),
        interrupt_after: Iterable[str] = (),
        recursion_limit: int = DEFAULT_RECURSION_LIMIT,
        stores: Optional[Mapping[str, Any]] = None,
        name: Optional[str] = None,
    ) -> CompiledGraph:
        """Validate the definition and produce an immutable CompiledGraph.

        Args:
            checkpointer: Durable checkpoint store; required for resume
            interrupt_before: Extra nodes to suspend before
            interrupt_after: Extra nodes to suspend after
            recursion_limit: Default maximum number of super-steps per run
            stores: Auxiliary stores exposed to nodes through their context
            name: Graph name used in logs, telemetry and exports

        Raises:
            ValidationError: Listing every defect found
        """
        self._check_mutable()
        interrupt_before = list(interrupt_before)
        interrupt_after = list(interrupt_after)
        problems = self.validate(interrupt_before, interrupt_after, recursion_limit)
        if problems:
            raise ValidationError(problems)

        before: FrozenSet[str] = frozenset([*self.interrupt_before, *interrupt_before])
        after: FrozenSet[str] = frozenset([*self.interrupt_after, *interrupt_after])

        graph = CompiledGraph(
            name=name or "graph",
            schema=self.schema,
            nodes=self.nodes,
            edges=self.edges,
            interrupt_before=before,
            interrupt_after=after,
            recursion_limit=recursion_limit,
            checkpointer=checkpointer,
            stores=stores,
            before_node_callback=self.before_node_callback,
            after_node_callback=self.after_node_callback,
            edge_callback=self.edge_callback,
        )
        self._compiled = True
        logger.debug(
            "Compiled graph %s with %d nodes and %d edges",
            graph.name,
            len(self.nodes),
            len(self.edges),
        )
        return graph
