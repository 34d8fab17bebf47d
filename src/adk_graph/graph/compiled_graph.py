"""Compiled, immutable graph and its invocation surface."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from types import MappingProxyType
from typing import Any, AsyncGenerator, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Union

from ..checkpoints.base_checkpointer import BaseCheckpointer
from ..checkpoints.models import Checkpoint, CheckpointSource
from ..errors import CheckpointNotFoundError, CheckpointPersistenceError, InvalidUpdateError
from ..telemetry.graph_tracing import trace_checkpoint_save, traced_checkpoint_operation
from .callbacks import EdgeCallback, NodeCallback
from .event_stream import EventStream
from .graph_edge import END, START, Edge
from .graph_events import GraphEvent, GraphStreamMode
from .graph_executor import RESUME_WRITER, GraphExecutor, RunResult
from .graph_node import GraphNode, NodeContext, NodeOutput
from .graph_state import StateReducer, StateSchema
from .interrupt import Interrupt, Resume
from .run_config import RunConfig, StreamConfig

logger = logging.getLogger("adk_graph." + __name__)

UPDATE_WRITER = "__update__"

GraphInput = Union[Mapping[str, Any], Resume, None]


class CompiledGraph:
    """A validated graph ready to run.

    Immutable once produced: attributes cannot be reassigned and the node and
    edge collections are read-only. A CompiledGraph implements the Node
    capability, so it can be registered as a node of another graph.

    Example:
        ```python
        graph = builder.compile(checkpointer=InMemoryCheckpointer())
        config = RunConfig(thread_id="thread-1")

        result = await graph.invoke({"query": "hello"}, config)
        if result.interrupted:
            result = await graph.invoke(Resume(input={"approved": True}), config)

        async for event in graph.stream({"query": "hi"}, config, GraphStreamMode.UPDATES):
            print(event.node_name, event.state_delta)
        ```
    """

    def __init__(
        self,
        *,
        name: str,
        schema: StateSchema,
        nodes: Mapping[str, GraphNode],
        edges: Sequence[Edge],
        interrupt_before: FrozenSet[str] = frozenset(),
        interrupt_after: FrozenSet[str] = frozenset(),
        recursion_limit: int = 25,
        checkpointer: Optional[BaseCheckpointer] = None,
        stores: Optional[Mapping[str, Any]] = None,
        before_node_callback: Optional[NodeCallback] = None,
        after_node_callback: Optional[NodeCallback] = None,
        edge_callback: Optional[EdgeCallback] = None,
    ):
        edges_by_source: Dict[str, List[Edge]] = {}
        for edge in edges:
            edges_by_source.setdefault(edge.source, []).append(edge)
        order = {node_name: index for index, node_name in enumerate(nodes)}

        init = object.__setattr__
        init(self, "name", name)
        init(self, "schema", schema)
        init(self, "nodes", MappingProxyType(dict(nodes)))
        init(self, "edges", tuple(edges))
        init(
            self,
            "edges_by_source",
            MappingProxyType({k: tuple(v) for k, v in edges_by_source.items()}),
        )
        init(self, "interrupt_before", frozenset(interrupt_before))
        init(self, "interrupt_after", frozenset(interrupt_after))
        init(self, "recursion_limit", recursion_limit)
        init(self, "checkpointer", checkpointer)
        init(self, "stores", MappingProxyType(dict(stores or {})))
        init(self, "before_node_callback", before_node_callback)
        init(self, "after_node_callback", after_node_callback)
        init(self, "edge_callback", edge_callback)
        init(self, "_order", order)

    def __setattr__(self, key: str, value: Any) -> None:
        raise AttributeError(f"CompiledGraph is immutable; cannot set {key!r}")

    def registration_index(self, node_name: str) -> int:
        return self._order[node_name]

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def invoke(self, graph_input: GraphInput, config: RunConfig) -> RunResult:
        """Run the graph to completion or to the next interrupt.

        Args:
            graph_input: Initial values for a fresh run on ``config.thread_id``,
                or ``Resume(...)`` / None to continue from a checkpoint
            config: Run configuration

        Returns:
            RunResult with status completed or interrupted

        Raises:
            GraphError: Any fatal error of the run
        """
        return await GraphExecutor(self, config).run(graph_input)

    async def stream(
        self,
        graph_input: GraphInput,
        config: RunConfig,
        stream_mode: Union[GraphStreamMode, Iterable[GraphStreamMode]] = GraphStreamMode.VALUES,
        stream_config: Optional[StreamConfig] = None,
    ) -> AsyncGenerator[GraphEvent, None]:
        """Run the graph and yield its events.

        The run executes in a background task feeding a bounded buffer.
        Terminal events are always delivered. When the run fails, the error
        event is yielded and the exception is raised afterwards. Closing the
        generator early cancels the run.

        Args:
            graph_input: Same as ``invoke``
            config: Run configuration
            stream_mode: One mode or several combined
            stream_config: Backpressure policy

        Yields:
            GraphEvent objects selected by ``stream_mode``
        """
        if isinstance(stream_mode, (GraphStreamMode, str)):
            modes = [GraphStreamMode(stream_mode)]
        else:
            modes = [GraphStreamMode(mode) for mode in stream_mode]
        events = EventStream(modes, stream_config or StreamConfig(), config.thread_id)
        executor = GraphExecutor(self, config, emit=events.emit)

        async def produce() -> RunResult:
            try:
                return await executor.run(graph_input)
            finally:
                events.close()

        task = asyncio.create_task(produce())
        try:
            async for event in events:
                yield event
            await task
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
                logger.info(
                    "Stream closed early, run cancelled",
                    extra={"thread_id": config.thread_id},
                )
            elif not task.cancelled() and task.exception() is not None:
                # Closed after the error event; the error was already delivered
                logger.debug(
                    "Stream closed after run failure: %s",
                    task.exception(),
                    extra={"thread_id": config.thread_id},
                )

    # ------------------------------------------------------------------
    # State inspection and time travel
    # ------------------------------------------------------------------

    def _require_checkpointer(self, thread_id: str) -> BaseCheckpointer:
        if self.checkpointer is None:
            raise CheckpointNotFoundError(
                f"Graph {self.name!r} was compiled without a checkpointer",
                thread_id=thread_id,
            )
        return self.checkpointer

    async def get_state(self, config: RunConfig) -> Optional[Checkpoint]:
        """Latest checkpoint of the thread, or ``config.resume_from`` if set."""
        checkpointer = self._require_checkpointer(config.thread_id)
        if config.resume_from:
            async with traced_checkpoint_operation("load", config.thread_id, config.resume_from):
                checkpoint = await checkpointer.load(config.resume_from)
            if checkpoint is not None and checkpoint.thread_id != config.thread_id:
                return None
            return checkpoint
        async with traced_checkpoint_operation("load_latest", config.thread_id):
            return await checkpointer.load_latest(config.thread_id)

    async def get_state_history(self, config: RunConfig) -> List[Checkpoint]:
        """Every checkpoint of the thread, oldest first."""
        checkpointer = self._require_checkpointer(config.thread_id)
        async with traced_checkpoint_operation("list", config.thread_id):
            return await checkpointer.list(config.thread_id)

    async def update_state(self, config: RunConfig, values: Mapping[str, Any]) -> Checkpoint:
        """Append a checkpoint with ``values`` merged through the reducers.

        The new checkpoint keeps the parent's step, frontier and interrupt
        marker, so a later resume continues exactly where the parent would
        have. Without a parent the update seeds the thread at step 0.

        Raises:
            CheckpointNotFoundError: Without a checkpointer, or when
                ``config.resume_from`` names an unknown checkpoint
            InvalidUpdateError: If ``values`` targets an undeclared channel
            CheckpointPersistenceError: If the save fails
        """
        checkpointer = self._require_checkpointer(config.thread_id)
        parent = await self.get_state(config)
        if parent is None and config.resume_from:
            raise CheckpointNotFoundError(
                f"Checkpoint {config.resume_from!r} not found", thread_id=config.thread_id
            )

        if parent is not None:
            base, step, frontier = parent.state, parent.step, list(parent.pending_frontier)
            interrupt: Optional[Interrupt] = parent.interrupt
        else:
            base, step, frontier, interrupt = self.schema.initial_state(), 0, None, None

        try:
            state = self.schema.apply_updates(base, [(UPDATE_WRITER, values)])
        except InvalidUpdateError as e:
            e.thread_id, e.step = config.thread_id, step
            raise
        if frontier is None:
            frontier = self._entry_frontier(state)

        checkpoint = Checkpoint(
            thread_id=config.thread_id,
            checkpoint_id=str(uuid.uuid4()),
            parent_checkpoint_id=parent.checkpoint_id if parent else None,
            state=state,
            step=step,
            pending_frontier=frontier,
            source=CheckpointSource.UPDATE,
            interrupt=interrupt,
            metadata={**config.metadata, "graph": self.name, "updated_channels": sorted(values)},
        )
        try:
            async with traced_checkpoint_operation(
                "save", config.thread_id, checkpoint.checkpoint_id
            ):
                await checkpointer.save(config.thread_id, checkpoint)
                trace_checkpoint_save(
                    checkpoint.checkpoint_id, config.thread_id, step, CheckpointSource.UPDATE.value
                )
        except Exception as e:
            raise CheckpointPersistenceError(
                f"Failed to save update checkpoint: {e}", thread_id=config.thread_id, step=step
            ) from e

        logger.info(
            "State of thread %s updated: %s",
            config.thread_id,
            ", ".join(sorted(values)),
            extra={"thread_id": config.thread_id, "checkpoint_id": checkpoint.checkpoint_id},
        )
        return checkpoint

    def _entry_frontier(self, state: Mapping[str, Any]) -> List[str]:
        view = MappingProxyType(dict(state))
        targets = {edge.select(view)[1] for edge in self.edges_by_source.get(START, ())}
        targets.discard(END)
        return sorted(targets, key=self.registration_index)

    # ------------------------------------------------------------------
    # Graphs within graphs
    # ------------------------------------------------------------------

    async def execute(self, state: Mapping[str, Any], context: NodeContext) -> NodeOutput:
        """Run this graph as a node of an outer graph.

        The inner run uses thread id ``"{outer_thread}:{node_name}"`` and sees
        only the outer state restricted to its own channels. The inner run's
        own writes to channels shared with the outer graph are returned as
        updates; an inner interrupt suspends the outer run as a dynamic
        interrupt of this node. Writes made before that interrupt travel in
        its ``data["updates"]`` and are returned once the inner run resumes
        and finishes.
        """
        thread_id = f"{context.thread_id}:{context.node_name}"
        inner_input = self.schema.filter(state)
        shared = context.channels or frozenset(self.schema.channel_names)
        config = RunConfig(
            thread_id=thread_id,
            node_timeout=context.config.node_timeout,
            cancel_event=context.config.cancel_event,
            stores=dict(context.stores),
            metadata={
                **context.config.metadata,
                "parent_thread_id": context.thread_id,
                "parent_step": context.step,
            },
        )

        graph_input: GraphInput = inner_input
        baseline: Mapping[str, Any] = inner_input
        carried: Dict[str, Any] = {}
        if context.resuming and self.checkpointer is not None:
            pending = await self.checkpointer.load_latest(thread_id)
            if pending is not None and pending.source == CheckpointSource.INTERRUPT:
                resume_input = self.schema.filter(context.resume_input or {})
                graph_input = Resume(input=resume_input or None)
                # Outer state already holds the resume input; only what the
                # inner nodes write after the resume merge is new
                baseline = self.schema.apply_updates(
                    pending.state, [(RESUME_WRITER, resume_input)]
                )
                resumed = context.interrupt
                if resumed is not None and resumed.data.get("thread_id") == thread_id:
                    carried = dict(resumed.data.get("updates") or {})

        result = await self.invoke(graph_input, config)
        updates = self._changed_channels(baseline, result.state, shared)
        if carried:
            merged = self.schema.apply_updates(
                inner_input, [(context.node_name, carried), (context.node_name, updates)]
            )
            updates = self._changed_channels(inner_input, merged, shared)

        if result.interrupted and result.interrupt is not None:
            inner = result.interrupt
            return NodeOutput(
                interrupt=Interrupt.dynamic(
                    inner.message or inner.describe(),
                    data={
                        "graph": self.name,
                        "thread_id": thread_id,
                        "interrupt": inner.model_dump(mode="json"),
                        "checkpoint_id": result.checkpoint_id,
                        "updates": updates,
                    },
                )
            )
        return NodeOutput(updates=updates)

    def _changed_channels(
        self,
        before: Mapping[str, Any],
        after: Mapping[str, Any],
        shared: FrozenSet[str],
    ) -> Dict[str, Any]:
        """Express inner changes as updates for the outer reducers.

        Append channels return only the appended suffix and Sum channels the
        difference, so the outer merge does not count inner input twice.
        """
        updates: Dict[str, Any] = {}
        for name, channel in self.schema.channels.items():
            if name not in shared or name not in after:
                continue
            new = after[name]
            if name in before and before[name] == new:
                continue
            old = before.get(name)
            kind = channel.reducer.kind
            if (
                kind == StateReducer.APPEND
                and isinstance(old, list)
                and isinstance(new, list)
                and new[: len(old)] == old
            ):
                updates[name] = new[len(old) :]
            elif kind == StateReducer.SUM and old is not None:
                updates[name] = new - old
            else:
                updates[name] = new
        return updates

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_graph_structure(self) -> Dict[str, Any]:
        """Export graph structure in D3-compatible JSON format.

        Returns:
            Dictionary with structure:
            {
                "nodes": [{"id": "fetch", "type": "function", "name": "fetch"}, ...],
                "links": [{"source": "fetch", "target": "summarize", "conditional": False}, ...],
                "metadata": {"start_nodes": ["fetch"], "end_nodes": ["summarize"], ...},
                "directed": True
            }
        """
        nodes = [
            {"id": node_name, "type": node.kind, "name": node.name}
            for node_name, node in self.nodes.items()
        ]

        links = []
        for edge in self.edges:
            if edge.source == START:
                continue
            for target in edge.targets():
                link: Dict[str, Any] = {
                    "source": edge.source,
                    "target": target,
                    "conditional": edge.conditional,
                }
                if edge.conditional:
                    link["routes"] = [
                        str(key) for key, value in edge.route_table.items() if value == target  # type: ignore[union-attr]
                    ]
                links.append(link)

        start_nodes = [
            t for edge in self.edges_by_source.get(START, ()) for t in edge.targets() if t != END
        ]
        end_nodes = [
            edge.source
            for edge in self.edges
            if edge.source != START and END in edge.targets()
        ]
        metadata = {
            "name": self.name,
            "channels": self.schema.channel_names,
            "start_nodes": list(dict.fromkeys(start_nodes)),
            "end_nodes": list(dict.fromkeys(end_nodes)),
            "checkpointing": self.checkpointer is not None,
            "recursion_limit": self.recursion_limit,
            "interrupt_before": sorted(self.interrupt_before, key=self.registration_index),
            "interrupt_after": sorted(self.interrupt_after, key=self.registration_index),
        }

        return {"nodes": nodes, "links": links, "metadata": metadata, "directed": True}

    def __repr__(self) -> str:
        return f"CompiledGraph({self.name!r}, nodes={list(self.nodes)})"
