"""Super-step execution engine.

One invocation of a compiled graph is driven by a GraphExecutor through a
sequence of bulk-synchronous super-steps:

1. Plan: check cancellation and the recursion limit, take the frontier
2. Pre-interrupt: stop before a frontier node listed in interrupt_before
3. Execute: run every frontier node concurrently on the same snapshot
4. Dynamic interrupt: stop if any node asked to, discarding the step
5. Update: merge updates per channel in node registration order
6. Post-interrupt: stop after an executed node listed in interrupt_after
7. Checkpoint: persist state, step and next frontier
8. Advance: resolve edges into the next frontier; empty means done

Nodes of one step never see each other's output, and the merge order is
fixed by registration order rather than completion order, so a run is
deterministic for deterministic nodes and a resumed run reaches the same
state as one that never stopped.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from ..checkpoints.base_checkpointer import CheckpointReader
from ..checkpoints.models import Checkpoint, CheckpointSource
from ..errors import (
    CheckpointNotFoundError,
    CheckpointPersistenceError,
    GraphCancelledError,
    GraphError,
    InvalidUpdateError,
    NodeExecutionError,
    RecursionLimitExceeded,
    ValidationError,
)
from ..telemetry.graph_tracing import (
    GRAPH_NAME,
    GRAPH_NODE,
    GRAPH_STATUS,
    GRAPH_THREAD_ID,
    record_node_metrics,
    record_step_metrics,
    trace_checkpoint_save,
    trace_interrupt,
    trace_resume,
    trace_step,
    traced_checkpoint_operation,
    tracer,
)
from .callbacks import EdgeCallbackContext, NodeCallbackContext
from .graph_edge import END, START
from .graph_events import GraphEvent, GraphEventType
from .graph_node import GraphNode, NodeContext, NodeOutput
from .interrupt import Interrupt, InterruptKind, Resume
from .run_config import RunConfig

if TYPE_CHECKING:
    from .compiled_graph import CompiledGraph

logger = logging.getLogger("adk_graph." + __name__)

Emitter = Callable[[GraphEvent], Awaitable[None]]

# Writer names used when external values are merged through the reducers
INPUT_WRITER = "__input__"
RESUME_WRITER = "__resume__"


class RunStatus(str, Enum):
    """Outcome of an invocation that did not fail."""

    COMPLETED = "completed"
    INTERRUPTED = "interrupted"


class RunResult(BaseModel):  # type: ignore[misc]
    """Result of ``invoke``.

    Attributes:
        thread_id: Run line
        status: completed or interrupted
        state: Final state, or the checkpointed state at the suspension point
        step: Super-step counter when the run stopped
        interrupt: Suspension marker when interrupted
        checkpoint_id: Last checkpoint written, needed to resume
    """

    thread_id: str
    status: RunStatus
    state: Dict[str, Any] = Field(default_factory=dict)
    step: int = 0
    interrupt: Optional[Interrupt] = None
    checkpoint_id: Optional[str] = None

    @property
    def interrupted(self) -> bool:
        return self.status == RunStatus.INTERRUPTED

    @property
    def completed(self) -> bool:
        return self.status == RunStatus.COMPLETED


@dataclass
class _Run:
    """Ephemeral progress of one invocation."""

    state: Dict[str, Any]
    step: int
    frontier: List[str]
    parent_checkpoint_id: Optional[str] = None
    skip_interrupt_before: bool = False
    resuming: bool = False
    resume_input: Optional[Dict[str, Any]] = None
    resumed_interrupt: Optional[Interrupt] = None


class GraphExecutor:
    """Drives one invocation of a compiled graph.

    The executor holds exclusive write access to the run's state and issues
    every checkpointer write; nodes only receive read-only snapshots and a
    read-only checkpoint accessor.
    """

    def __init__(
        self,
        graph: "CompiledGraph",
        config: RunConfig,
        emit: Optional[Emitter] = None,
    ) -> None:
        self.graph = graph
        self.config = config
        self.thread_id = config.thread_id
        self.recursion_limit = config.recursion_limit or graph.recursion_limit
        self.interrupt_before = config.interrupts_before(graph.interrupt_before)
        self.interrupt_after = config.interrupts_after(graph.interrupt_after)
        unknown = sorted((self.interrupt_before | self.interrupt_after) - set(graph.nodes))
        if unknown:
            raise ValidationError(
                [f"Interrupt node {name!r} is not a node" for name in unknown]
            )
        self.checkpointer = graph.checkpointer
        self.stores = MappingProxyType({**graph.stores, **config.stores})
        self._emit = emit
        self._reader = (
            CheckpointReader(self.checkpointer, self.thread_id) if self.checkpointer else None
        )
        self._last_checkpoint_id: Optional[str] = None

    async def run(self, graph_input: Any) -> RunResult:
        """Run to completion or suspension.

        Args:
            graph_input: Initial values for a fresh run, or a Resume marker
                (None also resumes) to continue from a checkpoint

        Raises:
            GraphError: Any fatal error, annotated with thread id and step
        """
        with tracer.start_as_current_span(
            f"graph.run {self.graph.name}",
            attributes={GRAPH_NAME: self.graph.name, GRAPH_THREAD_ID: self.thread_id},
        ) as span:
            try:
                if graph_input is None or isinstance(graph_input, Resume):
                    run = await self._prepare_resume(
                        graph_input if graph_input is not None else Resume()
                    )
                else:
                    run = await self._prepare_fresh(graph_input)
                result = await self._loop(run)
            except Exception as e:
                if isinstance(e, GraphError) and e.thread_id is None:
                    e.thread_id = self.thread_id
                span.set_attribute(GRAPH_STATUS, "failed")
                logger.error(
                    "Run of %s failed: %s",
                    self.graph.name,
                    e,
                    extra={"thread_id": self.thread_id},
                )
                await self._send(
                    GraphEventType.ERROR,
                    step=getattr(e, "step", None),
                    node_name=getattr(e, "node", None),
                    error_message=str(e),
                    error_type=type(e).__name__,
                )
                raise

            span.set_attribute(GRAPH_STATUS, result.status.value)
            if result.interrupted:
                await self._send(
                    GraphEventType.INTERRUPT,
                    step=result.step,
                    node_name=result.interrupt.node if result.interrupt else None,
                    graph_state=copy.deepcopy(result.state),
                    interrupt_mode=result.interrupt.kind.value if result.interrupt else None,
                    interrupt_message=result.interrupt.message if result.interrupt else None,
                    checkpoint_id=result.checkpoint_id,
                )
            else:
                logger.info(
                    "Run of %s completed after %d steps",
                    self.graph.name,
                    result.step,
                    extra={"thread_id": self.thread_id, "step": result.step},
                )
                await self._send(
                    GraphEventType.COMPLETE,
                    step=result.step,
                    graph_state=copy.deepcopy(result.state),
                    checkpoint_id=result.checkpoint_id,
                )
            return result

    # ------------------------------------------------------------------
    # Run preparation
    # ------------------------------------------------------------------

    async def _prepare_fresh(self, graph_input: Any) -> _Run:
        if not isinstance(graph_input, Mapping):
            raise InvalidUpdateError(
                f"Graph input must be a mapping, got {type(graph_input).__name__}",
                thread_id=self.thread_id,
                step=0,
            )
        state = self.graph.schema.apply_updates(
            self.graph.schema.initial_state(), [(INPUT_WRITER, graph_input)]
        )
        frontier = await self._resolve_edges([START], state, step=0)

        parent_id = None
        if self.checkpointer is not None:
            latest = await self._load(None)
            parent_id = latest.checkpoint_id if latest else None

        run = _Run(state=state, step=0, frontier=frontier, parent_checkpoint_id=parent_id)
        logger.info(
            "Starting run of %s with frontier %s",
            self.graph.name,
            frontier,
            extra={"thread_id": self.thread_id},
        )
        await self._checkpoint(run, CheckpointSource.INPUT, state, 0, frontier)
        return run

    async def _prepare_resume(self, resume: Resume) -> _Run:
        if self.checkpointer is None:
            raise CheckpointNotFoundError(
                f"Cannot resume graph {self.graph.name!r} without a checkpointer",
                thread_id=self.thread_id,
            )
        checkpoint_id = resume.checkpoint_id or self.config.resume_from
        checkpoint = await self._load(checkpoint_id)
        if checkpoint is None or checkpoint.thread_id != self.thread_id:
            target = checkpoint_id or "latest checkpoint"
            raise CheckpointNotFoundError(
                f"No checkpoint to resume from ({target})", thread_id=self.thread_id
            )

        state = dict(checkpoint.state)
        if resume.input:
            try:
                state = self.graph.schema.apply_updates(state, [(RESUME_WRITER, resume.input)])
            except InvalidUpdateError as e:
                e.step = checkpoint.step
                raise

        trace_resume(
            self.thread_id, checkpoint.checkpoint_id, checkpoint.step, bool(resume.input)
        )
        self._last_checkpoint_id = checkpoint.checkpoint_id
        skip_before = checkpoint.interrupt is not None and checkpoint.interrupt.kind in (
            InterruptKind.BEFORE,
            InterruptKind.DYNAMIC,
        )
        return _Run(
            state=state,
            step=checkpoint.step,
            frontier=list(checkpoint.pending_frontier),
            parent_checkpoint_id=checkpoint.checkpoint_id,
            skip_interrupt_before=skip_before,
            resuming=True,
            resume_input=dict(resume.input) if resume.input else None,
            resumed_interrupt=checkpoint.interrupt,
        )

    # ------------------------------------------------------------------
    # Super-step loop
    # ------------------------------------------------------------------

    async def _loop(self, run: _Run) -> RunResult:
        first = True
        while True:
            # Plan
            if self.config.cancelled:
                raise GraphCancelledError(
                    "Run cancelled", thread_id=self.thread_id, step=run.step
                )
            if not run.frontier:
                return self._result(run, RunStatus.COMPLETED)
            if run.step >= self.recursion_limit:
                raise RecursionLimitExceeded(self.recursion_limit, thread_id=self.thread_id)

            step = run.step
            frontier = list(run.frontier)
            step_started = time.perf_counter()
            with tracer.start_as_current_span(
                f"graph.step {step}", attributes={GRAPH_NAME: self.graph.name}
            ):
                trace_step(self.thread_id, step, frontier)
                await self._send(GraphEventType.STEP_START, step=step, frontier=frontier)

                # Pre-interrupt
                if not (first and run.skip_interrupt_before):
                    hit = next((n for n in frontier if n in self.interrupt_before), None)
                    if hit is not None:
                        return await self._suspend(
                            run, Interrupt.before(hit), run.state, step, frontier
                        )

                # Execute
                outputs = await self._execute_step(run, step, frontier, first and run.resuming)

                # Dynamic interrupt
                requests = [(name, out.interrupt) for name, out in outputs if out.interrupt]
                if requests:
                    name, requested = requests[0]
                    for dropped_name, _ in requests[1:]:
                        logger.warning(
                            "Dropping interrupt from %s; %s requested one first in "
                            "registration order",
                            dropped_name,
                            name,
                            extra={"thread_id": self.thread_id, "step": step},
                        )
                    interrupt = requested.model_copy(update={"node": requested.node or name})
                    return await self._suspend(run, interrupt, run.state, step, frontier)

                # Update
                try:
                    new_state = self.graph.schema.apply_updates(
                        run.state, [(name, out.updates) for name, out in outputs]
                    )
                except InvalidUpdateError as e:
                    e.thread_id, e.step = self.thread_id, step
                    raise
                run.state = new_state
                await self._publish_step(step, outputs, new_state)

                # Advance (edges resolve against the merged state)
                executed = [name for name, _ in outputs]
                next_frontier = await self._resolve_edges(executed, new_state, step)

                # Post-interrupt
                hit = next((n for n in executed if n in self.interrupt_after), None)
                if hit is not None:
                    return await self._suspend(
                        run, Interrupt.after(hit), new_state, step + 1, next_frontier
                    )

                # Checkpoint
                await self._checkpoint(
                    run, CheckpointSource.LOOP, new_state, step + 1, next_frontier
                )
                await self._send(GraphEventType.STEP_END, step=step, frontier=next_frontier)
                record_step_metrics(
                    self.graph.name, (time.perf_counter() - step_started) * 1000, len(frontier)
                )

            run.step = step + 1
            run.frontier = next_frontier
            first = False

    async def _execute_step(
        self, run: _Run, step: int, frontier: List[str], resuming: bool
    ) -> List[Tuple[str, NodeOutput]]:
        """Run all frontier nodes concurrently and wait for every one of them."""
        calls = [
            self._execute_node(self.graph.nodes[name], run, step, resuming) for name in frontier
        ]
        results = await asyncio.gather(*calls, return_exceptions=True)

        # Report the failure of the earliest-registered node
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(zip(frontier, results))  # type: ignore[arg-type]

    async def _execute_node(
        self, node: GraphNode, run: _Run, step: int, resuming: bool
    ) -> NodeOutput:
        snapshot = MappingProxyType(copy.deepcopy(run.state))
        context = NodeContext(
            thread_id=self.thread_id,
            step=step,
            node_name=node.name,
            config=self.config,
            checkpoints=self._reader,
            stores=self.stores,
            resuming=resuming,
            resume_input=copy.deepcopy(run.resume_input) if resuming else None,
            interrupt=run.resumed_interrupt if resuming else None,
            channels=frozenset(self.graph.schema.channel_names),
        )
        timeout = node.timeout or self.config.node_timeout
        started = time.perf_counter()
        status = "error"

        with tracer.start_as_current_span(
            f"graph.node {node.name}", attributes={GRAPH_NODE: node.name}
        ):
            await self._send(GraphEventType.NODE_START, step=step, node_name=node.name)
            try:
                if self.graph.before_node_callback:
                    event = await self.graph.before_node_callback(
                        NodeCallbackContext(node, snapshot, step, self.thread_id)
                    )
                    await self._forward(event, step, node.name)

                if timeout:
                    output = await asyncio.wait_for(node.execute(snapshot, context), timeout)
                else:
                    output = await node.execute(snapshot, context)

                if self.graph.after_node_callback:
                    event = await self.graph.after_node_callback(
                        NodeCallbackContext(
                            node, MappingProxyType(dict(output.updates)), step, self.thread_id
                        )
                    )
                    await self._forward(event, step, node.name)
                status = "success"
            except asyncio.TimeoutError as e:
                raise NodeExecutionError(
                    f"Node {node.name!r} timed out after {timeout}s",
                    thread_id=self.thread_id,
                    step=step,
                    node=node.name,
                    timed_out=True,
                ) from e
            except Exception as e:
                raise NodeExecutionError(
                    f"Node {node.name!r} failed: {e}",
                    thread_id=self.thread_id,
                    step=step,
                    node=node.name,
                ) from e
            finally:
                duration_ms = (time.perf_counter() - started) * 1000
                record_node_metrics(self.graph.name, node.name, duration_ms, status)

        await self._send(
            GraphEventType.NODE_END, step=step, node_name=node.name, duration_ms=duration_ms
        )
        return output

    async def _resolve_edges(
        self, sources: List[str], state: Dict[str, Any], step: int
    ) -> List[str]:
        """Fire the outgoing edges of ``sources`` against ``state``.

        Each conditional router is evaluated exactly once per firing source.
        The result is de-duplicated and ordered by node registration.
        """
        view = MappingProxyType(state)
        targets = set()
        for source in sources:
            for edge in self.graph.edges_by_source.get(source, ()):
                route_key, target = edge.select(view, thread_id=self.thread_id, step=step)
                if self.graph.edge_callback:
                    event = await self.graph.edge_callback(
                        EdgeCallbackContext(
                            from_node=source,
                            to_node=target,
                            conditional=edge.conditional,
                            route_key=route_key,
                            state=view,
                            step=step,
                            thread_id=self.thread_id,
                        )
                    )
                    await self._forward(event, step, source)
                if target != END:
                    targets.add(target)
        return sorted(targets, key=self.graph.registration_index)

    # ------------------------------------------------------------------
    # Suspension, checkpoints, events
    # ------------------------------------------------------------------

    async def _suspend(
        self,
        run: _Run,
        interrupt: Interrupt,
        state: Dict[str, Any],
        step: int,
        frontier: List[str],
    ) -> RunResult:
        await self._checkpoint(
            run, CheckpointSource.INTERRUPT, state, step, frontier, interrupt=interrupt
        )
        trace_interrupt(
            self.thread_id, interrupt.kind.value, interrupt.node, step, interrupt.message
        )
        run.state, run.step, run.frontier = state, step, frontier
        return self._result(run, RunStatus.INTERRUPTED, interrupt)

    def _result(
        self, run: _Run, status: RunStatus, interrupt: Optional[Interrupt] = None
    ) -> RunResult:
        return RunResult(
            thread_id=self.thread_id,
            status=status,
            state=copy.deepcopy(run.state),
            step=run.step,
            interrupt=interrupt,
            checkpoint_id=self._last_checkpoint_id,
        )

    async def _checkpoint(
        self,
        run: _Run,
        source: CheckpointSource,
        state: Dict[str, Any],
        step: int,
        frontier: List[str],
        interrupt: Optional[Interrupt] = None,
    ) -> Optional[str]:
        """Persist a checkpoint. Failures are fatal and never swallowed."""
        if self.checkpointer is None:
            return None
        checkpoint = Checkpoint(
            thread_id=self.thread_id,
            checkpoint_id=str(uuid.uuid4()),
            parent_checkpoint_id=run.parent_checkpoint_id,
            state=state,
            step=step,
            pending_frontier=frontier,
            source=source,
            interrupt=interrupt,
            metadata={**self.config.metadata, "graph": self.graph.name},
        )
        try:
            async with traced_checkpoint_operation(
                "save", self.thread_id, checkpoint.checkpoint_id
            ):
                checkpoint_id = await self.checkpointer.save(self.thread_id, checkpoint)
                trace_checkpoint_save(checkpoint_id, self.thread_id, step, source.value)
        except Exception as e:
            raise CheckpointPersistenceError(
                f"Failed to save {source.value} checkpoint: {e}",
                thread_id=self.thread_id,
                step=step,
            ) from e

        run.parent_checkpoint_id = checkpoint_id
        self._last_checkpoint_id = checkpoint_id
        await self._send(
            GraphEventType.CHECKPOINT,
            step=step,
            checkpoint_id=checkpoint_id,
            frontier=list(frontier),
            metadata={"source": source.value},
        )
        return checkpoint_id

    async def _load(self, checkpoint_id: Optional[str]) -> Optional[Checkpoint]:
        operation = "load" if checkpoint_id else "load_latest"
        try:
            async with traced_checkpoint_operation(operation, self.thread_id, checkpoint_id):
                if checkpoint_id:
                    return await self.checkpointer.load(checkpoint_id)  # type: ignore[union-attr]
                return await self.checkpointer.load_latest(self.thread_id)  # type: ignore[union-attr]
        except Exception as e:
            raise CheckpointPersistenceError(
                f"Failed to load checkpoint: {e}", thread_id=self.thread_id
            ) from e

    async def _publish_step(
        self, step: int, outputs: List[Tuple[str, NodeOutput]], state: Dict[str, Any]
    ) -> None:
        if self._emit is None:
            return
        for name, output in outputs:
            await self._send(
                GraphEventType.UPDATES,
                step=step,
                node_name=name,
                state_delta=copy.deepcopy(output.updates),
            )
        for name, output in outputs:
            for payload in output.events:
                await self._send(
                    GraphEventType.CUSTOM, step=step, node_name=name, payload=payload
                )
        await self._send(GraphEventType.STATE, step=step, graph_state=copy.deepcopy(state))

    async def _forward(self, event: Optional[GraphEvent], step: int, node_name: str) -> None:
        """Emit an event returned by a callback."""
        if event is None or self._emit is None:
            return
        fill = {
            key: value
            for key, value in (
                ("thread_id", self.thread_id),
                ("step", step),
                ("node_name", node_name),
            )
            if getattr(event, key) is None
        }
        await self._emit(event.model_copy(update=fill) if fill else event)

    async def _send(self, event_type: GraphEventType, **fields: Any) -> None:
        if self._emit is None:
            return
        await self._emit(GraphEvent(event_type=event_type, thread_id=self.thread_id, **fields))
