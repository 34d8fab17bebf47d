"""OpenTelemetry instrumentation for graph runs, checkpoints, interrupts and resume.

This module provides tracing, logging, and metrics for the execution engine
following OpenTelemetry semantic conventions. Without a configured SDK the
OpenTelemetry API falls back to no-op providers.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from opentelemetry import metrics
from opentelemetry import trace
from opentelemetry.semconv.schemas import Schemas

from .. import version

# OpenTelemetry tracer for graph, checkpoint and interrupt operations
tracer = trace.get_tracer(
    instrumenting_module_name="adk_graph",
    instrumenting_library_version=version.__version__,
    schema_url=Schemas.V1_36_0.value,
)

# Python logger for standard logging
logger = logging.getLogger("adk_graph." + __name__)

# OpenTelemetry meter for metrics
meter = metrics.get_meter(
    name="adk_graph",
    version=version.__version__,
    schema_url=Schemas.V1_36_0.value,
)

# Metrics
checkpoint_counter = meter.create_counter(
    name="checkpoint.operations",
    description="Number of checkpoint operations",
    unit="1",
)

checkpoint_latency = meter.create_histogram(
    name="checkpoint.latency",
    description="Checkpoint operation latency",
    unit="ms",
)

step_counter = meter.create_counter(
    name="graph.steps",
    description="Number of completed super-steps",
    unit="1",
)

step_latency = meter.create_histogram(
    name="graph.step.latency",
    description="Super-step latency",
    unit="ms",
)

node_latency = meter.create_histogram(
    name="graph.node.latency",
    description="Node execution latency",
    unit="ms",
)

interrupt_counter = meter.create_counter(
    name="interrupt.operations",
    description="Number of interrupts raised",
    unit="1",
)

resume_counter = meter.create_counter(
    name="resume.operations",
    description="Number of resume operations",
    unit="1",
)

stream_drop_counter = meter.create_counter(
    name="stream.events_dropped",
    description="Non-terminal stream events dropped under backpressure",
    unit="1",
)

# Semantic Conventions - Graph Attributes
GRAPH_NAME = "graph.name"
GRAPH_THREAD_ID = "graph.thread_id"
GRAPH_STEP = "graph.step"
GRAPH_FRONTIER = "graph.frontier"
GRAPH_NODE = "graph.node"
GRAPH_STATUS = "graph.status"

# Semantic Conventions - Checkpoint Attributes
CHECKPOINT_OPERATION = "checkpoint.operation"
CHECKPOINT_ID = "checkpoint.id"
CHECKPOINT_THREAD_ID = "checkpoint.thread_id"
CHECKPOINT_SOURCE = "checkpoint.source"

# Semantic Conventions - Interrupt Attributes
INTERRUPT_TYPE = "interrupt.type"
INTERRUPT_NODE = "interrupt.node"
INTERRUPT_MESSAGE = "interrupt.message"

# Semantic Conventions - Resume Attributes
RESUME_CHECKPOINT_ID = "resume.checkpoint_id"
RESUME_THREAD_ID = "resume.thread_id"
RESUME_STEP = "resume.step"


@asynccontextmanager
async def traced_checkpoint_operation(
    operation: str, thread_id: str, checkpoint_id: Optional[str] = None
) -> AsyncIterator[None]:
    """Span and metrics around one checkpointer call."""
    start_time = time.time()
    attributes = {
        CHECKPOINT_OPERATION: operation,
        CHECKPOINT_THREAD_ID: thread_id,
    }
    if checkpoint_id:
        attributes[CHECKPOINT_ID] = checkpoint_id
    with tracer.start_as_current_span(f"checkpoint.{operation}", attributes=attributes):
        try:
            yield
            duration_ms = (time.time() - start_time) * 1000
            record_checkpoint_metrics(operation, duration_ms, "success")
        except Exception:
            duration_ms = (time.time() - start_time) * 1000
            record_checkpoint_metrics(operation, duration_ms, "error")
            raise


def trace_checkpoint_save(
    checkpoint_id: str,
    thread_id: str,
    step: int,
    source: str,
):
    """Trace checkpoint save operation.

    Args:
        checkpoint_id: Unique checkpoint identifier
        thread_id: Run line being checkpointed
        step: Step recorded in the checkpoint
        source: Why the checkpoint was written (input, loop, interrupt, update)
    """
    span = trace.get_current_span()

    span.set_attribute(CHECKPOINT_ID, checkpoint_id)
    span.set_attribute(CHECKPOINT_SOURCE, source)
    span.set_attribute(GRAPH_STEP, step)

    logger.debug(
        "Checkpoint saved",
        extra={
            "checkpoint_id": checkpoint_id,
            "thread_id": thread_id,
            "step": step,
            "source": source,
        },
    )


def trace_step(
    thread_id: str,
    step: int,
    frontier: list[str],
):
    """Annotate the current step span.

    Args:
        thread_id: Run line
        step: Super-step counter
        frontier: Nodes scheduled this step
    """
    span = trace.get_current_span()

    span.set_attribute(GRAPH_THREAD_ID, thread_id)
    span.set_attribute(GRAPH_STEP, step)
    span.set_attribute(GRAPH_FRONTIER, frontier)

    logger.debug(
        "Step %d planned: %s",
        step,
        ", ".join(frontier),
        extra={"thread_id": thread_id, "step": step},
    )


def trace_interrupt(
    thread_id: str,
    interrupt_type: str,
    node: Optional[str],
    step: int,
    message: Optional[str] = None,
):
    """Trace a run suspension.

    Args:
        thread_id: Run line being suspended
        interrupt_type: before, after or dynamic
        node: Node the interrupt is attached to
        step: Step at which the run stopped
        message: Message carried by a dynamic interrupt
    """
    span = trace.get_current_span()

    span.set_attribute(INTERRUPT_TYPE, interrupt_type)
    if node:
        span.set_attribute(INTERRUPT_NODE, node)
    if message:
        span.set_attribute(INTERRUPT_MESSAGE, message[:200])  # Truncate long messages

    interrupt_counter.add(1, attributes={"type": interrupt_type})

    logger.info(
        "Run interrupted (%s) at node %s",
        interrupt_type,
        node,
        extra={
            "thread_id": thread_id,
            "interrupt_type": interrupt_type,
            "node": node,
            "step": step,
        },
    )


def trace_resume(
    thread_id: str,
    checkpoint_id: str,
    step: int,
    has_input: bool,
):
    """Trace a resume from a checkpoint.

    Args:
        thread_id: Run line being resumed
        checkpoint_id: Checkpoint resumed from
        step: Step the run continues at
        has_input: Whether external input was merged in
    """
    span = trace.get_current_span()

    span.set_attribute(RESUME_THREAD_ID, thread_id)
    span.set_attribute(RESUME_CHECKPOINT_ID, checkpoint_id)
    span.set_attribute(RESUME_STEP, step)

    resume_counter.add(1, attributes={"has_input": has_input})

    logger.info(
        "Resuming from checkpoint %s at step %d",
        checkpoint_id,
        step,
        extra={
            "thread_id": thread_id,
            "checkpoint_id": checkpoint_id,
            "step": step,
            "has_input": has_input,
        },
    )


def record_checkpoint_metrics(
    operation: str,
    duration_ms: float,
    status: str = "success",
):
    """Record checkpoint operation metrics.

    Args:
        operation: Operation type (save, load, load_latest, list)
        duration_ms: Operation duration in milliseconds
        status: Operation status (success, error)
    """
    checkpoint_counter.add(
        1,
        attributes={
            "operation": operation,
            "status": status,
        },
    )

    checkpoint_latency.record(
        duration_ms,
        attributes={
            "operation": operation,
        },
    )


def record_step_metrics(graph_name: str, duration_ms: float, node_count: int):
    step_counter.add(1, attributes={"graph": graph_name})
    step_latency.record(
        duration_ms, attributes={"graph": graph_name, "node_count": node_count}
    )


def record_node_metrics(graph_name: str, node: str, duration_ms: float, status: str):
    node_latency.record(
        duration_ms, attributes={"graph": graph_name, "node": node, "status": status}
    )


def record_stream_event_dropped(event_type: str):
    stream_drop_counter.add(1, attributes={"event_type": event_type})
