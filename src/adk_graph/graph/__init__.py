"""Graph workflow components.

This module contains components for graph-based workflow orchestration:
- StateGraph: Builder for graphs over a declared state schema
- CompiledGraph: Validated, immutable graph with invoke/stream/time travel
- GraphExecutor: Bulk-synchronous super-step engine
- RunResult: Outcome of an invocation (completed or interrupted)
- StateSchema: Ordered set of channels
- Channel: Named state slot with a reducer
- StateReducer: State merge strategies
- GraphNode: Node wrapper for functions, node objects and graphs
- NodeOutput: Updates, interrupt request and custom events of a node call
- NodeContext: Per-call context handed to nodes
- DirectEdge: Unconditional routing between nodes
- ConditionalEdge: Router-driven routing between nodes
- InterruptMode: Human-in-the-loop interrupt modes
- Interrupt: Suspension marker
- Resume: Marker to continue a suspended run
- RunConfig: Per-invocation configuration
- StreamConfig: Stream backpressure policy
- GraphEvent: Typed events for streaming
- GraphEventType: Event type enumeration
- GraphStreamMode: Stream mode enumeration
- NodeCallbackContext: Context for node lifecycle callbacks
- EdgeCallbackContext: Context for edge callbacks
- NodeCallback: Type for node lifecycle callbacks
- EdgeCallback: Type for edge callbacks
"""

from .interrupt import Interrupt
from .interrupt import InterruptKind
from .interrupt import InterruptMode
from .interrupt import Resume
from .graph_state import AppendReducer
from .graph_state import Channel
from .graph_state import CustomReducer
from .graph_state import OverwriteReducer
from .graph_state import Reducer
from .graph_state import StateReducer
from .graph_state import StateSchema
from .graph_state import SumReducer
from .graph_edge import END
from .graph_edge import START
from .graph_edge import ConditionalEdge
from .graph_edge import DirectEdge
from .graph_edge import Router
from .graph_events import GraphEvent
from .graph_events import GraphEventType
from .graph_events import GraphStreamMode
from .graph_node import BaseNode
from .graph_node import GraphNode
from .graph_node import Node
from .graph_node import NodeContext
from .graph_node import NodeOutput
from .run_config import RunConfig
from .run_config import StreamConfig
from .callbacks import EdgeCallback
from .callbacks import EdgeCallbackContext
from .callbacks import NodeCallback
from .callbacks import NodeCallbackContext
from .callbacks import create_nested_observability_callback
from .graph_executor import GraphExecutor
from .graph_executor import RunResult
from .graph_executor import RunStatus
from .compiled_graph import CompiledGraph
from .state_graph import StateGraph

__all__ = [
    "StateGraph",
    "CompiledGraph",
    "GraphExecutor",
    "RunResult",
    "RunStatus",
    "StateSchema",
    "Channel",
    "StateReducer",
    "Reducer",
    "OverwriteReducer",
    "AppendReducer",
    "SumReducer",
    "CustomReducer",
    "GraphNode",
    "Node",
    "BaseNode",
    "NodeOutput",
    "NodeContext",
    "DirectEdge",
    "ConditionalEdge",
    "Router",
    "InterruptMode",
    "InterruptKind",
    "Interrupt",
    "Resume",
    "RunConfig",
    "StreamConfig",
    "GraphEvent",
    "GraphEventType",
    "GraphStreamMode",
    "NodeCallbackContext",
    "EdgeCallbackContext",
    "NodeCallback",
    "EdgeCallback",
    "create_nested_observability_callback",
    "START",
    "END",
]
