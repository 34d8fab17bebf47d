"""Stateful graph workflows with checkpointing, interrupts and streaming.

Example:
    ```python
    from adk_graph import END, START, InMemoryCheckpointer, RunConfig, StateGraph

    builder = StateGraph(channels=["count"])
    builder.add_node("inc", lambda state, ctx: {"count": state["count"] + 1})
    builder.add_edge(START, "inc")
    builder.add_edge("inc", END)

    graph = builder.compile(checkpointer=InMemoryCheckpointer())
    result = await graph.invoke({"count": 0}, RunConfig(thread_id="t1"))
    ```
"""

from . import version
from .graph import END
from .graph import START
from .graph import CompiledGraph
from .graph import GraphEvent
from .graph import GraphEventType
from .graph import GraphNode
from .graph import GraphStreamMode
from .graph import Interrupt
from .graph import InterruptMode
from .graph import NodeContext
from .graph import NodeOutput
from .graph import Resume
from .graph import RunConfig
from .graph import RunResult
from .graph import StateGraph
from .graph import StateReducer
from .graph import StreamConfig
from .checkpoints import BaseCheckpointer
from .checkpoints import Checkpoint
from .checkpoints import CheckpointerConfig
from .checkpoints import InMemoryCheckpointer
from .checkpoints import SqliteCheckpointer
from .errors import GraphError

__version__ = version.__version__

__all__ = [
    "StateGraph",
    "CompiledGraph",
    "RunConfig",
    "StreamConfig",
    "RunResult",
    "GraphNode",
    "NodeOutput",
    "NodeContext",
    "StateReducer",
    "Interrupt",
    "InterruptMode",
    "Resume",
    "GraphEvent",
    "GraphEventType",
    "GraphStreamMode",
    "BaseCheckpointer",
    "Checkpoint",
    "CheckpointerConfig",
    "InMemoryCheckpointer",
    "SqliteCheckpointer",
    "GraphError",
    "START",
    "END",
]
