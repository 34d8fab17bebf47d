"""Tests for GraphNode, NodeOutput and RunConfig."""

import asyncio
import threading

import pytest

from adk_graph.errors import GraphError
from adk_graph.errors import NodeExecutionError
from adk_graph.graph import BaseNode
from adk_graph.graph import GraphNode
from adk_graph.graph import Node
from adk_graph.graph import NodeContext
from adk_graph.graph import NodeOutput
from adk_graph.graph import RunConfig


def make_context(name="n"):
    return NodeContext(thread_id="t1", step=0, node_name=name, config=RunConfig(thread_id="t1"))


class Doubler(BaseNode):
    async def execute(self, state, context):
        return NodeOutput(updates={"x": state["x"] * 2})


class TestNodeOutput:
    """Test coercion of node return values."""

    def test_coerce_values(self):
        assert NodeOutput.coerce(None, "n") == NodeOutput()
        assert NodeOutput.coerce({"x": 1}, "n").updates == {"x": 1}
        output = NodeOutput(updates={"y": 2})
        assert NodeOutput.coerce(output, "n") is output

    def test_coerce_rejects_other_types(self):
        with pytest.raises(TypeError, match="'n'"):
            NodeOutput.coerce(42, "n")


class TestGraphNode:
    """Test GraphNode construction and execution."""

    def test_requires_exactly_one_callable(self):
        with pytest.raises(ValueError):
            GraphNode("n")
        with pytest.raises(ValueError):
            GraphNode("n", node=Doubler(), function=lambda s, c: None)
        with pytest.raises(ValueError):
            GraphNode("n", function=lambda s, c: None, timeout=0)

    def test_kind(self):
        assert GraphNode("n", function=lambda s, c: None).kind == "function"
        assert GraphNode("n", node=Doubler()).kind == "node"
        assert isinstance(Doubler(), Node)

    @pytest.mark.asyncio
    async def test_node_object(self):
        output = await GraphNode("n", node=Doubler()).execute({"x": 3}, make_context())
        assert output.updates == {"x": 6}

    @pytest.mark.asyncio
    async def test_sync_function_runs_in_thread(self):
        threads = []

        def blocking(state, ctx):
            threads.append(threading.get_ident())
            return {"x": 1}

        output = await GraphNode("n", function=blocking).execute({}, make_context())

        assert output.updates == {"x": 1}
        assert threads != [threading.get_ident()]

    @pytest.mark.asyncio
    async def test_mappers(self):
        async def node(state, ctx):
            return {"total": sum(state["values"])}

        graph_node = GraphNode(
            "n",
            function=node,
            input_mapper=lambda state: {"values": state["raw"]},
            output_mapper=lambda output, state: {"result": output.updates["total"] + state["bias"]},
        )

        output = await graph_node.execute({"raw": [1, 2, 3], "bias": 10}, make_context())

        assert output.updates == {"result": 16}

    @pytest.mark.asyncio
    async def test_base_node_is_abstract(self):
        with pytest.raises(NotImplementedError):
            await BaseNode().execute({}, make_context())


class TestRunConfig:
    """Test run configuration validation."""

    def test_thread_id_required(self):
        with pytest.raises(ValueError):
            RunConfig(thread_id="")

    def test_invalid_limits(self):
        with pytest.raises(ValueError):
            RunConfig(thread_id="t", recursion_limit=0)
        with pytest.raises(ValueError):
            RunConfig(thread_id="t", node_timeout=-1)

    def test_interrupt_overrides(self):
        config = RunConfig(thread_id="t", interrupt_before=["a", "a"])
        default = frozenset({"b"})

        assert config.interrupts_before(default) == frozenset({"a"})
        assert config.interrupts_after(default) == default

    def test_cancelled(self):
        event = asyncio.Event()
        config = RunConfig(thread_id="t", cancel_event=event)
        assert not config.cancelled
        event.set()
        assert config.cancelled


class TestErrors:
    """Test error context formatting."""

    def test_context_in_message(self):
        error = NodeExecutionError("failed", thread_id="t1", step=3, node="a")

        assert str(error) == "failed (thread_id=t1, step=3, node=a)"
        assert isinstance(error, GraphError)

    def test_message_without_context(self):
        assert str(GraphError("plain")) == "plain"
